from unittest.mock import patch

import httpx
from click.testing import CliRunner

from api_doc_check.cli import main
from api_doc_check.http.transport import HttpTransport

GOOD_PAGE = """# Item

## Properties

| Property | Type | Description |
|----------|------|-------------|
| id | String | The unique identifier. Read-only. |
| size | Int64 | Size in bytes. |

## Example

```http
GET /items/{item-id}
```

```http
HTTP/1.1 200 OK
Content-Type: application/json

{"id": "1", "size": 3}
```
"""

BAD_PAGE = """# Broken

```http
GET
```
"""

MISSPELLED_PAGE = """# Item

## Propertes

| Name | Type |
|------|------|
| id | String |
"""


def _write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestCliScan:
    def test_clean_page(self, tmp_path):
        page = _write(tmp_path, "item.md", GOOD_PAGE)
        result = CliRunner().invoke(main, ["scan", str(page)])

        assert result.exit_code == 0
        assert "1 table(s), 2 HTTP block(s)" in result.output
        assert "0 error(s), 0 warning(s)." in result.output

    def test_parse_error_fails(self, tmp_path):
        page = _write(tmp_path, "broken.md", BAD_PAGE)
        result = CliRunner().invoke(main, ["scan", str(page)])

        assert result.exit_code == 1
        assert "HttpParserError" in result.output
        assert "broken.md/line 3" in result.output

    def test_warnings_fail_only_when_asked(self, tmp_path):
        page = _write(tmp_path, "item.md", MISSPELLED_PAGE)
        runner = CliRunner()

        result = runner.invoke(main, ["scan", str(page)])
        assert result.exit_code == 0
        assert "HeadingMisspelled" in result.output

        result = runner.invoke(main, ["scan", str(page), "--fail-on-warnings"])
        assert result.exit_code == 1

    def test_suppressions_and_audit(self, tmp_path):
        page = _write(tmp_path, "broken.md", BAD_PAGE)
        config = _write(tmp_path, "config.yaml", (
            "suppressions:\n"
            "  - \"broken.md/line 3: Unable to parse HTTP request: Request does not contain a proper HTTP request first line: 'GET'\"\n"
            "  - never seen\n"
        ))
        result = CliRunner().invoke(main, ["scan", str(page), "--config", str(config)])

        assert result.exit_code == 0
        assert "1 suppression(s) were never used:" in result.output
        assert "never seen" in result.output

    def test_downgraded_errors_listed(self, tmp_path):
        page = _write(tmp_path, "broken.md", BAD_PAGE)
        config = _write(tmp_path, "config.yaml", "treatErrorsAsWarningsWorkloads: [broken]\n")
        result = CliRunner().invoke(main, ["scan", str(page), "--config", str(config)])

        assert result.exit_code == 0
        assert "1 error(s) treated as warnings:" in result.output

    def test_bad_table_config(self, tmp_path):
        page = _write(tmp_path, "item.md", GOOD_PAGE)
        tables = _write(tmp_path, "tables.yaml", "tables: []\nparsingRules: nope\n")
        result = CliRunner().invoke(main, ["scan", str(page), "--tables", str(tables)])

        assert result.exit_code == 1
        assert "Invalid table configuration" in result.output

    def test_missing_page(self, tmp_path):
        result = CliRunner().invoke(main, ["scan", str(tmp_path / "nope.md")])
        assert result.exit_code == 2


def _mock_transport(handler):
    def factory(account, concurrency, timeout, retry):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.example")
        return HttpTransport(account, concurrency, timeout, retry, client=client)
    return factory


SCENARIO = """\
- name: get
  request: GET /items/{item-id}
  expectedResponse: HTTP/1.1 200 OK
  parameters:
    '{item-id}': '1'
  resource: item
"""


class TestCliRun:
    def test_passing_scenario(self, tmp_path):
        scenario = _write(tmp_path, "scenario.yaml", SCENARIO)
        page = _write(tmp_path, "item.md", GOOD_PAGE)

        def handler(request):
            assert request.url.path == "/items/1"
            return httpx.Response(200, json={"id": "1", "size": 3})

        with patch("api_doc_check.cli.HttpTransport", _mock_transport(handler)):
            result = CliRunner().invoke(main, ["run", str(scenario), "--resource", str(page)])

        assert result.exit_code == 0, result.output
        assert "[PASS] get (200)" in result.output

    def test_failing_scenario(self, tmp_path):
        scenario = _write(tmp_path, "scenario.yaml", SCENARIO)
        page = _write(tmp_path, "item.md", GOOD_PAGE)

        def handler(request):
            return httpx.Response(200, json={"id": 1})

        with patch("api_doc_check.cli.HttpTransport", _mock_transport(handler)):
            result = CliRunner().invoke(main, ["run", str(scenario), "--resource", str(page)])

        assert result.exit_code == 1
        assert "[FAIL] get (200)" in result.output
        assert "ExpectedTypeDifferent" in result.output
        assert "RequiredPropertiesMissing" in result.output

    def test_invalid_scenario(self, tmp_path):
        scenario = _write(tmp_path, "scenario.yaml", "name: nope\n")
        result = CliRunner().invoke(main, ["run", str(scenario)])

        assert result.exit_code == 1
        assert "must contain a list of steps" in result.output
