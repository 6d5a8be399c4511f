from api_doc_check.parser.markdown import (
    extract_page,
    extract_page_file,
    split_table_row,
    strip_markdown,
)

PAGE = """# Get user

Retrieve a user.

## Path parameters

| Name | Type | Description |
|:-----|:-----|:------------|
| id | `Edm.String` | The **unique** identifier. Required. |

## Example

```http
GET /users/{id}
```

```json
{"id": "1"}
```

### Response

```http
HTTP/1.1 200 OK
Content-Type: application/json

{"id": "1"}
```
"""


class TestStripMarkdown:
    def test_removes_inline_formatting(self):
        assert strip_markdown("**bold** and *em* and `code`") == "bold and em and code"

    def test_keeps_link_text(self):
        assert strip_markdown("[identitySet](identityset.md)") == "identitySet"

    def test_keeps_underscores(self):
        assert strip_markdown("snake_case_name") == "snake_case_name"

    def test_nbsp(self):
        assert strip_markdown("&nbsp;") == ""
        assert strip_markdown(None) == ""


class TestSplitTableRow:
    def test_outer_pipes_optional(self):
        assert split_table_row("| a | b |") == ["a", "b"]
        assert split_table_row("a | b") == ["a", "b"]

    def test_escaped_pipe(self):
        assert split_table_row(r"| a \| b | c |") == ["a | b", "c"]


class TestExtractPage:
    def test_tables_carry_heading(self):
        page = extract_page(PAGE)
        assert len(page.tables) == 1
        block = page.tables[0]
        assert block.heading == "Path parameters"
        assert block.table.column_headers == ["Name", "Type", "Description"]
        assert block.table.rows == [["id", "`Edm.String`", "The **unique** identifier. Required."]]
        assert block.line_number == 7

    def test_only_http_blocks_selected(self):
        page = extract_page(PAGE)
        assert len(page.code_blocks) == 3
        assert [b.heading for b in page.http_blocks] == ["Example", "Response"]
        assert page.http_blocks[0].text == "GET /users/{id}"
        assert page.http_blocks[1].text.startswith("HTTP/1.1 200 OK")

    def test_pipes_inside_code_block_are_not_tables(self):
        page = extract_page("```\n| a | b |\n|---|---|\n```\n")
        assert page.tables == []

    def test_crlf_input(self):
        page = extract_page(PAGE.replace("\n", "\r\n"))
        assert len(page.tables) == 1
        assert len(page.http_blocks) == 2

    def test_from_file(self, tmp_path):
        path = tmp_path / "user-get.md"
        path.write_text(PAGE, encoding="utf-8")
        assert extract_page_file(path) == extract_page(PAGE)
