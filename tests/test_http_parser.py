import pytest

from api_doc_check.errors import (
    InvalidHeaderLineError,
    MalformedFirstLineError,
    MalformedStatusLineError,
    MissingMethodOrUrlError,
)
from api_doc_check.http.models import Request, Response, replace_header
from api_doc_check.http.parser import (
    parse_request,
    parse_response,
    try_parse_request,
    try_parse_response,
)
from api_doc_check.issues import IssueCode, IssueLogger


class TestParseRequest:
    def test_simple_get(self):
        request = parse_request("GET https://x/y")
        assert request.method == "GET"
        assert request.url == "https://x/y"
        assert request.http_version == "HTTP/1.1"
        assert not request.body

    def test_url_with_spaces_preserved(self):
        url = "https://graph.example/v1/users?$filter=a eq 'b c'"
        request = parse_request(f"GET {url}")
        assert request.url == url

    def test_url_with_spaces_and_trailing_version(self):
        request = parse_request("GET /me/drive/root/children?$filter=name eq 'a b' HTTP/1.1")
        assert request.url == "/me/drive/root/children?$filter=name eq 'a b'"
        assert request.http_version == "HTTP/1.1"

    def test_version_before_url(self):
        request = parse_request("GET HTTP/2 /me/items")
        assert request.url == "/me/items"
        assert request.http_version == "HTTP/2"

    def test_headers_and_body(self):
        text = (
            "POST /me/items HTTP/1.1\r\n"
            "Content-Type: application/json\r\n"
            "Prefer: respond-async\r\n"
            "\r\n"
            '{"name": "a"}'
        )
        request = parse_request(text)
        assert request.headers == [("Content-Type", "application/json"), ("Prefer", "respond-async")]
        assert request.content_type == "application/json"
        assert request.body == '{"name": "a"}'

    def test_leading_blank_lines_skipped(self):
        request = parse_request("\n\nDELETE /items/1\n")
        assert request.method == "DELETE"
        assert request.url == "/items/1"

    def test_parsing_twice_gives_equal_results(self):
        text = "PATCH /items/1\nIf-Match: abc\n\n{}"
        assert parse_request(text) == parse_request(text)

    def test_empty_text_raises(self):
        with pytest.raises(MalformedFirstLineError):
            parse_request("   ")

    def test_single_token_raises(self):
        with pytest.raises(MalformedFirstLineError):
            parse_request("GET")

    def test_response_line_rejected(self):
        with pytest.raises(MalformedFirstLineError):
            parse_request("HTTP/1.1 200 OK")

    def test_invalid_header_raises(self):
        with pytest.raises(InvalidHeaderLineError):
            parse_request("GET /x\nnot a header\n")

    def test_missing_url_raises(self):
        with pytest.raises(MissingMethodOrUrlError):
            parse_request("GET  HTTP/1.1")


class TestParseResponse:
    def test_full_response(self):
        response = parse_response("HTTP/1.1 200 OK\r\nX: 1\r\n\r\nbody")
        assert response.status_code == 200
        assert response.status_message == "OK"
        assert response.header("x") == "1"
        assert response.body == "body"
        assert response.successful

    def test_multi_word_status_message(self):
        response = parse_response("HTTP/1.1 404 Not Found")
        assert response.status_message == "Not Found"
        assert not response.successful

    def test_missing_message_raises(self):
        with pytest.raises(MalformedStatusLineError):
            parse_response("HTTP/1.1 200")

    def test_non_numeric_status_raises(self):
        with pytest.raises(MalformedStatusLineError):
            parse_response("HTTP/1.1 OK fine")

    def test_full_text(self):
        response = Response(status_code=201, status_message="Created", headers=[("Location", "/a")], body="{}")
        assert response.full_text() == "HTTP/1.1 201 Created\r\nLocation: /a\r\n\r\n{}"


class TestTryParse:
    def test_failure_recorded_as_issue(self):
        issues = IssueLogger("page.md")
        ok, request = try_parse_request("GET", issues)
        assert not ok
        assert request is None
        assert issues.errors[0].code is IssueCode.HTTP_PARSER_ERROR

    def test_success_records_nothing(self):
        issues = IssueLogger()
        ok, response = try_parse_response("HTTP/1.1 204 No Content", issues)
        assert ok
        assert response.status_code == 204
        assert issues.issues == []


class TestModels:
    def test_header_lookup_is_case_insensitive(self):
        request = Request(method="GET", url="/", headers=[("Accept", "a"), ("accept", "b")])
        assert request.header("ACCEPT") == "a"
        assert request.header_values("accept") == ["a", "b"]
        assert request.has_header("Accept")

    def test_content_type_ignores_parameters(self):
        request = Request(method="POST", url="/", headers=[("Content-Type", "application/json; charset=utf-8")])
        assert request.is_matching_content_type("application/json")

    def test_text_and_binary_body_exclusive(self):
        with pytest.raises(ValueError):
            Request(method="PUT", url="/", body="a", body_bytes=b"a")

    def test_replace_header_keeps_position(self):
        headers = [("A", "1"), ("B", "2"), ("C", "3")]
        assert replace_header(headers, "b", "9") == [("A", "1"), ("B", "9"), ("C", "3")]
        assert replace_header(headers, "B", None) == [("A", "1"), ("C", "3")]
        assert replace_header(headers, "D", "4")[-1] == ("D", "4")
