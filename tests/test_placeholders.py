import json
import re

import pytest

from api_doc_check.errors import (
    ConflictingBodyPlaceholdersError,
    InvalidPlaceholderKeyError,
    JsonPathError,
    PlaceholderValueNotFoundError,
)
from api_doc_check.http.models import Request, Response
from api_doc_check.params.placeholders import (
    PlaceholderLocation,
    location_for_key,
    replace_random_filename,
    resolve_placeholder,
    rewrite_request,
    to_placeholder_values,
    value_for_keyed_identifier,
)

TEMPLATE = Request(
    method="PATCH",
    url="/drives/{drive-id}/items/{item-id}",
    headers=[("Content-Type", "application/json"), ("If-Match", "{etag}")],
    body='{"name": "old", "file": {}}',
)


class TestLocationForKey:
    @pytest.mark.parametrize("key, location", [
        ("{item-id}", PlaceholderLocation.URL),
        ("!url", PlaceholderLocation.URL),
        ("[item-id]", PlaceholderLocation.STORED_VALUE),
        ("!body", PlaceholderLocation.BODY),
        ("!body-base64", PlaceholderLocation.BODY_BASE64_ENCODED),
        ("=now()", PlaceholderLocation.EXPRESSION),
        ("If-Match:", PlaceholderLocation.HTTP_HEADER),
        ("$.name", PlaceholderLocation.JSON),
        ("name", PlaceholderLocation.INVALID),
        ("{}", PlaceholderLocation.INVALID),
        (None, PlaceholderLocation.INVALID),
    ])
    def test_location(self, key, location):
        assert location_for_key(key) is location


class TestResolvePlaceholder:
    def test_literal(self):
        p = resolve_placeholder("{item-id}", "42", {})
        assert p.location is PlaceholderLocation.URL
        assert p.defined_value == "42"
        assert p.value == "42"

    def test_stored_value(self):
        p = resolve_placeholder("{item-id}", "[item-id]", {"[item-id]": "abc"})
        assert p.value == "abc"

    def test_stored_value_missing(self):
        with pytest.raises(PlaceholderValueNotFoundError):
            resolve_placeholder("{item-id}", "[item-id]", {})

    def test_expression(self):
        p = resolve_placeholder("$.size", "=40 + 2", {})
        assert p.value == "42"

    def test_expression_with_custom_evaluator(self):
        p = resolve_placeholder("$.size", "=anything", {}, evaluator=lambda expression, values: expression.upper())
        assert p.value == "ANYTHING"

    @pytest.mark.parametrize("key", ["name", "[item-id]", "=1+1"])
    def test_invalid_keys(self, key):
        with pytest.raises(InvalidPlaceholderKeyError):
            resolve_placeholder(key, "x", {})

    def test_random_filename(self):
        p = resolve_placeholder("{name}", "!random-filename.txt!", {})
        assert re.fullmatch(r"apidoc-[0-9a-f-]{36}\.txt", p.value)

    def test_to_placeholder_values(self):
        values = to_placeholder_values({"{a}": "1", "B:": "2"}, {})
        assert [p.location for p in values] == [PlaceholderLocation.URL, PlaceholderLocation.HTTP_HEADER]
        assert to_placeholder_values(None, {}) == []


class TestReplaceRandomFilename:
    def test_without_extension(self):
        assert re.fullmatch(r"/items/apidoc-[0-9a-f-]{36}/content", replace_random_filename("/items/!random-filename!/content"))

    def test_unique(self):
        assert replace_random_filename("!random-filename!") != replace_random_filename("!random-filename!")


class TestRewriteRequest:
    def test_url_headers_and_json_fields(self):
        placeholders = to_placeholder_values({
            "{drive-id}": "d1",
            "{item-id}": "[item-id]",
            "If-Match:": "W/etag",
            "$.name": "new",
        }, {"[item-id]": "i9"})
        request = rewrite_request(TEMPLATE, placeholders)

        assert request.url == "/drives/d1/items/i9"
        assert request.header("If-Match") == "W/etag"
        assert json.loads(request.body) == {"name": "new", "file": {}}

    def test_template_untouched(self):
        rewrite_request(TEMPLATE, to_placeholder_values({"{drive-id}": "d1", "$.name": "x"}, {}))
        assert TEMPLATE.url == "/drives/{drive-id}/items/{item-id}"
        assert TEMPLATE.body == '{"name": "old", "file": {}}'

    def test_url_replaced_entirely(self):
        request = rewrite_request(TEMPLATE, to_placeholder_values({"!url": "/me/drive"}, {}))
        assert request.url == "/me/drive"

    def test_header_removed_with_none(self):
        request = rewrite_request(TEMPLATE, to_placeholder_values({"If-Match:": None}, {}))
        assert not request.has_header("If-Match")

    def test_body_replaced(self):
        request = rewrite_request(TEMPLATE, to_placeholder_values({"!body": "plain"}, {}))
        assert request.body == "plain"

    def test_base64_body(self):
        request = rewrite_request(TEMPLATE, to_placeholder_values({"!body-base64": "aGVsbG8="}, {}))
        assert request.body is None
        assert request.body_bytes == b"hello"

    def test_invalid_base64(self):
        with pytest.raises(InvalidPlaceholderKeyError):
            rewrite_request(TEMPLATE, to_placeholder_values({"!body-base64": "not base64!"}, {}))

    def test_conflicting_body_placeholders(self):
        placeholders = to_placeholder_values({"!body": "a", "!body-base64": "YQ=="}, {})
        with pytest.raises(ConflictingBodyPlaceholdersError):
            rewrite_request(TEMPLATE, placeholders)

    def test_json_fields_applied_after_body(self):
        placeholders = to_placeholder_values({"$.name": "x", "!body": '{"name": "body"}'}, {})
        request = rewrite_request(TEMPLATE, placeholders)
        assert json.loads(request.body) == {"name": "x"}

    def test_json_fields_skipped_for_other_content_types(self):
        template = Request(method="PUT", url="/x", headers=[("Content-Type", "text/plain")], body='{"name": "a"}')
        request = rewrite_request(template, to_placeholder_values({"$.name": "b"}, {}))
        assert request.body == '{"name": "a"}'


class TestValueForKeyedIdentifier:
    RESPONSE = Response(
        status_code=201,
        status_message="Created",
        headers=[("Content-Type", "application/json"), ("Location", "/items/9")],
        body='{"id": "9", "deleted": false, "size": 3}',
    )

    def test_json_path(self):
        assert value_for_keyed_identifier(self.RESPONSE, "$.id") == "9"
        assert value_for_keyed_identifier(self.RESPONSE, "$.size") == "3"
        assert value_for_keyed_identifier(self.RESPONSE, "$.deleted") == "false"
        assert value_for_keyed_identifier(self.RESPONSE, "$.missing") is None

    def test_header(self):
        assert value_for_keyed_identifier(self.RESPONSE, "Location:") == "/items/9"

    def test_body(self):
        assert value_for_keyed_identifier(self.RESPONSE, "!body") == self.RESPONSE.body

    def test_json_path_needs_json_response(self):
        response = Response(status_code=200, headers=[("Content-Type", "text/plain")], body="hi")
        with pytest.raises(JsonPathError):
            value_for_keyed_identifier(response, "$.id")

    def test_unsupported_key(self):
        with pytest.raises(InvalidPlaceholderKeyError):
            value_for_keyed_identifier(self.RESPONSE, "{id}")
