import json

from api_doc_check.config import ServiceAccount, TransformationMap, Transformations
from api_doc_check.http.models import Request, Response
from api_doc_check.params.rewriter import (
    rewrite_json_properties,
    rewrite_multipart_body,
    rewrite_request_body_namespaces,
    rewrite_response_body_namespaces,
)

MAPPING = {"microsoft.graph": "oneDrive"}


def _account(request=None, response=None):
    return ServiceAccount(transformations=Transformations(
        request=TransformationMap(properties=request) if request else None,
        response=TransformationMap(properties=response) if response else None,
    ))


class TestRewriteJsonProperties:
    def test_nested_keys_and_odata_type(self):
        body = json.dumps({
            "microsoft.graph.name": "a",
            "@odata.type": "#microsoft.graph.driveItem",
            "children": [{"microsoft.graph.size": 1}],
        })
        result = json.loads(rewrite_json_properties(body, MAPPING))
        assert result == {
            "oneDrive.name": "a",
            "@odata.type": "#oneDrive.driveItem",
            "children": [{"oneDrive.size": 1}],
        }

    def test_values_other_than_odata_type_untouched(self):
        result = json.loads(rewrite_json_properties('{"note": "microsoft.graph"}', MAPPING))
        assert result == {"note": "microsoft.graph"}

    def test_blank_input(self):
        assert rewrite_json_properties("", MAPPING) == ""
        assert rewrite_json_properties(None, MAPPING) is None
        assert rewrite_json_properties('{"a": 1}', {}) == '{"a": 1}'


class TestRewriteMultipartBody:
    BODY = (
        "--b1\r\n"
        "Content-Type: application/json\r\n"
        "\r\n"
        '{"microsoft.graph.a": 1}\r\n'
        "--b1\r\n"
        "Content-Type: text/plain\r\n"
        "\r\n"
        "microsoft.graph.a\r\n"
        "--b1--\r\n"
    )

    def test_only_json_parts_translated(self):
        result = rewrite_multipart_body(self.BODY, 'multipart/related; boundary="b1"', MAPPING)
        assert '{"oneDrive.a": 1}\r\n--b1' in result
        assert "text/plain\r\n\r\nmicrosoft.graph.a\r\n" in result
        assert result.endswith("--b1--\r\n")

    def test_no_boundary(self):
        assert rewrite_multipart_body(self.BODY, "multipart/related", MAPPING) == self.BODY


class TestNamespaceRewriting:
    def test_request_json_body(self):
        request = Request(
            method="POST", url="/x",
            headers=[("Content-Type", "application/json")],
            body='{"microsoft.graph.a": 1}',
        )
        rewritten = rewrite_request_body_namespaces(request, _account(request=MAPPING))
        assert json.loads(rewritten.body) == {"oneDrive.a": 1}
        assert request.body == '{"microsoft.graph.a": 1}'

    def test_request_multipart_body(self):
        request = Request(
            method="POST", url="/x",
            headers=[("Content-Type", "multipart/related; boundary=b1")],
            body=TestRewriteMultipartBody.BODY,
        )
        rewritten = rewrite_request_body_namespaces(request, _account(request=MAPPING))
        assert '{"oneDrive.a": 1}' in rewritten.body

    def test_request_without_transformations(self):
        request = Request(method="POST", url="/x", headers=[("Content-Type", "application/json")], body="{}")
        assert rewrite_request_body_namespaces(request, ServiceAccount()) is request
        assert rewrite_request_body_namespaces(request, None) is request

    def test_request_other_content_type(self):
        request = Request(method="POST", url="/x", headers=[("Content-Type", "text/plain")], body="microsoft.graph")
        assert rewrite_request_body_namespaces(request, _account(request=MAPPING)) is request

    def test_response_uses_response_map(self):
        response = Response(
            status_code=200,
            headers=[("Content-Type", "application/json")],
            body='{"oneDrive.a": 1}',
        )
        rewritten = rewrite_response_body_namespaces(response, _account(response={"oneDrive": "microsoft.graph"}))
        assert json.loads(rewritten.body) == {"microsoft.graph.a": 1}

    def test_response_ignores_request_map(self):
        response = Response(status_code=200, headers=[("Content-Type", "application/json")], body='{"microsoft.graph.a": 1}')
        assert rewrite_response_body_namespaces(response, _account(request=MAPPING)) is response
