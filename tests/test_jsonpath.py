import json

import pytest

from api_doc_check.errors import JsonPathError
from api_doc_check.params.jsonpath import decompose_path, set_value_for_json_path, value_from_json_path

DOCUMENT = json.dumps({
    "id": "123",
    "size": 10,
    "parentReference": {"driveId": "d1"},
    "value": [{"@odata.id": "items/1"}, {"@odata.id": "items/2"}],
})


class TestDecomposePath:
    def test_components(self):
        assert decompose_path("$.value[0]['@odata.id']") == ["value", 0, "@odata.id"]

    def test_double_quoted(self):
        assert decompose_path('$["a.b"].c') == ["a.b", "c"]

    def test_root_only(self):
        assert decompose_path("$") == []

    def test_requires_root(self):
        with pytest.raises(JsonPathError):
            decompose_path("value.id")

    def test_rejects_garbage(self):
        with pytest.raises(JsonPathError):
            decompose_path("$..id")


class TestValueFromJsonPath:
    def test_top_level(self):
        assert value_from_json_path(DOCUMENT, "$.id") == "123"
        assert value_from_json_path(DOCUMENT, "$.size") == 10

    def test_nested(self):
        assert value_from_json_path(DOCUMENT, "$.parentReference.driveId") == "d1"
        assert value_from_json_path(DOCUMENT, "$.value[1]['@odata.id']") == "items/2"

    def test_missing_leaf_is_none(self):
        assert value_from_json_path(DOCUMENT, "$.name") is None

    def test_missing_intermediate_raises(self):
        with pytest.raises(JsonPathError):
            value_from_json_path(DOCUMENT, "$.folder.childCount")

    def test_index_out_of_range(self):
        with pytest.raises(JsonPathError):
            value_from_json_path(DOCUMENT, "$.value[5]")

    def test_not_json(self):
        with pytest.raises(JsonPathError):
            value_from_json_path("<html/>", "$.id")


class TestSetValueForJsonPath:
    def test_replace_existing(self):
        result = json.loads(set_value_for_json_path(DOCUMENT, "$.id", "456"))
        assert result["id"] == "456"
        assert result["size"] == 10

    def test_non_string_keeps_type(self):
        result = json.loads(set_value_for_json_path(DOCUMENT, "$.size", 20))
        assert result["size"] == 20

    def test_creates_intermediates(self):
        result = json.loads(set_value_for_json_path("{}", "$.file.hashes.sha1", "abc"))
        assert result == {"file": {"hashes": {"sha1": "abc"}}}

    def test_array_element(self):
        result = json.loads(set_value_for_json_path(DOCUMENT, "$.value[0]['@odata.id']", "items/9"))
        assert result["value"][0]["@odata.id"] == "items/9"

    def test_cannot_replace_root(self):
        with pytest.raises(JsonPathError):
            set_value_for_json_path(DOCUMENT, "$", "x")

    def test_index_past_end(self):
        with pytest.raises(JsonPathError):
            set_value_for_json_path(DOCUMENT, "$.value[2]", {})


class TestDotBeforeBracket:
    DOWNLOAD = json.dumps({"@content.downloadUrl": "https://dl.example/1", "name": "a.txt"})

    def test_decompose(self):
        assert decompose_path("$.['@content.downloadUrl']") == ["@content.downloadUrl"]
        assert decompose_path('$.item.["@name.conflictBehavior"]') == ["item", "@name.conflictBehavior"]

    def test_get(self):
        assert value_from_json_path(self.DOWNLOAD, "$.['@content.downloadUrl']") == "https://dl.example/1"

    def test_set(self):
        result = json.loads(set_value_for_json_path(self.DOWNLOAD, "$.['@name.conflictBehavior']", "replace"))
        assert result["@name.conflictBehavior"] == "replace"
        assert result["name"] == "a.txt"
