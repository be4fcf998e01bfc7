"""
Unit tests for argument validation and request construction.
"""
import pytest

from bridge_models import BridgeConfig, EndpointDescriptor
from conftest import sample_bridge_data
from errors import ToolArgumentError
from request_translator import (
    RAW_BODY_ARGUMENT, join_url, tool_inputs, translate_tool_call, validate_arguments,
)


def descriptor(**data):
    data.setdefault("method", "GET")
    data.setdefault("path", "/items")
    return EndpointDescriptor.model_validate(data)


@pytest.fixture
def api():
    return BridgeConfig.model_validate(sample_bridge_data(headers={}))


class TestJoinUrl:

    @pytest.mark.parametrize("base, path, expected", [
        ("https://api.example.com", "/users", "https://api.example.com/users"),
        ("https://api.example.com/", "/users", "https://api.example.com/users"),
        ("https://api.example.com/", "users", "https://api.example.com/users"),
        ("https://api.example.com/v1", "users/1", "https://api.example.com/v1/users/1"),
        ("https://api.example.com", "", "https://api.example.com"),
    ])
    def test_exactly_one_slash(self, base, path, expected):
        assert join_url(base, path) == expected


class TestDescriptorModel:

    def test_undeclared_path_parameter_is_rejected(self):
        with pytest.raises(ValueError):
            descriptor(path="/users/{id}")

    def test_duplicate_parameter_names_are_rejected(self):
        with pytest.raises(ValueError):
            descriptor(parameters=[{"name": "q"}, {"name": "q"}])

    def test_openapi_type_aliases(self):
        endpoint = descriptor(parameters=[{"name": "n", "type": "integer"}, {"name": "d", "type": "date-time"}])
        assert [p.type for p in endpoint.parameters] == ["number", "string"]

    def test_method_is_uppercased(self):
        assert descriptor(method="patch").method == "PATCH"


class TestToolInputs:

    def test_placement_follows_method(self):
        get = descriptor(path="/users/{id}", parameters=[{"name": "id"}, {"name": "q"}])
        post = descriptor(method="POST", path="/users/{id}", parameters=[{"name": "id"}, {"name": "q"}])
        assert [(i.name, i.location) for i in tool_inputs(get)] == [("id", "path"), ("q", "query")]
        assert [(i.name, i.location) for i in tool_inputs(post)] == [("id", "path"), ("q", "body")]

    def test_path_parameters_are_always_required(self):
        endpoint = descriptor(path="/users/{id}", parameters=[{"name": "id", "required": False}])
        assert tool_inputs(endpoint)[0].required is True

    def test_explicit_location_wins(self):
        endpoint = descriptor(method="POST", parameters=[{"name": "page", "location": "query"}])
        assert tool_inputs(endpoint)[0].location == "query"

    def test_body_without_properties_exposes_raw_body(self):
        endpoint = descriptor(method="PUT", requestBody={"contentType": "application/json", "schema": {"type": "object"}})
        inputs = tool_inputs(endpoint)
        assert [(i.name, i.location, i.type) for i in inputs] == [(RAW_BODY_ARGUMENT, "raw_body", "object")]

    def test_body_is_ignored_on_get(self):
        endpoint = descriptor(requestBody={"properties": {"x": {"type": "string"}}})
        assert tool_inputs(endpoint) == []


class TestValidateArguments:

    def test_missing_path_parameter_message(self):
        endpoint = descriptor(path="/users/{id}", parameters=[{"name": "id"}])
        with pytest.raises(ToolArgumentError) as exc:
            validate_arguments(endpoint, {})
        assert exc.value.code == -32602
        assert "path parameter" in exc.value.message
        assert exc.value.data["missing"] == ["id"]

    def test_null_counts_as_absent(self):
        endpoint = descriptor(parameters=[{"name": "q", "required": True}])
        with pytest.raises(ToolArgumentError):
            validate_arguments(endpoint, {"q": None})

    def test_non_object_arguments(self):
        with pytest.raises(ToolArgumentError):
            validate_arguments(descriptor(), ["not", "an", "object"])

    def test_numbers_are_accepted_for_strings(self):
        endpoint = descriptor(parameters=[{"name": "q", "type": "string"}])
        assert validate_arguments(endpoint, {"q": 42}) == {"q": "42"}

    def test_defaults_fill_absent_arguments(self):
        endpoint = descriptor(parameters=[{"name": "limit", "type": "number", "defaultValue": 25}])
        assert validate_arguments(endpoint, {}) == {"limit": 25}

    def test_unknown_keys_are_dropped(self):
        endpoint = descriptor(parameters=[{"name": "q"}])
        assert validate_arguments(endpoint, {"q": "x", "extra": 1}) == {"q": "x"}

    def test_non_identifier_names(self):
        endpoint = descriptor(parameters=[{"name": "page-size", "type": "number"}, {"name": "$filter"}])
        assert validate_arguments(endpoint, {"page-size": 5, "$filter": "a"}) == {"page-size": 5, "$filter": "a"}


class TestTranslateToolCall:

    def test_path_values_are_url_encoded(self, api):
        endpoint = descriptor(path="/files/{name}", parameters=[{"name": "name"}])
        spec = translate_tool_call(api, endpoint, {"name": "a b/c"})
        assert spec.url == "https://api.example.com/v1/files/a%20b%2Fc"
        assert spec.query == []

    def test_query_values_are_stringified(self, api):
        endpoint = descriptor(parameters=[
            {"name": "active", "type": "boolean"},
            {"name": "ids", "type": "array"},
            {"name": "filter", "type": "object"},
        ])
        spec = translate_tool_call(api, endpoint, {"active": True, "ids": [1, 2], "filter": {"a": 1}})
        assert spec.query == [("active", "true"), ("ids", "1"), ("ids", "2"), ("filter", '{"a":1}')]
        assert spec.body is None

    def test_whole_numbers_render_without_fraction(self, api):
        endpoint = descriptor(path="/posts/{id}", parameters=[
            {"name": "id", "type": "number"},
            {"name": "ratio", "type": "number"},
        ])
        spec = translate_tool_call(api, endpoint, {"id": 5.0, "ratio": 2.5})
        assert spec.url.endswith("/posts/5")
        assert spec.query == [("ratio", "2.5")]

    def test_delete_uses_query(self, api):
        endpoint = descriptor(method="DELETE", path="/items/{id}",
                              parameters=[{"name": "id"}, {"name": "force", "type": "boolean"}])
        spec = translate_tool_call(api, endpoint, {"id": "7", "force": False})
        assert spec.url.endswith("/items/7")
        assert spec.query == [("force", "false")]
        assert spec.body is None

    def test_parameters_become_json_body_on_post(self, api):
        endpoint = descriptor(method="POST", parameters=[{"name": "title"}, {"name": "count", "type": "number"}])
        spec = translate_tool_call(api, endpoint, {"title": "t", "count": 3})
        assert spec.body == {"title": "t", "count": 3}
        assert spec.body_encoding == "json"

    def test_raw_request_body_is_sent_verbatim(self, api):
        endpoint = descriptor(method="POST", requestBody={"schema": {"type": "object"}})
        spec = translate_tool_call(api, endpoint, {RAW_BODY_ARGUMENT: {"nested": {"deep": [1]}}})
        assert spec.body == {"nested": {"deep": [1]}}

    def test_form_encoded_body(self, api):
        endpoint = descriptor(method="POST", requestBody={
            "contentType": "application/x-www-form-urlencoded",
            "properties": {"user": {"type": "string"}, "remember": {"type": "boolean"}},
        })
        spec = translate_tool_call(api, endpoint, {"user": "ann", "remember": True})
        assert spec.body_encoding == "form"
        assert spec.body == {"user": "ann", "remember": "true"}

    def test_text_body(self, api):
        endpoint = descriptor(method="PUT", requestBody={"contentType": "text/plain", "schema": {"type": "string"}})
        spec = translate_tool_call(api, endpoint, {RAW_BODY_ARGUMENT: "hello"})
        assert spec.body_encoding == "text"
        assert spec.body == "hello"
        assert spec.content_type == "text/plain"

    def test_static_headers_are_copied(self):
        api = BridgeConfig.model_validate(sample_bridge_data(headers={"Accept": "application/json"}))
        spec = translate_tool_call(api, descriptor(), {})
        assert spec.headers == {"Accept": "application/json"}
