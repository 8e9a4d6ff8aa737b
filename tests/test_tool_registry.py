"""Tests for catalog.tool_registry."""

import pytest

from mcp_anything.catalog.compiler import build_catalog
from mcp_anything.catalog.schema_mapper import InputSchema, SchemaField
from mcp_anything.catalog.tool_registry import ToolRegistry


@pytest.fixture
def registry(openapi_spec):
    return ToolRegistry(build_catalog(openapi_spec))


class TestToolRegistry:
    def test_load_returns_count(self, openapi_spec):
        reg = ToolRegistry()
        assert reg.tool_count == 0
        assert reg.load(build_catalog(openapi_spec)) == 8
        assert reg.tool_count == 8

    def test_get(self, registry):
        assert registry.get("get_user").path == "/users/{id}"
        assert registry.get("missing") is None

    def test_mcp_tools_in_catalog_order(self, registry):
        tools = registry.get_mcp_tools()
        assert [t.name for t in tools] == registry.tool_names
        assert tools[0].name == "listusers"

    def test_mcp_tool_input_schema(self, registry):
        tool = {t.name: t for t in registry.get_mcp_tools()}["deleteuser"]
        assert tool.description == "DELETE /users/{id}"
        assert tool.inputSchema == {
            "type": "object",
            "properties": {"id": {"type": "string", "description": "User id"}},
            "required": ["id"],
        }

    def test_no_required_key_when_nothing_required(self, registry):
        tool = {t.name: t for t in registry.get_mcp_tools()}["health"]
        assert tool.inputSchema == {"type": "object", "properties": {}}

    def test_nullable_becomes_any_of(self, registry):
        tool = {t.name: t for t in registry.get_mcp_tools()}["listusers"]
        cursor = tool.inputSchema["properties"]["cursor"]
        assert cursor == {"anyOf": [{"type": "string"}, {"type": "null"}]}
        assert tool.inputSchema["properties"]["limit"] == {"type": "integer", "minimum": 1.0}


class TestBuildInputSchema:
    def test_openapi_only_keywords_stripped(self):
        schema = InputSchema(
            fields={
                "q": SchemaField(
                    "q",
                    "string",
                    "query",
                    "Search text",
                    {"type": "string", "example": "abc", "x-internal": True},
                )
            },
            required=frozenset({"q"}),
        )
        assert ToolRegistry.build_input_schema(schema) == {
            "type": "object",
            "properties": {"q": {"type": "string", "description": "Search text"}},
            "required": ["q"],
        }

    def test_type_filled_in_when_schema_has_none(self):
        schema = InputSchema(fields={"x": SchemaField("x", "integer", "query", "", {})})
        assert ToolRegistry.build_input_schema(schema)["properties"]["x"] == {
            "type": "integer"
        }

    def test_nested_objects_sanitized(self):
        nested = {
            "type": "object",
            "properties": {"tags": {"type": "array", "items": {"type": "string", "xml": {}}}},
            "readOnly": True,
        }
        schema = InputSchema(fields={"meta": SchemaField("meta", "object", "body", "", nested)})
        assert ToolRegistry.build_input_schema(schema)["properties"]["meta"] == {
            "type": "object",
            "properties": {"tags": {"type": "array", "items": {"type": "string"}}},
        }
