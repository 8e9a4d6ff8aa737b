"""Tool registry: holds the compiled catalog and converts it to MCP Tools."""

from __future__ import annotations

from typing import Any

import structlog
from mcp.types import Tool

from .compiler import Catalog, ToolDescriptor
from .schema_mapper import InputSchema

logger = structlog.get_logger(__name__)

# JSON Schema keywords kept in rendered input schemas; everything else
# (example, xml, readOnly, x-*) is OpenAPI-only.
ALLOWED_KEYWORDS = frozenset(
    {
        "type",
        "properties",
        "required",
        "items",
        "enum",
        "anyOf",
        "oneOf",
        "allOf",
        "minimum",
        "maximum",
        "exclusiveMinimum",
        "exclusiveMaximum",
        "pattern",
        "format",
        "description",
        "default",
        "additionalProperties",
        "minItems",
        "maxItems",
        "minLength",
        "maxLength",
        "const",
    }
)

_SUBSCHEMA_KEYS = ("items", "additionalProperties")
_SUBSCHEMA_LIST_KEYS = ("anyOf", "oneOf", "allOf")


class ToolRegistry:
    """Name -> descriptor lookup over one immutable catalog."""

    def __init__(self, catalog: Catalog | None = None):
        self._tools: dict[str, ToolDescriptor] = {}
        self.catalog = catalog
        if catalog is not None:
            self.load(catalog)

    def load(self, catalog: Catalog) -> int:
        """Replace the registered tools with *catalog*'s. Returns the count."""
        self.catalog = catalog
        self._tools = {tool.name: tool for tool in catalog.tools}
        logger.info("Tool registry loaded", tool_count=len(self._tools))
        return len(self._tools)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, tool_name: str) -> ToolDescriptor | None:
        return self._tools.get(tool_name)

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    @property
    def tool_count(self) -> int:
        return len(self._tools)

    # ------------------------------------------------------------------
    # MCP conversion
    # ------------------------------------------------------------------

    def get_mcp_tools(self) -> list[Tool]:
        """Convert all registered descriptors to MCP Tool objects, in
        catalog order."""
        return [self._to_mcp_tool(tool) for tool in self._tools.values()]

    def _to_mcp_tool(self, tool: ToolDescriptor) -> Tool:
        return Tool(
            name=tool.name,
            description=tool.description,
            inputSchema=self.build_input_schema(tool.input_schema),
        )

    @staticmethod
    def build_input_schema(schema: InputSchema) -> dict[str, Any]:
        """Render an :class:`InputSchema` as a JSON Schema ``inputSchema``."""
        properties: dict[str, Any] = {}
        for name, field in schema.fields.items():
            prop = sanitize_schema(field.schema or {"type": field.type})
            if field.description and "description" not in prop:
                prop["description"] = field.description
            if not any(k in prop for k in ("type", "anyOf", "oneOf", "allOf", "enum")):
                prop["type"] = field.type
            properties[name] = prop

        result: dict[str, Any] = {"type": "object", "properties": properties}
        required = [n for n in schema.fields if n in schema.required_names]
        if required:
            result["required"] = required
        return result


def sanitize_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Drop non-JSON-Schema keywords, recursing into nested schemas.

    ``nullable: true`` becomes ``anyOf: [{type: T}, {type: "null"}]``.
    """
    result: dict[str, Any] = {}
    for key, value in schema.items():
        if key not in ALLOWED_KEYWORDS:
            continue
        if key == "properties" and isinstance(value, dict):
            value = {name: _sanitize_value(sub) for name, sub in value.items()}
        elif key in _SUBSCHEMA_KEYS:
            value = _sanitize_value(value)
        elif key in _SUBSCHEMA_LIST_KEYS and isinstance(value, list):
            value = [_sanitize_value(sub) for sub in value]
        result[key] = value

    if schema.get("nullable") and "type" in result:
        result["anyOf"] = [{"type": result.pop("type")}, {"type": "null"}]
    return result


def _sanitize_value(value: Any) -> Any:
    return sanitize_schema(value) if isinstance(value, dict) else value
