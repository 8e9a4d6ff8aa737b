"""Tool catalog: compile an OpenAPI description and dispatch its tools."""

from .builtin_tools import BUILTIN_TOOL_NAMES, BuiltinTools
from .compiler import (
    AuthConfig,
    Catalog,
    ToolCatalogCompiler,
    ToolDescriptor,
    build_catalog,
    extract_auth_config,
)
from .dispatcher import ToolInvocationDispatcher, ToolResult
from .schema_mapper import InputSchema, SchemaField, map_parameters
from .tool_registry import ToolRegistry

__all__ = [
    "AuthConfig",
    "BUILTIN_TOOL_NAMES",
    "BuiltinTools",
    "Catalog",
    "InputSchema",
    "SchemaField",
    "ToolCatalogCompiler",
    "ToolDescriptor",
    "ToolInvocationDispatcher",
    "ToolRegistry",
    "ToolResult",
    "build_catalog",
    "extract_auth_config",
    "map_parameters",
]
