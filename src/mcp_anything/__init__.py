"""Turn an OpenAPI description into an OAuth-protected MCP server."""

__version__ = "0.1.0"
