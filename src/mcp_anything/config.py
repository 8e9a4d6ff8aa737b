"""Server configuration loaded from ``MCP_ANYTHING_*`` environment variables."""

from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

_SECRET_FIELDS = {"client_secret", "identity_jwt_secret"}


class ServerConfig(BaseSettings):
    """Configuration for the generated MCP server."""

    name: str = Field(default="mcp-server", description="Server / deployment name")

    # API description
    openapi_url: Optional[str] = Field(
        default=None, description="URL or file path of the OpenAPI description"
    )
    catalog_path: Optional[str] = Field(
        default=None, description="Pre-compiled catalog.json (skips compilation)"
    )
    api_base_url: Optional[str] = Field(
        default=None, description="Override for the upstream API base URL"
    )

    # OAuth client registered with the third-party provider
    client_id: str = Field(default="", description="OAuth client ID")
    client_secret: str = Field(default="", description="OAuth client secret")
    authorize_url: Optional[str] = Field(
        default=None, description="Authorization endpoint override"
    )
    token_url: Optional[str] = Field(default=None, description="Token endpoint override")
    oauth_issuer: Optional[str] = Field(
        default=None, description="Issuer URL used for .well-known discovery"
    )

    # Serving
    public_url: str = Field(
        default="http://localhost:8787",
        description="Externally reachable origin of this server",
    )
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8787, description="Bind port")
    timeout: float = Field(default=30.0, description="Outbound request timeout (s)")

    # Session lifetimes
    session_ttl_seconds: int = Field(
        default=86400 * 30, description="Lifetime of a linked session"
    )
    pending_ttl_seconds: int = Field(
        default=3600, description="Lifetime of a pending authorization state"
    )

    # Identity of MCP callers
    identity_jwt_secret: Optional[str] = Field(
        default=None, description="Secret used to verify caller identity tokens"
    )
    identity_jwt_algorithm: str = Field(
        default="HS256", description="Algorithm of caller identity tokens"
    )

    model_config = {
        "env_prefix": "MCP_ANYTHING_",
        "case_sensitive": False,
        "env_file": ".env",
        "extra": "ignore",
    }

    def safe_dict(self) -> Dict[str, Any]:
        """Return the configuration with secrets masked (for logging)."""
        data = self.model_dump()
        for key in _SECRET_FIELDS:
            if data.get(key):
                data[key] = "***MASKED***"
        return data
