"""Discover authorization-server endpoints from an issuer URL."""

from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from ..models.schemas import OAuthMetadata

logger = structlog.get_logger(__name__)

WELL_KNOWN_PATHS = (
    "/.well-known/oauth-authorization-server",  # RFC 8414
    "/.well-known/openid-configuration",  # OpenID Connect Discovery
)

# GitHub publishes no metadata document.
GITHUB_METADATA = OAuthMetadata(
    authorization_url="https://github.com/login/oauth/authorize",
    token_url="https://github.com/login/oauth/access_token",
    scopes=["repo", "user", "gist", "notifications"],
    issuer="https://github.com",
)


async def discover_oauth_endpoints(
    issuer: str, timeout: float = 15
) -> Optional[OAuthMetadata]:
    """Return the issuer's authorization/token endpoints, or ``None``."""
    base_url = issuer.rstrip("/")

    async with httpx.AsyncClient(timeout=timeout) as client:
        for path in WELL_KNOWN_PATHS:
            try:
                resp = await client.get(f"{base_url}{path}")
                resp.raise_for_status()
                data = resp.json()
                metadata = OAuthMetadata(
                    authorization_url=data["authorization_endpoint"],
                    token_url=data["token_endpoint"],
                    scopes=data.get("scopes_supported") or [],
                    issuer=data.get("issuer"),
                )
            except (httpx.HTTPError, ValueError, KeyError, TypeError, ValidationError) as e:
                logger.debug("Discovery attempt failed", url=f"{base_url}{path}", error=str(e))
                continue
            logger.info("Discovered OAuth endpoints", issuer=issuer, source=path)
            return metadata

    if "github.com" in issuer:
        return GITHUB_METADATA
    return None
