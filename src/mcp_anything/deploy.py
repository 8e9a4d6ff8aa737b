"""Build the catalog artifact from configuration and publish it."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol

import structlog

from .auth.discovery import discover_oauth_endpoints
from .catalog.builtin_tools import BUILTIN_TOOL_NAMES
from .catalog.compiler import Catalog, build_catalog
from .catalog.loader import load_description
from .config import ServerConfig
from .errors import DescriptionLoadError, PublishError

logger = structlog.get_logger(__name__)

CATALOG_FILENAME = "catalog.json"
ENV_FILENAME = ".env"


@dataclass(frozen=True)
class PublishResult:
    url: str
    name: str


class Publisher(Protocol):
    def publish(
        self, artifact_code: str, name: str, env: Mapping[str, str]
    ) -> PublishResult: ...


class LocalPublisher:
    """Write the artifact and its environment into a directory.

    ``mcp-anything serve`` started from that directory picks both up.
    """

    def __init__(self, out_dir: str | Path, public_url: str):
        self.out_dir = Path(out_dir)
        self.public_url = public_url.rstrip("/")

    def publish(
        self, artifact_code: str, name: str, env: Mapping[str, str]
    ) -> PublishResult:
        try:
            self.out_dir.mkdir(parents=True, exist_ok=True)
            (self.out_dir / CATALOG_FILENAME).write_text(artifact_code, encoding="utf-8")

            env_file = self.out_dir / ENV_FILENAME
            lines = [f"{key}={json.dumps(value)}" for key, value in env.items()]
            env_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
            # Contains the client secret.
            os.chmod(env_file, 0o600)
        except OSError as e:
            raise PublishError(f"Could not write artifact to {self.out_dir}: {e}") from e

        logger.info("Published artifact", name=name, out_dir=str(self.out_dir))
        return PublishResult(url=f"{self.public_url}/sse", name=name)


# ----------------------------------------------------------------------
# Catalog build
# ----------------------------------------------------------------------


async def resolve_endpoints(config: ServerConfig) -> tuple[Optional[str], Optional[str]]:
    """Explicit URLs first, then issuer discovery for whichever is missing."""
    authorize_url, token_url = config.authorize_url, config.token_url
    if config.oauth_issuer and not (authorize_url and token_url):
        logger.info("Discovering OAuth endpoints", issuer=config.oauth_issuer)
        discovered = await discover_oauth_endpoints(config.oauth_issuer, config.timeout)
        if discovered:
            authorize_url = authorize_url or discovered.authorization_url
            token_url = token_url or discovered.token_url
        else:
            logger.warning(
                "Could not discover OAuth endpoints, using manual URLs or the description"
            )
    return authorize_url, token_url


async def build_catalog_from_config(config: ServerConfig) -> Catalog:
    if not config.openapi_url:
        raise DescriptionLoadError("No OpenAPI description configured")
    description = await load_description(config.openapi_url, config.timeout)
    authorize_url, token_url = await resolve_endpoints(config)
    return build_catalog(
        description,
        source_url=config.openapi_url,
        authorize_url=authorize_url,
        token_url=token_url,
        base_url=config.api_base_url,
        reserved=BUILTIN_TOOL_NAMES,
    )


async def load_catalog(config: ServerConfig) -> Catalog:
    """Use the pre-compiled artifact when configured, else compile now."""
    if config.catalog_path:
        path = Path(config.catalog_path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise DescriptionLoadError(f"Could not read catalog {path}: {e}") from e
        catalog = Catalog.from_dict(data)
        logger.info("Loaded compiled catalog", path=str(path), tool_count=len(catalog.tools))
        return catalog
    return await build_catalog_from_config(config)


def deployment_env(config: ServerConfig, catalog: Catalog, name: str) -> dict[str, str]:
    return {
        "MCP_ANYTHING_NAME": name,
        "MCP_ANYTHING_OPENAPI_URL": config.openapi_url or "",
        "MCP_ANYTHING_CATALOG_PATH": CATALOG_FILENAME,
        "MCP_ANYTHING_CLIENT_ID": config.client_id,
        "MCP_ANYTHING_CLIENT_SECRET": config.client_secret,
        "MCP_ANYTHING_AUTHORIZE_URL": catalog.auth.authorize_url or "",
        "MCP_ANYTHING_TOKEN_URL": catalog.auth.token_url or "",
        "MCP_ANYTHING_PUBLIC_URL": config.public_url,
    }


async def deploy(config: ServerConfig, publisher: Publisher) -> PublishResult:
    """Load -> discover -> compile -> serialise -> publish."""
    catalog = await build_catalog_from_config(config)
    name = config.name if config.name != "mcp-server" else (catalog.title or config.name)
    artifact = json.dumps(catalog.to_dict(), indent=2)
    return publisher.publish(artifact, name, deployment_env(config, catalog, name))
