"""MCP server exposing a compiled OpenAPI catalog behind delegated OAuth."""

import asyncio
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional

import structlog
import uvicorn
from mcp import types
from mcp.server import Server
from mcp.server.sse import SseServerTransport
from mcp.types import Tool

from .auth.identity import IdentityResolver, JWTIdentityResolver, NoIdentityResolver
from .auth.oauth import OAuthSessionManager
from .auth.store import InMemorySessionStore, SessionStore
from .catalog.builtin_tools import BUILTIN_TOOL_NAMES, BuiltinTools
from .catalog.compiler import Catalog
from .catalog.dispatcher import ToolInvocationDispatcher
from .catalog.tool_registry import ToolRegistry
from .client import ApiClient
from .config import ServerConfig
from .deploy import load_catalog
from .routes import build_app

logger = structlog.get_logger(__name__)

# User behind the MCP connection currently being served.
current_user_id: ContextVar[Optional[str]] = ContextVar("current_user_id", default=None)


def default_identity_resolver(config: ServerConfig) -> IdentityResolver:
    if config.identity_jwt_secret:
        return JWTIdentityResolver(
            config.identity_jwt_secret, config.identity_jwt_algorithm
        )
    logger.warning("No identity secret configured; callers are anonymous")
    return NoIdentityResolver()


class MCPAnythingServer:
    """Serves the built-in linking tools plus one tool per API operation."""

    def __init__(
        self,
        config: ServerConfig,
        catalog: Catalog,
        store: Optional[SessionStore] = None,
        identity: Optional[IdentityResolver] = None,
    ):
        self.config = config
        self.catalog = catalog
        self.server = Server(config.name)
        self.sse = SseServerTransport("/messages/")

        self.store = store or InMemorySessionStore()
        self.identity = identity or default_identity_resolver(config)
        self.sessions = OAuthSessionManager(
            self.store,
            catalog.auth,
            config.client_id,
            config.client_secret,
            public_url=config.public_url,
            timeout=config.timeout,
            session_ttl=config.session_ttl_seconds,
            pending_ttl=config.pending_ttl_seconds,
        )

        self.registry = ToolRegistry(catalog)
        self.client = ApiClient(config.api_base_url or catalog.base_url, config.timeout)
        self.dispatcher = ToolInvocationDispatcher(self.client, self.sessions)
        self.builtin_tools = BuiltinTools(self.sessions)

        if not catalog.auth.is_configured:
            logger.warning("No OAuth endpoints configured; protected tools will fail")

        self._register_handlers()

    @contextmanager
    def user_context(self, user_id: Optional[str]) -> Iterator[None]:
        token = current_user_id.set(user_id)
        try:
            yield
        finally:
            current_user_id.reset(token)

    # ------------------------------------------------------------------
    # MCP handlers
    # ------------------------------------------------------------------

    def _register_handlers(self) -> None:
        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            tools = self.builtin_tools.get_tools() + self.registry.get_mcp_tools()
            logger.info("list_tools", count=len(tools))
            return tools

        @self.server.call_tool()
        async def call_tool(name: str, arguments: Dict[str, Any]) -> list[types.TextContent]:
            return await self.call_tool(name, arguments, current_user_id.get())

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]],
        user_id: Optional[str],
    ) -> list[types.TextContent]:
        arguments = arguments or {}
        try:
            logger.info("call_tool", tool=name)

            if name in BUILTIN_TOOL_NAMES:
                text = await self.builtin_tools.call_tool(name, user_id, arguments)
                return [types.TextContent(type="text", text=text)]

            tool = self.registry.get(name)
            if tool is None:
                return [types.TextContent(type="text", text=f"Unknown tool: {name}")]

            result = await self.dispatcher.invoke(tool, user_id, arguments)
            if result.is_error:
                logger.warning("Tool returned error", tool=name)
            return [types.TextContent(type="text", text=result.text)]

        except Exception as e:
            logger.error("Unexpected error", error=str(e), tool=name, exc_info=True)
            return [types.TextContent(type="text", text=f"Error: {e}")]

    async def close(self) -> None:
        await self.client.aclose()


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(stream=sys.stderr, level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


async def serve(config: ServerConfig) -> None:
    """Compile (or load) the catalog and serve it until interrupted."""
    logger.info("Starting MCP server", config=config.safe_dict())
    catalog = await load_catalog(config)
    mcp_server = MCPAnythingServer(config, catalog)
    app = build_app(mcp_server)
    try:
        server = uvicorn.Server(
            uvicorn.Config(app, host=config.host, port=config.port, log_config=None)
        )
        await server.serve()
    finally:
        await mcp_server.close()


async def async_main(config: Optional[ServerConfig] = None) -> None:
    configure_logging()
    try:
        await serve(config or ServerConfig())
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error("Server error", error=str(e), exc_info=True)
        sys.exit(1)


def main() -> None:
    """Synchronous entry point for console script."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
