"""HTTP surface: liveness, OAuth authorize/callback, and the MCP SSE stream."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import (
    HTMLResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)
from starlette.routing import Mount, Route

from .errors import (
    AuthorizationNotConfiguredError,
    InvalidStateError,
    TokenExchangeFailedError,
)

if TYPE_CHECKING:
    from .server import MCPAnythingServer

logger = structlog.get_logger(__name__)

SUCCESS_PAGE = """<!DOCTYPE html>
<html>
<head><title>Account linked</title></head>
<body>
<h1>Authorization successful!</h1>
<p>You can close this window and return to your assistant.</p>
</body>
</html>
"""


def build_app(mcp_server: MCPAnythingServer) -> Starlette:
    """Wire the routes for *mcp_server* into a Starlette application."""
    sessions = mcp_server.sessions
    sse = mcp_server.sse

    async def root(request: Request) -> Response:
        return PlainTextResponse(f"MCP Server: {mcp_server.config.name}")

    async def oauth_authorize(request: Request) -> Response:
        user_id = request.query_params.get("user_id") or str(uuid.uuid4())
        try:
            url = await sessions.initiate(user_id)
        except AuthorizationNotConfiguredError as e:
            logger.error("Authorize requested without OAuth config", error=str(e))
            return PlainTextResponse("Authorization is not configured", status_code=500)
        return RedirectResponse(url, status_code=302)

    async def oauth_callback(request: Request) -> Response:
        code = request.query_params.get("code")
        state = request.query_params.get("state")
        if not code or not state:
            return PlainTextResponse("Missing code or state", status_code=400)

        try:
            await sessions.handle_callback(state, code)
        except InvalidStateError:
            return PlainTextResponse("Invalid state", status_code=400)
        except (TokenExchangeFailedError, AuthorizationNotConfiguredError) as e:
            logger.error("Token exchange failed", error=str(e))
            return PlainTextResponse("Token exchange failed", status_code=500)

        return HTMLResponse(SUCCESS_PAGE)

    async def handle_sse(request: Request) -> Response:
        user_id = mcp_server.identity.resolve(request.headers)
        logger.info("SSE connection", identified=user_id is not None)
        with mcp_server.user_context(user_id):
            async with sse.connect_sse(
                request.scope, request.receive, request._send
            ) as (read_stream, write_stream):
                await mcp_server.server.run(
                    read_stream,
                    write_stream,
                    mcp_server.server.create_initialization_options(),
                )
        return Response()

    routes = [
        Route("/", root, methods=["GET"]),
        Route("/oauth/authorize", oauth_authorize, methods=["GET"]),
        Route("/oauth/callback", oauth_callback, methods=["GET"]),
        Route("/sse", handle_sse, methods=["GET"]),
        Mount("/messages/", app=sse.handle_post_message),
    ]
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )
    ]
    return Starlette(routes=routes, middleware=middleware)
