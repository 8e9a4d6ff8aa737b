"""Account-linking tools served next to the compiled catalog."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Callable

from mcp.types import Tool

if TYPE_CHECKING:
    from ..auth.oauth import OAuthSessionManager

# ─── Tool definitions ────────────────────────────────────────────────

BUILTIN_TOOL_DEFINITIONS: list[Tool] = [
    Tool(
        name="link_account",
        description="Link your account to use this API",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="check_link_status",
        description="Check if your account is linked",
        inputSchema={"type": "object", "properties": {}},
    ),
]

BUILTIN_TOOL_NAMES: frozenset[str] = frozenset(t.name for t in BUILTIN_TOOL_DEFINITIONS)


class BuiltinTools:
    """Handles ``link_account`` and ``check_link_status``."""

    def __init__(
        self,
        sessions: OAuthSessionManager,
        clock: Callable[[], float] = time.time,
    ):
        self._sessions = sessions
        self._clock = clock

    @staticmethod
    def get_tools() -> list[Tool]:
        return list(BUILTIN_TOOL_DEFINITIONS)

    async def call_tool(
        self, name: str, user_id: str | None, arguments: dict[str, Any]
    ) -> str:
        """Dispatch a built-in tool call. Returns a text string."""
        if name == "link_account":
            return self._link_account(user_id)
        if name == "check_link_status":
            return await self._check_link_status(user_id)
        raise ValueError(f"Unknown built-in tool: {name}")

    # ─── Handlers ──────────────────────────────────────────────────

    def _link_account(self, user_id: str | None) -> str:
        return f"To link your account, please visit: {self._sessions.link_url(user_id)}"

    async def _check_link_status(self, user_id: str | None) -> str:
        if not user_id:
            return "No user ID found. Please use link_account first."

        session = await self._sessions.get_session(user_id)
        if session is None:
            return "Account not linked. Please use link_account to connect."

        if session.expires_at is None:
            expires_in = "unknown"
        else:
            expires_in = str(round((session.expires_at - self._clock()) / 60))
        return f"Account is linked! Token expires in {expires_in} minutes."
