"""Generic HTTP dispatcher: one tool call -> one upstream request."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
import structlog

from ..client import ApiClient
from ..errors import ApiError, ExpiredError, NotLinkedError
from .compiler import ToolDescriptor

if TYPE_CHECKING:
    from ..auth.oauth import OAuthSessionManager

logger = structlog.get_logger(__name__)

_NO_BODY_METHODS = {"GET", "DELETE"}
_ROUTED_LOCATIONS = {"path", "query", "header", "cookie"}


@dataclass(frozen=True)
class ToolResult:
    """Text handed back to the calling agent.

    ``needs_link`` marks the prompt asking the user to link their account;
    it is a normal result, not an error.
    """

    text: str
    is_error: bool = False
    needs_link: bool = False


class ToolInvocationDispatcher:
    """Execute any :class:`ToolDescriptor` on behalf of a user."""

    def __init__(self, client: ApiClient, sessions: OAuthSessionManager):
        self.client = client
        self.sessions = sessions

    async def invoke(
        self,
        tool: ToolDescriptor,
        user_id: str | None,
        arguments: dict[str, Any] | None,
    ) -> ToolResult:
        """Run *tool* and map every outcome to a :class:`ToolResult`.

        Credential and upstream failures never raise; the agent gets text it
        can act on (usually: call ``link_account``).
        """
        arguments = dict(arguments or {})

        missing = tool.input_schema.missing_required(arguments)
        if missing:
            return ToolResult(
                f"Missing required argument(s): {', '.join(missing)}",
                is_error=True,
            )

        access_token: str | None = None
        if tool.requires_auth:
            if not self.sessions.auth.is_configured:
                return ToolResult(
                    "Authorization is not configured for this server "
                    "(no authorization or token URL).",
                    is_error=True,
                )
            if not user_id:
                return self._link_prompt(None)
            try:
                access_token = await self.sessions.resolve_credential(user_id)
            except (NotLinkedError, ExpiredError) as e:
                logger.info("Credential unavailable", tool=tool.name, reason=str(e))
                return self._link_prompt(user_id)

        try:
            result = await self.dispatch(tool, arguments, access_token=access_token)
        except ApiError as e:
            if e.is_unauthorized:
                logger.info("Upstream rejected credential", tool=tool.name)
                return self._link_prompt(user_id, rejected=True)
            if e.status_code is not None:
                return ToolResult(f"API Error: {e.status_code} - {e.body}", is_error=True)
            return ToolResult(f"Error: {e}", is_error=True)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Dispatch failed", tool=tool.name, error=str(e))
            return ToolResult(f"Error: {e}", is_error=True)

        return ToolResult(self._format_result(result))

    async def dispatch(
        self,
        tool: ToolDescriptor,
        arguments: dict[str, Any],
        *,
        access_token: str | None = None,
    ) -> Any:
        """Build the HTTP request from *tool* + *arguments* and return the
        decoded response body. Raises :class:`ApiError` on failure."""

        path = self._substitute_path_params(tool, arguments)
        query, headers, body = self._separate_params(tool, arguments)

        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        logger.info(
            "Dispatching",
            tool=tool.name,
            method=tool.method,
            path=path,
        )

        return await self.client._request(
            method=tool.method,
            path=path,
            params=query or None,
            json=body,
            headers=headers or None,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _link_prompt(self, user_id: str | None, rejected: bool = False) -> ToolResult:
        url = self.sessions.link_url(user_id)
        if rejected:
            text = (
                "Authentication failed. Your token may have expired. Please "
                f're-authenticate using the "link_account" tool or visit: {url}'
            )
        elif user_id is None:
            text = (
                'No user session found. Please use the "link_account" tool '
                f"first, or visit: {url}"
            )
        else:
            text = (
                'Account not linked. Please use the "link_account" tool, '
                f"or visit: {url}"
            )
        return ToolResult(text, needs_link=True)

    @staticmethod
    def _substitute_path_params(tool: ToolDescriptor, arguments: dict[str, Any]) -> str:
        """Replace ``{param}`` placeholders with percent-encoded values."""
        path_names = set(tool.input_schema.names_at("path"))
        path = tool.path
        for key in tool.path_params:
            if key in path_names and arguments.get(key) is not None:
                path = path.replace(f"{{{key}}}", quote(_scalar(arguments[key]), safe=""))
        return path

    @staticmethod
    def _separate_params(
        tool: ToolDescriptor,
        arguments: dict[str, Any],
    ) -> tuple[dict[str, Any], dict[str, str], dict[str, Any] | None]:
        """Split *arguments* into (query, headers, body) by schema location.

        A body is only built for methods that carry one and only when the
        tool declares a JSON body; it receives every argument not routed
        elsewhere.
        """
        schema = tool.input_schema
        query: dict[str, Any] = {}
        headers: dict[str, str] = {}
        cookies: list[str] = []
        body: dict[str, Any] = {}

        for key, value in arguments.items():
            location = schema.location_of(key)
            if value is None and location in _ROUTED_LOCATIONS:
                continue
            if location == "path":
                continue  # already substituted
            if location == "query":
                query[key] = _query_value(value)
            elif location == "header":
                headers[key] = _scalar(value)
            elif location == "cookie":
                cookies.append(f"{key}={quote(_scalar(value), safe='')}")
            else:
                body[key] = value

        if cookies:
            headers["Cookie"] = "; ".join(cookies)

        wants_body = (
            tool.method.upper() not in _NO_BODY_METHODS
            and schema.body_schema is not None
        )
        return query, headers, body if wants_body else None

    @staticmethod
    def _format_result(result: Any) -> str:
        if result is None:
            return "(empty response)"
        if isinstance(result, str):
            return result
        return json.dumps(result, indent=2, default=str)


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _query_value(value: Any) -> Any:
    if isinstance(value, list):
        return [_scalar(v) for v in value]
    return _scalar(value)
