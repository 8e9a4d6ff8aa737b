"""Per-user authorization-code state machine backed by a session store.

::

    Unlinked --initiate--> Pending --callback(state, code)--> Linked
    Linked --expired, refresh token--> Refreshing --ok--> Linked
    Refreshing --failed--> Linked (stale access token kept)

The manager holds no state between calls; every operation reads and writes
through the store so any number of instances may share one store.
"""

from __future__ import annotations

import secrets
import time
import uuid
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import structlog
from pydantic import ValidationError

from ..catalog.compiler import AuthConfig
from ..errors import (
    AuthorizationNotConfiguredError,
    ExpiredError,
    InvalidStateError,
    NotLinkedError,
    TokenExchangeFailedError,
)
from ..models.schemas import AuthorizationSession, PendingAuthorization
from .store import SessionStore, session_key, state_key

logger = structlog.get_logger(__name__)

CALLBACK_PATH = "/oauth/callback"
AUTHORIZE_PATH = "/oauth/authorize"


class OAuthSessionManager:
    """Initiate, complete and refresh delegated authorization per user."""

    def __init__(
        self,
        store: SessionStore,
        auth: AuthConfig,
        client_id: str,
        client_secret: str,
        *,
        public_url: str,
        timeout: float = 30.0,
        session_ttl: int = 86400 * 30,
        pending_ttl: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.auth = auth
        self.client_id = client_id
        self.client_secret = client_secret
        self.public_url = public_url.rstrip("/")
        self.timeout = timeout
        self.session_ttl = session_ttl
        self.pending_ttl = pending_ttl
        self._clock = clock

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    async def initiate(self, user_id: str, origin: Optional[str] = None) -> str:
        """Persist a pending state for *user_id* and return the provider's
        authorization URL to redirect the user to."""
        if not self.auth.authorize_url:
            raise AuthorizationNotConfiguredError("No authorization URL configured")

        state = secrets.token_urlsafe(32)
        pending = PendingAuthorization(user_id=user_id, created_at=self._clock())
        await self.store.put(
            state_key(state), pending.model_dump_json(), self.pending_ttl
        )

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri(origin),
            "response_type": "code",
            "state": state,
        }
        # No scope parameter at all when the catalog declares no scopes.
        if self.auth.scopes:
            params["scope"] = " ".join(self.auth.scopes)

        logger.info("Authorization initiated", user_id=user_id)
        return _with_query(self.auth.authorize_url, params)

    def redirect_uri(self, origin: Optional[str] = None) -> str:
        return f"{(origin or self.public_url).rstrip('/')}{CALLBACK_PATH}"

    def link_url(self, user_id: Optional[str] = None) -> str:
        """Address of this server's authorize route for *user_id* (a fresh
        random id when none is known)."""
        query = urlencode({"user_id": user_id or str(uuid.uuid4())})
        return f"{self.public_url}{AUTHORIZE_PATH}?{query}"

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    async def handle_callback(
        self, state: str, code: str, origin: Optional[str] = None
    ) -> str:
        """Exchange *code* for tokens and link the pending user.

        Returns the linked user id. The state is consumed before the
        exchange, so a replayed callback fails with
        :class:`InvalidStateError` instead of exchanging twice.
        """
        raw = await self.store.pop(state_key(state)) if state else None
        if raw is None:
            raise InvalidStateError("Invalid state")
        try:
            pending = PendingAuthorization.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidStateError("Invalid state") from e

        tokens = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri(origin),
            }
        )
        session = self._session_from_tokens(tokens)
        await self._save_session(pending.user_id, session)
        logger.info(
            "Account linked",
            user_id=pending.user_id,
            elapsed=round(self._clock() - pending.created_at, 1),
        )
        return pending.user_id

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def get_session(self, user_id: str) -> Optional[AuthorizationSession]:
        raw = await self.store.get(session_key(user_id))
        if raw is None:
            return None
        try:
            return AuthorizationSession.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable session", user_id=user_id)
            return None

    async def resolve_credential(self, user_id: str) -> str:
        """Return a usable access token for *user_id*.

        An expired token is refreshed once when a refresh token exists. If
        that refresh fails the stale token is returned and the upstream API
        gets to decide (a 401 there leads the caller to re-link).
        """
        session = await self.get_session(user_id)
        if session is None:
            raise NotLinkedError(f"User {user_id} has not linked an account")

        if not session.is_expired(self._clock()):
            return session.access_token

        if not session.refresh_token:
            raise ExpiredError("Access token expired and no refresh token is stored")

        logger.info("Token expired, attempting refresh", user_id=user_id)
        refreshed = await self._refresh(session)
        if refreshed is None:
            return session.access_token

        await self._save_session(user_id, refreshed)
        return refreshed.access_token

    async def _refresh(
        self, session: AuthorizationSession
    ) -> Optional[AuthorizationSession]:
        try:
            tokens = await self._token_request(
                {"grant_type": "refresh_token", "refresh_token": session.refresh_token}
            )
        except (TokenExchangeFailedError, AuthorizationNotConfiguredError) as e:
            logger.warning("Token refresh failed", error=str(e))
            return None

        refreshed = self._session_from_tokens(tokens)
        if not refreshed.refresh_token:
            # Some providers don't rotate refresh tokens.
            refreshed = refreshed.model_copy(
                update={"refresh_token": session.refresh_token}
            )
        return refreshed

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    async def _token_request(self, data: dict[str, str]) -> dict[str, Any]:
        if not self.auth.token_url:
            raise AuthorizationNotConfiguredError("No token URL configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.auth.token_url,
                    data=data,
                    auth=(self.client_id, self.client_secret),
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException as e:
            raise TokenExchangeFailedError(f"Token endpoint timed out: {e}") from e
        except httpx.RequestError as e:
            raise TokenExchangeFailedError(f"Token request failed: {e}") from e

        if not resp.is_success:
            logger.error(
                "Token endpoint error",
                grant_type=data["grant_type"],
                status_code=resp.status_code,
            )
            raise TokenExchangeFailedError(
                f"Token endpoint returned {resp.status_code}", resp.status_code
            )

        tokens = _parse_token_response(resp)
        if not tokens.get("access_token"):
            error = tokens.get("error", "no access_token in response")
            raise TokenExchangeFailedError(f"Token exchange failed: {error}")
        for key in ("access_token", "refresh_token"):
            if tokens.get(key) is not None and not isinstance(tokens[key], str):
                logger.error(
                    "Malformed token response",
                    grant_type=data["grant_type"],
                    field=key,
                    type=type(tokens[key]).__name__,
                )
                raise TokenExchangeFailedError(f"Token exchange failed: {key} is not a string")
        return tokens

    def _session_from_tokens(self, tokens: dict[str, Any]) -> AuthorizationSession:
        expires_at = None
        try:
            if tokens.get("expires_in") is not None:
                expires_at = self._clock() + float(tokens["expires_in"])
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid expires_in", value=tokens["expires_in"])
        return AuthorizationSession(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token") or None,
            expires_at=expires_at,
        )

    async def _save_session(self, user_id: str, session: AuthorizationSession) -> None:
        await self.store.put(
            session_key(user_id), session.model_dump_json(), self.session_ttl
        )


def _parse_token_response(resp: httpx.Response) -> dict[str, Any]:
    """Token responses are JSON, but a few providers answer form-encoded."""
    try:
        data = resp.json()
    except ValueError:
        return dict(parse_qsl(resp.text))
    return data if isinstance(data, dict) else {}


def _with_query(url: str, params: dict[str, str]) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query) + list(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))
