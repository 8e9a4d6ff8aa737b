"""Pydantic models for state persisted in the session store.

Each model is serialised as a single JSON value under one key, so the
tokens from one exchange are always written (and read) together.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class AuthorizationSession(BaseModel):
    """Tokens of a linked user."""

    access_token: str = Field(description="Bearer token for the upstream API")
    refresh_token: Optional[str] = Field(default=None)
    expires_at: Optional[float] = Field(
        default=None, description="Absolute expiry (epoch seconds); None = unknown"
    )

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    model_config = {"extra": "ignore"}


class PendingAuthorization(BaseModel):
    """User waiting for the provider to redirect back with a code."""

    user_id: str
    created_at: float


class OAuthMetadata(BaseModel):
    """Endpoints advertised by an authorization server."""

    authorization_url: str
    token_url: str
    scopes: List[str] = Field(default_factory=list)
    issuer: Optional[str] = None
