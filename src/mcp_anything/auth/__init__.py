"""Delegated authorization: session storage, OAuth flow, caller identity."""

from .discovery import discover_oauth_endpoints
from .identity import IdentityResolver, JWTIdentityResolver, NoIdentityResolver
from .oauth import OAuthSessionManager
from .store import InMemorySessionStore, SessionStore

__all__ = [
    "discover_oauth_endpoints",
    "IdentityResolver",
    "JWTIdentityResolver",
    "NoIdentityResolver",
    "OAuthSessionManager",
    "InMemorySessionStore",
    "SessionStore",
]
