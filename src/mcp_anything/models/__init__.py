"""Persisted data models."""

from .schemas import AuthorizationSession, OAuthMetadata, PendingAuthorization

__all__ = ["AuthorizationSession", "OAuthMetadata", "PendingAuthorization"]
