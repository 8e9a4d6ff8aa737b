"""Resolve which end user an MCP connection belongs to.

The user id keys every stored session, so it must come from something the
server can verify. A bearer header is only trusted after its signature and
expiry have been checked.
"""

from typing import Mapping, Optional, Protocol

import jwt
import structlog

logger = structlog.get_logger(__name__)


class IdentityResolver(Protocol):
    def resolve(self, headers: Mapping[str, str]) -> Optional[str]:
        """Return the caller's user id, or ``None`` when unknown."""
        ...


class NoIdentityResolver:
    """Treat every caller as anonymous."""

    def resolve(self, headers: Mapping[str, str]) -> Optional[str]:
        return None


class JWTIdentityResolver:
    """Use the ``sub`` claim of a verified ``Authorization: Bearer`` JWT."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def resolve(self, headers: Mapping[str, str]) -> Optional[str]:
        header = headers.get("authorization") or headers.get("Authorization")
        if not header:
            return None
        parts = header.split(" ", 1)
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return None

        try:
            payload = jwt.decode(
                parts[1],
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub"]},
            )
        except jwt.InvalidTokenError as e:
            logger.info("Rejected identity token", reason=str(e))
            return None

        subject = payload.get("sub")
        return subject if isinstance(subject, str) and subject else None
