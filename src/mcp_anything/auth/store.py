"""Session store contract and an in-process implementation."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional, Protocol


class SessionStore(Protocol):
    """Key-value store with per-key expiry.

    Each operation must be atomic for a single key; nothing is promised
    across keys.
    """

    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def pop(self, key: str) -> Optional[str]:
        """Atomically read and delete *key*."""
        ...


def session_key(user_id: str) -> str:
    return f"tokens_{user_id}"


def state_key(state: str) -> str:
    return f"oauth_state_{state}"


class InMemorySessionStore:
    """Dictionary-backed :class:`SessionStore` for a single process."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = asyncio.Lock()
        self._data: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._live_value_locked(key)

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        async with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)

    async def pop(self, key: str) -> Optional[str]:
        async with self._lock:
            value = self._live_value_locked(key)
            self._data.pop(key, None)
            return value

    def _live_value_locked(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires = entry
        if self._clock() >= expires:
            del self._data[key]
            return None
        return value
