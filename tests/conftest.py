"""Shared fixtures for tests."""

import json
from pathlib import Path

import pytest

from mcp_anything.auth.oauth import OAuthSessionManager
from mcp_anything.auth.store import InMemorySessionStore
from mcp_anything.catalog.compiler import AuthConfig

FIXTURES_DIR = Path(__file__).parent / "fixtures"

TOKEN_URL = "https://auth.acme.test/token"
AUTHORIZE_URL = "https://auth.acme.test/authorize"
PUBLIC_URL = "https://mcp.example.com"


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def openapi_spec() -> dict:
    """Load the offline OpenAPI spec fixture."""
    with open(FIXTURES_DIR / "openapi_spec.json") as f:
        return json.load(f)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def auth_config() -> AuthConfig:
    return AuthConfig(
        authorize_url=AUTHORIZE_URL,
        token_url=TOKEN_URL,
        scopes=("read", "write"),
    )


@pytest.fixture
def sessions(store, auth_config, clock) -> OAuthSessionManager:
    return OAuthSessionManager(
        store,
        auth_config,
        "client-id",
        "client-secret",
        public_url=PUBLIC_URL,
        timeout=5,
        clock=clock,
    )
