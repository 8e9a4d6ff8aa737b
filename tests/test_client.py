"""Tests for ServerConfig and ApiClient."""

import json

import httpx
import pytest

from mcp_anything.client import ApiClient
from mcp_anything.config import ServerConfig
from mcp_anything.errors import ApiError

BASE_URL = "https://api.example.com/v1"


# ---------------------------------------------------------------------------
# ServerConfig
# ---------------------------------------------------------------------------


class TestServerConfig:
    def test_default_config(self):
        cfg = ServerConfig()
        assert cfg.name == "mcp-server"
        assert cfg.openapi_url is None
        assert cfg.public_url == "http://localhost:8787"
        assert cfg.port == 8787
        assert cfg.timeout == 30.0
        assert cfg.pending_ttl_seconds == 3600
        assert cfg.identity_jwt_algorithm == "HS256"

    def test_env_var_loading(self, monkeypatch):
        monkeypatch.setenv("MCP_ANYTHING_OPENAPI_URL", "https://x/openapi.json")
        monkeypatch.setenv("MCP_ANYTHING_CLIENT_ID", "cid")
        monkeypatch.setenv("MCP_ANYTHING_PORT", "9000")
        cfg = ServerConfig()
        assert cfg.openapi_url == "https://x/openapi.json"
        assert cfg.client_id == "cid"
        assert cfg.port == 9000

    def test_explicit_values_beat_env(self, monkeypatch):
        monkeypatch.setenv("MCP_ANYTHING_NAME", "from-env")
        assert ServerConfig(name="explicit").name == "explicit"

    def test_safe_dict_masks_secrets(self):
        cfg = ServerConfig(client_secret="s3cret", identity_jwt_secret="jwt")
        safe = cfg.safe_dict()
        assert safe["client_secret"] == "***MASKED***"
        assert safe["identity_jwt_secret"] == "***MASKED***"
        assert cfg.client_secret == "s3cret"

    def test_safe_dict_leaves_unset_secrets(self):
        safe = ServerConfig().safe_dict()
        assert safe["client_secret"] == ""
        assert safe["identity_jwt_secret"] is None


# ---------------------------------------------------------------------------
# ApiClient
# ---------------------------------------------------------------------------


class TestApiClient:
    def test_build_url_keeps_base_path(self):
        client = ApiClient(BASE_URL + "/")
        assert client.build_url("/users/1") == f"{BASE_URL}/users/1"
        assert client.build_url("users") == f"{BASE_URL}/users"

    async def test_request_success(self, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/users?limit=5", json={"users": []})
        async with ApiClient(BASE_URL) as client:
            result = await client._request("GET", "/users", params={"limit": "5"})
        assert result == {"users": []}

    async def test_request_sends_body_and_headers(self, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/users", method="POST", json={"id": 1})
        async with ApiClient(BASE_URL) as client:
            await client._request(
                "POST",
                "/users",
                json={"email": "a@b.c"},
                headers={"Authorization": "Bearer tok"},
            )

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer tok"
        assert json.loads(request.content) == {"email": "a@b.c"}

    async def test_text_response(self, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/ping", text="pong")
        async with ApiClient(BASE_URL) as client:
            assert await client._request("GET", "/ping") == "pong"

    async def test_empty_response(self, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/users/1", method="DELETE", status_code=204)
        async with ApiClient(BASE_URL) as client:
            assert await client._request("DELETE", "/users/1") is None

    async def test_request_4xx_raises_api_error(self, httpx_mock):
        httpx_mock.add_response(
            url=f"{BASE_URL}/users/9",
            status_code=404,
            json={"detail": "Not found"},
        )
        async with ApiClient(BASE_URL) as client:
            with pytest.raises(ApiError) as exc_info:
                await client._request("GET", "/users/9")
        assert exc_info.value.status_code == 404
        assert "Not found" in exc_info.value.body
        assert not exc_info.value.is_unauthorized

    async def test_request_401_is_unauthorized(self, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/me", status_code=401, text="expired")
        async with ApiClient(BASE_URL) as client:
            with pytest.raises(ApiError) as exc_info:
                await client._request("GET", "/me")
        assert exc_info.value.is_unauthorized

    async def test_request_network_error(self, httpx_mock):
        httpx_mock.add_exception(
            httpx.ConnectError("Connection refused"),
            url=f"{BASE_URL}/users",
        )
        async with ApiClient(BASE_URL) as client:
            with pytest.raises(ApiError, match="Request failed") as exc_info:
                await client._request("GET", "/users")
        assert exc_info.value.status_code is None

    async def test_request_timeout(self, httpx_mock):
        httpx_mock.add_exception(httpx.ReadTimeout("slow"), url=f"{BASE_URL}/users")
        async with ApiClient(BASE_URL, timeout=2) as client:
            with pytest.raises(ApiError, match="timed out after 2s"):
                await client._request("GET", "/users")

    async def test_aclose_is_idempotent(self):
        client = ApiClient(BASE_URL)
        await client._ensure_client()
        await client.aclose()
        await client.aclose()
        assert client.client is None
