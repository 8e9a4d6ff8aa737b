"""Tests for auth.discovery."""

from mcp_anything.auth.discovery import GITHUB_METADATA, discover_oauth_endpoints

ISSUER = "https://login.example.com"


class TestDiscovery:
    async def test_rfc8414_metadata(self, httpx_mock):
        httpx_mock.add_response(
            url=f"{ISSUER}/.well-known/oauth-authorization-server",
            json={
                "issuer": ISSUER,
                "authorization_endpoint": f"{ISSUER}/authorize",
                "token_endpoint": f"{ISSUER}/token",
                "scopes_supported": ["openid", "email"],
            },
        )
        metadata = await discover_oauth_endpoints(ISSUER + "/")
        assert metadata.authorization_url == f"{ISSUER}/authorize"
        assert metadata.token_url == f"{ISSUER}/token"
        assert metadata.scopes == ["openid", "email"]
        assert metadata.issuer == ISSUER

    async def test_falls_back_to_openid_configuration(self, httpx_mock):
        httpx_mock.add_response(
            url=f"{ISSUER}/.well-known/oauth-authorization-server", status_code=404
        )
        httpx_mock.add_response(
            url=f"{ISSUER}/.well-known/openid-configuration",
            json={
                "authorization_endpoint": f"{ISSUER}/oidc/auth",
                "token_endpoint": f"{ISSUER}/oidc/token",
            },
        )
        metadata = await discover_oauth_endpoints(ISSUER)
        assert metadata.authorization_url == f"{ISSUER}/oidc/auth"
        assert metadata.scopes == []

    async def test_incomplete_document_skipped(self, httpx_mock):
        httpx_mock.add_response(
            url=f"{ISSUER}/.well-known/oauth-authorization-server",
            json={"authorization_endpoint": f"{ISSUER}/authorize"},
        )
        httpx_mock.add_response(
            url=f"{ISSUER}/.well-known/openid-configuration", text="<html>"
        )
        assert await discover_oauth_endpoints(ISSUER) is None

    async def test_github_fallback(self, httpx_mock):
        httpx_mock.add_response(
            url="https://github.com/.well-known/oauth-authorization-server", status_code=404
        )
        httpx_mock.add_response(
            url="https://github.com/.well-known/openid-configuration", status_code=404
        )
        assert await discover_oauth_endpoints("https://github.com") == GITHUB_METADATA
