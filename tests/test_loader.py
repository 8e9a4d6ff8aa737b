"""Tests for catalog.loader."""

import json

import httpx
import pytest

from mcp_anything.catalog.loader import load_description, parse_description
from mcp_anything.errors import DescriptionLoadError

YAML_SPEC = """
openapi: 3.0.0
info:
  title: Tiny
  version: "1"
paths:
  /ping:
    get:
      operationId: ping
"""


class TestParseDescription:
    def test_json(self, openapi_spec):
        assert parse_description(json.dumps(openapi_spec)) == openapi_spec

    def test_yaml(self):
        spec = parse_description(YAML_SPEC)
        assert spec["info"]["title"] == "Tiny"
        assert "get" in spec["paths"]["/ping"]

    def test_not_a_mapping(self):
        with pytest.raises(DescriptionLoadError):
            parse_description("- just\n- a list\n")

    def test_unparseable(self):
        with pytest.raises(DescriptionLoadError):
            parse_description("key: [unclosed")


class TestLoadDescription:
    async def test_from_url(self, httpx_mock, openapi_spec):
        httpx_mock.add_response(url="https://api.example.com/openapi.json", json=openapi_spec)
        assert await load_description("https://api.example.com/openapi.json") == openapi_spec

    async def test_url_error_status(self, httpx_mock):
        httpx_mock.add_response(url="https://api.example.com/openapi.json", status_code=500)
        with pytest.raises(DescriptionLoadError):
            await load_description("https://api.example.com/openapi.json")

    async def test_url_network_error(self, httpx_mock):
        httpx_mock.add_exception(httpx.ConnectError("down"))
        with pytest.raises(DescriptionLoadError, match="Failed to fetch"):
            await load_description("https://api.example.com/openapi.json")

    async def test_from_file(self, tmp_path):
        path = tmp_path / "spec.yaml"
        path.write_text(YAML_SPEC)
        spec = await load_description(str(path))
        assert spec["paths"]["/ping"]["get"]["operationId"] == "ping"

    async def test_missing_file(self, tmp_path):
        with pytest.raises(DescriptionLoadError, match="not found"):
            await load_description(str(tmp_path / "nope.json"))
