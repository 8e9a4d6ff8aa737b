"""Load an API description from a URL or a local file (JSON or YAML)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import structlog
import yaml

from ..errors import DescriptionLoadError

logger = structlog.get_logger(__name__)


async def load_description(source: str, timeout: float = 15) -> dict[str, Any]:
    """Fetch *source* (``http(s)://`` URL or file path) and parse it."""
    if source.startswith(("http://", "https://")):
        logger.info("Fetching API description", url=source)
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                resp = await client.get(source)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise DescriptionLoadError(f"Failed to fetch {source}: {e}") from e
        return parse_description(resp.text, source)

    path = Path(source)
    if not path.is_file():
        raise DescriptionLoadError(f"API description not found: {source}")
    logger.info("Reading API description", path=str(path))
    return parse_description(path.read_text(encoding="utf-8"), source)


def parse_description(content: str, source: str = "") -> dict[str, Any]:
    """Parse JSON first, then YAML; the result must be a mapping."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise DescriptionLoadError(
                f"Could not parse {source or 'description'} as JSON or YAML"
            ) from e

    if not isinstance(data, dict):
        raise DescriptionLoadError("API description must be a JSON/YAML object")
    if "paths" not in data:
        logger.warning("API description has no paths", source=source)
    return data
