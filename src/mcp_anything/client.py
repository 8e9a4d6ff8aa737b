"""HTTP client for the upstream API described by the catalog."""

from typing import Any, Dict, Optional

import httpx
import structlog

from .errors import ApiError

logger = structlog.get_logger(__name__)


class ApiClient:
    """Asynchronous client for the upstream API.

    One instance is shared by every dispatch; the per-user bearer token is
    passed with each request rather than stored on the client.
    """

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def _ensure_client(self):
        if not self.client:
            self.client = httpx.AsyncClient(timeout=self.timeout)

    async def aclose(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    def build_url(self, path: str) -> str:
        """Join *path* onto the base URL, keeping any base path prefix."""
        return f"{self.base_url}/{path.lstrip('/')}"

    # ------------------------------------------------------------------
    # Core HTTP method (used by the generic dispatcher)
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Make a request and return the decoded body.

        JSON responses are decoded; anything else is returned as text, and
        an empty body as ``None``. Non-success statuses and transport
        failures raise :class:`ApiError`.
        """
        await self._ensure_client()

        try:
            response = await self.client.request(
                method=method,
                url=self.build_url(path),
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.error("Request timed out", path=path, error=str(e))
            raise ApiError(f"Request timed out after {self.timeout}s")
        except httpx.RequestError as e:
            logger.error("Request error", path=path, error=str(e))
            raise ApiError(f"Request failed: {e}")

        logger.info(
            "API request",
            method=method,
            path=path,
            status_code=response.status_code,
        )

        if not response.is_success:
            raise ApiError(
                f"API request failed: {response.status_code}",
                response.status_code,
                response.text,
            )

        if not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError as e:
                raise ApiError(f"Could not decode JSON response: {e}")
        return response.text
