"""
Shared plumbing for third-party HTTP clients.

Each provider client owns one lazily created ``httpx.AsyncClient``. Tests
pass their own client (usually built on ``httpx.MockTransport``) through the
constructor. No client retries: a failed call raises
``ExternalServiceException`` and the caller decides whether to absorb it.
"""

from typing import Any, Optional

import httpx

from src.config import settings
from src.core import ExternalServiceException
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class HTTPProviderClient:
    """Base class for provider clients built on httpx."""

    service_name = "provider"

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None
    ):
        self._http_client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout or settings.provider_timeout_seconds

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, turning transport failures into service errors."""
        client = await self._get_client()
        try:
            return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                "Provider request failed",
                extra={"service": self.service_name, "url": url, "error": str(e)}
            )
            raise ExternalServiceException(self.service_name, str(e)) from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        body = response.text[:500]
        logger.warning(
            "Provider returned error status",
            extra={
                "service": self.service_name,
                "status_code": response.status_code,
                "body": body,
            }
        )
        raise ExternalServiceException(
            self.service_name,
            f"API error: {response.status_code}",
            {"status_code": response.status_code, "body": body}
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None if self._owns_client else self._http_client
