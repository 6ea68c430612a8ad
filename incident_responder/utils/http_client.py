"""
Incident Responder - HTTP Service Client
========================================

Async HTTP client shared by the health probes and the remote diagnosis
source. Propagates the correlation id and applies one fixed timeout to
every request.

Usage:
    from incident_responder.utils.http_client import ServiceClient

    async with ServiceClient("http://localhost:8080") as client:
        response = await client.get("/health")
"""

import httpx
from typing import Any, Optional
from dataclasses import dataclass

from incident_responder.utils.logging import get_logger, get_correlation_id

logger = get_logger(__name__)


@dataclass
class ServiceClientConfig:
    """Configuration for the HTTP service client."""
    timeout_seconds: float = 5.0
    user_agent: str = "IncidentResponder-ServiceClient/1.0"


class ServiceClient:
    """
    Async HTTP client bound to one base URL.

    The underlying ``httpx.AsyncClient`` is created lazily and reused for
    connection pooling. A custom transport can be supplied, which lets the
    probes talk to an in-process ASGI app.
    """

    def __init__(
        self,
        base_url: str,
        config: Optional[ServiceClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.config = config or ServiceClientConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                transport=self._transport,
                follow_redirects=True
            )
        return self._client

    def _build_headers(self, extra_headers: Optional[dict] = None) -> dict:
        headers = {
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id

        if extra_headers:
            headers.update(extra_headers)

        return headers

    async def get(
        self,
        path: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None
    ) -> httpx.Response:
        """Send a GET request relative to the base URL."""
        client = await self._get_client()

        response = await client.get(
            path,
            params=params,
            headers=self._build_headers(headers)
        )

        logger.debug(
            f"GET {self.base_url}{path} -> {response.status_code}",
            extra={"path": path, "status": response.status_code}
        )

        return response

    async def post(
        self,
        path: str,
        data: Optional[dict[str, Any]] = None,
        headers: Optional[dict] = None
    ) -> httpx.Response:
        """Send a JSON POST request relative to the base URL."""
        client = await self._get_client()

        response = await client.post(
            path,
            json=data,
            headers=self._build_headers(headers)
        )

        logger.debug(
            f"POST {self.base_url}{path} -> {response.status_code}",
            extra={"path": path, "status": response.status_code}
        )

        return response

    async def close(self) -> None:
        """Close the HTTP client and release its connections."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ServiceClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
