"""HTTP client for the hosted reconciliation endpoint."""

import logging
from typing import Any, Protocol

import httpx

from ..errors import SyncAPIError
from ..models.sync import PageResult, SyncMode
from .auth import BackendAuth

logger = logging.getLogger(__name__)


class SyncEndpoint(Protocol):
    """Anything that reconciles one page of a source per call."""

    async def call(self, mode: str, page: int) -> PageResult:
        ...


class RemoteSyncClient:
    """Calls one source family's reconciliation function.

    ``call(mode, 0)`` returns the totals; ``call(mode, n)`` reconciles page
    n server-side. A ``success: false`` body comes back as a failed
    PageResult; transport faults and non-2xx statuses raise SyncAPIError.
    """

    def __init__(
        self,
        endpoint: str,
        auth: BackendAuth | None = None,
        http: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
    ) -> None:
        """Initialize client for one endpoint.

        Args:
            endpoint: Hosted function name (e.g., "sync-support-tickets")
            auth: BackendAuth instance (creates one from env if not provided)
            http: Shared httpx.AsyncClient (created if not provided)
            timeout: Request timeout in seconds
        """
        self.endpoint = endpoint
        self.auth = auth or BackendAuth()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "RemoteSyncClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        url = self.auth.get_function_url(self.endpoint)
        try:
            response = await self.http.post(url, headers=self.auth.get_headers(), json=body)
        except httpx.HTTPError as e:
            raise SyncAPIError(f"Request failed: {e}") from e

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if response.status_code >= 400:
            detail = data.get("error") if isinstance(data, dict) else None
            message = detail or f"API error {response.status_code}: {response.text[:500]}"
            raise SyncAPIError(message, response.status_code, response)

        if not isinstance(data, dict):
            raise SyncAPIError(f"Unexpected response from {self.endpoint}", response.status_code, response)
        return data

    async def call(self, mode: str, page: int) -> PageResult:
        """Reconcile one page (or fetch totals when page is 0)."""
        if mode not in SyncMode.ALL:
            raise ValueError(f"Unknown sync mode: {mode}")

        logger.debug("POST %s mode=%s page=%d", self.endpoint, mode, page)
        data = await self._post({"mode": mode, "page": page})
        try:
            return PageResult.from_response(page, data)
        except (AttributeError, TypeError, ValueError) as e:
            raise SyncAPIError(f"Malformed response from {self.endpoint}: {e}") from e
