"""Backend query interface and source status bookkeeping."""

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from ..errors import BackendError, UnknownSourceError
from ..models.config import SourceConfig
from .auth import BackendAuth

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class Backend(Protocol):
    """Generic query/insert/update interface over the hosted datastore."""

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        columns: str = "*",
        order: str | None = None,
    ) -> list[Row]:
        ...

    async def insert(self, table: str, row: Row) -> Row:
        ...

    async def update(self, table: str, id: Any, patch: Row) -> Row | None:
        ...

    async def count(self, table: str, filters: dict[str, Any] | None = None) -> int:
        ...


def encode_filter(value: Any) -> str:
    """Encode one equality/membership filter in PostgREST syntax."""
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    if isinstance(value, (list, tuple, set)):
        return "in.(" + ",".join(str(v) for v in value) + ")"
    return f"eq.{value}"


class RestBackend:
    """PostgREST client for the hosted backend."""

    def __init__(
        self,
        auth: BackendAuth | None = None,
        http: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize backend client.

        Args:
            auth: BackendAuth instance (creates one from env if not provided)
            http: Shared httpx.AsyncClient (created if not provided)
            timeout: Request timeout in seconds
        """
        self.auth = auth or BackendAuth()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "RestBackend":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str],
        json_data: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        """Make an authenticated request against a table.

        Raises:
            BackendError: On transport errors and non-2xx responses
        """
        headers = self.auth.get_headers()
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = await self.http.request(
                method,
                self.auth.get_rest_url(table),
                params=params,
                headers=headers,
                json=json_data,
            )
        except httpx.HTTPError as e:
            raise BackendError(f"Request failed: {e}", table=table) from e

        if response.status_code >= 400:
            raise BackendError(
                f"Backend error {response.status_code} on {table}: {response.text[:500]}",
                table=table,
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _params(filters: dict[str, Any] | None) -> dict[str, str]:
        return {field: encode_filter(value) for field, value in (filters or {}).items()}

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        columns: str = "*",
        order: str | None = None,
    ) -> list[Row]:
        """Fetch rows matching equality filters."""
        params = self._params(filters)
        params["select"] = columns
        if order:
            params["order"] = order
        response = await self._request("GET", table, params)
        data = response.json() if response.content else []
        if not isinstance(data, list):
            raise BackendError(f"Unexpected select response from {table}", table=table)
        return data

    async def insert(self, table: str, row: Row) -> Row:
        """Insert one row and return it as stored."""
        response = await self._request("POST", table, {}, json_data=row, prefer="return=representation")
        data = response.json() if response.content else []
        if isinstance(data, list):
            return data[0] if data else dict(row)
        return data

    async def update(self, table: str, id: Any, patch: Row) -> Row | None:
        """Patch the row with the given primary key."""
        response = await self._request(
            "PATCH", table, {"id": encode_filter(id)}, json_data=patch, prefer="return=representation"
        )
        data = response.json() if response.content else []
        if isinstance(data, list):
            return data[0] if data else None
        return data

    async def count(self, table: str, filters: dict[str, Any] | None = None) -> int:
        """Count rows using the Content-Range header."""
        params = self._params(filters)
        params["select"] = "id"
        response = await self._request("HEAD", table, params, prefer="count=exact")
        content_range = response.headers.get("Content-Range", "")
        total = content_range.rsplit("/", 1)[-1]
        return int(total) if total.isdigit() else 0


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SourceConfigStore:
    """Reads source definitions and records the outcome of each run."""

    TABLE = "portal_sync_config"

    def __init__(self, backend: Backend, definitions: list[SourceConfig], table: str = TABLE) -> None:
        self.backend = backend
        self.table = table
        self._definitions = {d.family: d for d in definitions}

    @property
    def families(self) -> list[str]:
        return list(self._definitions)

    async def get(self, family: str) -> SourceConfig:
        """Load a source with its current run status.

        Raises:
            UnknownSourceError: If no definition exists for the family
        """
        definition = self._definitions.get(family)
        if definition is None:
            raise UnknownSourceError(family)

        rows = await self.backend.select(self.table, {"family": family})
        if rows:
            definition.apply_status(rows[0])
        return definition

    async def _write_status(self, source: SourceConfig, patch: Row) -> None:
        if source.id is None:
            row = await self.backend.insert(self.table, {"family": source.family, **patch})
            source.id = row.get("id")
        else:
            await self.backend.update(self.table, source.id, patch)

    async def record_success(self, source: SourceConfig, at: str | None = None) -> None:
        """Stamp the last successful sync and clear any previous error."""
        source.last_sync_at = at or utc_now_iso()
        source.sync_error = None
        await self._write_status(source, {"last_sync_at": source.last_sync_at, "sync_error": None})

    async def record_failure(self, source: SourceConfig, error: str) -> None:
        """Store the message of a failed run."""
        source.sync_error = error
        await self._write_status(source, {"sync_error": error})
