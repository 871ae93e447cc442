"""Tests for the REST backend and source status store."""

import httpx
import pytest

from conftest import InMemoryBackend
from portalsync.core.auth import BackendAuth
from portalsync.core.backend import RestBackend, SourceConfigStore, encode_filter
from portalsync.errors import BackendError, UnknownSourceError
from portalsync.models.config import SourceConfig


def make_backend(handler) -> RestBackend:
    auth = BackendAuth(api_key="test-key", base_url="https://backend.test")
    return RestBackend(auth, http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_encode_filter() -> None:
    assert encode_filter(None) == "is.null"
    assert encode_filter(True) == "eq.true"
    assert encode_filter("f1") == "eq.f1"
    assert encode_filter([1, 2, 3]) == "in.(1,2,3)"


@pytest.mark.asyncio
class TestRestBackend:
    """Tests for RestBackend."""

    async def test_select(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["apikey"] = request.headers["apikey"]
            return httpx.Response(200, json=[{"id": "t1"}])

        rows = await make_backend(handler).select("tasks", {"folder_id": "f1"}, order="position")

        assert rows == [{"id": "t1"}]
        assert seen["path"] == "/rest/v1/tasks"
        assert seen["params"] == {"folder_id": "eq.f1", "select": "*", "order": "position"}
        assert seen["apikey"] == "test-key"

    async def test_insert_returns_representation(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.headers["Prefer"] == "return=representation"
            return httpx.Response(201, json=[{"id": "new", "portal_id": 5}])

        row = await make_backend(handler).insert("clients", {"portal_id": 5})

        assert row == {"id": "new", "portal_id": 5}

    async def test_update_targets_id(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PATCH"
            assert request.url.params["id"] == "eq.abc"
            return httpx.Response(200, json=[])

        assert await make_backend(handler).update("clients", "abc", {"title": "x"}) is None

    async def test_count_reads_content_range(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "HEAD"
            assert request.headers["Prefer"] == "count=exact"
            return httpx.Response(200, headers={"Content-Range": "0-0/17"})

        assert await make_backend(handler).count("support_tickets") == 17

    async def test_error_status_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="JWT expired")

        with pytest.raises(BackendError, match="Backend error 401 on folders") as exc_info:
            await make_backend(handler).select("folders")
        assert exc_info.value.status_code == 401

    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(BackendError, match="Request failed"):
            await make_backend(handler).select("folders")


@pytest.mark.asyncio
class TestSourceConfigStore:
    """Tests for SourceConfigStore."""

    async def test_get_unknown(self) -> None:
        store = SourceConfigStore(InMemoryBackend(), [])
        with pytest.raises(UnknownSourceError):
            await store.get("projects")

    async def test_get_overlays_status_row(self) -> None:
        backend = InMemoryBackend({"portal_sync_config": [{"id": "cfg1", "family": "clients", "sync_error": "old"}]})
        store = SourceConfigStore(backend, [SourceConfig(family="clients", endpoint="sync-portal-clients")])

        source = await store.get("clients")

        assert source.id == "cfg1"
        assert source.sync_error == "old"

    async def test_first_record_inserts_status_row(self) -> None:
        backend = InMemoryBackend()
        store = SourceConfigStore(backend, [SourceConfig(family="websites", endpoint="sync-portal-websites")])
        source = await store.get("websites")

        await store.record_failure(source, "Portal error 500 on page 1")
        await store.record_success(source, at="2026-10-01T00:00:00+00:00")

        rows = backend.tables["portal_sync_config"]
        assert len(rows) == 1
        assert rows[0]["family"] == "websites"
        assert rows[0]["sync_error"] is None
        assert rows[0]["last_sync_at"] == "2026-10-01T00:00:00+00:00"
