"""Tests for the hosted reconciliation client."""

import json

import httpx
import pytest

from portalsync.core.auth import BackendAuth
from portalsync.core.client import RemoteSyncClient
from portalsync.errors import SyncAPIError
from portalsync.models.sync import ItemAction, SyncMode


def make_client(handler) -> RemoteSyncClient:
    auth = BackendAuth(api_key="test-key", base_url="https://backend.test")
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RemoteSyncClient("sync-support-tickets", auth, http=http)


@pytest.mark.asyncio
class TestRemoteSyncClient:
    """Tests for RemoteSyncClient.call."""

    async def test_info_call(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"success": True, "totalTickets": 42, "totalPages": 3, "existingCount": 7})

        result = await make_client(handler).call(SyncMode.FULL_IMPORT, 0)

        assert seen["url"] == "https://backend.test/functions/v1/sync-support-tickets"
        assert seen["body"] == {"mode": "full_import", "page": 0}
        assert seen["auth"] == "Bearer test-key"
        assert result.success is True
        assert (result.total_items, result.total_pages, result.existing_count) == (42, 3, 7)

    async def test_page_call(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "success": True,
                "synced": 1,
                "failed": 0,
                "skipped": 1,
                "comments": 4,
                "tickets": [
                    {"id": 11, "title": "Broken form", "status": "open", "action": "synced", "subItemCount": 4},
                    {"id": 12, "title": "Old issue", "status": "resolved", "action": "skipped_resolved"},
                ],
            })

        result = await make_client(handler).call(SyncMode.INCREMENTAL, 1)

        assert result.page == 1
        assert (result.synced, result.failed, result.skipped, result.sub_items) == (1, 0, 1, 4)
        assert result.items[0].id == "11"
        assert result.items[0].sub_item_count == 4
        assert result.items[1].action == ItemAction.SKIPPED_RESOLVED

    async def test_counters_derived_from_items(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "success": True,
                "tickets": [
                    {"id": 1, "action": "synced"},
                    {"id": 2, "action": "skipped_exists"},
                    {"id": 3, "action": "error", "error": "bad"},
                ],
            })

        result = await make_client(handler).call(SyncMode.FULL_IMPORT, 2)

        assert (result.synced, result.skipped, result.failed) == (1, 1, 1)

    async def test_logical_failure_is_not_raised(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": False, "error": "Portal unreachable"})

        result = await make_client(handler).call(SyncMode.FULL_IMPORT, 1)

        assert result.success is False
        assert result.error == "Portal unreachable"

    async def test_http_error_raises_with_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"success": False, "error": "API error: 503"})

        with pytest.raises(SyncAPIError, match="API error: 503") as exc_info:
            await make_client(handler).call(SyncMode.FULL_IMPORT, 1)
        assert exc_info.value.status_code == 500

    async def test_http_error_without_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        with pytest.raises(SyncAPIError, match="API error 502"):
            await make_client(handler).call(SyncMode.FULL_IMPORT, 1)

    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SyncAPIError, match="Request failed"):
            await make_client(handler).call(SyncMode.FULL_IMPORT, 0)

    async def test_unknown_mode(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ValueError):
            await client.call("everything", 0)

    async def test_context_manager_closes_owned_client(self) -> None:
        auth = BackendAuth(api_key="k", base_url="https://backend.test")
        async with RemoteSyncClient("sync-portal-clients", auth) as client:
            assert client.http.is_closed is False
        assert client.http.is_closed is True

    async def test_malformed_body_raises(self) -> None:
        bodies = [
            {"success": True, "tickets": ["oops"]},
            {"success": True, "synced": None, "tickets": []},
            {"success": True, "totalTickets": "many"},
        ]
        for body in bodies:
            page = 0 if "totalTickets" in body else 1
            client = make_client(lambda request, body=body: httpx.Response(200, json=body))
            with pytest.raises(SyncAPIError, match="Malformed response from sync-support-tickets"):
                await client.call(SyncMode.FULL_IMPORT, page)
