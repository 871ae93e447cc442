"""In-process reconciliation of a paginated portal feed into local tables."""

import logging
import re
from datetime import datetime, timezone
from typing import Any

import httpx

from ..errors import BackendError, SyncAPIError
from ..models.config import SourceConfig
from ..models.sync import ItemAction, PageResult, ReconciledItem, SyncMode
from .backend import Backend

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")


def strip_html(value: Any) -> str:
    """Remove markup from a rendered portal field."""
    if isinstance(value, dict):
        value = value.get("rendered", "")
    if not isinstance(value, str):
        return ""
    return _TAG_RE.sub("", value).strip()


class PortalFeed:
    """Reads a WordPress-style paginated REST collection."""

    def __init__(self, http: httpx.AsyncClient | None = None, timeout: float = 30.0) -> None:
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def _get(self, url: str, params: dict[str, Any]) -> httpx.Response:
        try:
            return await self.http.get(url, params=params)
        except httpx.HTTPError as e:
            raise SyncAPIError(f"Portal request failed: {e}") from e

    async def fetch_page(self, url: str, page: int, per_page: int) -> tuple[list[dict[str, Any]], int, int]:
        """Fetch one page of records.

        Totals come from the X-WP-Total / X-WP-TotalPages headers, or from
        an ``{items, total, total_pages}`` envelope when the feed uses one.
        A 400 past the last page is an empty page.

        Returns:
            Tuple of (records, total records, total pages)

        Raises:
            SyncAPIError: On transport errors and other non-2xx responses
        """
        response = await self._get(url, {"per_page": per_page, "page": page})

        if response.status_code == 400:
            return [], 0, 0
        if response.status_code >= 400:
            raise SyncAPIError(f"Portal error {response.status_code} on page {page}", response.status_code, response)

        try:
            body = response.json()
        except ValueError as e:
            raise SyncAPIError(f"Portal returned invalid JSON on page {page}", response.status_code, response) from e

        if isinstance(body, dict):
            items = body.get("items") or []
            total = int(body.get("total", len(items)) or 0)
            total_pages = int(body.get("total_pages", 1) or 0)
        else:
            items = body if isinstance(body, list) else []
            total = int(response.headers.get("X-WP-Total", len(items)))
            total_pages = int(response.headers.get("X-WP-TotalPages", 1))

        return items, total, total_pages

    async def fetch_sub_items(self, url: str, post_id: Any, per_page: int = 100) -> list[dict[str, Any]]:
        """Fetch sub-items (comments) attached to one record."""
        response = await self._get(url, {"post": post_id, "per_page": per_page})
        if response.status_code >= 400:
            raise SyncAPIError(f"Portal error {response.status_code} for sub-items of {post_id}", response.status_code)
        try:
            body = response.json()
        except ValueError as e:
            raise SyncAPIError(f"Portal returned invalid JSON for sub-items of {post_id}") from e
        return body if isinstance(body, list) else []


class PortalReconciler:
    """Reconciliation endpoint running inside this process.

    Implements the same ``call(mode, page)`` contract as RemoteSyncClient:
    page 0 reports totals, page n pulls that page from the portal and
    merges it into the source's table keyed by ``portal_id``.
    """

    def __init__(self, source: SourceConfig, backend: Backend, feed: PortalFeed | None = None) -> None:
        self.source = source
        self.backend = backend
        self.feed = feed or PortalFeed()

    async def aclose(self) -> None:
        await self.feed.aclose()

    def _is_resolved(self, status: str) -> bool:
        return status.strip().casefold() == self.source.resolved_status.strip().casefold()

    @staticmethod
    def to_row(record: dict[str, Any]) -> dict[str, Any]:
        """Map a portal record onto a local row."""
        acf = record.get("acf") or {}
        status = strip_html(acf.get("stav")) if isinstance(acf, dict) and acf.get("stav") else ""
        now = datetime.now(timezone.utc).isoformat()
        return {
            "portal_id": record["id"],
            "title": strip_html(record.get("title")),
            "slug": record.get("slug", ""),
            "status": status or strip_html(record.get("status")),
            "portal_link": record.get("link", ""),
            "portal_created_at": record.get("date"),
            "portal_modified_at": record.get("modified"),
            "last_sync_at": now,
            "sync_error": None,
            "updated_at": now,
        }

    async def call(self, mode: str, page: int) -> PageResult:
        """Report totals (page 0) or reconcile one page."""
        if mode not in SyncMode.ALL:
            return PageResult.failure(page, f"Unknown sync mode: {mode}")
        if not self.source.source_url:
            return PageResult.failure(page, f"No source URL configured for {self.source.family}")

        table = self.source.target_table

        if page == 0:
            _, total, total_pages = await self.feed.fetch_page(self.source.source_url, 1, self.source.per_page)
            try:
                existing = await self.backend.count(table)
            except BackendError as e:
                return PageResult.failure(0, str(e))
            return PageResult(page=0, total_items=total, total_pages=total_pages, existing_count=existing)

        records, _, _ = await self.feed.fetch_page(self.source.source_url, page, self.source.per_page)
        portal_ids = [r["id"] for r in records if "id" in r]
        try:
            rows = await self.backend.select(table, {"portal_id": portal_ids}, columns="id,portal_id") if portal_ids else []
        except BackendError as e:
            return PageResult.failure(page, str(e))
        local_by_portal_id = {str(r["portal_id"]): r for r in rows}

        result = PageResult(page=page)
        for record in records:
            item = await self._reconcile(mode, record, local_by_portal_id, table)
            result.items.append(item)
            if item.action == ItemAction.SYNCED:
                result.synced += 1
                result.sub_items += item.sub_item_count
            elif item.action == ItemAction.ERROR:
                result.failed += 1
            else:
                result.skipped += 1
        return result

    async def _reconcile(
        self,
        mode: str,
        record: dict[str, Any],
        local_by_portal_id: dict[str, dict[str, Any]],
        table: str,
    ) -> ReconciledItem:
        if "id" not in record:
            return ReconciledItem(id="", action=ItemAction.ERROR, error="Record has no id")

        row = self.to_row(record)
        item = ReconciledItem(id=str(record["id"]), title=row["title"], status=row["status"])
        local = local_by_portal_id.get(item.id)

        if mode == SyncMode.INCREMENTAL and self._is_resolved(item.status):
            item.action = ItemAction.SKIPPED_RESOLVED
            return item
        if mode == SyncMode.FULL_IMPORT and local is not None:
            item.action = ItemAction.SKIPPED_EXISTS
            return item

        try:
            if local is not None:
                await self.backend.update(table, local["id"], row)
                local_id = local["id"]
            else:
                inserted = await self.backend.insert(table, row)
                local_id = inserted.get("id")
                local_by_portal_id[item.id] = {"id": local_id, "portal_id": record["id"]}
        except BackendError as e:
            logger.warning("Error writing %s %s: %s", table, item.id, e)
            item.action = ItemAction.ERROR
            item.error = str(e)
            return item

        item.action = ItemAction.SYNCED
        if local_id is not None:
            item.sub_item_count = await self._sync_sub_items(local_id, record["id"])
        return item

    async def _sync_sub_items(self, local_id: Any, portal_id: Any) -> int:
        """Insert sub-items not yet stored locally; failures never fail the parent."""
        if not self.source.sub_items_url or not self.source.sub_items_table:
            return 0

        table = self.source.sub_items_table
        try:
            comments = await self.feed.fetch_sub_items(self.source.sub_items_url, portal_id)
            if not comments:
                return 0
            known = await self.backend.select(
                table,
                {"portal_comment_id": [c["id"] for c in comments]},
                columns="portal_comment_id",
            )
        except (SyncAPIError, BackendError) as e:
            logger.warning("Error fetching sub-items for %s: %s", portal_id, e)
            return 0

        known_ids = {str(k["portal_comment_id"]) for k in known}
        synced = 0
        for comment in comments:
            if str(comment["id"]) in known_ids:
                continue
            try:
                await self.backend.insert(table, {
                    "parent_id": local_id,
                    "portal_comment_id": comment["id"],
                    "parent_portal_comment_id": comment.get("parent") or 0,
                    "author_portal_id": comment.get("author"),
                    "author_name": comment.get("author_name", ""),
                    "content": strip_html(comment.get("content")),
                    "portal_date": comment.get("date"),
                    "status": comment.get("status") or "approved",
                })
            except BackendError as e:
                logger.warning("Error storing sub-item %s: %s", comment.get("id"), e)
                continue
            synced += 1
        return synced
