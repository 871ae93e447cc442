"""Data models for reconciliation runs."""

from dataclasses import dataclass, field
from typing import Any


class SyncMode:
    """Reconciliation modes accepted by the sync endpoint."""

    FULL_IMPORT = "full_import"  # Import everything not already present locally
    INCREMENTAL = "incremental"  # Only touch items not in the resolved state

    ALL = (FULL_IMPORT, INCREMENTAL)


class ItemAction:
    """Outcome of reconciling one remote record."""

    SYNCED = "synced"
    SKIPPED_EXISTS = "skipped_exists"
    SKIPPED_RESOLVED = "skipped_resolved"
    ERROR = "error"

    SKIPPED = (SKIPPED_EXISTS, SKIPPED_RESOLVED)


class SyncPhase:
    """States of a single orchestrator run."""

    IDLE = "idle"
    FETCHING_INFO = "fetching_info"
    PAGING = "paging"
    DONE = "done"
    FAILED = "failed"


def percent_complete(synced: int, skipped: int, failed: int, total: int) -> int:
    """Percentage of processed items, 0 when nothing is expected."""
    if total <= 0:
        return 0
    return round((synced + skipped + failed) / total * 100)


@dataclass
class ReconciledItem:
    """One remote record's outcome within a page."""

    id: str
    title: str = ""
    status: str = ""
    action: str = ItemAction.SYNCED
    sub_item_count: int = 0
    error: str | None = None

    @property
    def skipped(self) -> bool:
        return self.action in ItemAction.SKIPPED

    def to_dict(self) -> dict[str, Any]:
        """Convert to the endpoint's wire shape."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "action": self.action,
            "subItemCount": self.sub_item_count,
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReconciledItem":
        """Create from an endpoint item payload."""
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title") or "",
            status=data.get("status") or "",
            action=data.get("action") or ItemAction.SYNCED,
            sub_item_count=int(data.get("subItemCount", data.get("comments", 0)) or 0),
            error=data.get("error"),
        )


@dataclass
class PageResult:
    """Response of one endpoint call.

    Page 0 is the info call and only carries the totals; pages >= 1 carry
    the per-page counters and reconciled items.
    """

    page: int
    success: bool = True
    error: str | None = None
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    sub_items: int = 0
    items: list[ReconciledItem] = field(default_factory=list)
    total_items: int = 0
    total_pages: int = 0
    existing_count: int = 0

    @classmethod
    def failure(cls, page: int, error: str) -> "PageResult":
        return cls(page=page, success=False, error=error)

    @classmethod
    def from_response(cls, page: int, data: dict[str, Any]) -> "PageResult":
        """Parse an endpoint response body.

        Counters missing from the body are derived from the item list.
        """
        if not data.get("success", False):
            return cls.failure(page, str(data.get("error") or "Unknown error"))

        if page == 0:
            return cls(
                page=0,
                total_items=int(data.get("totalTickets", data.get("totalItems", 0)) or 0),
                total_pages=int(data.get("totalPages", 0) or 0),
                existing_count=int(data.get("existingCount", 0) or 0),
            )

        raw_items = data.get("tickets", data.get("items")) or []
        items = [ReconciledItem.from_dict(i) for i in raw_items]

        def count(*actions: str) -> int:
            return sum(1 for i in items if i.action in actions)

        return cls(
            page=page,
            synced=int(data.get("synced", count(ItemAction.SYNCED))),
            failed=int(data.get("failed", count(ItemAction.ERROR))),
            skipped=int(data.get("skipped", count(*ItemAction.SKIPPED))),
            sub_items=int(data.get("comments", data.get("subItems", sum(i.sub_item_count for i in items)))),
            items=items,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the endpoint's wire shape."""
        if not self.success:
            return {"success": False, "error": self.error or "Unknown error"}
        if self.page == 0:
            return {
                "success": True,
                "totalTickets": self.total_items,
                "totalPages": self.total_pages,
                "existingCount": self.existing_count,
            }
        return {
            "success": True,
            "synced": self.synced,
            "failed": self.failed,
            "skipped": self.skipped,
            "comments": self.sub_items,
            "tickets": [i.to_dict() for i in self.items],
        }


@dataclass(frozen=True)
class SyncProgress:
    """Immutable snapshot of one run, handed to observers after every change."""

    source: str
    mode: str
    phase: str = SyncPhase.IDLE
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    synced_sub_items: int = 0
    page: int = 0
    total_pages: int = 0
    existing_count: int = 0
    current_label: str = ""
    current_status: str = ""
    done: bool = False
    error: str | None = None
    cancelled: bool = False
    log: tuple[str, ...] = ()

    @property
    def processed(self) -> int:
        return self.synced + self.failed + self.skipped

    @property
    def percent(self) -> int:
        return percent_complete(self.synced, self.skipped, self.failed, self.total)

    @property
    def succeeded(self) -> bool:
        return self.done and self.error is None
