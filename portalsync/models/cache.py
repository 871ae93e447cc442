"""Cache entry model and persisted-payload validation."""

from dataclasses import dataclass, field
from typing import Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class CacheEntry:
    """A cached collection.

    ``timestamp`` is the wall-clock time of the last successful fetch, or
    None once the collection has been invalidated. ``scopes`` records when
    each scope (folder id) was last fetched.
    """

    data: list[dict[str, Any]] = field(default_factory=list)
    timestamp: float | None = None
    scopes: dict[str, float] = field(default_factory=dict)

    def is_fresh(self, ttl: float, now: float, scope: str | None = None) -> bool:
        """Check whether the collection (or one of its scopes) is within TTL."""
        if self.timestamp is None or now - self.timestamp >= ttl:
            return False
        if scope is None:
            return True
        fetched_at = self.scopes.get(scope)
        return fetched_at is not None and now - fetched_at < ttl

    def stale(self) -> "CacheEntry":
        """Copy with freshness cleared and data kept as a fallback."""
        return CacheEntry(data=list(self.data), timestamp=None, scopes={})

    def to_payload(self, version: int) -> dict[str, Any]:
        """Convert to the persisted JSON shape."""
        return {
            "version": version,
            "data": self.data,
            "timestamp": self.timestamp,
            "scopes": self.scopes,
        }

    @classmethod
    def from_payload(cls, payload: Any, version: int) -> "CacheEntry | None":
        """Validate a persisted payload.

        Returns None for anything that is not a current-version
        ``{data: list of mappings, timestamp: number}`` mapping.
        """
        if not isinstance(payload, dict):
            return None
        if payload.get("version") != version:
            return None
        data = payload.get("data")
        timestamp = payload.get("timestamp")
        if not isinstance(data, list) or not _is_number(timestamp):
            return None
        if not all(isinstance(row, dict) for row in data):
            return None

        scopes: dict[str, float] = {}
        raw_scopes = payload.get("scopes")
        if isinstance(raw_scopes, dict):
            scopes = {str(k): float(v) for k, v in raw_scopes.items() if _is_number(v)}

        return cls(data=data, timestamp=float(timestamp), scopes=scopes)
