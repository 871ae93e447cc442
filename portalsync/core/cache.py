"""In-memory collection cache backed by the persistent mirror."""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from ..errors import PortalSyncError
from ..models.cache import CacheEntry
from ..models.config import CacheSettings, CollectionSpec
from .backend import Backend
from .mirror import PersistentMirror

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class CacheStore:
    """Serves cached collections (folders, tasks, requests).

    Lookup strategy for ``load``:
    1. Fresh entry (within TTL) and not forced -> return the cached slice
    2. Otherwise query the backend for the requested scope
    3. Merge the rows into the collection, replacing only that scope
    4. Persist through the mirror and return the fetched rows
    5. On backend failure -> log and return the previous slice
    """

    def __init__(
        self,
        backend: Backend | None = None,
        mirror: PersistentMirror | None = None,
        settings: CacheSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize cache and seed it from the mirror.

        Args:
            backend: Backend query interface used on the slow path (mirror-only
                inspection if not provided)
            mirror: Persistent sidecar (memory only if not provided)
            settings: TTLs and collection specs (defaults if not provided)
            clock: Wall-clock source in seconds
        """
        self.backend = backend
        self.mirror = mirror
        self.settings = settings or CacheSettings()
        self.clock = clock
        self.specs: dict[str, CollectionSpec] = {c.key: c for c in self.settings.collections}
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[tuple[str, str | None, int], asyncio.Task] = {}
        self._generations: dict[str, int] = {}  # bumped by mark_stale
        self._seed()

    def _seed(self) -> None:
        """Load mirror entries that are still within TTL."""
        if self.mirror is None:
            return
        now = self.clock()
        for key in self.specs:
            entry = self.mirror.read(key)
            if entry is None:
                continue
            ttl = self.settings.ttl_for(key)
            if not entry.is_fresh(ttl, now):
                logger.debug("Discarding expired mirror entry for %s", key)
                continue
            entry.scopes = {s: ts for s, ts in entry.scopes.items() if now - ts < ttl}
            self._entries[key] = entry

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def spec(self, key: str) -> CollectionSpec:
        """Get the definition of a tracked collection."""
        try:
            return self.specs[key]
        except KeyError:
            raise KeyError(f"Unknown cache collection: {key}") from None

    @property
    def keys(self) -> list[str]:
        return list(self.specs)

    def entry(self, key: str) -> CacheEntry | None:
        """Copy of the current entry for a collection."""
        self.spec(key)
        entry = self._entries.get(key)
        if entry is None:
            return None
        return CacheEntry(data=list(entry.data), timestamp=entry.timestamp, scopes=dict(entry.scopes))

    def is_fresh(self, key: str, scope: str | None = None) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        return entry.is_fresh(self.settings.ttl_for(key), self.clock(), self._scope_key(scope))

    def is_loading(self, key: str) -> bool:
        return any(k == key for k, _ in self._inflight)

    def cached(self, key: str, scope: str | None = None) -> list[Row]:
        """Cached slice without touching the backend, fresh or not."""
        entry = self._entries.get(key)
        if entry is None:
            return []
        return self._slice(self.spec(key), entry.data, scope)

    @staticmethod
    def _scope_key(scope: Any) -> str | None:
        return None if scope is None else str(scope)

    @staticmethod
    def _slice(spec: CollectionSpec, data: list[Row], scope: Any) -> list[Row]:
        if spec.scope_field is None or scope is None:
            return list(data)
        return [row for row in data if row.get(spec.scope_field) == scope]

    @staticmethod
    def merge(spec: CollectionSpec, previous: list[Row], rows: list[Row], scope: Any) -> list[Row]:
        """Replace exactly one scope's rows, keeping every other scope."""
        if spec.scope_field is None or scope is None:
            return list(rows)
        others = [row for row in previous if row.get(spec.scope_field) != scope]
        return others + list(rows)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self, key: str, scope: Any = None, force: bool = False) -> list[Row]:
        """Return a collection (or one scope of it), fetching when stale.

        Args:
            key: Collection key (e.g., "tasks")
            scope: Scope value (e.g., a folder id); None for the whole collection
            force: Skip the freshness check

        Returns:
            Rows of the requested slice
        """
        spec = self.spec(key)
        if not force and self.is_fresh(key, scope):
            return self.cached(key, scope)

        flight = (key, self._scope_key(scope), self._generations.get(key, 0))
        task = self._inflight.get(flight)
        if task is None:
            task = asyncio.create_task(self._refresh(spec, scope, flight))
            self._inflight[flight] = task
        return list(await asyncio.shield(task))

    async def _refresh(self, spec: CollectionSpec, scope: Any, flight: tuple[str, str | None, int]) -> list[Row]:
        try:
            return await self._fetch_and_merge(spec, scope, flight[2])
        finally:
            self._inflight.pop(flight, None)

    async def _fetch_and_merge(self, spec: CollectionSpec, scope: Any, generation: int) -> list[Row]:
        filters = {spec.scope_field: scope} if spec.scope_field and scope is not None else None
        if self.backend is None:
            logger.warning("No backend configured, serving cached %s (scope=%s)", spec.key, scope)
            return self.cached(spec.key, scope)

        try:
            rows = await self.backend.select(spec.table, filters, columns=spec.columns, order=spec.order)
        except PortalSyncError as e:
            logger.error("Error loading %s (scope=%s): %s", spec.key, scope, e)
            return self.cached(spec.key, scope)

        if self._generations.get(spec.key, 0) != generation:
            logger.debug("Discarding %s rows fetched before invalidation (scope=%s)", spec.key, scope)
            return rows

        now = self.clock()
        previous = self._entries.get(spec.key) or CacheEntry()
        scopes = dict(previous.scopes) if previous.timestamp is not None else {}
        if scope is not None:
            scopes[str(scope)] = now
        elif spec.scope_field is not None:
            scopes = {str(row[spec.scope_field]): now for row in rows if row.get(spec.scope_field) is not None}

        entry = CacheEntry(
            data=self.merge(spec, previous.data, rows, scope),
            timestamp=now,
            scopes=scopes,
        )
        self._entries[spec.key] = entry
        if self.mirror is not None:
            self.mirror.write(spec.key, entry)

        logger.debug("Loaded %d %s rows (scope=%s)", len(rows), spec.key, scope)
        return rows

    async def load_folders(self, force: bool = False) -> list[Row]:
        return await self.load("folders", force=force)

    async def load_tasks(self, folder_id: str, force: bool = False) -> list[Row]:
        return await self.load("tasks", folder_id, force=force)

    async def load_requests(self, folder_id: str, force: bool = False) -> list[Row]:
        return await self.load("requests", folder_id, force=force)

    # -------------------------------------------------------------------------
    # Freshness
    # -------------------------------------------------------------------------

    def mark_stale(self, key: str) -> None:
        """Drop freshness for a collection, keeping its data as a fallback."""
        self.spec(key)
        self._generations[key] = self._generations.get(key, 0) + 1
        entry = self._entries.get(key)
        if entry is not None:
            self._entries[key] = entry.stale()

    def status(self) -> list[dict[str, Any]]:
        """Summary rows for display."""
        now = self.clock()
        rows = []
        for key, spec in self.specs.items():
            entry = self._entries.get(key)
            ttl = self.settings.ttl_for(key)
            rows.append({
                "key": key,
                "table": spec.table,
                "items": len(entry.data) if entry else 0,
                "scopes": len(entry.scopes) if entry else 0,
                "age": (now - entry.timestamp) if entry and entry.timestamp is not None else None,
                "ttl": ttl,
                "fresh": bool(entry and entry.is_fresh(ttl, now)),
            })
        return rows
