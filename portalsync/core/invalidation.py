"""Entry points that force cached collections to be refetched."""

import logging

from .cache import CacheStore

logger = logging.getLogger(__name__)


class InvalidationController:
    """Marks collections stale in memory and drops their mirrored copy.

    Cached rows stay in memory so a failed refetch can still serve them.
    """

    def __init__(self, store: CacheStore) -> None:
        self.store = store

    def invalidate(self, key: str) -> None:
        """Force the next load of a collection to hit the backend."""
        self.store.mark_stale(key)
        if self.store.mirror is not None:
            self.store.mirror.clear(key)
        logger.debug("Invalidated %s", key)

    def invalidate_all(self) -> None:
        for key in self.store.keys:
            self.invalidate(key)

    def invalidate_folders(self) -> None:
        self.invalidate("folders")

    def invalidate_tasks(self) -> None:
        self.invalidate("tasks")

    def invalidate_requests(self) -> None:
        self.invalidate("requests")

    def handle_change(self, table: str) -> list[str]:
        """React to a backend change notification for a table.

        Returns:
            Collection keys that were invalidated
        """
        keys = [key for key, spec in self.store.specs.items() if spec.table == table]
        for key in keys:
            self.invalidate(key)
        if not keys:
            logger.debug("Change on %s does not affect any cached collection", table)
        return keys
