"""Page-by-page reconciliation runs with observable progress."""

import asyncio
import logging
from collections.abc import Callable, Mapping

from ..errors import PortalSyncError, SourceDisabledError, SyncInProgressError, UnknownSourceError
from ..models.config import SourceConfig
from ..models.sync import ItemAction, SyncMode, SyncProgress
from .backend import SourceConfigStore
from .client import SyncEndpoint
from .invalidation import InvalidationController
from .progress import ProgressAggregator

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[SyncProgress], None]


class SyncOrchestrator:
    """Drives reconciliation runs, one at a time per source.

    A run goes idle -> fetching_info -> paging -> done | failed. Pages are
    requested strictly in order and each result is folded into the
    progress snapshot before the next page starts. Any endpoint failure
    ends the run with the counters gathered so far; nothing is retried.
    """

    def __init__(
        self,
        endpoints: Mapping[str, SyncEndpoint],
        sources: SourceConfigStore,
        invalidation: InvalidationController | None = None,
        aggregator: ProgressAggregator | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            endpoints: Reconciliation endpoint per source family
            sources: Store providing source definitions and run status
            invalidation: Cache invalidation applied after successful runs
            aggregator: Progress folding (default ProgressAggregator())
        """
        self.endpoints = endpoints
        self.sources = sources
        self.invalidation = invalidation
        self.aggregator = aggregator or ProgressAggregator()
        self._progress: dict[str, SyncProgress] = {}
        self._active: dict[str, asyncio.Event] = {}
        self._observers: list[ProgressObserver] = []

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    def subscribe(self, observer: ProgressObserver) -> Callable[[], None]:
        """Register a callback receiving every new snapshot.

        Returns:
            Function that removes the observer again
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def progress(self, family: str) -> SyncProgress | None:
        """Latest snapshot of the current or last run for a source."""
        return self._progress.get(family)

    def is_running(self, family: str) -> bool:
        return family in self._active

    def cancel(self, family: str) -> bool:
        """Ask an active run to stop before its next page.

        Returns:
            True if a run was active
        """
        event = self._active.get(family)
        if event is None:
            return False
        event.set()
        return True

    def _publish(self, progress: SyncProgress) -> SyncProgress:
        self._progress[progress.source] = progress
        for observer in list(self._observers):
            try:
                observer(progress)
            except Exception:
                logger.exception("Progress observer failed for %s", progress.source)
        return progress

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    async def run(
        self,
        family: str,
        mode: str = SyncMode.FULL_IMPORT,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncProgress:
        """Execute one complete reconciliation run.

        Args:
            family: Source family to reconcile
            mode: SyncMode.FULL_IMPORT or SyncMode.INCREMENTAL
            cancel_event: Optional event checked between pages

        Returns:
            Final progress snapshot (done=True)

        Raises:
            SyncInProgressError: If a run for this source is already active
            UnknownSourceError: If no endpoint is registered for the source
            SourceDisabledError: If the source is disabled
        """
        if mode not in SyncMode.ALL:
            raise ValueError(f"Unknown sync mode: {mode}")
        if family in self._active:
            raise SyncInProgressError(f"A sync of {family} is already running")
        endpoint = self.endpoints.get(family)
        if endpoint is None:
            raise UnknownSourceError(family)

        event = cancel_event or asyncio.Event()
        self._active[family] = event
        try:
            try:
                source = await self.sources.get(family)
            except PortalSyncError as e:
                logger.error("Could not load source config for %s: %s", family, e)
                start = self.aggregator.start(family, mode)
                return self._publish(self.aggregator.fail(start, str(e)))

            if not source.is_enabled:
                raise SourceDisabledError(f"Source {family} is disabled")

            progress = await self._execute(endpoint, family, mode, event)
        finally:
            self._active.pop(family, None)

        await self._record(source, progress)
        if progress.succeeded and self.invalidation is not None:
            for key in source.invalidates:
                self.invalidation.invalidate(key)
        return progress

    async def _execute(
        self,
        endpoint: SyncEndpoint,
        family: str,
        mode: str,
        cancel_event: asyncio.Event,
    ) -> SyncProgress:
        progress = self._publish(self.aggregator.start(family, mode))

        try:
            info = await endpoint.call(mode, 0)
        except PortalSyncError as e:
            logger.error("Info call for %s failed: %s", family, e)
            return self._publish(self.aggregator.fail(progress, str(e)))
        if not info.success:
            logger.error("Info call for %s failed: %s", family, info.error)
            return self._publish(self.aggregator.fail(progress, info.error or "Unknown error"))

        progress = self._publish(self.aggregator.apply_info(progress, info))
        logger.info("%s: %d items on %d pages", family, info.total_items, info.total_pages)

        for page in range(1, info.total_pages + 1):
            if cancel_event.is_set():
                logger.info("%s: cancelled after page %d", family, progress.page)
                return self._publish(self.aggregator.cancel(progress))

            try:
                result = await endpoint.call(mode, page)
            except PortalSyncError as e:
                logger.error("%s page %d failed: %s", family, page, e)
                return self._publish(self.aggregator.fail(progress, str(e)))
            if not result.success:
                logger.error("%s page %d failed: %s", family, page, result.error)
                return self._publish(self.aggregator.fail(progress, result.error or "Unknown error"))

            result.page = page
            progress = self._publish(self.aggregator.apply_page(progress, result))
            logger.info(
                "%s page %d/%d: %d synced, %d skipped, %d failed",
                family, page, info.total_pages, result.synced, result.skipped, result.failed,
            )
            for item in result.items:
                if item.action == ItemAction.ERROR:
                    logger.warning("%s item %s failed: %s", family, item.id, item.error or "unknown error")

        return self._publish(self.aggregator.finish(progress))

    async def _record(self, source: SourceConfig, progress: SyncProgress) -> None:
        """Write the run outcome back to the source's status row."""
        try:
            if progress.succeeded:
                await self.sources.record_success(source)
            else:
                await self.sources.record_failure(source, progress.error or "Unknown error")
        except PortalSyncError as e:
            logger.warning("Could not record sync status for %s: %s", source.family, e)
