"""Accumulation of per-page results into run progress snapshots."""

from dataclasses import replace

from ..models.sync import ItemAction, PageResult, SyncPhase, SyncProgress


class ProgressAggregator:
    """Folds page results into SyncProgress snapshots.

    Every method is pure: it takes the previous snapshot and returns a new
    one with counters summed and the log feed extended. Skipped items are
    only reported as a per-page count; failed items get one line each.
    """

    def __init__(self, max_log_lines: int = 1000) -> None:
        self.max_log_lines = max_log_lines

    def _log(self, progress: SyncProgress, *lines: str) -> tuple[str, ...]:
        log = progress.log + lines
        if len(log) > self.max_log_lines:
            log = log[-self.max_log_lines:]
        return log

    def start(self, source: str, mode: str) -> SyncProgress:
        """Fresh snapshot for a run that is about to fetch its totals."""
        progress = SyncProgress(source=source, mode=mode, phase=SyncPhase.FETCHING_INFO)
        return replace(progress, log=self._log(progress, f"Starting {mode} sync of {source}"))

    def apply_info(self, progress: SyncProgress, info: PageResult) -> SyncProgress:
        """Record the totals returned by the page-0 call."""
        line = (
            f"Found {info.total_items} items on {info.total_pages} pages "
            f"({info.existing_count} already stored locally)"
        )
        return replace(
            progress,
            phase=SyncPhase.PAGING,
            total=info.total_items,
            total_pages=info.total_pages,
            existing_count=info.existing_count,
            log=self._log(progress, line),
        )

    def apply_page(self, progress: SyncProgress, result: PageResult) -> SyncProgress:
        """Add one page's counters to the running totals."""
        synced = progress.synced + result.synced
        failed = progress.failed + result.failed
        skipped = progress.skipped + result.skipped

        # The remote may grow while a run is in flight
        total = max(progress.total, synced + failed + skipped)

        lines = [
            f"Page {result.page}/{progress.total_pages}: {result.synced} synced, "
            f"{result.skipped} skipped, {result.failed} failed, {result.sub_items} sub-items"
        ]
        for item in result.items:
            if item.action == ItemAction.ERROR:
                detail = f": {item.error}" if item.error else ""
                lines.append(f"Failed #{item.id} {item.title!r}{detail}")

        label, status = progress.current_label, progress.current_status
        if result.items:
            label, status = result.items[-1].title, result.items[-1].status

        return replace(
            progress,
            synced=synced,
            failed=failed,
            skipped=skipped,
            total=total,
            synced_sub_items=progress.synced_sub_items + result.sub_items,
            page=max(progress.page, result.page),
            current_label=label,
            current_status=status,
            log=self._log(progress, *lines),
        )

    def fail(self, progress: SyncProgress, message: str) -> SyncProgress:
        """Terminal snapshot for an aborted run; counters are kept."""
        where = f" on page {progress.page + 1}" if progress.phase == SyncPhase.PAGING else ""
        return replace(
            progress,
            phase=SyncPhase.FAILED,
            done=True,
            error=message,
            log=self._log(progress, f"Sync failed{where}: {message}"),
        )

    def cancel(self, progress: SyncProgress) -> SyncProgress:
        """Terminal snapshot for a run stopped between pages."""
        message = f"Sync cancelled after page {progress.page}"
        return replace(
            progress,
            phase=SyncPhase.FAILED,
            done=True,
            cancelled=True,
            error=message,
            log=self._log(progress, message),
        )

    def finish(self, progress: SyncProgress) -> SyncProgress:
        """Terminal snapshot for a run whose every page succeeded."""
        line = (
            f"Finished: {progress.synced} synced, {progress.skipped} skipped, "
            f"{progress.failed} failed, {progress.synced_sub_items} sub-items"
        )
        return replace(
            progress,
            phase=SyncPhase.DONE,
            done=True,
            error=None,
            log=self._log(progress, line),
        )
