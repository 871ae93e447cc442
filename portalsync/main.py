#!/usr/bin/env python3
"""CLI entry point for portal sync and cache maintenance."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from .core.auth import BackendAuth
from .core.backend import RestBackend, SourceConfigStore
from .core.cache import CacheStore
from .core.client import RemoteSyncClient
from .core.invalidation import InvalidationController
from .core.mirror import PersistentMirror
from .core.orchestrator import SyncOrchestrator
from .core.reconciler import PortalReconciler
from .errors import PortalSyncError, SourceDisabledError, SyncInProgressError, UnknownSourceError
from .models.config import ConsoleConfig
from .models.sync import SyncMode, SyncProgress

console = Console()

DEFAULT_CONFIG = "portalsync.yaml"


def setup_logging(verbose: bool) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def load_config(args: argparse.Namespace) -> ConsoleConfig | None:
    config_path = Path(args.config)
    if not config_path.exists():
        console.print(f"[red]Config not found: {config_path}")
        return None
    return ConsoleConfig.load(config_path)


def build_auth(config: ConsoleConfig) -> BackendAuth:
    return BackendAuth(base_url=config.backend_url or None)


def build_cache(config: ConsoleConfig, backend: RestBackend) -> CacheStore:
    mirror = PersistentMirror(Path(config.cache.directory), config.cache.schema_version)
    return CacheStore(backend, mirror, config.cache)


def cmd_verify_auth(args: argparse.Namespace) -> int:
    """Verify backend credentials and connectivity."""
    config = load_config(args)
    if config is None:
        return 1

    console.print("Verifying backend credentials...", style="blue")
    try:
        auth = build_auth(config)
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}")
        return 1

    console.print(f"API Key: {auth.masked_key()}")
    console.print(f"Base URL: {auth.base_url}")

    async def check() -> int:
        async with RestBackend(auth) as backend:
            return await backend.count(SourceConfigStore.TABLE)

    try:
        rows = asyncio.run(check())
    except PortalSyncError as e:
        console.print(f"[red]Backend check failed: {e}")
        return 1

    console.print(f"[green]Connected ({rows} source status rows)")
    return 0


def cmd_sources(args: argparse.Namespace) -> int:
    """List configured sources with their last run status."""
    config = load_config(args)
    if config is None:
        return 1
    if not config.sources:
        console.print("[yellow]No sources configured")
        return 0

    try:
        auth = build_auth(config)
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}")
        return 1

    async def fetch() -> list:
        async with RestBackend(auth) as backend:
            store = SourceConfigStore(backend, config.sources)
            return [await store.get(family) for family in store.families]

    try:
        sources = asyncio.run(fetch())
    except PortalSyncError as e:
        console.print(f"[red]Could not load source status: {e}")
        return 1

    table = Table(title="Sources")
    table.add_column("Family")
    table.add_column("Enabled")
    table.add_column("Endpoint")
    table.add_column("Last Sync")
    table.add_column("Error")

    for source in sources:
        table.add_row(
            source.family,
            "[green]Yes" if source.is_enabled else "[red]No",
            source.endpoint,
            source.last_sync_at or "Never",
            f"[red]{source.sync_error}" if source.sync_error else "",
        )

    console.print(table)
    return 0


def _print_summary(progress: SyncProgress) -> None:
    table = Table(title=f"\n{progress.source} ({progress.mode})")
    table.add_column("Synced", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Sub-items", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Pages", justify="right")
    table.add_row(
        str(progress.synced),
        str(progress.skipped),
        str(progress.failed),
        str(progress.synced_sub_items),
        str(progress.total),
        f"{progress.page}/{progress.total_pages}",
    )
    console.print(table)

    if progress.error:
        console.print(f"[red]{progress.error}")
    else:
        console.print("[green]Sync finished")


async def _run_sync(config: ConsoleConfig, family: str, mode: str, local: bool) -> SyncProgress:
    auth = build_auth(config)
    async with RestBackend(auth) as backend:
        source = config.get_source(family)
        if source is None:
            raise UnknownSourceError(family)

        if local:
            endpoint = PortalReconciler(source, backend)
        else:
            endpoint = RemoteSyncClient(source.endpoint, auth)

        cache = build_cache(config, backend)
        orchestrator = SyncOrchestrator(
            endpoints={family: endpoint},
            sources=SourceConfigStore(backend, config.sources),
            invalidation=InvalidationController(cache),
        )

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, orchestrator.cancel, family)
        except (NotImplementedError, RuntimeError):
            pass

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as bar:
            task_id = bar.add_task(description=f"Syncing {family}...", total=None)
            printed = 0

            def show(progress: SyncProgress) -> None:
                nonlocal printed
                for line in progress.log[printed:]:
                    bar.console.print(f"[dim]{line}")
                printed = len(progress.log)
                label = f" {progress.current_label}" if progress.current_label else ""
                bar.update(
                    task_id,
                    total=progress.total or None,
                    completed=progress.processed,
                    description=f"{family} page {progress.page}/{progress.total_pages}{label}",
                )

            orchestrator.subscribe(show)
            try:
                return await orchestrator.run(family, mode)
            finally:
                await endpoint.aclose()


def cmd_run(args: argparse.Namespace) -> int:
    """Run a reconciliation for one source."""
    config = load_config(args)
    if config is None:
        return 1

    try:
        progress = asyncio.run(_run_sync(config, args.family, args.mode, args.local))
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}")
        return 1
    except UnknownSourceError:
        console.print(f"[red]Unknown source: {args.family}")
        return 1
    except (SourceDisabledError, SyncInProgressError) as e:
        console.print(f"[yellow]{e}")
        return 1

    _print_summary(progress)
    return 0 if progress.succeeded else 1


def cmd_cache_status(args: argparse.Namespace) -> int:
    """Show mirrored cache status."""
    config = load_config(args)
    if config is None:
        return 1

    mirror = PersistentMirror(Path(config.cache.directory), config.cache.schema_version)
    cache = CacheStore(mirror=mirror, settings=config.cache)

    console.print(f"\n[bold]Cache Directory:[/bold] {config.cache.directory}")
    console.print(f"[bold]Schema Version:[/bold] {config.cache.schema_version}")

    table = Table(title="\nCollections")
    table.add_column("Collection")
    table.add_column("Table")
    table.add_column("Items", justify="right")
    table.add_column("Scopes", justify="right")
    table.add_column("Age")
    table.add_column("Fresh")

    for row in cache.status():
        age = f"{row['age']:.0f}s / {row['ttl']:.0f}s" if row["age"] is not None else "Never"
        table.add_row(
            row["key"],
            row["table"],
            str(row["items"]),
            str(row["scopes"]),
            age,
            "[green]Yes" if row["fresh"] else "[red]No",
        )

    console.print(table)
    return 0


def cmd_cache_load(args: argparse.Namespace) -> int:
    """Load a collection through the cache."""
    config = load_config(args)
    if config is None:
        return 1

    async def load() -> tuple[list, bool]:
        async with RestBackend(build_auth(config)) as backend:
            cache = build_cache(config, backend)
            was_fresh = cache.is_fresh(args.collection, args.scope)
            rows = await cache.load(args.collection, args.scope, force=args.force)
            return rows, was_fresh and not args.force

    try:
        rows, from_cache = asyncio.run(load())
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}")
        return 1
    except KeyError as e:
        console.print(f"[red]{e.args[0]}")
        return 1

    source = "cache" if from_cache else "backend"
    scope = f" (scope {args.scope})" if args.scope else ""
    console.print(f"[green]{len(rows)} {args.collection}{scope} from {source}")
    return 0


def cmd_cache_invalidate(args: argparse.Namespace) -> int:
    """Invalidate one or all cached collections."""
    config = load_config(args)
    if config is None:
        return 1

    mirror = PersistentMirror(Path(config.cache.directory), config.cache.schema_version)
    cache = CacheStore(mirror=mirror, settings=config.cache)
    controller = InvalidationController(cache)

    if args.all:
        controller.invalidate_all()
        console.print("[green]Invalidated all collections")
        return 0

    if not args.collection:
        console.print("[red]Specify a collection or --all")
        return 1

    try:
        controller.invalidate(args.collection)
    except KeyError as e:
        console.print(f"[red]{e.args[0]}")
        return 1

    console.print(f"[green]Invalidated {args.collection}")
    return 0


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="portalsync",
        description="Reconcile portal sources and maintain the collection cache",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG, help=f"Config file (default: {DEFAULT_CONFIG})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # verify-auth command
    subparsers.add_parser("verify-auth", help="Verify backend credentials")

    # sources command
    subparsers.add_parser("sources", help="List sources and their last sync status")

    # run command
    run_parser = subparsers.add_parser("run", help="Reconcile one source")
    run_parser.add_argument("family", help="Source family (e.g., support_tickets)")
    run_parser.add_argument("--mode", choices=SyncMode.ALL, default=SyncMode.FULL_IMPORT, help="Sync mode")
    run_parser.add_argument("--local", action="store_true", help="Reconcile in-process instead of the hosted endpoint")

    # cache commands
    cache_parser = subparsers.add_parser("cache", help="Cache management")
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command")

    cache_subparsers.add_parser("status", help="Show cache status")

    cache_load = cache_subparsers.add_parser("load", help="Load a collection through the cache")
    cache_load.add_argument("collection", help="Collection key (folders, tasks, requests)")
    cache_load.add_argument("--scope", help="Scope value, e.g. a folder id")
    cache_load.add_argument("--force", action="store_true", help="Ignore freshness")

    cache_invalidate = cache_subparsers.add_parser("invalidate", help="Force collections to be refetched")
    cache_invalidate.add_argument("collection", nargs="?", help="Collection key")
    cache_invalidate.add_argument("--all", action="store_true", help="Invalidate every collection")

    args = parser.parse_args()
    setup_logging(args.verbose)

    if args.command == "verify-auth":
        return cmd_verify_auth(args)
    elif args.command == "sources":
        return cmd_sources(args)
    elif args.command == "run":
        return cmd_run(args)
    elif args.command == "cache":
        if args.cache_command == "status":
            return cmd_cache_status(args)
        elif args.cache_command == "load":
            return cmd_cache_load(args)
        elif args.cache_command == "invalidate":
            return cmd_cache_invalidate(args)
        else:
            cache_parser.print_help()
            return 1
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
