"""Data models for the sync and cache core."""

from .cache import CacheEntry
from .config import (
    CacheSettings,
    CollectionSpec,
    ConsoleConfig,
    SourceConfig,
    default_collections,
)
from .sync import (
    ItemAction,
    PageResult,
    ReconciledItem,
    SyncMode,
    SyncPhase,
    SyncProgress,
    percent_complete,
)

__all__ = [
    "CacheEntry",
    "CacheSettings",
    "CollectionSpec",
    "ConsoleConfig",
    "ItemAction",
    "PageResult",
    "ReconciledItem",
    "SourceConfig",
    "SyncMode",
    "SyncPhase",
    "SyncProgress",
    "default_collections",
    "percent_complete",
]
