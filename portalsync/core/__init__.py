"""Core sync and cache functionality."""

from .auth import BackendAuth
from .backend import Backend, RestBackend, SourceConfigStore
from .cache import CacheStore
from .client import RemoteSyncClient, SyncEndpoint
from .invalidation import InvalidationController
from .mirror import PersistentMirror
from .orchestrator import SyncOrchestrator
from .progress import ProgressAggregator
from .reconciler import PortalFeed, PortalReconciler

__all__ = [
    "Backend",
    "BackendAuth",
    "CacheStore",
    "InvalidationController",
    "PersistentMirror",
    "PortalFeed",
    "PortalReconciler",
    "ProgressAggregator",
    "RemoteSyncClient",
    "RestBackend",
    "SourceConfigStore",
    "SyncEndpoint",
    "SyncOrchestrator",
]
