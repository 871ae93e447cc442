"""Configuration models for portal sources and the collection cache."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_TTL_SECONDS = 300.0


@dataclass
class SourceConfig:
    """One external source family (websites, projects, clients, support tickets).

    The static part comes from the YAML file; ``id``, ``last_sync_at`` and
    ``sync_error`` are run status kept in the backend and merged in by
    ``SourceConfigStore``.
    """

    family: str  # e.g. "support_tickets"
    endpoint: str  # Hosted reconciliation function name
    source_url: str = ""  # Portal feed URL for in-process reconciliation
    is_enabled: bool = True
    resolved_status: str = "resolved"  # Terminal remote status skipped by incremental runs
    table: str = ""  # Local table receiving reconciled rows (defaults to family)
    sub_items_table: str = ""  # e.g. support_ticket_comments
    sub_items_url: str = ""  # Feed of sub-items, filtered by ?post=<portal id>
    per_page: int = 20
    invalidates: list[str] = field(default_factory=list)  # Cache collections made stale after a run
    id: str | None = None
    last_sync_at: str | None = None
    sync_error: str | None = None

    @property
    def target_table(self) -> str:
        return self.table or self.family

    def to_dict(self) -> dict[str, Any]:
        """Convert the static definition to a dictionary (run status excluded)."""
        return {
            "family": self.family,
            "endpoint": self.endpoint,
            "source_url": self.source_url,
            "is_enabled": self.is_enabled,
            "resolved_status": self.resolved_status,
            "table": self.table,
            "sub_items_table": self.sub_items_table,
            "sub_items_url": self.sub_items_url,
            "per_page": self.per_page,
            "invalidates": list(self.invalidates),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceConfig":
        """Create from dictionary."""
        return cls(
            family=data["family"],
            endpoint=data.get("endpoint") or f"sync-{data['family'].replace('_', '-')}",
            source_url=data.get("source_url", ""),
            is_enabled=data.get("is_enabled", True),
            resolved_status=data.get("resolved_status", "resolved"),
            table=data.get("table", ""),
            sub_items_table=data.get("sub_items_table", ""),
            sub_items_url=data.get("sub_items_url", ""),
            per_page=int(data.get("per_page", 20)),
            invalidates=list(data.get("invalidates") or []),
        )

    def apply_status(self, row: dict[str, Any]) -> None:
        """Overlay a backend status row onto this definition."""
        self.id = row.get("id", self.id)
        if row.get("source_url"):
            self.source_url = row["source_url"]
        if row.get("is_enabled") is not None:
            self.is_enabled = bool(row["is_enabled"])
        self.last_sync_at = row.get("last_sync_at")
        self.sync_error = row.get("sync_error")


@dataclass
class CollectionSpec:
    """How one cached collection maps onto a backend table."""

    key: str  # Cache key, e.g. "tasks"
    table: str
    scope_field: str | None = None  # None for unscoped collections (folders)
    columns: str = "*"
    order: str | None = None  # PostgREST order clause, e.g. "created_at.desc"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CollectionSpec":
        """Create from dictionary."""
        return cls(
            key=data["key"],
            table=data.get("table", data["key"]),
            scope_field=data.get("scope_field"),
            columns=data.get("columns", "*"),
            order=data.get("order"),
        )


def default_collections() -> list[CollectionSpec]:
    """Folders, tasks and requests as the console loads them."""
    return [
        CollectionSpec(key="folders", table="folders", columns="*,folder_tags(tag:tags(*))", order="name"),
        CollectionSpec(
            key="tasks",
            table="tasks",
            scope_field="folder_id",
            columns="*,task_tags(tag:tags(*))",
            order="position",
        ),
        CollectionSpec(
            key="requests",
            table="requests",
            scope_field="folder_id",
            columns="*,request_type:request_types(*)",
            order="created_at.desc",
        ),
    ]


@dataclass
class CacheSettings:
    """Cache freshness and persistence settings."""

    directory: str = "./.portalsync-cache"
    ttl_seconds: float = DEFAULT_TTL_SECONDS
    ttl_overrides: dict[str, float] = field(default_factory=dict)
    schema_version: int = 1
    collections: list[CollectionSpec] = field(default_factory=default_collections)

    def ttl_for(self, key: str) -> float:
        """Freshness window for a collection."""
        return float(self.ttl_overrides.get(key, self.ttl_seconds))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheSettings":
        """Create from dictionary."""
        collections = [CollectionSpec.from_dict(c) for c in data.get("collections") or []]
        return cls(
            directory=data.get("directory", "./.portalsync-cache"),
            ttl_seconds=float(data.get("ttl_seconds", DEFAULT_TTL_SECONDS)),
            ttl_overrides={k: float(v) for k, v in (data.get("ttl_overrides") or {}).items()},
            schema_version=int(data.get("schema_version", 1)),
            collections=collections or default_collections(),
        )


@dataclass
class ConsoleConfig:
    """Main configuration file for the sync/cache core."""

    sources: list[SourceConfig] = field(default_factory=list)
    cache: CacheSettings = field(default_factory=CacheSettings)
    backend_url: str = ""

    def get_source(self, family: str) -> SourceConfig | None:
        """Find a source definition by family name."""
        for source in self.sources:
            if source.family == family:
                return source
        return None

    @classmethod
    def load(cls, config_path: Path) -> "ConsoleConfig":
        """Load configuration from YAML file."""
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        sources = [SourceConfig.from_dict(s) for s in data.get("sources") or []]
        cache = CacheSettings.from_dict(data.get("cache") or {})

        return cls(
            sources=sources,
            cache=cache,
            backend_url=data.get("backend_url", ""),
        )

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        data: dict[str, Any] = {}

        if self.backend_url:
            data["backend_url"] = self.backend_url

        data["sources"] = [s.to_dict() for s in self.sources]

        data["cache"] = {
            "directory": self.cache.directory,
            "ttl_seconds": self.cache.ttl_seconds,
            "ttl_overrides": dict(self.cache.ttl_overrides),
            "schema_version": self.cache.schema_version,
            "collections": [
                {
                    "key": c.key,
                    "table": c.table,
                    "scope_field": c.scope_field,
                    "columns": c.columns,
                    "order": c.order,
                }
                for c in self.cache.collections
            ],
        }

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
