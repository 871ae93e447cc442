"""Shared fixtures: an in-memory backend and a controllable clock."""

import itertools
from typing import Any

import pytest

from portalsync.errors import BackendError


class InMemoryBackend:
    """Backend double storing rows per table and counting select calls."""

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {k: list(v) for k, v in (tables or {}).items()}
        self.selects: list[tuple[str, dict[str, Any] | None]] = []
        self.fail_tables: set[str] = set()
        self.fail_writes: set[Any] = set()  # portal_id values whose writes fail
        self._ids = itertools.count(1)

    @staticmethod
    def _matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
        for field, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                if row.get(field) not in value:
                    return False
            elif row.get(field) != value:
                return False
        return True

    def _check(self, table: str) -> None:
        if table in self.fail_tables:
            raise BackendError(f"{table} unavailable", table=table)

    async def select(self, table, filters=None, columns="*", order=None):
        self.selects.append((table, filters))
        self._check(table)
        return [dict(r) for r in self.tables.get(table, []) if self._matches(r, filters)]

    async def insert(self, table, row):
        self._check(table)
        if row.get("portal_id") in self.fail_writes:
            raise BackendError("insert rejected", table=table)
        stored = {"id": f"{table}-{next(self._ids)}", **row}
        self.tables.setdefault(table, []).append(stored)
        return dict(stored)

    async def update(self, table, id, patch):
        self._check(table)
        for row in self.tables.get(table, []):
            if row["id"] == id:
                if row.get("portal_id") in self.fail_writes:
                    raise BackendError("update rejected", table=table)
                row.update(patch)
                return dict(row)
        return None

    async def count(self, table, filters=None):
        self._check(table)
        return sum(1 for r in self.tables.get(table, []) if self._matches(r, filters))

    def select_count(self, table: str) -> int:
        return sum(1 for t, _ in self.selects if t == table)


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend({
        "folders": [
            {"id": "f1", "name": "Clients"},
            {"id": "f2", "name": "Internal"},
        ],
        "tasks": [
            {"id": "t1", "folder_id": "f1", "title": "Write offer"},
            {"id": "t2", "folder_id": "f1", "title": "Call back"},
            {"id": "t3", "folder_id": "f2", "title": "Renew domain"},
        ],
        "requests": [
            {"id": "r1", "folder_id": "f1", "title": "New landing page"},
        ],
    })


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
