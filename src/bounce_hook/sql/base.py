# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Base adapter classes for async database backends.

All queries use ``:name`` placeholders; adapters convert them to the driver
paramstyle. Work happens inside sessions::

    async with adapter.transaction() as tx:
        rows = await tx.fetch_all("SELECT id FROM t WHERE x = :x", {"x": 1})
        await tx.execute("UPDATE t SET x = :y", {"y": 2})

``transaction()`` is atomic and, combined with :attr:`DbAdapter.row_lock_clause`,
is what the queue uses to claim rows safely across concurrent workers.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from ..errors import StoreError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

_NAMED_PARAM = re.compile(r"(?<!:):([a-zA-Z_][a-zA-Z0-9_]*)")


def to_pyformat(query: str) -> str:
    """Convert ``:name`` placeholders to ``%(name)s``, preserving ``::`` casts."""
    return _NAMED_PARAM.sub(r"%(\1)s", query)


class DbSession(ABC):
    """A connection-bound unit of work, committed when its context exits cleanly."""

    def __init__(self, adapter: DbAdapter):
        self.adapter = adapter

    @abstractmethod
    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        """Execute query, return affected row count."""
        ...

    @abstractmethod
    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute query, return all rows as list of dicts."""
        ...

    @abstractmethod
    async def insert(self, table: str, data: dict[str, Any], pk: str = "id") -> int:
        """Insert one row and return its generated primary key."""
        ...

    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Execute query, return single row as dict or None."""
        rows = await self.fetch_all(query, params)
        return rows[0] if rows else None


class DbAdapter(ABC):
    """Abstract base class for async database adapters.

    Attributes:
        name: Backend name used in logs and error messages.
        backend_errors: Driver exception types translated into StoreError.
        row_lock_clause: Suffix appended to a SELECT that must lock the rows
            it returns for the rest of the transaction. Empty for backends
            that serialize writers instead.
    """

    name: str = "generic"
    backend_errors: tuple[type[BaseException], ...] = (OSError,)
    row_lock_clause: str = ""

    @abstractmethod
    async def connect(self) -> None:
        """Establish database connection or pool."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close database connection or pool."""
        ...

    @abstractmethod
    def transaction(self) -> Any:
        """Return an async context manager yielding an atomic DbSession."""
        ...

    def session(self) -> Any:
        """Return an async context manager for plain (non-claiming) work."""
        return self.transaction()

    # ------------------------------------------------------------------ dialect

    def pk_column(self, name: str) -> str:
        """Return SQL definition for an autoincrement integer primary key."""
        return f"{self.sql_name(name)} INTEGER PRIMARY KEY"

    def sql_name(self, name: str) -> str:
        """Quote an identifier (``user`` is reserved on some backends)."""
        return f'"{name}"'

    def create_index_sql(self, name: str, table: str, columns: Sequence[str]) -> str:
        cols = ", ".join(self.sql_name(c) for c in columns)
        return f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({cols})"

    async def create_index(self, name: str, table: str, columns: Sequence[str]) -> None:
        """Create an index unless it already exists."""
        await self.execute(self.create_index_sql(name, table, columns))

    # --------------------------------------------------------------- shortcuts

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        async with self.session() as s:
            return await s.execute(query, params)

    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        async with self.session() as s:
            return await s.fetch_one(query, params)

    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        async with self.session() as s:
            return await s.fetch_all(query, params)

    async def insert(self, table: str, data: dict[str, Any], pk: str = "id") -> int:
        async with self.session() as s:
            return await s.insert(table, data, pk)

    # ------------------------------------------------------------------ errors

    @contextmanager
    def translate_errors(self) -> Iterator[None]:
        """Re-raise driver errors as StoreError, keeping the original as cause."""
        try:
            yield
        except self.backend_errors as exc:
            raise StoreError(f"{self.name} error: {exc}") from exc

    def insert_sql(self, table: str, data: dict[str, Any]) -> str:
        col_list = ", ".join(self.sql_name(c) for c in data)
        placeholders = ", ".join(f":{c}" for c in data)
        return f"INSERT INTO {table} ({col_list}) VALUES ({placeholders})"


__all__ = ["DbAdapter", "DbSession", "to_pyformat"]
