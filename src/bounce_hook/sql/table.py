# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Table base class with Columns-based schema (async version)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .columns import Columns

if TYPE_CHECKING:
    from .base import DbAdapter
    from .sqldb import SqlDb


class Table:
    """Base class for async table managers.

    Subclasses define columns and indexes via the configure() hook and
    implement domain-specific operations.

    Attributes:
        name: Table name in database.
        db: SqlDb instance reference.
        columns: Column definitions.
        indexes: ``(index_name, columns)`` pairs created with the schema.
    """

    name: str

    def __init__(self, db: SqlDb) -> None:
        self.db = db
        if not hasattr(self, "name") or not self.name:
            raise ValueError(f"{type(self).__name__} must define 'name'")

        self.columns = Columns()
        self.indexes: list[tuple[str, tuple[str, ...]]] = []
        self.configure()

    def configure(self) -> None:
        """Override to define columns. Called during __init__."""
        pass

    def index(self, name: str, *columns: str) -> None:
        self.indexes.append((name, columns))

    @property
    def adapter(self) -> DbAdapter:
        return self.db.adapter

    def q(self, name: str) -> str:
        """Quote a column name for the current backend."""
        return self.adapter.sql_name(name)

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    def create_table_sql(self) -> str:
        """Generate CREATE TABLE IF NOT EXISTS statement."""
        col_defs = [col.to_sql(self.adapter) for col in self.columns.values()]
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n    " + ",\n    ".join(col_defs) + "\n)"

    async def create_schema(self) -> None:
        """Create table and its indexes if they do not exist."""
        await self.adapter.execute(self.create_table_sql())
        for index_name, columns in self.indexes:
            await self.adapter.create_index(index_name, self.name, columns)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        return await self.adapter.execute(query, params)

    async def insert(self, record: dict[str, Any]) -> int:
        """Insert a record and return its generated primary key."""
        pk = self.columns.primary_key()
        return await self.adapter.insert(self.name, record, pk.name if pk else "id")

    async def select_one(self, where: dict[str, Any]) -> dict[str, Any] | None:
        conditions = " AND ".join(f"{self.q(k)} = :{k}" for k in where)
        return await self.adapter.fetch_one(
            f"SELECT * FROM {self.name} WHERE {conditions}", where
        )


__all__ = ["Table"]
