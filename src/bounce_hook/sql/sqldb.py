# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Database manager holding an adapter and its registered tables."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .base import DbAdapter
    from .table import Table


class SqlDb:
    """Async database manager.

    Subclasses register their tables in ``__init__`` with :meth:`add_table`
    and expose them as properties. Usable as an async context manager::

        async with MyDb("sqlite:/tmp/x.db") as db:
            await db.check_structure()
    """

    def __init__(self, connection_string: str):
        from . import create_adapter

        self.connection_string = connection_string
        self.adapter: DbAdapter = create_adapter(connection_string)
        self.tables: dict[str, Table] = {}

    def add_table(self, table_class: type[Table]) -> Table:
        table = table_class(self)
        self.tables[table.name] = table
        return table

    def table(self, name: str) -> Table:
        if name not in self.tables:
            raise ValueError(f"Table '{name}' not registered")
        return self.tables[name]

    async def connect(self) -> None:
        await self.adapter.connect()

    async def close(self) -> None:
        await self.adapter.close()

    async def check_structure(self) -> None:
        """Create all registered tables and indexes if missing."""
        for table in self.tables.values():
            await table.create_schema()

    async def __aenter__(self) -> SqlDb:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()


__all__ = ["SqlDb"]
