# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQLite async adapter using aiosqlite.

SQLite has no row-level locks, so claims are serialized: every transaction
takes an in-process lock and opens with ``BEGIN IMMEDIATE``, which grabs the
database write lock up front and makes other processes wait on the busy
timeout instead of interleaving.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite

from .base import DbAdapter, DbSession

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class SqliteSession(DbSession):
    """Session over one aiosqlite connection."""

    def __init__(self, adapter: SqliteAdapter, conn: aiosqlite.Connection):
        super().__init__(adapter)
        self.conn = conn

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        with self.adapter.translate_errors():
            cursor = await self.conn.execute(query, params or {})
            return cursor.rowcount

    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        with self.adapter.translate_errors():
            async with self.conn.execute(query, params or {}) as cursor:
                rows = await cursor.fetchall()
                cols = [c[0] for c in cursor.description]
                return [dict(zip(cols, row, strict=True)) for row in rows]

    async def insert(self, table: str, data: dict[str, Any], pk: str = "id") -> int:
        with self.adapter.translate_errors():
            cursor = await self.conn.execute(self.adapter.insert_sql(table, data), data)
            return int(cursor.lastrowid)


class SqliteAdapter(DbAdapter):
    """SQLite async adapter. Opens a connection per session.

    In-memory databases only live as long as one connection, so ``:memory:``
    is only useful for single-session work; use a file for anything else.
    """

    name = "sqlite"
    backend_errors = (sqlite3.Error, OSError)

    def __init__(self, db_path: str, busy_timeout: float = 30.0):
        """Initialize SQLite adapter.

        Args:
            db_path: Path to SQLite file, or ":memory:".
            busy_timeout: Seconds to wait for another process's write lock.
        """
        self.db_path = db_path or ":memory:"
        self.busy_timeout = busy_timeout
        self._write_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Make sure the database directory exists; connections are per-session."""
        if self.db_path != ":memory:":
            with self.translate_errors():
                Path(self.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)

    async def close(self) -> None:
        """SQLite connections are closed per-session, this is a no-op."""
        pass

    def pk_column(self, name: str) -> str:
        return f"{self.sql_name(name)} INTEGER PRIMARY KEY AUTOINCREMENT"

    @asynccontextmanager
    async def _open(self, begin: str) -> AsyncIterator[SqliteSession]:
        with self.translate_errors():
            async with aiosqlite.connect(
                self.db_path, timeout=self.busy_timeout, isolation_level=None
            ) as conn:
                await conn.execute(begin)
                try:
                    yield SqliteSession(self, conn)
                except BaseException:
                    await conn.execute("ROLLBACK")
                    raise
                await conn.execute("COMMIT")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqliteSession]:
        """Single-writer transaction: in-process lock plus ``BEGIN IMMEDIATE``."""
        async with self._write_lock, self._open("BEGIN IMMEDIATE") as session:
            yield session

    def session(self) -> Any:
        return self._open("BEGIN")


__all__ = ["SqliteAdapter", "SqliteSession"]
