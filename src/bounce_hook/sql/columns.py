# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Column definitions shared by all table managers.

Types are plain SQL fragments accepted by SQLite, PostgreSQL and MySQL alike.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .base import DbAdapter

Integer = "INTEGER"
BigInt = "BIGINT"
String = "VARCHAR(255)"
LongString = "VARCHAR(2048)"
Text = "TEXT"


@dataclass
class Column:
    name: str
    type_: str
    primary_key: bool = False
    nullable: bool = True
    default: Any = None

    def to_sql(self, adapter: DbAdapter) -> str:
        if self.primary_key and self.type_ == Integer:
            return adapter.pk_column(self.name)
        parts = [adapter.sql_name(self.name), self.type_]
        if self.primary_key:
            parts.append("PRIMARY KEY")
        elif not self.nullable:
            parts.append("NOT NULL")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        return " ".join(parts)


class Columns(dict[str, Column]):
    """Ordered column registry filled by ``Table.configure()``."""

    def column(self, name: str, type_: str, **kwargs: Any) -> Column:
        col = Column(name, type_, **kwargs)
        self[name] = col
        return col

    def primary_key(self) -> Column | None:
        return next((c for c in self.values() if c.primary_key), None)


__all__ = ["BigInt", "Column", "Columns", "Integer", "LongString", "String", "Text"]
