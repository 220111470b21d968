# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Webhook queue table manager."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ..sql import BigInt, Integer, LongString, String, Table, Text


class WebhookQueueTable(Table):
    """Webhook queue: one row per (bounce record, route) delivery.

    Fields:
    - id: Queue item identifier
    - route_id: Route that produced the row (informational)
    - url, secret_token: Copied from the route at enqueue time
    - payload: Rendered JSON body, never modified
    - status: pending | delivering | delivered | failed_permanent
    - attempt_count: Finished delivery attempts
    - next_attempt_at: Earliest claim time (Unix seconds)
    - last_error: Outcome of the last failed attempt
    - created_at, updated_at: Unix seconds

    Every transition out of ``delivering`` is guarded by the current status,
    so rows in a terminal state are never written again.
    """

    name = "webhook_queue"

    def configure(self) -> None:
        c = self.columns
        c.column("id", Integer, primary_key=True)
        c.column("route_id", Integer)
        c.column("url", LongString, nullable=False)
        c.column("secret_token", String, nullable=False)
        c.column("payload", Text, nullable=False)
        c.column("status", String, nullable=False, default="'pending'")
        c.column("attempt_count", Integer, nullable=False, default=0)
        c.column("next_attempt_at", BigInt, nullable=False)
        c.column("last_error", Text)
        c.column("created_at", BigInt, nullable=False)
        c.column("updated_at", BigInt, nullable=False)
        self.index("idx_queue_processing", "status", "next_attempt_at")

    async def enqueue_many(self, entries: Sequence[dict[str, Any]], now: int) -> list[int]:
        """Insert all entries in one transaction. Returns the new ids in order."""
        if not entries:
            return []
        ids: list[int] = []
        async with self.adapter.transaction() as tx:
            for entry in entries:
                next_attempt_at = entry.get("next_attempt_at")
                ids.append(
                    await tx.insert(
                        self.name,
                        {
                            "route_id": entry.get("route_id"),
                            "url": entry["url"],
                            "secret_token": entry["secret_token"],
                            "payload": entry["payload"],
                            "status": "pending",
                            "attempt_count": 0,
                            "next_attempt_at": now if next_attempt_at is None else next_attempt_at,
                            "created_at": now,
                            "updated_at": now,
                        },
                    )
                )
        return ids

    async def claim_due(self, limit: int, now: int) -> list[dict[str, Any]]:
        """Atomically move up to ``limit`` due ``pending`` rows to ``delivering``.

        The select and the update share one transaction. Backends with row
        locks skip rows another worker has locked; SQLite serializes the
        whole transaction instead. Either way no row is handed out twice.
        """
        async with self.adapter.transaction() as tx:
            rows = await tx.fetch_all(
                f"""
                SELECT id FROM {self.name}
                WHERE status = 'pending' AND next_attempt_at <= :now
                ORDER BY next_attempt_at, id
                LIMIT :limit
                {self.adapter.row_lock_clause}
                """,
                {"now": now, "limit": limit},
            )
            if not rows:
                return []

            params: dict[str, Any] = {f"id_{i}": row["id"] for i, row in enumerate(rows)}
            placeholders = ", ".join(f":id_{i}" for i in range(len(rows)))
            await tx.execute(
                f"""
                UPDATE {self.name}
                SET status = 'delivering', updated_at = :now
                WHERE status = 'pending' AND id IN ({placeholders})
                """,
                {**params, "now": now},
            )
            return await tx.fetch_all(
                f"""
                SELECT * FROM {self.name}
                WHERE status = 'delivering' AND id IN ({placeholders})
                ORDER BY next_attempt_at, id
                """,
                params,
            )

    async def mark_delivered(self, item_id: int, now: int) -> bool:
        rowcount = await self.execute(
            f"""
            UPDATE {self.name}
            SET status = 'delivered', attempt_count = attempt_count + 1,
                last_error = NULL, updated_at = :now
            WHERE id = :id AND status = 'delivering'
            """,
            {"id": item_id, "now": now},
        )
        return rowcount > 0

    async def mark_retry(self, item_id: int, next_attempt_at: int, error: str, now: int) -> bool:
        """Return a claimed row to ``pending``; the schedule never moves backwards."""
        rowcount = await self.execute(
            f"""
            UPDATE {self.name}
            SET status = 'pending',
                attempt_count = attempt_count + 1,
                next_attempt_at = CASE
                    WHEN next_attempt_at > :next_attempt_at THEN next_attempt_at
                    ELSE :next_attempt_at
                END,
                last_error = :error,
                updated_at = :now
            WHERE id = :id AND status = 'delivering'
            """,
            {"id": item_id, "next_attempt_at": next_attempt_at, "error": error, "now": now},
        )
        return rowcount > 0

    async def mark_permanent_failure(self, item_id: int, error: str, now: int) -> bool:
        rowcount = await self.execute(
            f"""
            UPDATE {self.name}
            SET status = 'failed_permanent', attempt_count = attempt_count + 1,
                last_error = :error, updated_at = :now
            WHERE id = :id AND status = 'delivering'
            """,
            {"id": item_id, "error": error, "now": now},
        )
        return rowcount > 0

    async def recover_stale(self, older_than: int, now: int) -> int:
        """Send ``delivering`` rows not touched since ``older_than`` back to ``pending``.

        Attempts are left unchanged: the interrupted attempt never finished.
        """
        return await self.execute(
            f"""
            UPDATE {self.name}
            SET status = 'pending', updated_at = :now
            WHERE status = 'delivering' AND updated_at < :older_than
            """,
            {"older_than": older_than, "now": now},
        )

    async def get(self, item_id: int) -> dict[str, Any] | None:
        return await self.select_one({"id": item_id})

    async def list_items(self, status: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent rows first, optionally filtered by status."""
        where = "WHERE status = :status" if status else ""
        return await self.adapter.fetch_all(
            f"SELECT * FROM {self.name} {where} ORDER BY id DESC LIMIT :limit",
            {"status": status, "limit": limit} if status else {"limit": limit},
        )

    async def count_by_status(self) -> dict[str, int]:
        rows = await self.adapter.fetch_all(
            f"SELECT status, COUNT(*) AS n FROM {self.name} GROUP BY status"
        )
        return {row["status"]: int(row["n"]) for row in rows}


__all__ = ["WebhookQueueTable"]
