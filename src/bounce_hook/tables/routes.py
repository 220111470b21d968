# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Email routes table manager."""

from __future__ import annotations

from typing import Any

from ..sql import Integer, LongString, String, Table


class RoutesTable(Table):
    """Routes table: which subscriber hears about bounces for which address.

    Fields:
    - id: Route identifier
    - domain: Lowercase domain
    - user: Lowercase local part, NULL for a domain catch-all
    - url: Webhook endpoint
    - secret_token: HMAC key for the signature header
    - is_active: 1 = matches, 0 = disabled

    Several routes may match the same address; all of them fire.
    """

    name = "email_routes"

    def configure(self) -> None:
        c = self.columns
        c.column("id", Integer, primary_key=True)
        c.column("domain", String, nullable=False)
        c.column("user", String)
        c.column("url", LongString, nullable=False)
        c.column("secret_token", String, nullable=False)
        c.column("is_active", Integer, nullable=False, default=1)
        self.index("idx_route_lookup", "domain", "user", "is_active")

    async def add(self, route: dict[str, Any]) -> int:
        """Insert a route and return its id."""
        return await self.insert(
            {
                "domain": route["domain"],
                "user": route.get("user"),
                "url": route["url"],
                "secret_token": route["secret_token"],
                "is_active": 1 if route.get("is_active", True) else 0,
            }
        )

    async def find_active(self, domain: str, user: str) -> list[dict[str, Any]]:
        """Active catch-all routes for ``domain`` plus active routes for ``user@domain``.

        ``user`` must already be lowercase; stored users match regardless of case.
        """
        user_col = self.q("user")
        return await self.adapter.fetch_all(
            f"""
            SELECT * FROM {self.name}
            WHERE domain = :domain
              AND ({user_col} IS NULL OR LOWER({user_col}) = :user)
              AND is_active = 1
            ORDER BY id
            """,
            {"domain": domain, "user": user},
        )

    async def set_active(self, route_id: int, active: bool) -> bool:
        """Enable or disable a route. Returns False if it does not exist."""
        rowcount = await self.execute(
            f"UPDATE {self.name} SET is_active = :active WHERE id = :id",
            {"active": 1 if active else 0, "id": route_id},
        )
        return rowcount > 0

    async def list_all(self) -> list[dict[str, Any]]:
        return await self.adapter.fetch_all(f"SELECT * FROM {self.name} ORDER BY domain, id")
