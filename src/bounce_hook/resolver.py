# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Route resolution: which subscribers hear about a bounced address."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .logger import get_logger

if TYPE_CHECKING:
    from .hook_db import BounceHookDb
    from .models import Route

logger = get_logger("resolver")


def split_address(address: str, recipient_delimiter: str | None = None) -> tuple[str, str]:
    """Return ``(user, domain)`` lowercased, split at the last ``@``.

    With a delimiter configured, a sub-address suffix is dropped from the
    user part: ``John+news@Example.com`` -> ``("john", "example.com")``.
    """
    user, sep, domain = address.strip().rpartition("@")
    if not sep or not user or not domain:
        raise ValueError(f"Not an address: {address!r}")
    user = user.lower()
    if recipient_delimiter:
        user = user.split(recipient_delimiter, 1)[0] or user
    return user, domain.lower()


class RouteResolver:
    """Match a bounced address against the active routes.

    Catch-all routes (no user) and exact user routes of the domain are
    returned together; an empty list just means nobody subscribed.
    """

    def __init__(self, db: BounceHookDb, recipient_delimiter: str | None = None):
        self.db = db
        self.recipient_delimiter = recipient_delimiter or None

    async def resolve(self, address: str) -> list[Route]:
        user, domain = split_address(address, self.recipient_delimiter)
        logger.debug("Resolving routes for domain=%s user=%s", domain, user)
        return await self.db.find_routes(domain, user)


__all__ = ["RouteResolver", "split_address"]
