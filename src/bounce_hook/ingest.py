# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Ingest path: one raw bounce email in, zero or more queued webhooks out.

Invoked once per message by the mail transfer agent (``bounce-hook ingest``
as a pipe transport). Every queue row produced by one email is written in a
single transaction, so an email is either fully queued or not at all.

Exit codes:
    0: parsed and queued (including "no route matched")
    1: the input is not a usable bounce
    2: the store could not be reached or written
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .bounce import BounceParser, BounceRecord
from .errors import ParseError, StoreError
from .hook_db import BounceHookDb
from .logger import get_logger
from .models import BouncePayload
from .resolver import RouteResolver

if TYPE_CHECKING:
    from .config import HookConfig

logger = get_logger("ingest")

EXIT_OK = 0
EXIT_PARSE_ERROR = 1
EXIT_STORE_ERROR = 2


async def enqueue_records(
    db: BounceHookDb,
    records: list[BounceRecord],
    recipient_delimiter: str | None = None,
    now: datetime | None = None,
) -> list[int]:
    """Resolve routes for every record and queue one delivery per match.

    Returns the ids of the queued rows; an empty list is a normal outcome.
    """
    now = now or datetime.now(timezone.utc)
    resolver = RouteResolver(db, recipient_delimiter)

    entries: list[dict[str, Any]] = []
    for record in records:
        logger.info("Processing bounce for domain=%s user=%s", record.domain, record.user)
        routes = await resolver.resolve(record.recipient)
        if not routes:
            logger.warning("No active routes found for %s", record.recipient)
            continue
        logger.debug("Found %d matching route(s) for %s", len(routes), record.recipient)

        payload = BouncePayload.from_record(record, now).to_json()
        entries.extend(
            {
                "route_id": route.id,
                "url": route.url,
                "secret_token": route.secret_token,
                "payload": payload,
            }
            for route in routes
        )

    ids = await db.enqueue_many(entries, now=int(now.timestamp()))
    for item_id, entry in zip(ids, entries, strict=True):
        logger.info("Queued webhook %s for route %s", item_id, entry["route_id"])
    return ids


async def ingest_email(
    raw: bytes,
    db: BounceHookDb,
    recipient_delimiter: str | None = None,
    now: datetime | None = None,
) -> list[int]:
    """Parse ``raw`` and queue its deliveries.

    Raises:
        ParseError: The input is not a usable bounce; nothing was queued.
        StoreError: The store failed; nothing was queued.
    """
    records = BounceParser().parse(raw)
    return await enqueue_records(db, records, recipient_delimiter, now)


async def run_ingest(raw: bytes, config: HookConfig) -> int:
    """CLI entry point: ingest one email and return the process exit code."""
    logger.debug("Read %d bytes of email", len(raw))
    try:
        records = BounceParser().parse(raw)
    except ParseError as exc:
        logger.error("Rejected email (%s): %s", exc.code, exc)
        return EXIT_PARSE_ERROR

    try:
        db = BounceHookDb(config.database_url)
    except ValueError as exc:
        logger.error("Invalid database configuration: %s", exc)
        return EXIT_STORE_ERROR

    try:
        async with db:
            ids = await enqueue_records(db, records, config.recipient_delimiter)
    except StoreError as exc:
        logger.error("Store failure, nothing queued: %s", exc)
        return EXIT_STORE_ERROR

    logger.info("Ingested %d bounce record(s), queued %d webhook(s)", len(records), len(ids))
    return EXIT_OK


__all__ = [
    "EXIT_OK",
    "EXIT_PARSE_ERROR",
    "EXIT_STORE_ERROR",
    "enqueue_records",
    "ingest_email",
    "run_ingest",
]
