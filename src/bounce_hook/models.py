# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Pydantic models for bounce-hook.

Models:
    - QueueStatus: Lifecycle states of a queued webhook delivery
    - Route: Subscriber routing rule (table ``email_routes``)
    - QueueItem: One pending or finished webhook delivery (table ``webhook_queue``)
    - BouncePayload: JSON body posted to subscribers
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from .bounce import BounceRecord


class QueueStatus(str, Enum):
    """Delivery lifecycle.

    ``pending`` -> ``delivering`` -> ``delivered`` | ``pending`` (retry)
    | ``failed_permanent``. The last two of these are terminal.
    """

    PENDING = "pending"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    FAILED_PERMANENT = "failed_permanent"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({QueueStatus.DELIVERED, QueueStatus.FAILED_PERMANENT})


class Route(BaseModel):
    """Routing rule: bounces for ``user@domain`` are posted to ``url``.

    Attributes:
        id: Database identifier, None before insertion.
        domain: Lowercase domain the rule applies to.
        user: Lowercase local part, or None for a domain catch-all.
        url: Subscriber endpoint.
        secret_token: HMAC key shared with the subscriber.
        is_active: Inactive routes never match.
    """

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    domain: Annotated[str, Field(min_length=1, description="Domain, stored lowercase")]
    user: Annotated[
        str | None,
        Field(default=None, description="Local part; None matches every user"),
    ]
    url: Annotated[str, Field(min_length=1, description="Webhook endpoint URL")]
    secret_token: Annotated[str, Field(min_length=1, description="HMAC signing secret")]
    is_active: bool = True

    @field_validator("domain")
    @classmethod
    def lowercase_domain(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("user")
    @classmethod
    def lowercase_user(cls, v: str | None) -> str | None:
        """Lowercase the local part; empty and ``*`` both mean catch-all."""
        if v is None:
            return None
        v = v.strip().lower()
        return None if v in ("", "*") else v

    @property
    def is_catch_all(self) -> bool:
        return self.user is None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Route:
        return cls.model_validate(row)


class QueueItem(BaseModel):
    """A queued webhook delivery.

    ``url``, ``secret_token`` and ``payload`` are copied at enqueue time, so
    later route changes do not affect rows already queued. Timestamps are
    integer Unix seconds.
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    route_id: int | None = None
    url: str
    secret_token: str
    payload: str
    status: QueueStatus
    attempt_count: int = 0
    next_attempt_at: int
    last_error: str | None = None
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> QueueItem:
        return cls.model_validate(row)


class BouncePayload(BaseModel):
    """Webhook request body.

    Missing string fields serialize as ``""``; ``is_permanent`` is always a
    boolean. Serialize with :meth:`to_json` to get the ``from`` key.
    """

    model_config = ConfigDict(populate_by_name=True)

    event: Literal["bounce"] = "bounce"
    timestamp: str
    message_id: str = ""
    from_: Annotated[str, Field(default="", alias="from")]
    subject: str = ""
    email: str
    reason: str = ""
    status: str = ""
    action: str = "failed"
    is_permanent: bool
    metadata: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: BounceRecord, now: datetime | None = None) -> BouncePayload:
        """Render a parsed bounce record as the payload sent to subscribers."""
        now = now or datetime.now(timezone.utc)
        return cls(
            timestamp=now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            message_id=record.message_id or "",
            from_=record.sender or "",
            subject=record.subject or "",
            email=record.recipient,
            reason=record.diagnostic or "",
            status=record.status_code or "",
            action=record.action,
            is_permanent=record.is_permanent,
            metadata=dict(record.metadata),
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


__all__ = ["BouncePayload", "QueueItem", "QueueStatus", "Route", "TERMINAL_STATUSES"]
