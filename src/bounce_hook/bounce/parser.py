# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Bounce parser: raw DSN email bytes to :class:`BounceRecord` values.

Two independent paths:

1. RFC 3464 delivery status: the ``message/delivery-status`` part is split
   into header blocks. The first is the per-message block, every block
   naming a ``Final-Recipient`` or ``Original-Recipient`` yields one record.
2. Heuristic fallback (see :mod:`bounce_hook.bounce.heuristic`) for bounces
   that carry no machine-readable part.

Original ``Message-ID``, ``From``, ``Subject`` and ``X-*`` headers come from
the embedded original message when present, else from the outer headers.
"""

from __future__ import annotations

import email
from dataclasses import dataclass, field
from email.message import Message
from email.parser import HeaderParser

from ..errors import NoRecipient, NotAnEmail
from ..logger import get_logger
from . import heuristic
from .headers import (
    clean_address,
    decode_value,
    is_status_code,
    is_valid_address,
    strip_address_type,
    x_headers,
)
from .tree import LeafNode, MessageNode, Node, build_tree, find_first

logger = get_logger("bounce.parser")

ACTIONS = ("failed", "delayed", "delivered", "relayed", "expanded")
NON_FAILURE_ACTIONS = frozenset({"delivered", "relayed", "expanded"})


@dataclass
class BounceRecord:
    """One bounced recipient.

    Attributes:
        recipient: Bounced address, always a valid ``user@domain``.
        message_id: Message-ID of the original mail, without angle brackets.
        sender: Original sender address (the ``from`` payload field).
        subject: Original subject.
        status_code: Extended status ``d.d.d``, None when absent or malformed.
        diagnostic: Free-text reason (Diagnostic-Code or the matched line).
        action: failed, delayed, delivered, relayed or expanded.
        is_permanent: Whether retrying delivery to the recipient is pointless.
        original_recipient: ``Original-Recipient`` of the DSN, if any.
        metadata: ``X-*`` headers of the original message without the prefix.
    """

    recipient: str
    message_id: str | None = None
    sender: str | None = None
    subject: str | None = None
    status_code: str | None = None
    diagnostic: str | None = None
    action: str = "failed"
    is_permanent: bool = True
    original_recipient: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def domain(self) -> str:
        return self.recipient.rpartition("@")[2].lower()

    @property
    def user(self) -> str:
        return self.recipient.rpartition("@")[0].lower()


def normalize_action(value: str | None) -> str:
    """First token of the Action field, lowercased; unknown values mean failed."""
    token = value.split()[0].lower() if value and value.split() else ""
    return token if token in ACTIONS else "failed"


def classify_permanence(action: str, status_code: str | None) -> bool:
    """Permanent for class 5 statuses, transient for class 4 and delays.

    A ``failed`` action without a usable class is treated as permanent, so
    dead addresses do not cause endless retries on the subscriber side.
    """
    if action in NON_FAILURE_ACTIONS or action == "delayed":
        return False
    if status_code:
        if status_code[0] == "5":
            return True
        if status_code[0] == "4":
            return False
    return action == "failed"


@dataclass
class _Original:
    message_id: str | None = None
    sender: str | None = None
    subject: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class BounceParser:
    """Parse bounce notifications.

    Usage::

        records = BounceParser().parse(raw_bytes)
        for record in records:
            print(record.recipient, record.status_code, record.is_permanent)
    """

    def parse(self, raw: bytes | str) -> list[BounceRecord]:
        """Parse a raw email into one record per bounced recipient.

        Raises:
            NotAnEmail: Empty input or no header block.
            NoRecipient: Neither path found a valid bounced address.
        """
        if isinstance(raw, str):
            raw = raw.encode("utf-8", errors="surrogateescape")
        if not raw or not raw.strip():
            raise NotAnEmail("empty input")

        msg = email.message_from_bytes(raw)
        if not msg.keys():
            raise NotAnEmail("no header block found")

        tree = build_tree(msg)
        original = self._original_headers(msg, tree)

        status_part = find_first(
            tree,
            lambda n: isinstance(n, LeafNode) and n.is_delivery_status,
            into_messages=False,
        )
        if status_part is not None:
            records = self._from_delivery_status(status_part, original)
            path = "dsn"
        else:
            records = self._from_heuristic(msg, tree, original)
            path = "heuristic"

        if not records:
            raise NoRecipient(f"no valid recipient found ({path} path)")
        logger.debug("Parsed %d bounce record(s) via %s path", len(records), path)
        return records

    # -------------------------------------------------------------------------
    # Original message headers
    # -------------------------------------------------------------------------

    def _original_headers(self, msg: Message, tree: Node) -> _Original:
        embedded = find_first(tree, lambda n: isinstance(n, MessageNode), into_messages=False)
        inner = embedded.message if isinstance(embedded, MessageNode) else None

        def pick(name: str) -> str | None:
            for source in (inner, msg):
                if source is not None and source.get(name):
                    return decode_value(source.get(name)) or None
            return None

        message_id = pick("Message-ID")
        sender = pick("From")
        return _Original(
            message_id=message_id.strip().strip("<>") if message_id else None,
            sender=clean_address(sender) or None,
            subject=pick("Subject"),
            metadata=x_headers(inner) if inner is not None else {},
        )

    # -------------------------------------------------------------------------
    # RFC 3464 path
    # -------------------------------------------------------------------------

    @staticmethod
    def _status_blocks(node: LeafNode) -> list[Message]:
        payload = node.part.get_payload()
        if isinstance(payload, list):
            return [b for b in payload if isinstance(b, Message)]
        text = node.text().replace("\r\n", "\n")
        blocks = [b for b in text.split("\n\n") if b.strip()]
        return [HeaderParser().parsestr(b.strip("\n") + "\n") for b in blocks]

    def _from_delivery_status(self, node: LeafNode, original: _Original) -> list[BounceRecord]:
        records: list[BounceRecord] = []
        for block in self._status_blocks(node):
            if not (block.get("Final-Recipient") or block.get("Original-Recipient")):
                continue
            record = self._record_from_block(block, original)
            if record is None:
                logger.warning(
                    "Dropping delivery-status block without a valid recipient: %r",
                    decode_value(block.get("Final-Recipient") or block.get("Original-Recipient")),
                )
                continue
            records.append(record)
        return records

    def _record_from_block(self, block: Message, original: _Original) -> BounceRecord | None:
        original_recipient = clean_address(block.get("Original-Recipient"))
        final_recipient = clean_address(block.get("Final-Recipient"))
        recipient = next(
            (a for a in (original_recipient, final_recipient) if is_valid_address(a)), None
        )
        if recipient is None:
            return None

        diagnostic = strip_address_type(decode_value(block.get("Diagnostic-Code"))) or None
        action = normalize_action(decode_value(block.get("Action")))

        raw_status = decode_value(block.get("Status"))
        status_code: str | None = None
        if raw_status:
            candidate = raw_status.split()[0]
            if is_status_code(candidate):
                status_code = candidate
            else:
                # Malformed: keep it readable, never guess a class
                diagnostic = f"{diagnostic}; {raw_status}" if diagnostic else raw_status
        elif diagnostic:
            match = heuristic.EXTENDED_STATUS_RE.search(diagnostic)
            status_code = match.group(1) if match else None

        return BounceRecord(
            recipient=recipient,
            message_id=original.message_id,
            sender=original.sender,
            subject=original.subject,
            status_code=status_code,
            diagnostic=diagnostic,
            action=action,
            is_permanent=classify_permanence(action, status_code),
            original_recipient=original_recipient if is_valid_address(original_recipient) else None,
            metadata=dict(original.metadata),
        )

    # -------------------------------------------------------------------------
    # Heuristic path
    # -------------------------------------------------------------------------

    def _from_heuristic(self, msg: Message, tree: Node, original: _Original) -> list[BounceRecord]:
        if not heuristic.looks_like_bounce(msg):
            logger.info("Message has no delivery-status part and does not look like a bounce")
            return []

        excluded = {clean_address(msg.get("From")).lower(), clean_address(msg.get("To")).lower()}
        if original.sender:
            excluded.add(original.sender.lower())
        excluded.discard("")

        match = heuristic.scan(msg, tree, excluded)
        return [
            BounceRecord(
                recipient=recipient,
                message_id=original.message_id,
                sender=original.sender,
                subject=original.subject,
                status_code=match.status_code,
                diagnostic=match.diagnostic,
                action="failed",
                is_permanent=classify_permanence("failed", match.status_code),
                metadata=dict(original.metadata),
            )
            for recipient in match.recipients
        ]


__all__ = [
    "ACTIONS",
    "BounceParser",
    "BounceRecord",
    "classify_permanence",
    "normalize_action",
]
