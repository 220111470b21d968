# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Best-effort recipient and status extraction for bounces without a DSN part.

This path is approximate by nature: non-standard bounce formats have no
grammar, so it only looks for the common shapes (an ``X-Failed-Recipients``
header, an address after a ``To:``/``Recipient:`` marker or in angle
brackets, the first extended status code, and a reply code that starts a
line or follows ": "). Anything it cannot find is left empty rather than
guessed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from email.message import Message

from .headers import clean_address, decode_value, header_addresses, is_valid_address
from .tree import LeafNode, Node, walk

_ADDR = r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"
RECIPIENT_PATTERNS = (
    re.compile(rf"(?:to|for|recipient|address)\s*:?\s*<?({_ADDR})>?", re.IGNORECASE),
    re.compile(rf"<({_ADDR})>"),
    re.compile(rf"\b({_ADDR})\b"),
)
EXTENDED_STATUS_RE = re.compile(r"\b([45]\.\d{1,3}\.\d{1,3})\b")
# Reply codes only at line start or after ": " ("host said: 550 ..."), never "port 465"
REPLY_CODE_RE = re.compile(r"(?:^[ \t]*|:[ \t]+)([45]\d\d)(?=[ \t-]|$)", re.MULTILINE)

BOUNCE_SENDERS = ("mailer-daemon", "postmaster", "mail delivery")
BOUNCE_SUBJECTS = (
    "delivery failure",
    "delivery status notification",
    "undelivered mail",
    "undeliverable",
    "returned mail",
    "mail delivery failed",
    "failure notice",
    "delivery notification",
    "could not be delivered",
)

# Scanning stops here; real bounces state the failure near the top
SCAN_LIMIT = 8192


@dataclass
class HeuristicMatch:
    recipients: list[str]
    status_code: str | None
    diagnostic: str | None


def looks_like_bounce(msg: Message) -> bool:
    """Whether an unstructured message is plausibly a delivery failure report."""
    if msg.get("X-Failed-Recipients"):
        return True
    if msg.get_content_type() == "multipart/report":
        return True
    sender = decode_value(msg.get("From")).lower()
    if any(s in sender for s in BOUNCE_SENDERS):
        return True
    subject = decode_value(msg.get("Subject")).lower()
    return any(k in subject for k in BOUNCE_SUBJECTS)


def body_text(tree: Node) -> str:
    """Text of the human-readable parts, skipping any embedded original message."""
    leaves = [n for n in walk(tree, into_messages=False) if isinstance(n, LeafNode)]
    texts = [n.text() for n in leaves if n.content_type == "text/plain"]
    if not texts:
        texts = [n.text() for n in leaves if n.content_type.startswith("text/")]
    return "\n".join(texts)[:SCAN_LIMIT]


def _find_recipient(text: str, excluded: set[str]) -> str | None:
    for pattern in RECIPIENT_PATTERNS:
        for match in pattern.finditer(text):
            addr = clean_address(match.group(1))
            if is_valid_address(addr) and addr.lower() not in excluded:
                return addr
    return None


def _matched_line(text: str, start: int) -> str:
    line_start = text.rfind("\n", 0, start) + 1
    line_end = text.find("\n", start)
    return text[line_start : line_end if line_end != -1 else len(text)].strip()


def _find_status(text: str) -> tuple[str | None, str | None]:
    """First extended status code, else the class of the first reply code."""
    match = EXTENDED_STATUS_RE.search(text)
    if match:
        return match.group(1), _matched_line(text, match.start())
    match = REPLY_CODE_RE.search(text)
    if match:
        # 550 carries no detail, only the class: report it as 5.0.0
        return f"{match.group(1)[0]}.0.0", _matched_line(text, match.start(1))
    return None, None


def scan(msg: Message, tree: Node, excluded: set[str]) -> HeuristicMatch:
    """Look for failed recipients and a status in headers, subject and body.

    Args:
        msg: The outer bounce message.
        tree: Its node tree.
        excluded: Lowercase addresses that are never the bounced recipient
            (the bounce sender and receiver, the original sender).
    """
    subject = decode_value(msg.get("Subject"))
    text = body_text(tree)
    haystack = f"{subject}\n{text}" if subject else text

    recipients = [a for a in header_addresses(msg, "X-Failed-Recipients") if a.lower() not in excluded]
    if not recipients:
        found = _find_recipient(haystack, excluded)
        recipients = [found] if found else []

    status_code, line = _find_status(haystack)
    if line is None and recipients:
        idx = haystack.lower().find(recipients[0].lower())
        line = _matched_line(haystack, idx) if idx != -1 else None
    return HeuristicMatch(recipients=recipients, status_code=status_code, diagnostic=line or None)


__all__ = ["HeuristicMatch", "body_text", "looks_like_bounce", "scan"]
