# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Header and address helpers shared by the DSN and heuristic paths."""

from __future__ import annotations

import re
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from email.message import Message
from email.utils import getaddresses, parseaddr

ADDRESS_RE = re.compile(r"^[^@\s<>()\[\],;:\"]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)*$")
STATUS_CODE_RE = re.compile(r"^\d\.\d{1,3}\.\d{1,3}$")
TYPE_PREFIX_RE = re.compile(r"^\s*[A-Za-z0-9-]+\s*;\s*")


def decode_value(value: object) -> str:
    """Decode an RFC 2047 header value and collapse folding whitespace."""
    if value is None:
        return ""
    raw = str(value)
    try:
        text = str(make_header(decode_header(raw)))
    except (HeaderParseError, LookupError, UnicodeDecodeError):
        text = raw
    return " ".join(text.split())


def strip_address_type(value: str) -> str:
    """``rfc822; john@example.com`` -> ``john@example.com``."""
    return TYPE_PREFIX_RE.sub("", value, count=1).strip()


def clean_address(value: str | None) -> str:
    """Return the bare lowercase-domain address from a header-ish value, or ``""``."""
    if not value:
        return ""
    _, addr = parseaddr(strip_address_type(decode_value(value)))
    addr = addr.strip().strip("<>")
    if "@" not in addr:
        return addr
    user, _, domain = addr.rpartition("@")
    return f"{user}@{domain.lower()}"


def is_valid_address(addr: str) -> bool:
    return bool(addr) and ADDRESS_RE.match(addr) is not None


def header_addresses(msg: Message, name: str) -> list[str]:
    """All valid addresses listed in every occurrence of header ``name``."""
    values = [decode_value(v) for v in msg.get_all(name, [])]
    found = [clean_address(addr) for _, addr in getaddresses(values)]
    return [a for a in found if is_valid_address(a)]


def is_status_code(value: str | None) -> bool:
    return bool(value) and STATUS_CODE_RE.match(value) is not None


def x_headers(msg: Message) -> dict[str, str]:
    """``X-*`` headers as a mapping keyed by the name without the ``X-`` prefix."""
    return {
        name[2:]: decode_value(value)
        for name, value in msg.items()
        if name[:2].lower() == "x-" and len(name) > 2
    }


__all__ = [
    "clean_address",
    "decode_value",
    "header_addresses",
    "is_status_code",
    "is_valid_address",
    "strip_address_type",
    "x_headers",
]
