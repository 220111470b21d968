# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Webhook payload signatures.

The signed message is ``"{timestamp}.{payload}"`` encoded as UTF-8, the MAC is
HMAC-SHA512 keyed with the route secret, and the result travels base64
encoded in the ``X-Signature`` header next to ``X-Timestamp``. Subscribers
recompute it over the raw request body and compare with :func:`verify`.
"""

from __future__ import annotations

import base64
import hashlib
import hmac


def _as_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def canonical_message(timestamp: int | str, payload: str | bytes) -> bytes:
    """Return the exact byte string that gets authenticated."""
    return str(timestamp).encode("ascii") + b"." + _as_bytes(payload)


def sign(secret: str | bytes, timestamp: int | str, payload: str | bytes) -> str:
    """Compute the base64 HMAC-SHA512 signature of ``payload`` at ``timestamp``."""
    digest = hmac.new(_as_bytes(secret), canonical_message(timestamp, payload), hashlib.sha512).digest()
    return base64.b64encode(digest).decode("ascii")


def verify(
    secret: str | bytes,
    timestamp: int | str,
    payload: str | bytes,
    signature: str,
) -> bool:
    """Check a received signature in constant time."""
    expected = sign(secret, timestamp, payload)
    return hmac.compare_digest(expected.encode("ascii"), _as_bytes(signature))


__all__ = ["canonical_message", "sign", "verify"]
