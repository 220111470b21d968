# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Shared fixtures: SQLite store under tmp_path and bounce email builders."""

from __future__ import annotations

from email.message import Message
from email.mime.message import MIMEMessage
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate

import pytest
import pytest_asyncio

from bounce_hook.hook_db import BounceHookDb


def build_dsn(
    recipients=(("john@example.com", "5.1.1", "smtp; 550 5.1.1 User unknown", "failed"),),
    original_message_id: str = "<orig-001@shop.example.org>",
    original_from: str = "Shop <orders@shop.example.org>",
    original_subject: str = "Your order",
    extra_original_headers: dict[str, str] | None = None,
    original_as_message: bool = False,
    status_field: str | None = None,
) -> bytes:
    """Build an RFC 3464 bounce.

    Args:
        recipients: ``(address, status, diagnostic, action)`` tuples, one
            per-recipient block. ``None`` values omit the field.
        original_as_message: Embed the original as ``message/rfc822``
            instead of ``text/rfc822-headers``.
        status_field: Overrides every Status line verbatim (malformed tests).
    """
    msg = MIMEMultipart("report", report_type="delivery-status")
    msg["From"] = "MAILER-DAEMON@mx.example.com"
    msg["To"] = "bounces@shop.example.org"
    msg["Subject"] = "Undelivered Mail Returned to Sender"
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = "<bounce-777@mx.example.com>"

    msg.attach(MIMEText("Your message could not be delivered.\n", "plain"))

    blocks = ["Reporting-MTA: dns; mx.example.com\nArrival-Date: " + formatdate() + "\n"]
    for address, status, diagnostic, action in recipients:
        lines = [f"Final-Recipient: rfc822; {address}"]
        if action is not None:
            lines.append(f"Action: {action}")
        if status_field is not None:
            lines.append(f"Status: {status_field}")
        elif status is not None:
            lines.append(f"Status: {status}")
        if diagnostic is not None:
            lines.append(f"Diagnostic-Code: {diagnostic}")
        blocks.append("\n".join(lines) + "\n")
    msg.attach(MIMEText("\n".join(blocks), "delivery-status"))

    original = Message()
    original["From"] = original_from
    original["To"] = ", ".join(r[0] for r in recipients)
    original["Subject"] = original_subject
    original["Message-ID"] = original_message_id
    for name, value in (extra_original_headers or {}).items():
        original[name] = value

    if original_as_message:
        original.set_payload("Hello\n")
        msg.attach(MIMEMessage(original))
    else:
        msg.attach(MIMEText(original.as_string(), "rfc822-headers"))
    return msg.as_bytes()


def build_plain_bounce(
    body: str = "Delivery to the following recipient failed permanently:\n\n"
    "    john@example.com\n\n"
    "Technical details: 550 5.1.1 The email account does not exist.\n",
    subject: str = "Delivery Status Notification (Failure)",
    from_addr: str = "Mail Delivery Subsystem <mailer-daemon@googlemail.com>",
    to_addr: str = "orders@shop.example.org",
    headers: dict[str, str] | None = None,
) -> bytes:
    """Build a bounce without a delivery-status part (heuristic path)."""
    msg = MIMEText(body, "plain")
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    for name, value in (headers or {}).items():
        msg[name] = value
    return msg.as_bytes()


@pytest.fixture
def dsn_email():
    return build_dsn


@pytest.fixture
def plain_bounce():
    return build_plain_bounce


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:{tmp_path / 'bounce-hook.db'}"


@pytest_asyncio.fixture
async def db(db_url):
    """Initialized SQLite store."""
    store = BounceHookDb(db_url)
    await store.init_db()
    yield store
    await store.close()
