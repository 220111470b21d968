# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for the heuristic fallback (bounces without a delivery-status part)."""

import pytest

from bounce_hook.bounce import BounceParser
from bounce_hook.errors import NoRecipient


@pytest.fixture
def parser():
    return BounceParser()


def test_gmail_style_bounce(parser, plain_bounce):
    [record] = parser.parse(plain_bounce())

    assert record.recipient == "john@example.com"
    assert record.status_code == "5.1.1"
    assert record.is_permanent is True
    assert record.action == "failed"
    assert record.diagnostic == "Technical details: 550 5.1.1 The email account does not exist."


def test_x_failed_recipients_header_fans_out(parser, plain_bounce):
    raw = plain_bounce(
        body="A message that you sent could not be delivered.\n  retry timeout exceeded\n",
        headers={"X-Failed-Recipients": "a@example.com, b@example.net"},
    )
    records = parser.parse(raw)
    assert [r.recipient for r in records] == ["a@example.com", "b@example.net"]


def test_reply_code_only_gives_class_status(parser, plain_bounce):
    raw = plain_bounce(
        subject="Returned mail: see transcript for details",
        body="Your message to <bob@example.net> was rejected: 550 mailbox unavailable\n",
    )
    [record] = parser.parse(raw)

    assert record.recipient == "bob@example.net"
    assert record.status_code == "5.0.0"
    assert record.diagnostic == "Your message to <bob@example.net> was rejected: 550 mailbox unavailable"


def test_transient_reply_code(parser, plain_bounce):
    raw = plain_bounce(body="Delivery to carol@example.net delayed: 451 try again later\n")
    [record] = parser.parse(raw)
    assert record.status_code == "4.0.0"
    assert record.is_permanent is False


def test_no_status_defaults_to_permanent(parser, plain_bounce):
    raw = plain_bounce(subject="Undeliverable", body="could not deliver to carol@example.net\n")
    [record] = parser.parse(raw)

    assert record.status_code is None
    assert record.is_permanent is True
    assert record.diagnostic == "could not deliver to carol@example.net"


def test_sender_and_receiver_are_not_recipients(parser, plain_bounce):
    raw = plain_bounce(
        body="Your message from orders@shop.example.org to dave@example.net failed.\n",
    )
    [record] = parser.parse(raw)
    assert record.recipient == "dave@example.net"


def test_only_own_addresses_raises_no_recipient(parser, plain_bounce):
    raw = plain_bounce(body="Message from orders@shop.example.org could not be delivered.\n")
    with pytest.raises(NoRecipient):
        parser.parse(raw)


def test_regular_mail_is_not_interpreted(parser, plain_bounce):
    raw = plain_bounce(
        subject="Lunch?",
        from_addr="alice@example.com",
        body="Ask bob@example.net if he joins, his server said 550 last time.\n",
    )
    with pytest.raises(NoRecipient) as exc_info:
        parser.parse(raw)
    assert exc_info.value.code == "no_recipient"


def test_port_numbers_are_not_reply_codes(parser, plain_bounce):
    raw = plain_bounce(
        subject="Undeliverable",
        body="Could not connect to mx.example.net port 465 for carol@example.net after 587 seconds\n",
    )
    [record] = parser.parse(raw)
    assert record.status_code is None
    assert record.is_permanent is True


def test_reply_code_at_line_start(parser, plain_bounce):
    raw = plain_bounce(
        subject="Undeliverable",
        body="Delivery to carol@example.net failed, the remote server said:\n450 mailbox busy\n",
    )
    [record] = parser.parse(raw)
    assert record.status_code == "4.0.0"
    assert record.diagnostic == "450 mailbox busy"
