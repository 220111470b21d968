# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for the RFC 3464 path of BounceParser."""

import pytest

from bounce_hook.bounce import BounceParser, classify_permanence, normalize_action
from bounce_hook.errors import NoRecipient, NotAnEmail, ParseError


@pytest.fixture
def parser():
    return BounceParser()


class TestSingleRecipient:
    def test_hard_bounce(self, parser, dsn_email):
        [record] = parser.parse(dsn_email())

        assert record.recipient == "john@example.com"
        assert record.status_code == "5.1.1"
        assert record.action == "failed"
        assert record.is_permanent is True
        assert record.diagnostic == "550 5.1.1 User unknown"

    def test_soft_bounce(self, parser, dsn_email):
        raw = dsn_email(recipients=[("full@example.com", "4.2.2", "smtp; 452 Mailbox full", "delayed")])
        [record] = parser.parse(raw)

        assert record.status_code == "4.2.2"
        assert record.action == "delayed"
        assert record.is_permanent is False

    def test_failed_with_transient_status_is_not_permanent(self, parser, dsn_email):
        raw = dsn_email(recipients=[("john@example.com", "4.4.7", "smtp; 421 timeout", "failed")])
        [record] = parser.parse(raw)
        assert record.is_permanent is False

    def test_original_headers_come_from_embedded_message(self, parser, dsn_email):
        [record] = parser.parse(dsn_email())

        assert record.message_id == "orig-001@shop.example.org"
        assert record.sender == "orders@shop.example.org"
        assert record.subject == "Your order"

    def test_embedded_rfc822_message(self, parser, dsn_email):
        raw = dsn_email(original_as_message=True, original_subject="Invoice 42")
        [record] = parser.parse(raw)
        assert record.subject == "Invoice 42"
        assert record.message_id == "orig-001@shop.example.org"

    def test_x_headers_become_metadata(self, parser, dsn_email):
        raw = dsn_email(extra_original_headers={"X-Campaign": "spring", "X-Customer-Id": "42"})
        [record] = parser.parse(raw)
        assert record.metadata == {"Campaign": "spring", "Customer-Id": "42"}

    def test_status_taken_from_diagnostic_when_missing(self, parser, dsn_email):
        raw = dsn_email(recipients=[("john@example.com", None, "smtp; 550 5.7.1 Rejected", "failed")])
        [record] = parser.parse(raw)
        assert record.status_code == "5.7.1"
        assert record.is_permanent is True

    def test_missing_action_defaults_to_failed(self, parser, dsn_email):
        raw = dsn_email(recipients=[("john@example.com", "5.1.1", None, None)])
        [record] = parser.parse(raw)
        assert record.action == "failed"
        assert record.diagnostic is None


class TestFanOut:
    def test_one_record_per_recipient_block(self, parser, dsn_email):
        raw = dsn_email(
            recipients=[
                ("john@example.com", "5.1.1", "smtp; 550 User unknown", "failed"),
                ("mary@example.com", "4.2.2", "smtp; 452 Mailbox full", "delayed"),
                ("bob@other.example.net", "5.2.1", "smtp; 550 Disabled", "failed"),
            ]
        )
        records = parser.parse(raw)

        assert [r.recipient for r in records] == [
            "john@example.com",
            "mary@example.com",
            "bob@other.example.net",
        ]
        assert [r.is_permanent for r in records] == [True, False, True]
        assert all(r.message_id == "orig-001@shop.example.org" for r in records)

    def test_invalid_recipient_block_is_dropped(self, parser, dsn_email):
        raw = dsn_email(
            recipients=[
                ("not-an-address", "5.1.1", None, "failed"),
                ("mary@example.com", "5.1.1", None, "failed"),
            ]
        )
        records = parser.parse(raw)
        assert [r.recipient for r in records] == ["mary@example.com"]

    def test_all_blocks_invalid_raises_no_recipient(self, parser, dsn_email):
        raw = dsn_email(recipients=[("unknown", "5.1.1", None, "failed")])
        with pytest.raises(NoRecipient):
            parser.parse(raw)


class TestMessageDeliveryStatus:
    """``message/delivery-status`` is split into header blocks by the stdlib parser."""

    RAW = (
        "From: MAILER-DAEMON@mx.example.com\r\n"
        "To: bounces@shop.example.org\r\n"
        "Subject: Undelivered Mail Returned to Sender\r\n"
        "MIME-Version: 1.0\r\n"
        'Content-Type: multipart/report; report-type=delivery-status; boundary="BOUNDARY"\r\n'
        "\r\n"
        "--BOUNDARY\r\n"
        "Content-Type: text/plain\r\n"
        "\r\n"
        "Delivery failed.\r\n"
        "--BOUNDARY\r\n"
        "Content-Type: message/delivery-status\r\n"
        "\r\n"
        "Reporting-MTA: dns; mx.example.com\r\n"
        "\r\n"
        "Original-Recipient: rfc822;John.Doe@Example.com\r\n"
        "Final-Recipient: rfc822; jdoe@mailhost.example.com\r\n"
        "Action: Failed (permanent)\r\n"
        "Status: 5.1.1\r\n"
        "Diagnostic-Code: smtp; 550 5.1.1 <jdoe@mailhost.example.com>: Recipient address rejected\r\n"
        "\r\n"
        "Final-Recipient: rfc822; other@example.com\r\n"
        "Action: delayed\r\n"
        "Status: 4.4.1\r\n"
        "\r\n"
        "--BOUNDARY--\r\n"
    ).encode()

    def test_blocks_parsed(self, parser):
        records = parser.parse(self.RAW)
        assert len(records) == 2

    def test_original_recipient_wins(self, parser):
        first = parser.parse(self.RAW)[0]
        assert first.recipient == "John.Doe@example.com"
        assert first.original_recipient == "John.Doe@example.com"
        assert first.action == "failed"
        assert first.is_permanent is True

    def test_outer_headers_used_without_embedded_original(self, parser):
        first = parser.parse(self.RAW)[0]
        assert first.subject == "Undelivered Mail Returned to Sender"
        assert first.message_id is None

    def test_delayed_block(self, parser):
        second = parser.parse(self.RAW)[1]
        assert second.recipient == "other@example.com"
        assert second.original_recipient is None
        assert second.is_permanent is False


class TestMalformedStatus:
    def test_malformed_status_kept_in_diagnostic(self, parser, dsn_email):
        raw = dsn_email(status_field="5.1", recipients=[("john@example.com", None, "smtp; 550 User unknown", "failed")])
        [record] = parser.parse(raw)

        assert record.status_code is None
        assert record.diagnostic == "550 User unknown; 5.1"
        # failed without a determinable class is permanent
        assert record.is_permanent is True

    def test_malformed_status_without_diagnostic(self, parser, dsn_email):
        raw = dsn_email(status_field="five.one.one", recipients=[("john@example.com", None, None, "delayed")])
        [record] = parser.parse(raw)
        assert record.status_code is None
        assert record.diagnostic == "five.one.one"
        assert record.is_permanent is False

    def test_status_with_trailing_comment(self, parser, dsn_email):
        raw = dsn_email(status_field="5.1.1 (bad destination mailbox address)")
        [record] = parser.parse(raw)
        assert record.status_code == "5.1.1"


class TestNotAnEmail:
    @pytest.mark.parametrize("raw", [b"", b"   \r\n\r\n  "])
    def test_empty_input(self, parser, raw):
        with pytest.raises(NotAnEmail) as exc_info:
            parser.parse(raw)
        assert exc_info.value.code == "not_an_email"

    def test_no_headers(self, parser):
        with pytest.raises(NotAnEmail):
            parser.parse(b"this is just some text\nwithout any headers\n")

    def test_parse_errors_share_a_base(self, parser):
        with pytest.raises(ParseError):
            parser.parse(b"")


class TestNormalizeAction:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("failed", "failed"),
            ("Delayed", "delayed"),
            ("relayed (to non-DSN MTA)", "relayed"),
            ("expanded", "expanded"),
            ("delivered", "delivered"),
            ("bounced", "failed"),
            ("", "failed"),
            (None, "failed"),
        ],
    )
    def test_values(self, value, expected):
        assert normalize_action(value) == expected


class TestClassifyPermanence:
    @pytest.mark.parametrize("status", ["5.0.0", "5.1.1", "5.7.26"])
    def test_class_5_is_permanent(self, status):
        assert classify_permanence("failed", status) is True

    @pytest.mark.parametrize("status", ["4.0.0", "4.2.2", "4.7.1"])
    def test_class_4_is_transient(self, status):
        assert classify_permanence("failed", status) is False

    def test_delayed_is_transient(self):
        assert classify_permanence("delayed", "5.1.1") is False

    def test_failed_without_status_is_permanent(self):
        assert classify_permanence("failed", None) is True

    @pytest.mark.parametrize("action", ["delivered", "relayed", "expanded"])
    def test_non_failure_actions(self, action):
        assert classify_permanence(action, "2.0.0") is False
