# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy for bounce-hook."""

from __future__ import annotations


class BounceHookError(Exception):
    """Base class for all bounce-hook errors."""


class ParseError(BounceHookError):
    """Raised when a raw email cannot be turned into bounce records."""

    code = "parse_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__doc__.strip().splitlines()[0])


class NotAnEmail(ParseError):
    """Input is not a mail message (no header block could be parsed)."""

    code = "not_an_email"


class NoRecipient(ParseError):
    """No usable bounced recipient address was found."""

    code = "no_recipient"


class StoreError(BounceHookError):
    """Raised when the persistent store cannot be read or written."""


class ConfigError(BounceHookError, ValueError):
    """Raised for invalid configuration values."""


class DeliveryError(BounceHookError):
    """A single webhook delivery attempt failed.

    Attributes:
        status: HTTP status code when the endpoint answered, else None.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


__all__ = [
    "BounceHookError",
    "ConfigError",
    "DeliveryError",
    "NoRecipient",
    "NotAnEmail",
    "ParseError",
    "StoreError",
]
