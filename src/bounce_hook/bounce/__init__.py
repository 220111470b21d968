# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Bounce notification parsing (RFC 3464 DSN with a heuristic fallback)."""

from .parser import BounceParser, BounceRecord, classify_permanence, normalize_action

__all__ = ["BounceParser", "BounceRecord", "classify_permanence", "normalize_action"]
