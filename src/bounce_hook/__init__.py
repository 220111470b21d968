# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Bounce notifications to signed webhooks.

Features:
    - RFC 3464 delivery status parsing with a heuristic fallback
    - Per-domain catch-all and per-user routes, all matches fire
    - Durable webhook queue on SQLite, PostgreSQL or MySQL
    - At-least-once delivery with capped exponential backoff
    - HMAC-SHA512 request signatures
    - Prometheus metrics for the delivery worker

Example::

    bounce-hook init
    bounce-hook ingest < bounce.eml
    bounce-hook worker
"""

__version__ = "0.3.0"
