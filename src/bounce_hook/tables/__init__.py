# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Table managers for routes and the webhook queue."""

from .queue import WebhookQueueTable
from .routes import RoutesTable

__all__ = ["RoutesTable", "WebhookQueueTable"]
