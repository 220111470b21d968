# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for monitoring the delivery worker.

All metrics use the ``bh_`` prefix (bounce-hook).

Metrics exposed:
    - ``bh_delivered_total``: Counter of webhooks acknowledged with a 2xx.
    - ``bh_retried_total``: Counter of failed attempts scheduled for retry.
    - ``bh_failed_total``: Counter of deliveries that exhausted their retries.
    - ``bh_recovered_total``: Counter of stale ``delivering`` rows sent back to pending.
    - ``bh_queue_items``: Gauge of queue rows per status.

Example:
    Exposing metrics from the worker::

        [worker]
        metrics_port = 9108

    then scrape ``http://host:9108/metrics``.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest, start_http_server


class HookMetrics:
    """Prometheus metrics collector for the delivery worker.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
        delivered: Counter of successful deliveries.
        retried: Counter of attempts rescheduled after a failure.
        failed: Counter of permanent delivery failures.
        recovered: Counter of rows reclaimed by the recovery sweep.
        queue_items: Gauge of queue rows labelled by status.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self.delivered = Counter(
            "bh_delivered_total",
            "Total webhooks delivered",
            registry=self.registry,
        )
        self.retried = Counter(
            "bh_retried_total",
            "Total delivery attempts scheduled for retry",
            registry=self.registry,
        )
        self.failed = Counter(
            "bh_failed_total",
            "Total deliveries failed permanently",
            registry=self.registry,
        )
        self.recovered = Counter(
            "bh_recovered_total",
            "Total stale deliveries returned to pending",
            registry=self.registry,
        )
        self.queue_items = Gauge(
            "bh_queue_items",
            "Current queue rows per status",
            ["status"],
            registry=self.registry,
        )

    def set_queue_counts(self, counts: dict[str, int]) -> None:
        for status, value in counts.items():
            self.queue_items.labels(status=status).set(value)

    def serve(self, port: int, addr: str = "0.0.0.0") -> None:
        """Expose the registry over HTTP in a background thread."""
        start_http_server(port, addr=addr, registry=self.registry)

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
