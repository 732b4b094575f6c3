# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for monitoring the SES dispatcher.

All metrics use the ``sesd_`` prefix.

Metrics exposed:
    - ``sesd_sent_total``: Counter of messages accepted by SES per sender.
    - ``sesd_errors_total``: Counter of failed send attempts per sender.
    - ``sesd_throttled_total``: Counter of pacing delays applied.
    - ``sesd_observer_errors_total``: Counter of exceptions raised by observers.
    - ``sesd_pending_messages``: Gauge of messages currently in the queue.

Example:
    Accessing metrics via the REST API::

        GET /metrics
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class DispatchMetrics:
    """Prometheus metrics collector for the dispatcher.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
        sent: Counter of successful sends, labelled by sender.
        errors: Counter of failed sends, labelled by sender.
        throttled: Counter of throttle ticks.
        observer_errors: Counter of observer callbacks that raised.
        pending: Gauge showing current queue depth.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize metrics with an optional custom registry.

        Args:
            registry: Optional Prometheus CollectorRegistry. A private one is
                created when omitted so several dispatchers can coexist.
        """
        self.registry = registry or CollectorRegistry()
        self.sent = Counter(
            "sesd_sent_total",
            "Total messages accepted by SES",
            ["sender"],
            registry=self.registry,
        )
        self.errors = Counter(
            "sesd_errors_total",
            "Total failed send attempts",
            ["sender"],
            registry=self.registry,
        )
        self.throttled = Counter(
            "sesd_throttled_total",
            "Total pacing delays applied",
            registry=self.registry,
        )
        self.observer_errors = Counter(
            "sesd_observer_errors_total",
            "Total exceptions raised by outcome observers",
            registry=self.registry,
        )
        self.pending = Gauge(
            "sesd_pending_messages",
            "Current pending messages",
            registry=self.registry,
        )

    def inc_sent(self, sender: str | None = None) -> None:
        self.sent.labels(sender=sender or "default").inc()

    def inc_error(self, sender: str | None = None) -> None:
        self.errors.labels(sender=sender or "default").inc()

    def inc_throttled(self) -> None:
        self.throttled.inc()

    def inc_observer_error(self) -> None:
        self.observer_errors.inc()

    def set_pending(self, value: int) -> None:
        """Set the pending messages gauge to the current queue depth."""
        self.pending.set(value)

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
