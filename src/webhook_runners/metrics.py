"""Prometheus metrics for webhook handling."""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram


class RunnerMetrics:
    """Prometheus metrics for the runner launcher.

    Each instance registers its collectors on its own registry so several
    contexts (one per test, for example) can coexist.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.webhooks_total = Counter(
            'webhook_runners_webhooks_total',
            'Webhook deliveries by outcome',
            ['outcome'],
            registry=self.registry,
        )
        self.ignored_total = Counter(
            'webhook_runners_ignored_total',
            'Ignored webhook deliveries by reason',
            ['reason'],
            registry=self.registry,
        )
        self.launch_failures_total = Counter(
            'webhook_runners_launch_failures_total',
            'Failure entries reported by ECS RunTask',
            registry=self.registry,
        )
        self.handle_duration_seconds = Histogram(
            'webhook_runners_handle_duration_seconds',
            'Webhook handling duration',
            registry=self.registry,
        )

    def record_launched(self, duration: float):
        """Record a delivery that started a runner."""
        self.webhooks_total.labels(outcome="launched").inc()
        self.handle_duration_seconds.observe(duration)

    def record_ignored(self, reason: str):
        """Record an ignored delivery."""
        self.webhooks_total.labels(outcome="ignored").inc()
        self.ignored_total.labels(reason=reason).inc()

    def record_unauthorized(self):
        self.webhooks_total.labels(outcome="unauthorized").inc()

    def record_error(self):
        """Record a delivery that failed with an internal error."""
        self.webhooks_total.labels(outcome="error").inc()

    def record_launch_failures(self, count: int):
        if count:
            self.launch_failures_total.inc(count)
