from dataclasses import dataclass, field
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from .outcome import ERROR_LABEL, Failure, Outcome

# Latency is observed in milliseconds, so the default (seconds) buckets do not fit.
LATENCY_BUCKETS_MS = (5, 10, 25, 50, 100, 250, 500, 1000, 2000, 5000, float("inf"))


@dataclass
class ExposedMetrics:
    """Point-in-time copy of the registry's values."""
    requests_total: int = 0
    failed_requests_total: int = 0
    status_codes: Dict[str, int] = field(default_factory=dict)
    latency_count: int = 0
    latency_sum_ms: float = 0.0
    active_workers: int = 0
    target_concurrency: int = 0
    ramp_steps_total: int = 0

    @property
    def success_rate(self) -> float:
        if self.requests_total == 0:
            return 0.0
        return (self.requests_total - self.failed_requests_total) / self.requests_total

    @property
    def mean_latency_ms(self) -> float:
        return self.latency_sum_ms / self.latency_count if self.latency_count else 0.0


class MetricsRegistry:
    """
    Counters and the latency histogram shared by every worker and the exporter.

    Each instance owns a private ``CollectorRegistry`` so that nothing is
    registered on the process-wide default registry. The underlying
    ``prometheus_client`` metrics are thread-safe, so callers never lock.
    """

    def __init__(self, collector_registry: Optional[CollectorRegistry] = None):
        self.collector_registry = collector_registry or CollectorRegistry()
        registry = self.collector_registry
        self._requests = Counter(
            'requests_total', 'Total number of requests made', registry=registry
        )
        self._failures = Counter(
            'failed_requests_total', 'Total number of failed requests', registry=registry
        )
        self._status_codes = Counter(
            'status_code_counter', 'Count of HTTP status codes', ['status'], registry=registry
        )
        self._latency = Histogram(
            'response_time_milliseconds',
            'Response times of successful requests in milliseconds',
            buckets=LATENCY_BUCKETS_MS,
            registry=registry,
        )
        self._active_workers = Gauge(
            'active_workers', 'Request workers currently running', registry=registry
        )
        self._target_concurrency = Gauge(
            'target_concurrency', 'Size of the most recent ramp batch', registry=registry
        )
        self._ramp_steps = Counter(
            'ramp_steps_total', 'Ramp steps started by the orchestrator', registry=registry
        )

    def increment_requests(self):
        self._requests.inc()

    def increment_failures(self):
        self._failures.inc()

    def increment_status(self, label: str):
        self._status_codes.labels(status=label).inc()

    def observe_latency(self, ms: float):
        self._latency.observe(ms)

    def record(self, outcome: Outcome):
        """Apply a finished attempt. ``increment_requests`` must already have been called."""
        if isinstance(outcome, Failure):
            self.increment_failures()
            self.increment_status(ERROR_LABEL)
        else:
            self.increment_status(outcome.status_label)
            self.observe_latency(outcome.latency_ms)

    def worker_started(self):
        self._active_workers.inc()

    def worker_finished(self):
        self._active_workers.dec()

    def set_target_concurrency(self, count: int):
        self._target_concurrency.set(count)

    def increment_ramp_steps(self):
        self._ramp_steps.inc()

    def _value(self, name: str, labels=None) -> float:
        value = self.collector_registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def snapshot(self) -> ExposedMetrics:
        """Read every metric. Values are read one after another, not atomically."""
        status_codes = {}
        for family in self._status_codes.collect():
            for sample in family.samples:
                if sample.name.endswith('_total'):
                    status_codes[sample.labels['status']] = int(sample.value)
        return ExposedMetrics(
            requests_total=int(self._value('requests_total')),
            failed_requests_total=int(self._value('failed_requests_total')),
            status_codes=status_codes,
            latency_count=int(self._value('response_time_milliseconds_count')),
            latency_sum_ms=self._value('response_time_milliseconds_sum'),
            active_workers=int(self._value('active_workers')),
            target_concurrency=int(self._value('target_concurrency')),
            ramp_steps_total=int(self._value('ramp_steps_total')),
        )

    def exposition(self) -> bytes:
        """Serialize the registry in the Prometheus text format."""
        return generate_latest(self.collector_registry)
