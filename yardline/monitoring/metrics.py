"""
Prometheus Metrics

Counters for batching, extraction, the audit gate and rego resolution.
"""

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

# Singleton metrics instance
_metrics: "Metrics | None" = None


class Metrics:
    """
    Prometheus metrics for the yard chat pipeline.

    Tracks:
    - batch releases and their size
    - extracted and audit-dropped actions
    - stage failures
    - rego resolution decisions
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.batches_released_total = Counter(
            "yardline_batches_released_total",
            "Batches handed to the pipeline",
            ["reason"],  # timer | cap | flush
            registry=registry,
        )

        self.batch_size_messages = Histogram(
            "yardline_batch_size_messages",
            "Messages per released batch",
            buckets=[1, 2, 5, 10, 20, 50, 100],
            registry=registry,
        )

        self.actions_extracted_total = Counter(
            "yardline_actions_extracted_total",
            "Actions extracted before the audit gate",
            ["action_type"],
            registry=registry,
        )

        self.actions_dropped_total = Counter(
            "yardline_actions_dropped_total",
            "Actions removed by the audit gate",
            ["action_type"],
            registry=registry,
        )

        self.stage_failures_total = Counter(
            "yardline_stage_failures_total",
            "Pipeline stage calls that fell back to empty output",
            ["stage"],
            registry=registry,
        )

        self.extraction_duration_seconds = Histogram(
            "yardline_extraction_duration_seconds",
            "End-to-end extraction duration in seconds",
            buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
            registry=registry,
        )

        self.resolution_decisions_total = Counter(
            "yardline_resolution_decisions_total",
            "Rego resolution outcomes",
            ["decision"],
            registry=registry,
        )

    def track_batch_released(self, reason: str, size: int) -> None:
        self.batches_released_total.labels(reason=reason).inc()
        self.batch_size_messages.observe(size)

    def track_actions(self, extracted: list, dropped: list) -> None:
        for action in extracted:
            self.actions_extracted_total.labels(action_type=action.type).inc()
        for action in dropped:
            self.actions_dropped_total.labels(action_type=action.type).inc()

    def track_stage_failure(self, stage: str) -> None:
        self.stage_failures_total.labels(stage=stage).inc()

    def track_extraction_duration(self, seconds: float) -> None:
        self.extraction_duration_seconds.observe(seconds)

    def track_resolution(self, decision: str) -> None:
        self.resolution_decisions_total.labels(decision=decision).inc()


def get_metrics() -> Metrics:
    """Get or create the singleton metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = Metrics()
    return _metrics
