"""Prometheus metrics for the GPU initializer."""

from prometheus_client import Counter, Histogram, start_http_server


class InitializerMetrics:
    """Prometheus metrics collector for the GPU initializer."""

    def __init__(self):
        self.pods_initialized = Counter(
            "gpu_initializer_pods_initialized_total", "Pods released from this initializer", ["outcome"]
        )

        self.events_skipped = Counter(
            "gpu_initializer_events_skipped_total", "Pod events not addressed to this initializer", ["reason"]
        )

        self.errors_total = Counter("gpu_initializer_errors_total", "Total per-pod errors", ["error_type"])

        self.patch_duration = Histogram(
            "gpu_initializer_patch_duration_seconds",
            "Pod patch request latency in seconds",
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10],
        )

    def record_initialized(self, ignored: bool):
        """Record a pod released from the pending queue."""
        self.pods_initialized.labels(outcome="ignored" if ignored else "mutated").inc()

    def record_skipped(self, reason: str):
        self.events_skipped.labels(reason=reason).inc()

    def record_error(self, error_type: str):
        """Record per-pod error."""
        self.errors_total.labels(error_type=error_type).inc()

    def observe_patch(self, seconds: float):
        self.patch_duration.observe(seconds)

    def start_metrics_server(self, port: int = 8081):
        """Start Prometheus metrics HTTP server."""
        start_http_server(port)


# Global metrics instance
metrics = InitializerMetrics()
