"""Webhook pipeline metrics for Prometheus monitoring."""
from prometheus_client import Counter, Histogram

# Intake metrics
webhooks_received_total = Counter(
    "webhooks_received_total",
    "Total webhook deliveries logged",
    labelnames=["endpoint_type", "status"],  # status: success, signature_failed, fetch_failed, invalid
)

webhooks_filtered_total = Counter(
    "webhooks_filtered_total",
    "Total webhook deliveries dropped by a resource or event type filter",
    labelnames=["endpoint_type"],
)

# Forwarding metrics
forwarding_attempts_total = Counter(
    "forwarding_attempts_total",
    "Total forwarding attempts",
    labelnames=["outcome"],  # success, http_error, timeout, transport_error
)

forwarding_duration_seconds = Histogram(
    "forwarding_duration_seconds",
    "Forwarding duration in seconds, redirect hop included",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

# Replay metrics
webhook_replays_total = Counter(
    "webhook_replays_total",
    "Total manual replays",
    labelnames=["target_type", "success"],
)
