"""
Prometheus metrics for the sync service.

Metrics exposed:
- Sleeper API request counters by endpoint and outcome
- Sync run counters, durations and processed record counts
- Cache lookup counters by cache name and lookup state
- Integrity issue gauges from the latest audit
"""
from typing import Dict

from prometheus_client import Counter, Gauge, Histogram

# External API
sleeper_requests_total = Counter(
    "sleeper_requests_total",
    "Total Sleeper API requests",
    ["endpoint", "outcome"]
)

sleeper_request_duration_seconds = Histogram(
    "sleeper_request_duration_seconds",
    "Sleeper API request latency in seconds",
    ["endpoint"]
)

# Sync engine
sync_runs_total = Counter(
    "sync_runs_total",
    "Total full sync runs",
    ["outcome"]
)

sync_duration_seconds = Histogram(
    "sync_duration_seconds",
    "Full sync duration in seconds",
    buckets=(1, 5, 15, 30, 60, 120, 300, 600)
)

sync_records_processed_total = Counter(
    "sync_records_processed_total",
    "Records written or refreshed by sync",
    ["stage"]
)

sync_running = Gauge(
    "sync_running",
    "Whether a sync is currently running (1=running, 0=idle)"
)

# Caches
cache_lookups_total = Counter(
    "cache_lookups_total",
    "Cache lookups by resulting state",
    ["cache", "state"]
)

cache_refresh_failures_total = Counter(
    "cache_refresh_failures_total",
    "Failed cache refreshes",
    ["cache"]
)

# Integrity
integrity_issues = Gauge(
    "integrity_issues",
    "Issues found by the most recent integrity audit",
    ["issue"]
)


def record_sleeper_request(endpoint: str, success: bool, duration: float) -> None:
    """Record one Sleeper API call."""
    sleeper_requests_total.labels(endpoint=endpoint, outcome="success" if success else "failure").inc()
    sleeper_request_duration_seconds.labels(endpoint=endpoint).observe(duration)


def record_sync_run(success: bool, duration_seconds: float) -> None:
    """Record the outcome of a full sync."""
    sync_runs_total.labels(outcome="success" if success else "partial").inc()
    sync_duration_seconds.observe(duration_seconds)


def record_cache_lookup(cache: str, state: str) -> None:
    cache_lookups_total.labels(cache=cache, state=state).inc()


def update_integrity_metrics(counts: Dict[str, int]) -> None:
    """Publish audit counts, e.g. {'duplicate_records': 2}."""
    for issue, count in counts.items():
        integrity_issues.labels(issue=issue).set(count)
