"""Prometheus metrics for outbound credential-pool traffic."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


# ── Upstream calls ───────────────────────────────────────────
UPSTREAM_ATTEMPTS = Counter(
    "chatpool_upstream_attempts_total",
    "Upstream completion calls by classified outcome",
    ["provider", "tier", "outcome"],
)

UPSTREAM_LATENCY = Histogram(
    "chatpool_upstream_latency_seconds",
    "Upstream completion call latency",
    ["provider", "tier"],
    buckets=(0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

# ── Failover ─────────────────────────────────────────────────
TIER_ESCALATIONS = Counter(
    "chatpool_tier_escalations_total",
    "Logical requests that fell back to a lower model tier",
    ["provider", "from_tier", "to_tier"],
)

POOL_EXHAUSTED = Counter(
    "chatpool_pool_exhausted_total",
    "Logical requests that ended with no usable credential",
    ["provider"],
)

# ── Pool state ───────────────────────────────────────────────
BUSY_CREDENTIALS = Gauge(
    "chatpool_busy_credentials",
    "Credentials currently cooling down or in flight",
    ["provider"],
)
