"""
============================================================================
Withdrawal Settlement Pipeline
Prometheus Metrics
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- withdrawal_settlements_total: Per-request outcomes (submitted, not_found,
  transient, exhausted)
- withdrawal_ticks_total: Scheduler ticks by result (ok, error, skipped)
- withdrawal_pool_resync_total: Pool resync results (ok, failed)
- withdrawal_batch_duration_seconds: Wall time of one settlement batch
- withdrawal_last_batch_size: Number of eligible requests in the last tick

Metric recording never raises; a broken registry only produces a log line.

============================================================================
"""

import logging
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

SETTLEMENT_OUTCOMES = Counter(
    "withdrawal_settlements_total",
    "Withdrawal settlement attempts by outcome",
    ["outcome"]
)

SCHEDULER_TICKS = Counter(
    "withdrawal_ticks_total",
    "Recurring job ticks by result",
    ["job", "result"]
)

POOL_RESYNCS = Counter(
    "withdrawal_pool_resync_total",
    "Liquidity pool resync attempts by result",
    ["result"]
)

BATCH_DURATION = Histogram(
    "withdrawal_batch_duration_seconds",
    "Wall time of one withdrawal settlement batch",
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300]
)

LAST_BATCH_SIZE = Gauge(
    "withdrawal_last_batch_size",
    "Eligible withdrawal requests selected in the most recent tick"
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_settlement_outcome(outcome: str, correlation_id: Optional[str] = None) -> None:
    """
    Count one per-request settlement outcome.

    Args:
        outcome: submitted | not_found | transient | exhausted
        correlation_id: Optional tracking ID
    """
    try:
        SETTLEMENT_OUTCOMES.labels(outcome=outcome).inc()
        logger.debug(
            "Metric: settlement_outcome | outcome=%s | correlation_id=%s",
            outcome, correlation_id
        )
    except Exception as e:
        logger.error("[OBS-001] Failed to record settlement outcome | error=%s", str(e))


def record_tick(job: str, result: str) -> None:
    """Count one scheduler tick (ok | error | skipped)."""
    try:
        SCHEDULER_TICKS.labels(job=job, result=result).inc()
    except Exception as e:
        logger.error("[OBS-002] Failed to record tick | error=%s", str(e))


def record_pool_resync(success: bool) -> None:
    try:
        POOL_RESYNCS.labels(result="ok" if success else "failed").inc()
    except Exception as e:
        logger.error("[OBS-003] Failed to record pool resync | error=%s", str(e))


def record_batch(size: int, duration_seconds: float) -> None:
    """Record batch size and duration for one tick."""
    try:
        LAST_BATCH_SIZE.set(size)
        BATCH_DURATION.observe(duration_seconds)
    except Exception as e:
        logger.error("[OBS-004] Failed to record batch metrics | error=%s", str(e))
