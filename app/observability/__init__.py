"""
============================================================================
Withdrawal Settlement Pipeline
Observability Module - Prometheus Metrics
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Side Effects: Exposes Prometheus metrics

============================================================================
"""

from app.observability.metrics import (
    SETTLEMENT_OUTCOMES,
    SCHEDULER_TICKS,
    POOL_RESYNCS,
    BATCH_DURATION,
    LAST_BATCH_SIZE,
    record_settlement_outcome,
    record_tick,
    record_pool_resync,
    record_batch,
)

__all__ = [
    "SETTLEMENT_OUTCOMES",
    "SCHEDULER_TICKS",
    "POOL_RESYNCS",
    "BATCH_DURATION",
    "LAST_BATCH_SIZE",
    "record_settlement_outcome",
    "record_tick",
    "record_pool_resync",
    "record_batch",
]
