"""
============================================================================
Withdrawal Queue Tracker - Scheduled Settlement Job
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: Each run carries a batch correlation_id through every stage

One run of the pipeline:
    1. EligibilitySelector   -> queued requests past the cooling-off delay
    2. SettlementExecutor    -> settle each one, in order, paced
    3. PoolResynchronizer    -> refresh the pool snapshot if anything settled

An EligibilityQueryError aborts the run before any mutation and propagates
to the scheduler, which logs it and tries again on the next tick.

============================================================================
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
import asyncio
import logging
import uuid

from app.ledger.backoff import ExponentialBackoff
from app.ledger.client import LedgerClient
from app.observability.metrics import record_batch
from jobs.scheduler import RecurringJob
from services.pool_resync import PoolResynchronizer
from services.pool_snapshot_store import PoolSnapshotStore
from services.withdrawal_config import WithdrawalPipelineConfig
from services.withdrawal_eligibility import EligibilitySelector
from services.withdrawal_models import ensure_utc
from services.withdrawal_queue_store import WithdrawalQueueStore
from services.withdrawal_settlement import SettlementBatchResult, SettlementExecutor

# Configure module logger
logger = logging.getLogger(__name__)

JOB_NAME = "withdrawal-queue-tracker"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WithdrawalQueuePipeline:
    """
    Selector, executor and pool resync wired together for one tick.

    All collaborators are injected; nothing here reaches for globals.
    """

    def __init__(
        self,
        queue_store: WithdrawalQueueStore,
        ledger_client: LedgerClient,
        pool_store: PoolSnapshotStore,
        config: Optional[WithdrawalPipelineConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._config = config or WithdrawalPipelineConfig()
        self._clock = clock

        self.selector = EligibilitySelector(
            queue_store,
            processing_delay_seconds=self._config.processing_delay_seconds,
        )
        self.executor = SettlementExecutor(
            queue_store,
            ledger_client,
            ledger_timeout_seconds=self._config.ledger_timeout_seconds,
            pacing_seconds=self._config.pacing_seconds,
            max_attempts=self._config.max_attempts,
            backoff=ExponentialBackoff(
                base_delay=self._config.backoff_base_seconds,
                max_delay=self._config.backoff_max_seconds,
            ),
            confirmation_grace_seconds=self._config.confirmation_grace_seconds,
            sleep=sleep,
            clock=clock,
        )
        self.resynchronizer = PoolResynchronizer(
            ledger_client,
            pool_store,
            pool_address=self._config.pool_address,
            ledger_timeout_seconds=self._config.ledger_timeout_seconds,
        )

    @property
    def config(self) -> WithdrawalPipelineConfig:
        return self._config

    async def run_once(self, now: Optional[datetime] = None) -> SettlementBatchResult:
        """
        Run one settlement batch.

        Args:
            now: Evaluation time for eligibility (default: injected clock)

        Returns:
            SettlementBatchResult for this run (empty when nothing is eligible)

        Raises:
            EligibilityQueryError: If the queue store cannot be read
        """
        correlation_id = str(uuid.uuid4())
        now = ensure_utc(now) if now is not None else self._clock()

        logger.info(
            f"[WITHDRAWAL-QUEUE] Checking for withdrawal requests to process | "
            f"now={now.isoformat()} | correlation_id={correlation_id}"
        )

        eligible = self.selector.select(now=now, correlation_id=correlation_id)

        if not eligible:
            logger.info(
                f"[WITHDRAWAL-QUEUE] No withdrawal requests ready for processing | "
                f"correlation_id={correlation_id}"
            )
            batch = SettlementBatchResult(correlation_id=correlation_id)
            record_batch(0, 0.0)
            return batch

        logger.info(
            f"[WITHDRAWAL-QUEUE] Found withdrawal requests ready for processing | "
            f"count={len(eligible)} | first={eligible[0].request_id} | "
            f"last={eligible[-1].request_id} | correlation_id={correlation_id}"
        )

        batch = await self.executor.execute(eligible, correlation_id)
        batch.resynced = await self.resynchronizer.resync_if_needed(
            batch.success_count, correlation_id
        )
        record_batch(len(batch.items), batch.duration_seconds)

        logger.info(
            f"[WITHDRAWAL-QUEUE] Withdrawal queue processing completed | "
            f"successful={batch.success_count} | failed={batch.failure_count} | "
            f"resynced={batch.resynced} | correlation_id={correlation_id}"
        )
        return batch

    async def tick(self) -> None:
        """Scheduler entry point."""
        await self.run_once()


def build_withdrawal_queue_job(pipeline: WithdrawalQueuePipeline) -> RecurringJob:
    """Wrap a pipeline in a RecurringJob using its configured interval."""
    return RecurringJob(
        JOB_NAME,
        pipeline.config.check_interval_seconds,
        pipeline.tick,
    )


__all__ = [
    "JOB_NAME",
    "WithdrawalQueuePipeline",
    "build_withdrawal_queue_job",
]
