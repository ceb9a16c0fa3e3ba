"""
============================================================================
Unit Tests - Withdrawal Queue Pipeline
============================================================================

Reliability Level: SOVEREIGN TIER

Tests the wiring of selector -> executor -> pool resync for one tick.
============================================================================
"""

import os
import sys
from datetime import timedelta
from unittest.mock import Mock

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.ledger.results import TransientError
from jobs.scheduler import RecurringJob
from jobs.withdrawal_queue_job import (
    JOB_NAME,
    WithdrawalQueuePipeline,
    build_withdrawal_queue_job,
)
from services.pool_snapshot_store import InMemoryPoolSnapshotStore
from services.withdrawal_config import WithdrawalPipelineConfig
from services.withdrawal_models import EligibilityQueryError
from services.withdrawal_queue_store import InMemoryWithdrawalQueueStore


DAY = 24 * 60 * 60


def build_pipeline(store, ledger, sleep, now, **config_overrides) -> WithdrawalQueuePipeline:
    config = WithdrawalPipelineConfig(**config_overrides)
    return WithdrawalQueuePipeline(
        queue_store=store,
        ledger_client=ledger,
        pool_store=InMemoryPoolSnapshotStore(),
        config=config,
        sleep=sleep,
        clock=lambda: now,
    )


class TestRunOnce:

    @pytest.mark.asyncio
    async def test_nothing_eligible_makes_no_ledger_calls(
        self, request_factory, fake_ledger, recording_sleep, base_time
    ) -> None:
        now = base_time + timedelta(hours=23)
        store = InMemoryWithdrawalQueueStore([request_factory(1)])
        fake_ledger.add(1)

        batch = await build_pipeline(store, fake_ledger, recording_sleep, now).run_once()

        assert batch.attempted == []
        assert batch.resynced is None
        assert fake_ledger.calls == []

    @pytest.mark.asyncio
    async def test_settles_then_resyncs_once(
        self, request_factory, fake_ledger, recording_sleep, base_time
    ) -> None:
        now = base_time + timedelta(days=2)
        store = InMemoryWithdrawalQueueStore([request_factory(i) for i in (3, 1, 2)])
        fake_ledger.add(1, 2, 3)

        pipeline = build_pipeline(store, fake_ledger, recording_sleep, now)
        batch = await pipeline.run_once()

        assert batch.submitted == [1, 2, 3]
        assert batch.resynced is True
        assert fake_ledger.ids("pool") == [None]
        assert fake_ledger.calls[-1] == ("pool", None)

    @pytest.mark.asyncio
    async def test_no_resync_when_everything_fails(
        self, request_factory, fake_ledger, recording_sleep, base_time
    ) -> None:
        now = base_time + timedelta(days=2)
        store = InMemoryWithdrawalQueueStore([request_factory(1), request_factory(2)])
        fake_ledger.add(2)
        fake_ledger.submit_overrides[2] = TransientError("busy")

        batch = await build_pipeline(store, fake_ledger, recording_sleep, now).run_once()

        assert batch.not_found == [1]
        assert batch.transient == [2]
        assert batch.resynced is None
        assert fake_ledger.ids("pool") == []

    @pytest.mark.asyncio
    async def test_explicit_now_overrides_clock(
        self, request_factory, fake_ledger, recording_sleep, base_time
    ) -> None:
        store = InMemoryWithdrawalQueueStore([request_factory(1)])
        fake_ledger.add(1)
        pipeline = build_pipeline(store, fake_ledger, recording_sleep, base_time)

        batch = await pipeline.run_once(now=base_time + timedelta(seconds=DAY))

        assert batch.submitted == [1]

    @pytest.mark.asyncio
    async def test_config_drives_delay_and_pacing(
        self, request_factory, fake_ledger, recording_sleep, base_time
    ) -> None:
        now = base_time + timedelta(minutes=10)
        store = InMemoryWithdrawalQueueStore([request_factory(1), request_factory(2)])
        fake_ledger.add(1, 2)

        batch = await build_pipeline(
            store, fake_ledger, recording_sleep, now,
            processing_delay_seconds=600, pacing_ms=250,
        ).run_once()

        assert batch.submitted == [1, 2]
        assert recording_sleep.delays == [0.25]

    @pytest.mark.asyncio
    async def test_selector_failure_propagates_before_any_call(
        self, fake_ledger, recording_sleep, base_time
    ) -> None:
        store = Mock()
        store.find_eligible.side_effect = RuntimeError("db down")

        pipeline = build_pipeline(store, fake_ledger, recording_sleep, base_time)
        with pytest.raises(EligibilityQueryError):
            await pipeline.run_once()

        assert fake_ledger.calls == []


class TestJobFactory:

    def test_builds_recurring_job_from_config(self, fake_ledger) -> None:
        pipeline = WithdrawalQueuePipeline(
            InMemoryWithdrawalQueueStore(),
            fake_ledger,
            InMemoryPoolSnapshotStore(),
            config=WithdrawalPipelineConfig(check_interval_seconds=120),
        )

        job = build_withdrawal_queue_job(pipeline)

        assert isinstance(job, RecurringJob)
        assert job.name == JOB_NAME
        assert job.interval_seconds == 120
