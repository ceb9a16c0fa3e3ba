"""
============================================================================
Unit Tests - Recurring Job Scheduler
============================================================================

Reliability Level: SOVEREIGN TIER

Tests the RecurringJob timer:
- First tick fires immediately
- Ticks repeat at the configured interval
- Overlapping ticks are skipped (single-flight)
- Entry point exceptions never stop the schedule
- start/stop lifecycle
============================================================================
"""

import asyncio
import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from jobs.scheduler import RecurringJob


class TestInit:

    def test_rejects_zero_interval(self) -> None:
        with pytest.raises(ValueError):
            RecurringJob("job", 0, lambda: None)

    def test_rejects_negative_interval(self) -> None:
        with pytest.raises(ValueError):
            RecurringJob("job", -5, lambda: None)

    def test_properties(self) -> None:
        async def entry() -> None:
            return None

        job = RecurringJob("withdrawal-queue-tracker", 300, entry)
        assert job.name == "withdrawal-queue-tracker"
        assert job.interval_seconds == 300
        assert job.is_running is False


class TestTicks:

    @pytest.mark.asyncio
    async def test_first_tick_is_immediate(self) -> None:
        started = asyncio.Event()

        async def entry() -> None:
            started.set()

        job = RecurringJob("job", 3600, entry)
        await job.start()
        await asyncio.wait_for(started.wait(), timeout=1.0)
        await job.stop()

        assert job.completed_count == 1

    @pytest.mark.asyncio
    async def test_repeats_at_interval(self) -> None:
        runs = []

        async def entry() -> None:
            runs.append(1)

        job = RecurringJob("job", 0.02, entry)
        await job.start()
        await asyncio.sleep(0.15)
        await job.stop()

        assert len(runs) >= 3

    @pytest.mark.asyncio
    async def test_overlapping_ticks_are_skipped(self) -> None:
        active = 0
        max_active = 0
        release = asyncio.Event()

        async def entry() -> None:
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await release.wait()
            active -= 1

        job = RecurringJob("job", 0.01, entry)
        await job.start()
        await asyncio.sleep(0.1)

        assert job.in_flight is True
        assert job.skipped_count >= 2

        release.set()
        await job.stop()

        assert max_active == 1
        assert job.completed_count == 1

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_schedule(self) -> None:
        calls = []

        async def entry() -> None:
            calls.append(1)
            raise RuntimeError("tick failed")

        job = RecurringJob("job", 0.02, entry)
        await job.start()
        await asyncio.sleep(0.12)
        await job.stop()

        assert len(calls) >= 3
        assert job.error_count == len(calls)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_tick(self) -> None:
        finished = []

        async def entry() -> None:
            await asyncio.sleep(0.05)
            finished.append(1)

        job = RecurringJob("job", 3600, entry)
        await job.start()
        await asyncio.sleep(0.01)
        await job.stop()

        assert finished == [1]
        assert job.is_running is False

    @pytest.mark.asyncio
    async def test_double_start_and_stop_are_ignored(self) -> None:
        async def entry() -> None:
            return None

        job = RecurringJob("job", 3600, entry)
        await job.start()
        await job.start()
        assert job.is_running
        await job.stop()
        await job.stop()
        assert not job.is_running

    @pytest.mark.asyncio
    async def test_run_forever_stops_on_cancel(self) -> None:
        async def entry() -> None:
            return None

        job = RecurringJob("job", 3600, entry)
        task = asyncio.create_task(job.run_forever())
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert job.is_running is False
