"""
============================================================================
Recurring Job Scheduler - Fixed-Interval Background Timer
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: Every tick logs the job name and a tick correlation_id

A RecurringJob invokes its entry point once immediately and then every
`interval_seconds`, until stop() is called or the process exits.

SINGLE-FLIGHT GUARD:
    Ticks fire on a fixed cadence. If the previous invocation is still
    running when a tick fires, that tick is skipped (logged and counted),
    so two invocations never interleave.

FAILURE POLICY:
    Exceptions from the entry point are logged and never stop the schedule.
    The next tick runs on time.

============================================================================
"""

from typing import Any, Awaitable, Callable, Optional
import asyncio
import logging
import uuid

from app.observability.metrics import record_tick

# Configure module logger
logger = logging.getLogger(__name__)


class RecurringJob:
    """
    Fixed-interval async job runner with an overlap guard.

    Example Usage:
        job = RecurringJob("withdrawal-queue-tracker", 300, pipeline.run_once)
        await job.start()
        ...
        await job.stop()
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        entry_point: Callable[[], Awaitable[Any]],
    ) -> None:
        """
        Args:
            name: Job name used in logs and metrics
            interval_seconds: Seconds between tick starts (must be positive)
            entry_point: Coroutine function invoked on every tick
        """
        if interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be positive, got: {interval_seconds}"
            )

        self._name = name
        self._interval_seconds = interval_seconds
        self._entry_point = entry_point
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._in_flight = False

        self.tick_count = 0
        self.completed_count = 0
        self.error_count = 0
        self.skipped_count = 0

        logger.info(
            f"[SCHEDULER] Job registered | name={name} | "
            f"interval_seconds={interval_seconds}"
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def start(self) -> None:
        """Start the timer loop; the first tick fires immediately."""
        if self._running:
            logger.warning(f"[SCHEDULER] {self._name} already running, ignoring start request")
            return

        self._running = True
        self._loop_task = asyncio.create_task(self._run_loop())
        logger.info(f"[SCHEDULER] Started | name={self._name}")

    async def stop(self) -> None:
        """
        Stop the timer loop and wait for an in-flight tick to finish.
        """
        if not self._running:
            logger.warning(f"[SCHEDULER] {self._name} not running, ignoring stop request")
            return

        self._running = False

        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._tick_task is not None and not self._tick_task.done():
            logger.info(f"[SCHEDULER] Waiting for in-flight tick | name={self._name}")
            await asyncio.gather(self._tick_task, return_exceptions=True)
        self._tick_task = None

        logger.info(
            f"[SCHEDULER] Stopped | name={self._name} | ticks={self.tick_count} | "
            f"skipped={self.skipped_count} | errors={self.error_count}"
        )

    async def run_forever(self) -> None:
        """Start and block until cancelled."""
        await self.start()
        try:
            while self._running:
                await asyncio.sleep(1)
        finally:
            if self._running:
                await self.stop()

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time()

        while self._running:
            self._fire()

            # Fixed cadence measured from tick starts, not completions
            next_run += self._interval_seconds
            delay = next_run - loop.time()
            if delay < 0:
                # Fell behind (e.g. suspended host); realign to now
                next_run = loop.time()
                delay = 0
            await asyncio.sleep(delay)

    def _fire(self) -> None:
        self.tick_count += 1

        if self._in_flight:
            self.skipped_count += 1
            record_tick(self._name, "skipped")
            logger.warning(
                f"[SCHEDULER] Previous tick still running, skipping | "
                f"name={self._name} | tick={self.tick_count}"
            )
            return

        self._in_flight = True
        self._tick_task = asyncio.create_task(self._tick(self.tick_count))

    async def _tick(self, tick_number: int) -> None:
        correlation_id = str(uuid.uuid4())
        logger.debug(
            f"[SCHEDULER] Tick start | name={self._name} | tick={tick_number} | "
            f"correlation_id={correlation_id}"
        )
        try:
            await self._entry_point()
            self.completed_count += 1
            record_tick(self._name, "ok")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_count += 1
            record_tick(self._name, "error")
            logger.error(
                f"[SCHEDULER] Tick failed | name={self._name} | tick={tick_number} | "
                f"error={type(e).__name__}: {str(e)} | correlation_id={correlation_id}"
            )
        finally:
            self._in_flight = False


__all__ = ["RecurringJob"]
