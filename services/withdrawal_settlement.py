"""
============================================================================
Withdrawal Settlement Executor
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: All operations include correlation_id for audit

Settles eligible withdrawal requests against the ledger, strictly in the
order given, one at a time.

============================================================================
PER-REQUEST PROCEDURE:
============================================================================
1. Re-fetch the request from the ledger by request_id
   - NotFound       -> FAILED (NOT_FOUND_ON_LEDGER), never retried
   - TransientError -> transient path (4)
2. Submit the settlement instruction (provider, settlement key, destination)
3. Ok -> status stays QUEUED; completion is recorded by the external
   confirmation listener. submitted_at is stored and the request is held
   back for the confirmation grace window.
4. Anything else -> attempt_count += 1, next_attempt_at pushed out by
   exponential backoff, status stays QUEUED. Reaching max_attempts moves
   the request to FAILED (MAX_ATTEMPTS_EXCEEDED).
5. Pacing wait between consecutive requests.
============================================================================

One request's outcome never prevents the next request's attempt: every
ledger call is bounded by a timeout, every exception is classified, and
store write failures are logged and skipped.

ERROR CODES:
    - WDQ-001: Not found on ledger (permanent)
    - WDQ-002: Transient ledger failure
    - WDQ-003: Maximum attempts exceeded
    - WDQ-006: Queue store write failed

============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence
import asyncio
import logging
import time
import uuid

from app.ledger.backoff import ExponentialBackoff
from app.ledger.client import LedgerClient
from app.ledger.results import LedgerResult, NotFound, Ok, TransientError, describe
from app.observability.metrics import record_settlement_outcome
from services.withdrawal_models import (
    FailureReason,
    WithdrawalErrorCode,
    WithdrawalRequest,
    WithdrawalStatus,
)
from services.withdrawal_queue_store import WithdrawalQueueStore

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Outcome Types
# =============================================================================

class SettlementOutcome(Enum):
    """Classification of one settlement attempt."""
    SUBMITTED = "submitted"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class ItemResult:
    request_id: int
    outcome: SettlementOutcome
    detail: Optional[str] = None


@dataclass
class SettlementBatchResult:
    """
    Outcome of one batch (one scheduler tick).

    `attempted` preserves processing order.
    """
    correlation_id: str
    items: List[ItemResult] = field(default_factory=list)
    duration_seconds: float = 0.0
    resynced: Optional[bool] = None

    @property
    def attempted(self) -> List[int]:
        return [item.request_id for item in self.items]

    def _ids(self, outcome: SettlementOutcome) -> List[int]:
        return [item.request_id for item in self.items if item.outcome == outcome]

    @property
    def submitted(self) -> List[int]:
        return self._ids(SettlementOutcome.SUBMITTED)

    @property
    def not_found(self) -> List[int]:
        return self._ids(SettlementOutcome.NOT_FOUND)

    @property
    def transient(self) -> List[int]:
        return self._ids(SettlementOutcome.TRANSIENT)

    @property
    def exhausted(self) -> List[int]:
        return self._ids(SettlementOutcome.EXHAUSTED)

    @property
    def success_count(self) -> int:
        return len(self.submitted)

    @property
    def failure_count(self) -> int:
        return len(self.items) - self.success_count


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# SettlementExecutor Class
# =============================================================================

class SettlementExecutor:
    """
    Settles withdrawal requests one at a time against the ledger.

    Reliability Level: L6 Critical (Sovereign Tier)
    Side Effects: Ledger submissions, queue store writes, metrics
    """

    def __init__(
        self,
        queue_store: WithdrawalQueueStore,
        ledger_client: LedgerClient,
        ledger_timeout_seconds: float = 30.0,
        pacing_seconds: float = 1.0,
        max_attempts: int = 10,
        backoff: Optional[ExponentialBackoff] = None,
        confirmation_grace_seconds: int = 900,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """
        Args:
            queue_store: Withdrawal record store
            ledger_client: Ledger facade
            ledger_timeout_seconds: Upper bound on each ledger call
            pacing_seconds: Wait between consecutive requests
            max_attempts: Transient failures tolerated before FAILED
            backoff: Retry delay policy (default: 60s base, 1h cap)
            confirmation_grace_seconds: Hold-off after an accepted submission
            sleep: Awaitable sleep (injected in tests)
            clock: UTC clock (injected in tests)
        """
        if max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got: {max_attempts}")
        if ledger_timeout_seconds <= 0:
            raise ValueError(
                f"ledger_timeout_seconds must be positive, got: {ledger_timeout_seconds}"
            )

        self._queue_store = queue_store
        self._ledger = ledger_client
        self._timeout = ledger_timeout_seconds
        self._pacing_seconds = max(pacing_seconds, 0.0)
        self._max_attempts = max_attempts
        self._backoff = backoff or ExponentialBackoff()
        self._grace = timedelta(seconds=confirmation_grace_seconds)
        self._sleep = sleep
        self._clock = clock

    # =========================================================================
    # Batch
    # =========================================================================

    async def execute(
        self,
        requests: Sequence[WithdrawalRequest],
        correlation_id: Optional[str] = None,
    ) -> SettlementBatchResult:
        """
        Settle every request exactly once, in the given order.

        Args:
            requests: Eligible requests, already sorted by request_id
            correlation_id: Batch-level audit trail identifier

        Returns:
            SettlementBatchResult with one ItemResult per request
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        batch = SettlementBatchResult(correlation_id=correlation_id)
        start = time.monotonic()

        for index, request in enumerate(requests):
            item = await self.settle_one(request, correlation_id)
            batch.items.append(item)
            record_settlement_outcome(item.outcome.value, correlation_id)

            if self._pacing_seconds > 0 and index < len(requests) - 1:
                await self._sleep(self._pacing_seconds)

        batch.duration_seconds = time.monotonic() - start

        logger.info(
            f"[WITHDRAWAL-EXECUTOR] Batch complete | "
            f"attempted={len(batch.items)} | submitted={len(batch.submitted)} | "
            f"not_found={len(batch.not_found)} | transient={len(batch.transient)} | "
            f"exhausted={len(batch.exhausted)} | "
            f"duration={batch.duration_seconds:.2f}s | correlation_id={correlation_id}"
        )
        return batch

    # =========================================================================
    # Single Request
    # =========================================================================

    async def settle_one(
        self,
        request: WithdrawalRequest,
        batch_correlation_id: Optional[str] = None,
    ) -> ItemResult:
        """
        Verify, submit and classify one withdrawal request.

        Never raises: every failure is classified into an ItemResult.
        """
        correlation_id = str(uuid.uuid4())

        logger.info(
            f"[WITHDRAWAL-EXECUTOR] Processing withdrawal request | "
            f"request_id={request.request_id} | provider={request.provider} | "
            f"lp_amount={request.lp_amount} | attempt_count={request.attempt_count} | "
            f"batch_correlation_id={batch_correlation_id} | correlation_id={correlation_id}"
        )

        fetched = await self._call(
            lambda: self._ledger.get_withdrawal_request(request.request_id)
        )

        if isinstance(fetched, NotFound):
            return self._handle_not_found(request, fetched, correlation_id)
        if isinstance(fetched, TransientError):
            return self._handle_transient(request, fetched, correlation_id)

        ledger_request = fetched.value
        submitted = await self._call(
            lambda: self._ledger.submit_withdrawal_settlement(
                ledger_request.provider,
                ledger_request.settlement_key,
                ledger_request.destination_account_ref,
            )
        )

        if isinstance(submitted, Ok):
            return self._handle_submitted(request, submitted, correlation_id)

        # Submission failures are always retryable, including a NotFound
        # racing with another settlement path.
        if isinstance(submitted, NotFound):
            submitted = TransientError(reason=f"settlement rejected: {submitted.reason}")
        return self._handle_transient(request, submitted, correlation_id)

    async def _call(self, make_call: Callable[[], Awaitable[LedgerResult]]) -> LedgerResult:
        """
        Run one ledger call under the per-call timeout.

        Timeouts, exceptions and malformed results all become TransientError.
        """
        try:
            result = await asyncio.wait_for(make_call(), timeout=self._timeout)
        except asyncio.TimeoutError:
            return TransientError(reason=f"ledger call timed out after {self._timeout}s")
        except Exception as e:
            return TransientError(reason=f"{type(e).__name__}: {str(e)[:200]}")

        if not isinstance(result, (Ok, NotFound, TransientError)):
            return TransientError(reason=f"unexpected ledger result: {result!r}"[:200])
        return result

    # =========================================================================
    # Outcome Handlers
    # =========================================================================

    def _handle_submitted(
        self,
        request: WithdrawalRequest,
        result: Ok,
        correlation_id: str,
    ) -> ItemResult:
        now = self._clock()
        try:
            recorded = self._queue_store.record_submission(
                request.request_id,
                submitted_at=now,
                next_attempt_at=now + self._grace,
                correlation_id=correlation_id,
            )
            if not recorded:
                logger.warning(
                    f"[WITHDRAWAL-EXECUTOR] Request no longer QUEUED after submission | "
                    f"request_id={request.request_id} | correlation_id={correlation_id}"
                )
        except Exception as e:
            logger.error(
                f"[{WithdrawalErrorCode.STORE_WRITE_FAILED}] Failed to record submission | "
                f"request_id={request.request_id} | error={str(e)} | "
                f"correlation_id={correlation_id}"
            )

        logger.info(
            f"[WITHDRAWAL-EXECUTOR] Withdrawal request submitted | "
            f"request_id={request.request_id} | signature={result.value} | "
            f"awaiting ledger confirmation | correlation_id={correlation_id}"
        )
        return ItemResult(request.request_id, SettlementOutcome.SUBMITTED, str(result.value))

    def _handle_not_found(
        self,
        request: WithdrawalRequest,
        result: NotFound,
        correlation_id: str,
    ) -> ItemResult:
        logger.error(
            f"[{WithdrawalErrorCode.NOT_FOUND_ON_LEDGER}] Withdrawal request not found on ledger | "
            f"request_id={request.request_id} | provider={request.provider} | "
            f"submitted_at={request.submitted_at.isoformat() if request.submitted_at else None} | "
            f"correlation_id={correlation_id}"
        )
        if request.submitted_at is not None:
            # The ledger may have consumed our own submission; a late
            # confirmation for this request will be refused once FAILED
            logger.warning(
                f"[{WithdrawalErrorCode.NOT_FOUND_ON_LEDGER}] Previously submitted request "
                f"missing from ledger, confirmation may be late | "
                f"request_id={request.request_id} | "
                f"submitted_at={request.submitted_at.isoformat()} | "
                f"correlation_id={correlation_id}"
            )
        self._mark_failed(request, FailureReason.NOT_FOUND_ON_LEDGER, correlation_id)
        return ItemResult(request.request_id, SettlementOutcome.NOT_FOUND, describe(result))

    def _handle_transient(
        self,
        request: WithdrawalRequest,
        result: TransientError,
        correlation_id: str,
    ) -> ItemResult:
        attempt = request.attempt_count + 1
        detail = describe(result)

        if attempt >= self._max_attempts:
            logger.error(
                f"[{WithdrawalErrorCode.MAX_ATTEMPTS_EXCEEDED}] Settlement attempts exhausted | "
                f"request_id={request.request_id} | attempts={attempt} | "
                f"last_error={detail} | correlation_id={correlation_id}"
            )
            self._mark_failed(request, FailureReason.MAX_ATTEMPTS_EXCEEDED, correlation_id)
            return ItemResult(request.request_id, SettlementOutcome.EXHAUSTED, detail)

        delay = self._backoff.delay_for(attempt)
        next_attempt_at = self._clock() + timedelta(seconds=delay)

        logger.warning(
            f"[{WithdrawalErrorCode.TRANSIENT_LEDGER_FAILURE}] Transient settlement failure | "
            f"request_id={request.request_id} | attempt={attempt}/{self._max_attempts} | "
            f"retry_in={delay:.0f}s | error={detail} | correlation_id={correlation_id}"
        )

        try:
            self._queue_store.record_transient_failure(
                request.request_id,
                attempt_count=attempt,
                next_attempt_at=next_attempt_at,
                error=detail,
                correlation_id=correlation_id,
            )
        except Exception as e:
            logger.error(
                f"[{WithdrawalErrorCode.STORE_WRITE_FAILED}] Failed to record transient failure | "
                f"request_id={request.request_id} | error={str(e)} | "
                f"correlation_id={correlation_id}"
            )

        return ItemResult(request.request_id, SettlementOutcome.TRANSIENT, detail)

    def _mark_failed(
        self,
        request: WithdrawalRequest,
        reason: str,
        correlation_id: str,
    ) -> None:
        try:
            self._queue_store.update_status(
                request.request_id,
                WithdrawalStatus.FAILED,
                reason=reason,
                correlation_id=correlation_id,
            )
        except Exception as e:
            logger.error(
                f"[{WithdrawalErrorCode.STORE_WRITE_FAILED}] Failed to mark request FAILED | "
                f"request_id={request.request_id} | reason={reason} | error={str(e)} | "
                f"correlation_id={correlation_id}"
            )


__all__ = [
    "SettlementExecutor",
    "SettlementOutcome",
    "SettlementBatchResult",
    "ItemResult",
]
