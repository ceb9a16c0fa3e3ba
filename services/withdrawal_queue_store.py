"""
============================================================================
Withdrawal Queue Store - Durable Withdrawal Request Records
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: Every status transition writes an audit log entry

The queue store exclusively owns WithdrawalRequest records. It is the
single source of truth for what remains to be settled; the pipeline keeps
no state across ticks.

IMPLEMENTATIONS:
    - SqlWithdrawalQueueStore: SQLAlchemy session over withdrawal_requests
    - InMemoryWithdrawalQueueStore: Process-local store for dry runs

INVARIANTS:
    - find_eligible() is ordered by ascending request_id and has no side effects
    - Status only advances forward (validated by the state machine)
    - Every write is a single-row update keyed by request_id
    - Records are never deleted

ERROR CODES:
    - WDQ-005: Eligibility query failed
    - WDQ-006: Queue store write failed
    - WDQ-030: Invalid status transition

============================================================================
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import json
import logging
import uuid

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, bindparam, text
from sqlalchemy.exc import SQLAlchemyError

from services.withdrawal_models import (
    FAILURE_ERROR_CODES,
    EligibilityQueryError,
    InvalidStatusTransitionError,
    UnknownWithdrawalRequestError,
    WithdrawalErrorCode,
    WithdrawalRequest,
    WithdrawalStatus,
    ensure_utc,
)
from services.withdrawal_state_machine import validate_transition

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Store Interface
# =============================================================================

class WithdrawalQueueStore(ABC):
    """
    Queue store interface consumed by the settlement pipeline.

    The eligibility selector reads through find_eligible(); the settlement
    executor writes through update_status(), record_submission() and
    record_transient_failure(). An external confirmation collaborator
    records COMPLETED through update_status().
    """

    @abstractmethod
    def enqueue(self, request: WithdrawalRequest) -> None:
        """Insert a new QUEUED request."""

    @abstractmethod
    def get(self, request_id: int) -> Optional[WithdrawalRequest]:
        """Fetch a single request, or None."""

    @abstractmethod
    def find_eligible(self, now: datetime, delay_seconds: int) -> List[WithdrawalRequest]:
        """
        All QUEUED requests with requested_at <= now - delay whose retry
        backoff has expired, ascending by request_id.

        Raises:
            EligibilityQueryError: If the store cannot be read
        """

    @abstractmethod
    def update_status(
        self,
        request_id: int,
        status: WithdrawalStatus,
        reason: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> WithdrawalRequest:
        """
        Advance a request to `status`.

        Raises:
            UnknownWithdrawalRequestError: If request_id is unknown
            InvalidStatusTransitionError: If the transition is not forward
        """

    @abstractmethod
    def record_submission(
        self,
        request_id: int,
        submitted_at: datetime,
        next_attempt_at: Optional[datetime],
        correlation_id: Optional[str] = None,
    ) -> bool:
        """
        Record an accepted settlement submission on a QUEUED request.

        Returns:
            False if the request is no longer QUEUED
        """

    @abstractmethod
    def record_transient_failure(
        self,
        request_id: int,
        attempt_count: int,
        next_attempt_at: Optional[datetime],
        error: str,
        correlation_id: Optional[str] = None,
    ) -> bool:
        """
        Persist the retry counter and backoff for a QUEUED request.

        Returns:
            False if the request is no longer QUEUED
        """


def _status_value(status: Any) -> str:
    if isinstance(status, WithdrawalStatus):
        return status.value
    return str(status)


def _failure_error_code(status: str, reason: Optional[str]) -> Optional[str]:
    """Audit error code for a FAILED transition with a known reason."""
    if status != WithdrawalStatus.FAILED.value:
        return None
    return FAILURE_ERROR_CODES.get(reason)


# =============================================================================
# SQL Store
# =============================================================================

_REQUEST_COLUMNS = (
    "request_id, provider, lp_amount, status, requested_at, provider_account_ref, "
    "attempt_count, next_attempt_at, last_error, submitted_at, failure_reason, updated_at"
)

# Result types for textual selects; timestamps must come back as datetimes
# on every dialect (sqlite stores them as text).
_REQUEST_TYPES: Dict[str, Any] = {
    "request_id": BigInteger,
    "provider": String,
    "lp_amount": BigInteger,
    "status": String,
    "requested_at": DateTime(timezone=True),
    "provider_account_ref": String,
    "attempt_count": Integer,
    "next_attempt_at": DateTime(timezone=True),
    "last_error": Text,
    "submitted_at": DateTime(timezone=True),
    "failure_reason": String,
    "updated_at": DateTime(timezone=True),
}


def _ts(*names: str) -> List[Any]:
    return [bindparam(name, type_=DateTime(timezone=True)) for name in names]


class SqlWithdrawalQueueStore(WithdrawalQueueStore):
    """
    Withdrawal queue backed by the withdrawal_requests table.

    Reliability Level: L6 Critical (Sovereign Tier)
    Input Constraints: Valid SQLAlchemy session required
    Side Effects: Database reads/writes, audit log inserts
    """

    def __init__(self, db_session: Any) -> None:
        self._db_session = db_session

    def _execute(self, query: Any, params: Dict[str, Any]) -> Any:
        # A failed statement poisons the transaction; roll back so the next
        # request in the batch starts clean.
        try:
            return self._db_session.execute(query, params)
        except SQLAlchemyError:
            self._db_session.rollback()
            raise

    def _commit(self) -> None:
        try:
            self._db_session.commit()
        except SQLAlchemyError:
            self._db_session.rollback()
            raise

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, request_id: int) -> Optional[WithdrawalRequest]:
        query = text(
            f"SELECT {_REQUEST_COLUMNS} FROM withdrawal_requests "
            f"WHERE request_id = :request_id"
        ).columns(**_REQUEST_TYPES)

        row = self._execute(query, {"request_id": request_id}).mappings().first()
        if row is None:
            return None
        return WithdrawalRequest.from_dict(dict(row))

    def find_eligible(self, now: datetime, delay_seconds: int) -> List[WithdrawalRequest]:
        now = ensure_utc(now)
        threshold = now - timedelta(seconds=delay_seconds)

        query = text(f"""
            SELECT {_REQUEST_COLUMNS}
            FROM withdrawal_requests
            WHERE status = :status
              AND requested_at <= :threshold
              AND (next_attempt_at IS NULL OR next_attempt_at <= :now)
            ORDER BY request_id ASC
        """).bindparams(*_ts("threshold", "now")).columns(**_REQUEST_TYPES)

        try:
            rows = self._execute(query, {
                "status": WithdrawalStatus.QUEUED.value,
                "threshold": threshold,
                "now": now,
            }).mappings().all()
        except SQLAlchemyError as e:
            logger.error(
                f"[{WithdrawalErrorCode.ELIGIBILITY_QUERY_FAILED}] "
                f"Eligibility query failed | error={str(e)}"
            )
            self._db_session.rollback()
            raise EligibilityQueryError(f"Eligibility query failed: {e}") from e

        return [WithdrawalRequest.from_dict(dict(row)) for row in rows]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def enqueue(self, request: WithdrawalRequest) -> None:
        query = text("""
            INSERT INTO withdrawal_requests (
                request_id, provider, lp_amount, status, requested_at,
                provider_account_ref, attempt_count, updated_at
            ) VALUES (
                :request_id, :provider, :lp_amount, :status, :requested_at,
                :provider_account_ref, 0, :updated_at
            )
        """).bindparams(*_ts("requested_at", "updated_at"))

        self._execute(query, {
            "request_id": request.request_id,
            "provider": request.provider,
            "lp_amount": request.lp_amount,
            "status": WithdrawalStatus.QUEUED.value,
            "requested_at": ensure_utc(request.requested_at),
            "provider_account_ref": request.provider_account_ref,
            "updated_at": datetime.now(timezone.utc),
        })
        self._commit()

    def update_status(
        self,
        request_id: int,
        status: WithdrawalStatus,
        reason: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> WithdrawalRequest:
        target = _status_value(status)
        current = self.get(request_id)
        if current is None:
            raise UnknownWithdrawalRequestError(request_id)

        is_valid, _ = validate_transition(current.status, target, correlation_id)
        if not is_valid:
            raise InvalidStatusTransitionError(
                f"request_id={request_id}: {current.status} → {target}"
            )

        now = datetime.now(timezone.utc)
        failure_reason = reason if target == WithdrawalStatus.FAILED.value else None

        # Compare-and-set on the observed status so a concurrent writer
        # (the confirmation listener) is never overwritten.
        query = text("""
            UPDATE withdrawal_requests
            SET status = :status,
                failure_reason = COALESCE(:failure_reason, failure_reason),
                last_error = COALESCE(:last_error, last_error),
                updated_at = :updated_at
            WHERE request_id = :request_id
              AND status = :expected_status
        """).bindparams(*_ts("updated_at"))

        result = self._execute(query, {
            "status": target,
            "failure_reason": failure_reason,
            "last_error": reason,
            "updated_at": now,
            "request_id": request_id,
            "expected_status": current.status,
        })

        if result.rowcount != 1:
            self._db_session.rollback()
            raise InvalidStatusTransitionError(
                f"request_id={request_id} changed concurrently "
                f"(expected status {current.status})"
            )

        self._insert_audit(
            request_id=request_id,
            action="STATUS_TRANSITION",
            previous_status=current.status,
            new_status=target,
            payload={"reason": reason},
            correlation_id=correlation_id,
            error_code=_failure_error_code(target, reason),
            created_at=now,
        )
        self._commit()

        logger.info(
            f"[WITHDRAWAL-STORE] Status updated | "
            f"request_id={request_id} | {current.status} → {target} | "
            f"reason={reason} | correlation_id={correlation_id}"
        )

        return replace(
            current,
            status=target,
            failure_reason=failure_reason or current.failure_reason,
            last_error=reason or current.last_error,
            updated_at=now,
        )

    def record_submission(
        self,
        request_id: int,
        submitted_at: datetime,
        next_attempt_at: Optional[datetime],
        correlation_id: Optional[str] = None,
    ) -> bool:
        query = text("""
            UPDATE withdrawal_requests
            SET submitted_at = :submitted_at,
                next_attempt_at = :next_attempt_at,
                updated_at = :submitted_at
            WHERE request_id = :request_id
              AND status = :status
        """).bindparams(*_ts("submitted_at", "next_attempt_at"))

        result = self._execute(query, {
            "submitted_at": ensure_utc(submitted_at),
            "next_attempt_at": ensure_utc(next_attempt_at),
            "request_id": request_id,
            "status": WithdrawalStatus.QUEUED.value,
        })
        updated = result.rowcount == 1

        if updated:
            self._insert_audit(
                request_id=request_id,
                action="SETTLEMENT_SUBMITTED",
                previous_status=WithdrawalStatus.QUEUED.value,
                new_status=WithdrawalStatus.QUEUED.value,
                payload={"next_attempt_at": ensure_utc(next_attempt_at).isoformat()
                         if next_attempt_at else None},
                correlation_id=correlation_id,
                error_code=None,
                created_at=ensure_utc(submitted_at),
            )
        self._commit()
        return updated

    def record_transient_failure(
        self,
        request_id: int,
        attempt_count: int,
        next_attempt_at: Optional[datetime],
        error: str,
        correlation_id: Optional[str] = None,
    ) -> bool:
        now = datetime.now(timezone.utc)
        query = text("""
            UPDATE withdrawal_requests
            SET attempt_count = :attempt_count,
                next_attempt_at = :next_attempt_at,
                last_error = :last_error,
                updated_at = :updated_at
            WHERE request_id = :request_id
              AND status = :status
        """).bindparams(*_ts("next_attempt_at", "updated_at"))

        result = self._execute(query, {
            "attempt_count": attempt_count,
            "next_attempt_at": ensure_utc(next_attempt_at),
            "last_error": error[:1000],
            "updated_at": now,
            "request_id": request_id,
            "status": WithdrawalStatus.QUEUED.value,
        })
        self._commit()
        return result.rowcount == 1

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    def _insert_audit(
        self,
        request_id: int,
        action: str,
        previous_status: Optional[str],
        new_status: Optional[str],
        payload: Dict[str, Any],
        correlation_id: Optional[str],
        error_code: Optional[str],
        created_at: datetime,
    ) -> None:
        query = text("""
            INSERT INTO withdrawal_audit_log (
                id, request_id, action, previous_status, new_status,
                payload, correlation_id, error_code, created_at
            ) VALUES (
                :id, :request_id, :action, :previous_status, :new_status,
                :payload, :correlation_id, :error_code, :created_at
            )
        """).bindparams(*_ts("created_at"))

        self._execute(query, {
            "id": str(uuid.uuid4()),
            "request_id": request_id,
            "action": action,
            "previous_status": previous_status,
            "new_status": new_status,
            "payload": json.dumps(payload),
            "correlation_id": correlation_id,
            "error_code": error_code,
            "created_at": created_at,
        })


# =============================================================================
# In-Memory Store
# =============================================================================

class InMemoryWithdrawalQueueStore(WithdrawalQueueStore):
    """
    Process-local withdrawal queue.

    Used for dry runs and tests. Records are copied on the way in and out
    so callers can never mutate stored state behind the store's back.
    """

    def __init__(self, requests: Optional[List[WithdrawalRequest]] = None) -> None:
        self._records: Dict[int, WithdrawalRequest] = {}
        self.audit_log: List[Dict[str, Any]] = []
        for request in requests or []:
            self.enqueue(request)

    def enqueue(self, request: WithdrawalRequest) -> None:
        if request.request_id in self._records:
            raise ValueError(f"Duplicate request_id={request.request_id}")
        self._records[request.request_id] = replace(
            request,
            status=_status_value(request.status),
            requested_at=ensure_utc(request.requested_at),
            next_attempt_at=ensure_utc(request.next_attempt_at),
            submitted_at=ensure_utc(request.submitted_at),
            updated_at=ensure_utc(request.updated_at),
        )

    def get(self, request_id: int) -> Optional[WithdrawalRequest]:
        record = self._records.get(request_id)
        return replace(record) if record is not None else None

    def all(self) -> List[WithdrawalRequest]:
        return [replace(r) for _, r in sorted(self._records.items())]

    def find_eligible(self, now: datetime, delay_seconds: int) -> List[WithdrawalRequest]:
        now = ensure_utc(now)
        return [
            replace(record)
            for _, record in sorted(self._records.items())
            if record.is_eligible(now, delay_seconds)
        ]

    def update_status(
        self,
        request_id: int,
        status: WithdrawalStatus,
        reason: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> WithdrawalRequest:
        record = self._records.get(request_id)
        if record is None:
            raise UnknownWithdrawalRequestError(request_id)

        target = _status_value(status)
        is_valid, _ = validate_transition(record.status, target, correlation_id)
        if not is_valid:
            raise InvalidStatusTransitionError(
                f"request_id={request_id}: {record.status} → {target}"
            )

        previous = record.status
        updated = replace(
            record,
            status=target,
            failure_reason=reason if target == WithdrawalStatus.FAILED.value else record.failure_reason,
            last_error=reason or record.last_error,
            updated_at=datetime.now(timezone.utc),
        )
        self._records[request_id] = updated
        self.audit_log.append({
            "request_id": request_id,
            "action": "STATUS_TRANSITION",
            "previous_status": previous,
            "new_status": target,
            "reason": reason,
            "correlation_id": correlation_id,
            "error_code": _failure_error_code(target, reason),
        })
        return replace(updated)

    def record_submission(
        self,
        request_id: int,
        submitted_at: datetime,
        next_attempt_at: Optional[datetime],
        correlation_id: Optional[str] = None,
    ) -> bool:
        record = self._records.get(request_id)
        if record is None or record.status != WithdrawalStatus.QUEUED.value:
            return False
        self._records[request_id] = replace(
            record,
            submitted_at=ensure_utc(submitted_at),
            next_attempt_at=ensure_utc(next_attempt_at),
            updated_at=ensure_utc(submitted_at),
        )
        self.audit_log.append({
            "request_id": request_id,
            "action": "SETTLEMENT_SUBMITTED",
            "previous_status": record.status,
            "new_status": record.status,
            "correlation_id": correlation_id,
        })
        return True

    def record_transient_failure(
        self,
        request_id: int,
        attempt_count: int,
        next_attempt_at: Optional[datetime],
        error: str,
        correlation_id: Optional[str] = None,
    ) -> bool:
        record = self._records.get(request_id)
        if record is None or record.status != WithdrawalStatus.QUEUED.value:
            return False
        self._records[request_id] = replace(
            record,
            attempt_count=attempt_count,
            next_attempt_at=ensure_utc(next_attempt_at),
            last_error=error,
            updated_at=datetime.now(timezone.utc),
        )
        return True


__all__ = [
    "WithdrawalQueueStore",
    "SqlWithdrawalQueueStore",
    "InMemoryWithdrawalQueueStore",
]
