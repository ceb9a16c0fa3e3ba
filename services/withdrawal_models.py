"""
============================================================================
Liquidity Withdrawal Queue - Core Data Models
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Integer Integrity: All share and liquidity amounts are integers in minor units
Traceability: All operations include correlation_id for audit

This module defines the core data models for the withdrawal settlement pipeline:
- WithdrawalRequest: Durable queue record (one LP redemption intent)
- WithdrawalStatus: Lifecycle states of a queue record
- LedgerWithdrawalRequest: The on-ledger view of a queued request (app.ledger.models)
- LiquidityPoolSnapshot: Aggregate pool state reported by the ledger (app.ledger.models)

ERROR CODES:
    - WDQ-001: Withdrawal request not found on ledger
    - WDQ-002: Transient ledger failure
    - WDQ-003: Maximum settlement attempts exceeded
    - WDQ-004: Liquidity pool resync failed
    - WDQ-005: Eligibility query failed
    - WDQ-006: Queue store write failed
    - WDQ-030: Invalid status transition
    - WDQ-040: Configuration invalid

============================================================================
"""

from typing import Optional, Dict, Any
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging

from app.ledger.models import LedgerWithdrawalRequest, LiquidityPoolSnapshot

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class WithdrawalErrorCode:
    """Withdrawal queue error codes for audit logging."""
    NOT_FOUND_ON_LEDGER = "WDQ-001"
    TRANSIENT_LEDGER_FAILURE = "WDQ-002"
    MAX_ATTEMPTS_EXCEEDED = "WDQ-003"
    RESYNC_FAILED = "WDQ-004"
    ELIGIBILITY_QUERY_FAILED = "WDQ-005"
    STORE_WRITE_FAILED = "WDQ-006"
    INVALID_TRANSITION = "WDQ-030"
    CONFIG_INVALID = "WDQ-040"


class FailureReason:
    """Terminal failure reasons persisted on FAILED records."""
    NOT_FOUND_ON_LEDGER = "NOT_FOUND_ON_LEDGER"
    MAX_ATTEMPTS_EXCEEDED = "MAX_ATTEMPTS_EXCEEDED"


# Audit error code written alongside each terminal failure reason
FAILURE_ERROR_CODES = {
    FailureReason.NOT_FOUND_ON_LEDGER: WithdrawalErrorCode.NOT_FOUND_ON_LEDGER,
    FailureReason.MAX_ATTEMPTS_EXCEEDED: WithdrawalErrorCode.MAX_ATTEMPTS_EXCEEDED,
}


# =============================================================================
# Exceptions
# =============================================================================

class WithdrawalQueueError(Exception):
    """Base exception for the withdrawal settlement pipeline."""

    def __init__(self, message: str, error_code: str):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


class EligibilityQueryError(WithdrawalQueueError):
    """Raised when the queue store cannot be read for eligible requests."""

    def __init__(self, message: str):
        super().__init__(message, WithdrawalErrorCode.ELIGIBILITY_QUERY_FAILED)


class InvalidStatusTransitionError(WithdrawalQueueError):
    """Raised when a status update would move a record backwards."""

    def __init__(self, message: str):
        super().__init__(message, WithdrawalErrorCode.INVALID_TRANSITION)


class UnknownWithdrawalRequestError(WithdrawalQueueError):
    """Raised when the queue store has no record for a request_id."""

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(
            f"No withdrawal request with request_id={request_id}",
            WithdrawalErrorCode.STORE_WRITE_FAILED,
        )


# =============================================================================
# Enums
# =============================================================================

class WithdrawalStatus(Enum):
    """
    Withdrawal request lifecycle status.

    QUEUED → PROCESSING → {COMPLETED, FAILED}
    COMPLETED and FAILED are terminal.
    """
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# =============================================================================
# Helpers
# =============================================================================

def ensure_utc(value: Optional[Any]) -> Optional[datetime]:
    """
    Normalize a datetime (or ISO string) to a tz-aware UTC datetime.

    Naive datetimes are assumed to already be UTC, which is how the
    database driver returns TIMESTAMP columns.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# WithdrawalRequest Dataclass
# =============================================================================

@dataclass
class WithdrawalRequest:
    """
    Durable withdrawal queue record.

    ============================================================================
    WITHDRAWAL REQUEST FIELDS:
    ============================================================================
    - request_id: Globally unique, monotonically increasing; defines order
    - provider: Address of the requesting liquidity provider
    - lp_amount: Pool shares being redeemed (minor units)
    - status: QUEUED | PROCESSING | COMPLETED | FAILED
    - requested_at: Creation time used for delay gating (immutable)
    - provider_account_ref: Where redeemed funds must land
    - attempt_count: Transient settlement failures so far
    - next_attempt_at: Earliest time the request may be selected again
    - last_error: Last transient or terminal failure description
    - submitted_at: Last accepted settlement submission
    - failure_reason: Terminal failure reason (FAILED only)
    - updated_at: Last time the record was written
    ============================================================================

    Reliability Level: L6 Critical (Sovereign Tier)
    Side Effects: None (data container)
    """

    request_id: int
    provider: str
    lp_amount: int
    status: str
    requested_at: datetime
    provider_account_ref: str

    attempt_count: int = 0
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    submitted_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            WithdrawalStatus.COMPLETED.value,
            WithdrawalStatus.FAILED.value,
        )

    def is_eligible(self, now: datetime, delay_seconds: int) -> bool:
        """
        Check the delay gate and the retry gate for this record.

        A request is eligible when it is QUEUED, its cooling-off delay has
        fully elapsed (requested_at <= now - delay) and any retry backoff
        has expired.
        """
        if self.status != WithdrawalStatus.QUEUED.value:
            return False
        if self.requested_at > now - timedelta(seconds=delay_seconds):
            return False
        if self.next_attempt_at is not None and self.next_attempt_at > now:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "request_id": self.request_id,
            "provider": self.provider,
            "lp_amount": str(self.lp_amount),
            "status": self.status,
            "requested_at": self.requested_at.isoformat(),
            "provider_account_ref": self.provider_account_ref,
            "attempt_count": self.attempt_count,
            "next_attempt_at": self.next_attempt_at.isoformat() if self.next_attempt_at else None,
            "last_error": self.last_error,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "failure_reason": self.failure_reason,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WithdrawalRequest":
        """
        Create a WithdrawalRequest from a dictionary or database row mapping.

        Args:
            data: Mapping with at least the six core fields

        Returns:
            WithdrawalRequest instance
        """
        status = data.get("status", WithdrawalStatus.QUEUED.value)
        if isinstance(status, WithdrawalStatus):
            status = status.value

        return cls(
            request_id=int(data["request_id"]),
            provider=str(data["provider"]),
            lp_amount=int(data["lp_amount"]),
            status=status,
            requested_at=ensure_utc(data["requested_at"]),
            provider_account_ref=str(data["provider_account_ref"]),
            attempt_count=int(data.get("attempt_count") or 0),
            next_attempt_at=ensure_utc(data.get("next_attempt_at")),
            last_error=data.get("last_error"),
            submitted_at=ensure_utc(data.get("submitted_at")),
            failure_reason=data.get("failure_reason"),
            updated_at=ensure_utc(data.get("updated_at")),
        )


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "WithdrawalErrorCode",
    "FailureReason",
    "FAILURE_ERROR_CODES",
    "WithdrawalQueueError",
    "EligibilityQueryError",
    "InvalidStatusTransitionError",
    "UnknownWithdrawalRequestError",
    "WithdrawalStatus",
    "WithdrawalRequest",
    "LedgerWithdrawalRequest",
    "LiquidityPoolSnapshot",
    "ensure_utc",
]
