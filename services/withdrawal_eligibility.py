"""
============================================================================
Withdrawal Eligibility Selector
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)

Computes the ordered subset of queued withdrawal requests that may be
settled now: QUEUED, past the cooling-off delay, past any retry backoff,
ascending by request_id. Read-only.

A store failure aborts the tick (EligibilityQueryError, WDQ-005). Nothing
has been mutated at that point, so the next tick simply tries again.

============================================================================
"""

from datetime import datetime, timezone
from typing import List, Optional
import logging

from services.withdrawal_models import (
    EligibilityQueryError,
    WithdrawalErrorCode,
    WithdrawalRequest,
    ensure_utc,
)
from services.withdrawal_queue_store import WithdrawalQueueStore

# Configure module logger
logger = logging.getLogger(__name__)


class EligibilitySelector:
    """
    Selects withdrawal requests that are ready to settle.

    Args:
        queue_store: Source of withdrawal records
        processing_delay_seconds: Cooling-off delay D (default: 24h)
    """

    def __init__(
        self,
        queue_store: WithdrawalQueueStore,
        processing_delay_seconds: int = 24 * 60 * 60,
    ) -> None:
        if processing_delay_seconds < 0:
            raise ValueError(
                f"processing_delay_seconds must be non-negative, got: {processing_delay_seconds}"
            )
        self._queue_store = queue_store
        self._delay_seconds = processing_delay_seconds

    @property
    def processing_delay_seconds(self) -> int:
        return self._delay_seconds

    def select(
        self,
        now: Optional[datetime] = None,
        correlation_id: Optional[str] = None,
    ) -> List[WithdrawalRequest]:
        """
        Return eligible requests in settlement order.

        Args:
            now: Evaluation time (default: current UTC time)
            correlation_id: Audit trail identifier

        Returns:
            Requests sorted ascending by request_id; empty when none are eligible

        Raises:
            EligibilityQueryError: If the queue store cannot be read
        """
        now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)

        try:
            eligible = self._queue_store.find_eligible(now, self._delay_seconds)
        except EligibilityQueryError:
            raise
        except Exception as e:
            logger.error(
                f"[{WithdrawalErrorCode.ELIGIBILITY_QUERY_FAILED}] Queue store unreachable | "
                f"error={str(e)} | correlation_id={correlation_id}"
            )
            raise EligibilityQueryError(f"Queue store unreachable: {e}") from e

        # Order is part of the contract regardless of the backing store
        eligible = sorted(eligible, key=lambda r: r.request_id)

        logger.debug(
            f"[WITHDRAWAL-SELECTOR] Eligible requests | count={len(eligible)} | "
            f"delay_seconds={self._delay_seconds} | now={now.isoformat()} | "
            f"correlation_id={correlation_id}"
        )
        return eligible


__all__ = ["EligibilitySelector"]
