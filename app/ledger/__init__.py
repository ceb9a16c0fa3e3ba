# ============================================================================
# Ledger Integration Module - Withdrawal Settlement Connectivity
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Async access to the external ledger program
#
# Components:
#   - LedgerClient: Abstract ledger facade (inject fakes in tests)
#   - HttpLedgerClient: JSON/HTTP gateway client (httpx)
#   - Ok / NotFound / TransientError: Tagged call results
#   - ExponentialBackoff: Retry delay for persisted attempt counters
#
# ============================================================================

from app.ledger.results import Ok, NotFound, TransientError, LedgerResult, describe
from app.ledger.backoff import ExponentialBackoff
from app.ledger.client import (
    LedgerClient,
    HttpLedgerClient,
    LedgerErrorCode,
)

__all__ = [
    "Ok",
    "NotFound",
    "TransientError",
    "LedgerResult",
    "describe",
    "ExponentialBackoff",
    "LedgerClient",
    "HttpLedgerClient",
    "LedgerErrorCode",
]
