# ============================================================================
# Ledger Call Results - Tagged Outcome Types
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Every ledger call returns exactly one of Ok | NotFound | TransientError
#
# The settlement executor classifies outcomes by type, never by matching
# error strings. Anything that is not Ok or NotFound is retryable.
#
# ============================================================================

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful ledger call carrying its value."""
    value: T


@dataclass(frozen=True)
class NotFound:
    """The requested entity does not exist on the ledger."""
    reason: str = "not found"


@dataclass(frozen=True)
class TransientError:
    """
    A retryable failure: network error, timeout, rate limit or a
    temporary rejection by the ledger program.
    """
    reason: str
    status_code: Optional[int] = None


LedgerResult = Union[Ok[Any], NotFound, TransientError]


def describe(result: LedgerResult) -> str:
    """Short human readable description for logs and last_error."""
    if isinstance(result, Ok):
        return "ok"
    if isinstance(result, NotFound):
        return f"not_found: {result.reason}"
    if isinstance(result, TransientError):
        if result.status_code is not None:
            return f"transient[{result.status_code}]: {result.reason}"
        return f"transient: {result.reason}"
    raise TypeError(f"Unknown ledger result type: {type(result).__name__}")


__all__ = ["Ok", "NotFound", "TransientError", "LedgerResult", "describe"]
