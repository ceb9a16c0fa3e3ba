"""
============================================================================
Withdrawal Request Lifecycle State Machine
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: All operations include correlation_id for audit

WITHDRAWAL LIFECYCLE STATE MACHINE:
    Status only ever advances forward:

    QUEUED → PROCESSING   (settlement lease taken)
    QUEUED → FAILED       (not found on ledger, attempts exhausted)
    QUEUED → COMPLETED    (ledger confirmation observed externally)
    PROCESSING → COMPLETED
    PROCESSING → FAILED

    Terminal States: COMPLETED, FAILED (no further transitions)

ERROR CODES:
    - WDQ-030: Invalid status transition attempted

============================================================================
"""

from typing import Optional, Dict, List, Tuple
import logging

from services.withdrawal_models import WithdrawalErrorCode

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# VALID_TRANSITIONS Constant
# =============================================================================

VALID_TRANSITIONS: Dict[str, List[str]] = {
    "QUEUED": ["PROCESSING", "COMPLETED", "FAILED"],
    "PROCESSING": ["COMPLETED", "FAILED"],
    "COMPLETED": [],  # Terminal
    "FAILED": [],  # Terminal
}

TERMINAL_STATES: List[str] = ["COMPLETED", "FAILED"]

VALID_STATES: List[str] = list(VALID_TRANSITIONS.keys())


# =============================================================================
# validate_transition() Function
# =============================================================================

def validate_transition(
    current_state: str,
    target_state: str,
    correlation_id: Optional[str] = None
) -> Tuple[bool, Optional[str]]:
    """
    Validate if a status transition is allowed.

    Args:
        current_state: Current status of the withdrawal request
        target_state: Status to transition to
        correlation_id: Optional correlation ID for audit logging

    Returns:
        Tuple of (is_valid, error_code)
        - (True, None) if transition is valid
        - (False, "WDQ-030") if transition is invalid

    Side Effects: Logs WDQ-030 on invalid transitions
    """
    if current_state not in VALID_STATES or target_state not in VALID_STATES:
        logger.error(
            f"[{WithdrawalErrorCode.INVALID_TRANSITION}] "
            f"Unknown status in transition {current_state} → {target_state}. "
            f"Valid states: {VALID_STATES} | "
            f"correlation_id={correlation_id}"
        )
        return (False, WithdrawalErrorCode.INVALID_TRANSITION)

    valid_targets = VALID_TRANSITIONS[current_state]

    if target_state not in valid_targets:
        valid_str = "/".join(valid_targets) if valid_targets else "NONE (terminal state)"
        logger.error(
            f"[{WithdrawalErrorCode.INVALID_TRANSITION}] "
            f"Invalid status transition: {current_state} → {target_state}. "
            f"Valid transitions from {current_state}: {valid_str} | "
            f"correlation_id={correlation_id}"
        )
        return (False, WithdrawalErrorCode.INVALID_TRANSITION)

    logger.debug(
        f"[WITHDRAWAL-STATE] Transition validated: {current_state} → {target_state} | "
        f"correlation_id={correlation_id}"
    )
    return (True, None)


def is_terminal_state(state: str) -> bool:
    """Check if a status is terminal (no outbound transitions)."""
    return state in TERMINAL_STATES


__all__ = [
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "VALID_STATES",
    "validate_transition",
    "is_terminal_state",
]
