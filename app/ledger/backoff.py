# ============================================================================
# Settlement Retry Backoff
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Retry delay for transient settlement failures
#
# The attempt counter lives on the withdrawal record, not in this object,
# so the delay survives process restarts. delay_for() is a pure function
# of the attempt number.
#
#   delay(n) = min(base * multiplier ** (n - 1), max_delay) (+ jitter)
#
# ============================================================================

import logging
import random
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ExponentialBackoff:
    """
    Exponential Backoff Calculator for persisted attempt counters.

    Reliability Level: SOVEREIGN TIER
    """

    def __init__(
        self,
        base_delay: float = 60.0,
        multiplier: float = 2.0,
        max_delay: float = 3600.0,
        jitter: float = 0.0,
        rng: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize backoff calculator.

        Args:
            base_delay: Delay after the first failure, in seconds
            multiplier: Delay multiplier per further attempt
            max_delay: Maximum delay cap in seconds
            jitter: Random jitter factor (0-1), applied on top of the cap
            rng: Random source returning floats in [0, 1)
        """
        if base_delay <= 0:
            raise ValueError(f"base_delay must be positive, got: {base_delay}")
        if multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got: {multiplier}")

        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter = jitter
        self._rng = rng or random.random

    def delay_for(self, attempt: int) -> float:
        """
        Delay before the next try after `attempt` failures.

        Args:
            attempt: Number of failures so far (1 for the first failure)

        Returns:
            Delay in seconds
        """
        exponent = max(attempt, 1) - 1
        # Cap the exponent so huge attempt counts cannot overflow
        delay = self.base_delay * (self.multiplier ** min(exponent, 64))
        delay = min(delay, self.max_delay)

        if self.jitter > 0:
            delay += delay * self.jitter * self._rng()

        return delay


__all__ = ["ExponentialBackoff"]
