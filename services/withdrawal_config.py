"""
============================================================================
Withdrawal Settlement Pipeline - Configuration
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: Configuration loading is logged

This module provides configuration management for the withdrawal pipeline:
- Environment variable parsing with type safety
- Default values for every option
- Validation with fail-closed behavior (WDQ-040)

ENVIRONMENT VARIABLES:
    - WITHDRAWAL_PROCESSING_DELAY_SECONDS: Cooling-off delay (default: 86400)
    - WITHDRAWAL_CHECK_INTERVAL_SECONDS: Scheduler tick interval (default: 300)
    - WITHDRAWAL_PACING_MS: Wait between consecutive settlements (default: 1000)
    - WITHDRAWAL_LEDGER_TIMEOUT_SECONDS: Per ledger call timeout (default: 30)
    - WITHDRAWAL_MAX_ATTEMPTS: Transient failures before FAILED (default: 10)
    - WITHDRAWAL_BACKOFF_BASE_SECONDS: First retry delay (default: 60)
    - WITHDRAWAL_BACKOFF_MAX_SECONDS: Retry delay cap (default: 3600)
    - WITHDRAWAL_CONFIRMATION_GRACE_SECONDS: Hold-off after a submission (default: 900)
    - LEDGER_GATEWAY_URL: Ledger gateway base URL
    - LIQUIDITY_POOL_ADDRESS: Optional pool address override for snapshots

============================================================================
"""

from typing import Optional, List
from dataclasses import dataclass, asdict
import logging
import os

from services.withdrawal_models import WithdrawalErrorCode

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Default Values
# =============================================================================

# 24 hours cooling-off window before capital leaves the pool
DEFAULT_PROCESSING_DELAY_SECONDS = 24 * 60 * 60

# 5 minutes between scheduler ticks
DEFAULT_CHECK_INTERVAL_SECONDS = 300

# 1 second between consecutive ledger settlements
DEFAULT_PACING_MS = 1000

DEFAULT_LEDGER_TIMEOUT_SECONDS = 30.0

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_BACKOFF_BASE_SECONDS = 60
DEFAULT_BACKOFF_MAX_SECONDS = 3600

DEFAULT_CONFIRMATION_GRACE_SECONDS = 900

DEFAULT_LEDGER_GATEWAY_URL = "http://ledger_gateway:8090"


# =============================================================================
# Configuration Validation Exception
# =============================================================================

class WithdrawalConfigurationError(Exception):
    """
    Exception raised when pipeline configuration is invalid.

    Raised during startup so the process never runs with nonsense
    intervals or a negative delay gate.
    """

    def __init__(self, message: str, error_code: str = WithdrawalErrorCode.CONFIG_INVALID):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# =============================================================================
# Environment Parsing Helpers
# =============================================================================

def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(
            f"[WITHDRAWAL-CONFIG] Invalid {name} value: {raw}, "
            f"using default: {default}"
        )
        return default


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning(
            f"[WITHDRAWAL-CONFIG] Invalid {name} value: {raw}, "
            f"using default: {default}"
        )
        return default


# =============================================================================
# WithdrawalPipelineConfig Class
# =============================================================================

@dataclass
class WithdrawalPipelineConfig:
    """
    Withdrawal settlement pipeline configuration.

    ============================================================================
    CONFIGURATION PARAMETERS:
    ============================================================================
    - processing_delay_seconds: Cooling-off window before a request is eligible
    - check_interval_seconds: Scheduler tick interval
    - pacing_ms: Wait between consecutive items in one batch
    - ledger_timeout_seconds: Upper bound on any single ledger call
    - max_attempts: Transient failures tolerated before FAILED
    - backoff_base_seconds / backoff_max_seconds: Retry delay curve
    - confirmation_grace_seconds: Hold-off after an accepted submission
    - ledger_gateway_url: Base URL of the ledger gateway
    - pool_address: Optional pool address used when storing snapshots
    ============================================================================
    """

    processing_delay_seconds: int = DEFAULT_PROCESSING_DELAY_SECONDS
    check_interval_seconds: int = DEFAULT_CHECK_INTERVAL_SECONDS
    pacing_ms: int = DEFAULT_PACING_MS
    ledger_timeout_seconds: float = DEFAULT_LEDGER_TIMEOUT_SECONDS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_base_seconds: int = DEFAULT_BACKOFF_BASE_SECONDS
    backoff_max_seconds: int = DEFAULT_BACKOFF_MAX_SECONDS
    confirmation_grace_seconds: int = DEFAULT_CONFIRMATION_GRACE_SECONDS
    ledger_gateway_url: str = DEFAULT_LEDGER_GATEWAY_URL
    pool_address: Optional[str] = None

    @property
    def pacing_seconds(self) -> float:
        return self.pacing_ms / 1000.0

    def validate(self) -> None:
        """
        Validate configuration.

        Raises:
            WithdrawalConfigurationError: If any value is out of range
        """
        errors: List[str] = []

        if self.processing_delay_seconds < 0:
            errors.append(
                f"WITHDRAWAL_PROCESSING_DELAY_SECONDS must be non-negative, "
                f"got: {self.processing_delay_seconds}"
            )
        if self.check_interval_seconds <= 0:
            errors.append(
                f"WITHDRAWAL_CHECK_INTERVAL_SECONDS must be positive, "
                f"got: {self.check_interval_seconds}"
            )
        if self.pacing_ms < 0:
            errors.append(f"WITHDRAWAL_PACING_MS must be non-negative, got: {self.pacing_ms}")
        if self.ledger_timeout_seconds <= 0:
            errors.append(
                f"WITHDRAWAL_LEDGER_TIMEOUT_SECONDS must be positive, "
                f"got: {self.ledger_timeout_seconds}"
            )
        if self.max_attempts <= 0:
            errors.append(f"WITHDRAWAL_MAX_ATTEMPTS must be positive, got: {self.max_attempts}")
        if self.backoff_base_seconds <= 0:
            errors.append(
                f"WITHDRAWAL_BACKOFF_BASE_SECONDS must be positive, "
                f"got: {self.backoff_base_seconds}"
            )
        if self.backoff_max_seconds < self.backoff_base_seconds:
            errors.append(
                f"WITHDRAWAL_BACKOFF_MAX_SECONDS must be >= WITHDRAWAL_BACKOFF_BASE_SECONDS, "
                f"got: {self.backoff_max_seconds} < {self.backoff_base_seconds}"
            )
        if self.confirmation_grace_seconds < 0:
            errors.append(
                f"WITHDRAWAL_CONFIRMATION_GRACE_SECONDS must be non-negative, "
                f"got: {self.confirmation_grace_seconds}"
            )

        if errors:
            error_msg = "Withdrawal pipeline configuration invalid: " + "; ".join(errors)
            logger.error(f"[{WithdrawalErrorCode.CONFIG_INVALID}] {error_msg}")
            raise WithdrawalConfigurationError(error_msg)

        logger.info(
            f"[WITHDRAWAL-CONFIG] Configuration validated | "
            f"processing_delay_seconds={self.processing_delay_seconds} | "
            f"check_interval_seconds={self.check_interval_seconds} | "
            f"pacing_ms={self.pacing_ms} | "
            f"max_attempts={self.max_attempts}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "WithdrawalPipelineConfig":
        """
        Load configuration from environment variables.

        Invalid numeric values fall back to their defaults with a warning.

        Args:
            validate: Whether to validate configuration after loading

        Returns:
            WithdrawalPipelineConfig instance

        Raises:
            WithdrawalConfigurationError: If validation fails (WDQ-040)
        """
        pool_address = os.environ.get("LIQUIDITY_POOL_ADDRESS", "").strip() or None

        config = cls(
            processing_delay_seconds=env_int(
                "WITHDRAWAL_PROCESSING_DELAY_SECONDS", DEFAULT_PROCESSING_DELAY_SECONDS
            ),
            check_interval_seconds=env_int(
                "WITHDRAWAL_CHECK_INTERVAL_SECONDS", DEFAULT_CHECK_INTERVAL_SECONDS
            ),
            pacing_ms=env_int("WITHDRAWAL_PACING_MS", DEFAULT_PACING_MS),
            ledger_timeout_seconds=env_float(
                "WITHDRAWAL_LEDGER_TIMEOUT_SECONDS", DEFAULT_LEDGER_TIMEOUT_SECONDS
            ),
            max_attempts=env_int("WITHDRAWAL_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            backoff_base_seconds=env_int(
                "WITHDRAWAL_BACKOFF_BASE_SECONDS", DEFAULT_BACKOFF_BASE_SECONDS
            ),
            backoff_max_seconds=env_int(
                "WITHDRAWAL_BACKOFF_MAX_SECONDS", DEFAULT_BACKOFF_MAX_SECONDS
            ),
            confirmation_grace_seconds=env_int(
                "WITHDRAWAL_CONFIRMATION_GRACE_SECONDS", DEFAULT_CONFIRMATION_GRACE_SECONDS
            ),
            ledger_gateway_url=os.environ.get(
                "LEDGER_GATEWAY_URL", DEFAULT_LEDGER_GATEWAY_URL
            ).strip(),
            pool_address=pool_address,
        )

        logger.info(
            f"[WITHDRAWAL-CONFIG] Loading configuration from environment | "
            f"WITHDRAWAL_PROCESSING_DELAY_SECONDS={config.processing_delay_seconds} | "
            f"WITHDRAWAL_CHECK_INTERVAL_SECONDS={config.check_interval_seconds} | "
            f"WITHDRAWAL_PACING_MS={config.pacing_ms} | "
            f"LEDGER_GATEWAY_URL={config.ledger_gateway_url}"
        )

        if validate:
            config.validate()

        return config

    def to_dict(self) -> dict:
        return asdict(self)


__all__ = [
    "WithdrawalPipelineConfig",
    "WithdrawalConfigurationError",
    "env_int",
    "env_float",
    "DEFAULT_PROCESSING_DELAY_SECONDS",
    "DEFAULT_CHECK_INTERVAL_SECONDS",
    "DEFAULT_PACING_MS",
    "DEFAULT_LEDGER_TIMEOUT_SECONDS",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_BACKOFF_BASE_SECONDS",
    "DEFAULT_BACKOFF_MAX_SECONDS",
    "DEFAULT_CONFIRMATION_GRACE_SECONDS",
    "DEFAULT_LEDGER_GATEWAY_URL",
]
