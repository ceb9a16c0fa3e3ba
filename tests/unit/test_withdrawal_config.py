"""
Unit Tests for Withdrawal Pipeline Configuration

Reliability Level: SOVEREIGN TIER

Tests the withdrawal configuration module:
- Default values for every option
- Custom values from environment variables
- Invalid values fall back to defaults
- Out-of-range values fail validation with WDQ-040
"""

import pytest
import os

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.withdrawal_config import (
    WithdrawalPipelineConfig,
    WithdrawalConfigurationError,
    DEFAULT_PROCESSING_DELAY_SECONDS,
    DEFAULT_CHECK_INTERVAL_SECONDS,
    DEFAULT_PACING_MS,
    DEFAULT_LEDGER_GATEWAY_URL,
)
from services.withdrawal_models import WithdrawalErrorCode


ENV_VARS = [
    "WITHDRAWAL_PROCESSING_DELAY_SECONDS",
    "WITHDRAWAL_CHECK_INTERVAL_SECONDS",
    "WITHDRAWAL_PACING_MS",
    "WITHDRAWAL_LEDGER_TIMEOUT_SECONDS",
    "WITHDRAWAL_MAX_ATTEMPTS",
    "WITHDRAWAL_BACKOFF_BASE_SECONDS",
    "WITHDRAWAL_BACKOFF_MAX_SECONDS",
    "WITHDRAWAL_CONFIRMATION_GRACE_SECONDS",
    "LEDGER_GATEWAY_URL",
    "LIQUIDITY_POOL_ADDRESS",
]


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Remove pipeline variables so each test starts from defaults."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


# =============================================================================
# Test Default Values
# =============================================================================

class TestDefaults:

    def test_defaults_when_environment_empty(self) -> None:
        config = WithdrawalPipelineConfig.from_environment()

        assert config.processing_delay_seconds == DEFAULT_PROCESSING_DELAY_SECONDS == 86400
        assert config.check_interval_seconds == DEFAULT_CHECK_INTERVAL_SECONDS == 300
        assert config.pacing_ms == DEFAULT_PACING_MS == 1000
        assert config.ledger_timeout_seconds == 30.0
        assert config.max_attempts == 10
        assert config.backoff_base_seconds == 60
        assert config.backoff_max_seconds == 3600
        assert config.confirmation_grace_seconds == 900
        assert config.ledger_gateway_url == DEFAULT_LEDGER_GATEWAY_URL
        assert config.pool_address is None

    def test_pacing_seconds_derived_from_ms(self) -> None:
        assert WithdrawalPipelineConfig(pacing_ms=250).pacing_seconds == 0.25


# =============================================================================
# Test Environment Overrides
# =============================================================================

class TestEnvironmentOverrides:

    def test_custom_values(self, monkeypatch) -> None:
        monkeypatch.setenv("WITHDRAWAL_PROCESSING_DELAY_SECONDS", "3600")
        monkeypatch.setenv("WITHDRAWAL_CHECK_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("WITHDRAWAL_PACING_MS", "0")
        monkeypatch.setenv("WITHDRAWAL_LEDGER_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("LEDGER_GATEWAY_URL", " http://ledger.local:9000 ")
        monkeypatch.setenv("LIQUIDITY_POOL_ADDRESS", "pool-xyz")

        config = WithdrawalPipelineConfig.from_environment()

        assert config.processing_delay_seconds == 3600
        assert config.check_interval_seconds == 60
        assert config.pacing_ms == 0
        assert config.ledger_timeout_seconds == 2.5
        assert config.ledger_gateway_url == "http://ledger.local:9000"
        assert config.pool_address == "pool-xyz"

    def test_invalid_integer_falls_back_to_default(self, monkeypatch) -> None:
        monkeypatch.setenv("WITHDRAWAL_PACING_MS", "fast")
        monkeypatch.setenv("WITHDRAWAL_MAX_ATTEMPTS", "")

        config = WithdrawalPipelineConfig.from_environment()

        assert config.pacing_ms == DEFAULT_PACING_MS
        assert config.max_attempts == 10

    def test_blank_pool_address_is_none(self, monkeypatch) -> None:
        monkeypatch.setenv("LIQUIDITY_POOL_ADDRESS", "   ")
        assert WithdrawalPipelineConfig.from_environment().pool_address is None


# =============================================================================
# Test Validation
# =============================================================================

class TestValidation:

    @pytest.mark.parametrize("var,value", [
        ("WITHDRAWAL_PROCESSING_DELAY_SECONDS", "-1"),
        ("WITHDRAWAL_CHECK_INTERVAL_SECONDS", "0"),
        ("WITHDRAWAL_PACING_MS", "-5"),
        ("WITHDRAWAL_LEDGER_TIMEOUT_SECONDS", "0"),
        ("WITHDRAWAL_MAX_ATTEMPTS", "0"),
        ("WITHDRAWAL_CONFIRMATION_GRACE_SECONDS", "-30"),
    ])
    def test_out_of_range_fails_with_wdq_040(self, monkeypatch, var, value) -> None:
        monkeypatch.setenv(var, value)

        with pytest.raises(WithdrawalConfigurationError) as exc_info:
            WithdrawalPipelineConfig.from_environment()

        assert exc_info.value.error_code == WithdrawalErrorCode.CONFIG_INVALID
        assert var in str(exc_info.value)

    def test_backoff_cap_below_base_rejected(self) -> None:
        config = WithdrawalPipelineConfig(backoff_base_seconds=120, backoff_max_seconds=60)
        with pytest.raises(WithdrawalConfigurationError):
            config.validate()

    def test_zero_delay_is_valid(self) -> None:
        WithdrawalPipelineConfig(processing_delay_seconds=0).validate()

    def test_validation_can_be_skipped(self, monkeypatch) -> None:
        monkeypatch.setenv("WITHDRAWAL_CHECK_INTERVAL_SECONDS", "0")
        config = WithdrawalPipelineConfig.from_environment(validate=False)
        assert config.check_interval_seconds == 0

    def test_to_dict_round_trips_fields(self) -> None:
        data = WithdrawalPipelineConfig(pool_address="pool-1").to_dict()
        assert data["pool_address"] == "pool-1"
        assert data["processing_delay_seconds"] == DEFAULT_PROCESSING_DELAY_SECONDS
