# ============================================================================
# Ledger Models - On-Ledger Views Returned by the Gateway
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Integer Integrity: Liquidity and share amounts are integers in minor units
#
# Models:
#   - LedgerWithdrawalRequest: On-ledger view of a queued request
#   - LiquidityPoolSnapshot: Aggregate pool state reported by the ledger
#
# This module imports nothing from the pipeline services so that the
# ledger package can be loaded on its own.
#
# ============================================================================

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class LedgerWithdrawalRequest:
    """On-ledger view of a queued withdrawal request."""
    request_id: int
    provider: str
    settlement_key: str
    destination_account_ref: str


@dataclass(frozen=True)
class LiquidityPoolSnapshot:
    """
    Aggregate liquidity pool state as reported by the ledger.

    Values are stored as reported; the pipeline never derives them.
    """
    pool_address: str
    total_liquidity: int
    total_shares: int
    pending_lp_tokens: int = 0
    withdraw_queue_head: int = 0
    withdraw_queue_tail: int = 0
    deposit_fee_bps: int = 0
    withdrawal_fee_bps: int = 0
    last_update_timestamp: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LiquidityPoolSnapshot":
        return cls(
            pool_address=str(data["pool_address"]),
            total_liquidity=int(data.get("total_liquidity") or 0),
            total_shares=int(data.get("total_shares") or 0),
            pending_lp_tokens=int(data.get("pending_lp_tokens") or 0),
            withdraw_queue_head=int(data.get("withdraw_queue_head") or 0),
            withdraw_queue_tail=int(data.get("withdraw_queue_tail") or 0),
            deposit_fee_bps=int(data.get("deposit_fee_bps") or 0),
            withdrawal_fee_bps=int(data.get("withdrawal_fee_bps") or 0),
            last_update_timestamp=int(data.get("last_update_timestamp") or 0),
        )


__all__ = [
    "LedgerWithdrawalRequest",
    "LiquidityPoolSnapshot",
]
