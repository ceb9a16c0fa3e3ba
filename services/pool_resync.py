"""
============================================================================
Liquidity Pool Resynchronizer
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)

After a batch with at least one accepted settlement, pull fresh aggregate
pool state from the ledger and store it so APR / TVL analytics reflect the
drained queue.

Best effort: a failed resync is logged (WDQ-004) and reported as False.
It never rolls back or retries settlements already submitted.

============================================================================
"""

from dataclasses import replace
from typing import Optional
import asyncio
import logging

from app.ledger.client import LedgerClient
from app.ledger.results import Ok, describe
from app.observability.metrics import record_pool_resync
from services.pool_snapshot_store import PoolSnapshotStore
from app.ledger.models import LiquidityPoolSnapshot
from services.withdrawal_models import WithdrawalErrorCode

# Configure module logger
logger = logging.getLogger(__name__)


class PoolResynchronizer:
    """
    Refreshes the stored LiquidityPool snapshot from the ledger.

    Args:
        ledger_client: Ledger facade
        snapshot_store: Destination for the snapshot
        pool_address: Override for the stored pool address
        ledger_timeout_seconds: Upper bound on the pool fetch
    """

    def __init__(
        self,
        ledger_client: LedgerClient,
        snapshot_store: PoolSnapshotStore,
        pool_address: Optional[str] = None,
        ledger_timeout_seconds: float = 30.0,
    ) -> None:
        self._ledger = ledger_client
        self._snapshot_store = snapshot_store
        self._pool_address = pool_address
        self._timeout = ledger_timeout_seconds

    async def resync_if_needed(
        self,
        success_count: int,
        correlation_id: Optional[str] = None,
    ) -> Optional[bool]:
        """
        Resync when the batch produced at least one success.

        Returns:
            None if skipped (no successes), else the result of resync()
        """
        if success_count <= 0:
            logger.debug(
                f"[POOL-RESYNC] No successful settlements, skipping resync | "
                f"correlation_id={correlation_id}"
            )
            return None
        return await self.resync(correlation_id)

    async def resync(self, correlation_id: Optional[str] = None) -> bool:
        """
        Fetch the ledger pool state and upsert it.

        Returns:
            True on success, False on any failure
        """
        try:
            result = await asyncio.wait_for(self._ledger.get_liquidity_pool(), timeout=self._timeout)

            if not isinstance(result, Ok):
                logger.error(
                    f"[{WithdrawalErrorCode.RESYNC_FAILED}] Liquidity pool fetch failed | "
                    f"result={describe(result)} | correlation_id={correlation_id}"
                )
                record_pool_resync(False)
                return False

            snapshot: LiquidityPoolSnapshot = result.value
            if self._pool_address and snapshot.pool_address != self._pool_address:
                snapshot = replace(snapshot, pool_address=self._pool_address)

            self._snapshot_store.upsert_snapshot(snapshot)

        except Exception as e:
            logger.error(
                f"[{WithdrawalErrorCode.RESYNC_FAILED}] Error resyncing liquidity pool | "
                f"error={type(e).__name__}: {str(e)} | correlation_id={correlation_id}"
            )
            record_pool_resync(False)
            return False

        logger.info(
            f"[POOL-RESYNC] Liquidity pool data resynced | "
            f"pool_address={snapshot.pool_address} | "
            f"total_liquidity={snapshot.total_liquidity} | "
            f"total_shares={snapshot.total_shares} | "
            f"queue_head={snapshot.withdraw_queue_head} | "
            f"queue_tail={snapshot.withdraw_queue_tail} | "
            f"correlation_id={correlation_id}"
        )
        record_pool_resync(True)
        return True


__all__ = ["PoolResynchronizer"]
