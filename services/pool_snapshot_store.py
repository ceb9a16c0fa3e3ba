"""
============================================================================
Liquidity Pool Snapshot Store
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)

Persists the latest aggregate LiquidityPool state reported by the ledger
so dependent analytics (APR, total value locked) read fresh figures after
the withdrawal queue drains. Values are stored exactly as reported.

============================================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from sqlalchemy import DateTime, bindparam, text

from app.ledger.models import LiquidityPoolSnapshot

# Configure module logger
logger = logging.getLogger(__name__)


class PoolSnapshotStore(ABC):
    """Sink for liquidity pool snapshots."""

    @abstractmethod
    def upsert_snapshot(self, snapshot: LiquidityPoolSnapshot) -> None:
        """Insert or replace the snapshot for snapshot.pool_address."""

    @abstractmethod
    def get_snapshot(self, pool_address: str) -> Optional[LiquidityPoolSnapshot]:
        """Latest snapshot for a pool, or None."""


class SqlPoolSnapshotStore(PoolSnapshotStore):
    """
    Snapshot store backed by the liquidity_pools table.

    Side Effects: Database upserts
    """

    def __init__(self, db_session: Any) -> None:
        self._db_session = db_session

    def upsert_snapshot(self, snapshot: LiquidityPoolSnapshot) -> None:
        query = text("""
            INSERT INTO liquidity_pools (
                pool_address, total_liquidity, total_shares, pending_lp_tokens,
                withdraw_queue_head, withdraw_queue_tail, deposit_fee_bps,
                withdrawal_fee_bps, last_update_timestamp, synced_at
            ) VALUES (
                :pool_address, :total_liquidity, :total_shares, :pending_lp_tokens,
                :withdraw_queue_head, :withdraw_queue_tail, :deposit_fee_bps,
                :withdrawal_fee_bps, :last_update_timestamp, :synced_at
            )
            ON CONFLICT (pool_address) DO UPDATE SET
                total_liquidity = excluded.total_liquidity,
                total_shares = excluded.total_shares,
                pending_lp_tokens = excluded.pending_lp_tokens,
                withdraw_queue_head = excluded.withdraw_queue_head,
                withdraw_queue_tail = excluded.withdraw_queue_tail,
                deposit_fee_bps = excluded.deposit_fee_bps,
                withdrawal_fee_bps = excluded.withdrawal_fee_bps,
                last_update_timestamp = excluded.last_update_timestamp,
                synced_at = excluded.synced_at
        """).bindparams(bindparam("synced_at", type_=DateTime(timezone=True)))

        try:
            self._db_session.execute(query, {
                "pool_address": snapshot.pool_address,
                "total_liquidity": snapshot.total_liquidity,
                "total_shares": snapshot.total_shares,
                "pending_lp_tokens": snapshot.pending_lp_tokens,
                "withdraw_queue_head": snapshot.withdraw_queue_head,
                "withdraw_queue_tail": snapshot.withdraw_queue_tail,
                "deposit_fee_bps": snapshot.deposit_fee_bps,
                "withdrawal_fee_bps": snapshot.withdrawal_fee_bps,
                "last_update_timestamp": snapshot.last_update_timestamp,
                "synced_at": datetime.now(timezone.utc),
            })
            self._db_session.commit()
        except Exception:
            self._db_session.rollback()
            raise

        logger.debug(
            f"[POOL-STORE] Snapshot upserted | pool_address={snapshot.pool_address} | "
            f"total_liquidity={snapshot.total_liquidity} | total_shares={snapshot.total_shares}"
        )

    def get_snapshot(self, pool_address: str) -> Optional[LiquidityPoolSnapshot]:
        query = text("""
            SELECT pool_address, total_liquidity, total_shares, pending_lp_tokens,
                   withdraw_queue_head, withdraw_queue_tail, deposit_fee_bps,
                   withdrawal_fee_bps, last_update_timestamp
            FROM liquidity_pools
            WHERE pool_address = :pool_address
        """)
        row = self._db_session.execute(query, {"pool_address": pool_address}).mappings().first()
        if row is None:
            return None
        return LiquidityPoolSnapshot.from_dict(dict(row))


class InMemoryPoolSnapshotStore(PoolSnapshotStore):
    """Process-local snapshot store for dry runs and tests."""

    def __init__(self) -> None:
        self.snapshots: Dict[str, LiquidityPoolSnapshot] = {}
        self.upsert_count = 0

    def upsert_snapshot(self, snapshot: LiquidityPoolSnapshot) -> None:
        self.snapshots[snapshot.pool_address] = snapshot
        self.upsert_count += 1

    def get_snapshot(self, pool_address: str) -> Optional[LiquidityPoolSnapshot]:
        return self.snapshots.get(pool_address)


__all__ = [
    "PoolSnapshotStore",
    "SqlPoolSnapshotStore",
    "InMemoryPoolSnapshotStore",
]
