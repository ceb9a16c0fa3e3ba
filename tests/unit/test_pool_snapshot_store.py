"""
============================================================================
Unit Tests - Liquidity Pool Snapshot Store
============================================================================

Reliability Level: SOVEREIGN TIER
============================================================================
"""

import os
import sys
from dataclasses import replace
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.pool_snapshot_store import InMemoryPoolSnapshotStore, SqlPoolSnapshotStore


class TestSqlPoolSnapshotStore:

    def test_insert_then_read(self, db_session, default_pool) -> None:
        store = SqlPoolSnapshotStore(db_session)
        store.upsert_snapshot(default_pool)

        assert store.get_snapshot(default_pool.pool_address) == default_pool

    def test_upsert_replaces_existing_row(self, db_session, default_pool) -> None:
        store = SqlPoolSnapshotStore(db_session)
        store.upsert_snapshot(default_pool)

        drained = replace(default_pool, total_liquidity=400_000, withdraw_queue_head=25)
        store.upsert_snapshot(drained)

        assert store.get_snapshot(default_pool.pool_address) == drained

    def test_unknown_pool_returns_none(self, db_session) -> None:
        assert SqlPoolSnapshotStore(db_session).get_snapshot("missing") is None

    def test_failed_upsert_rolls_back_and_raises(self, default_pool) -> None:
        session = Mock()
        session.execute.side_effect = OperationalError("INSERT", {}, Exception("db down"))

        with pytest.raises(OperationalError):
            SqlPoolSnapshotStore(session).upsert_snapshot(default_pool)
        session.rollback.assert_called_once()


class TestInMemoryPoolSnapshotStore:

    def test_tracks_latest_snapshot(self, default_pool) -> None:
        store = InMemoryPoolSnapshotStore()
        store.upsert_snapshot(default_pool)
        store.upsert_snapshot(replace(default_pool, total_shares=1))

        assert store.get_snapshot(default_pool.pool_address).total_shares == 1
        assert store.upsert_count == 2
