"""
============================================================================
Withdrawal Settlement Pipeline
Database Schema - Queue, Audit Log and Pool Snapshot Tables
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Side Effects: create_schema() issues CREATE TABLE IF NOT EXISTS

TABLES:
    - withdrawal_requests: Durable withdrawal queue (never deleted)
    - withdrawal_audit_log: One row per status transition
    - liquidity_pools: Latest aggregate pool snapshot per pool address

Amounts are NUMERIC(39,0) so unsigned 64-bit ledger values never overflow.

============================================================================
"""

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy.engine import Engine

metadata = MetaData()


withdrawal_requests = Table(
    "withdrawal_requests",
    metadata,
    Column("request_id", BigInteger, primary_key=True, autoincrement=False),
    Column("provider", String(64), nullable=False),
    Column("lp_amount", Numeric(39, 0), nullable=False),
    Column("status", String(16), nullable=False),
    Column("requested_at", DateTime(timezone=True), nullable=False),
    Column("provider_account_ref", String(128), nullable=False),
    Column("attempt_count", Integer, nullable=False, server_default="0"),
    Column("next_attempt_at", DateTime(timezone=True)),
    Column("last_error", Text),
    Column("submitted_at", DateTime(timezone=True)),
    Column("failure_reason", String(64)),
    Column("updated_at", DateTime(timezone=True)),
)

Index(
    "ix_withdrawal_requests_status_requested_at",
    withdrawal_requests.c.status,
    withdrawal_requests.c.requested_at,
)


withdrawal_audit_log = Table(
    "withdrawal_audit_log",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("request_id", BigInteger, nullable=False, index=True),
    Column("action", String(64), nullable=False),
    Column("previous_status", String(16)),
    Column("new_status", String(16)),
    Column("payload", Text),
    Column("correlation_id", String(36)),
    Column("error_code", String(16)),
    Column("created_at", DateTime(timezone=True), nullable=False),
)


liquidity_pools = Table(
    "liquidity_pools",
    metadata,
    Column("pool_address", String(64), primary_key=True),
    Column("total_liquidity", Numeric(39, 0), nullable=False),
    Column("total_shares", Numeric(39, 0), nullable=False),
    Column("pending_lp_tokens", Numeric(39, 0), nullable=False),
    Column("withdraw_queue_head", BigInteger, nullable=False),
    Column("withdraw_queue_tail", BigInteger, nullable=False),
    Column("deposit_fee_bps", Integer, nullable=False),
    Column("withdrawal_fee_bps", Integer, nullable=False),
    Column("last_update_timestamp", BigInteger, nullable=False),
    Column("synced_at", DateTime(timezone=True), nullable=False),
)


def create_schema(engine: Engine) -> None:
    """Create all pipeline tables that do not exist yet."""
    metadata.create_all(engine)


__all__ = [
    "metadata",
    "withdrawal_requests",
    "withdrawal_audit_log",
    "liquidity_pools",
    "create_schema",
]
