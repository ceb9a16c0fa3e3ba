#!/usr/bin/env python3
"""
============================================================================
Withdrawal Settlement Pipeline v1.0.0
Process Entry Point - Withdrawal Queue Tracker
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Traceability: All operations include correlation_id for audit

THE TRACKER:
    Every WITHDRAWAL_CHECK_INTERVAL_SECONDS (first run immediately):
        1. Select QUEUED requests older than the cooling-off delay
        2. Settle them against the ledger, in request_id order, paced
        3. Resync the liquidity pool snapshot if anything settled

PROCESS SUPERVISION:
    A failing tick is logged and the next tick runs on schedule.
    Invalid configuration or an unreachable database stops startup.

USAGE:
    python main.py

============================================================================
"""

import os
import sys
import signal
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from prometheus_client import start_http_server

from app.database import (
    check_database_connection,
    create_db_engine,
    create_schema,
    create_session_factory,
)
from app.ledger import HttpLedgerClient
from jobs.withdrawal_queue_job import WithdrawalQueuePipeline, build_withdrawal_queue_job
from services.pool_snapshot_store import SqlPoolSnapshotStore
from services.withdrawal_config import (
    WithdrawalConfigurationError,
    WithdrawalPipelineConfig,
    env_int,
)
from services.withdrawal_queue_store import SqlWithdrawalQueueStore


# =============================================================================
# Constants
# =============================================================================

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_METRICS_PORT = 9108

# Version
VERSION = "1.0.0"


def resolve_log_level(name: Optional[str]) -> Optional[int]:
    """Map a LOG_LEVEL name to its numeric level, or None if unknown."""
    if name is None or not name.strip():
        return None
    level = logging.getLevelName(name.strip().upper())
    # getLevelName returns "Level X" for names it does not know
    return level if isinstance(level, int) else None


def resolve_metrics_port() -> int:
    """METRICS_PORT with fallback to the default; 0 or below disables."""
    return env_int("METRICS_PORT", DEFAULT_METRICS_PORT)


# Load environment variables first
load_dotenv()

# Configure logging
_requested_log_level = os.environ.get("LOG_LEVEL", DEFAULT_LOG_LEVEL)
_log_level = resolve_log_level(_requested_log_level)
logging.basicConfig(
    level=_log_level if _log_level is not None else logging.INFO,
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("WITHDRAWAL-TRACKER")

if _log_level is None:
    logger.warning(
        f"Invalid LOG_LEVEL value: {_requested_log_level}, "
        f"using default: {DEFAULT_LOG_LEVEL}"
    )


# =============================================================================
# Runner
# =============================================================================

async def run(config: WithdrawalPipelineConfig, correlation_id: str) -> None:
    """
    Wire the pipeline and run the tracker until SIGINT/SIGTERM.

    Args:
        config: Validated pipeline configuration
        correlation_id: Session audit trail identifier
    """
    engine = create_db_engine()
    check_database_connection(engine)
    create_schema(engine)

    session_factory = create_session_factory(engine)
    db_session = session_factory()

    ledger_client = HttpLedgerClient(
        config.ledger_gateway_url,
        timeout=config.ledger_timeout_seconds,
        correlation_id=correlation_id,
    )

    pipeline = WithdrawalQueuePipeline(
        queue_store=SqlWithdrawalQueueStore(db_session),
        ledger_client=ledger_client,
        pool_store=SqlPoolSnapshotStore(db_session),
        config=config,
    )
    job = build_withdrawal_queue_job(pipeline)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_shutdown(signum: int) -> None:
        logger.warning(f"Received signal {signum} - initiating graceful shutdown")
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, request_shutdown, signum)

    try:
        await job.start()
        await stop_event.wait()
    finally:
        if job.is_running:
            await job.stop()
        await ledger_client.aclose()
        db_session.close()
        engine.dispose()

        logger.info(
            f"Withdrawal tracker shutdown complete | "
            f"ticks={job.tick_count} | skipped={job.skipped_count} | "
            f"errors={job.error_count} | correlation_id={correlation_id}"
        )


# =============================================================================
# Main Entry Point
# =============================================================================

def main() -> None:
    """
    Main entry point.

    USAGE: python main.py
    """
    session_id = str(uuid.uuid4())[:8]
    correlation_id = f"SESSION-{session_id}"

    logger.info(
        f"Withdrawal tracker v{VERSION} starting | session_id={session_id} | "
        f"started={datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')} | "
        f"correlation_id={correlation_id}"
    )

    try:
        config = WithdrawalPipelineConfig.from_environment()
    except WithdrawalConfigurationError as e:
        logger.critical(f"Configuration invalid - cannot start | error={e.message}")
        sys.exit(1)

    metrics_port = resolve_metrics_port()
    if metrics_port > 0:
        start_http_server(metrics_port)
        logger.info(f"Metrics endpoint listening | port={metrics_port}")
    else:
        logger.info(f"Metrics endpoint disabled | METRICS_PORT={metrics_port}")

    try:
        asyncio.run(run(config, correlation_id))
    except ConnectionError as e:
        logger.critical(f"Database unavailable - cannot start | error={str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
