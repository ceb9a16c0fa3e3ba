"""
============================================================================
Withdrawal Settlement Pipeline
Database Session - SQLAlchemy Engine & Session Management
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: PostgreSQL connection (DATABASE_URL or DB_* variables)
Side Effects: Database connections

The engine is built on demand rather than at import time so that tests
and tooling can import the pipeline without a database driver present.

============================================================================
"""

import logging
from contextlib import contextmanager
import os
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

logger = logging.getLogger(__name__)


# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

def get_database_url() -> str:
    """
    Construct the database connection URL from environment variables.

    Environment Variables:
        DATABASE_URL: Full SQLAlchemy URL (takes precedence)
        DB_HOST: Database host (default: localhost)
        DB_PORT: Database port (default: 5432)
        DB_NAME: Database name (default: liquidity_settlement)
        DB_USER: Database user (default: settlement_worker)
        DB_PASSWORD: Database password

    Returns:
        str: SQLAlchemy connection URL
    """
    explicit = os.getenv("DATABASE_URL", "").strip()
    if explicit:
        return explicit

    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "liquidity_settlement")
    user = os.getenv("DB_USER", "settlement_worker")
    password = os.getenv("DB_PASSWORD", "")

    return f"postgresql://{user}:{password}@{host}:{port}/{name}"


# ============================================================================
# SQLALCHEMY ENGINE
# ============================================================================

def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create the SQLAlchemy engine.

    PostgreSQL engines get connection pooling and a UTC session timezone.
    Any other URL (sqlite for local runs) uses SQLAlchemy defaults.

    Args:
        database_url: Connection URL (default: get_database_url())

    Returns:
        Engine
    """
    url = database_url or get_database_url()
    echo = os.getenv("DB_ECHO", "false").lower() == "true"

    if not url.startswith("postgresql"):
        return create_engine(url, echo=echo)

    engine = create_engine(
        url,
        pool_size=5,
        max_overflow=5,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=echo,
        execution_options={"isolation_level": "READ COMMITTED"},
    )

    @event.listens_for(engine, "connect")
    def set_timezone(dbapi_connection, connection_record):
        # All timestamps are UTC
        cursor = dbapi_connection.cursor()
        cursor.execute("SET timezone TO 'UTC'")
        cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to `engine`."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """
    Yield a session, rolling back on exception and always closing.

    Usage:
        with session_scope(factory) as db:
            ...
    """
    db = factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ============================================================================
# HEALTH CHECK
# ============================================================================

def check_database_connection(engine: Engine) -> bool:
    """
    Verify database connectivity.

    Returns:
        bool: True if database is reachable

    Raises:
        ConnectionError: If database connection fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"[DB] Connection check failed | error={str(e)}")
        raise ConnectionError(f"Database connection failed: {e}") from e
