# ============================================================================
# Withdrawal Settlement Pipeline
# Database Module - SQLAlchemy Session Management
# ============================================================================

from app.database.session import (
    get_database_url,
    create_db_engine,
    create_session_factory,
    session_scope,
    check_database_connection,
)
from app.database.schema import create_schema

__all__ = [
    "get_database_url",
    "create_db_engine",
    "create_session_factory",
    "session_scope",
    "check_database_connection",
    "create_schema",
]
