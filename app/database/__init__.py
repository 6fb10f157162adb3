# ============================================================================
# Vault Database Module - SQLAlchemy Session Management
# ============================================================================

from app.database.session import (
    SessionLocal,
    check_database_connection,
    ensure_audit_schema,
    get_db,
    get_engine,
    reset_engine,
)

__all__ = [
    "SessionLocal",
    "check_database_connection",
    "ensure_audit_schema",
    "get_db",
    "get_engine",
    "reset_engine",
]
