"""
============================================================================
Vault Database Session - SQLAlchemy Engine & Session Management
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: VAULT_DATABASE_URL (default sqlite:///vault_audit.db)
Side Effects: Database connections, audit table creation

SOVEREIGN MANDATE:
- The audit table is append-only (INSERT/SELECT)
- All timestamps are UTC ISO-8601
- The engine is created on first use, never at import time

============================================================================
"""

import os
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

DEFAULT_DATABASE_URL = "sqlite:///vault_audit.db"

AUDIT_TABLE_DDL = """
    CREATE TABLE IF NOT EXISTS vault_audit_log (
        id VARCHAR(36) PRIMARY KEY,
        event_type VARCHAR(64) NOT NULL,
        actor_id VARCHAR(128) NOT NULL,
        previous_state TEXT,
        new_state TEXT,
        payload TEXT NOT NULL,
        correlation_id VARCHAR(64) NOT NULL,
        created_at VARCHAR(40) NOT NULL
    )
"""


def get_database_url() -> str:
    """
    Read the audit database URL from the environment.

    Environment Variables:
        VAULT_DATABASE_URL: SQLAlchemy URL (default: sqlite:///vault_audit.db)
    """
    return os.getenv("VAULT_DATABASE_URL", DEFAULT_DATABASE_URL)


# ============================================================================
# SQLALCHEMY ENGINE
# ============================================================================

_engine: Optional[Engine] = None

SessionLocal = sessionmaker(autoflush=False)


def create_vault_engine(database_url: str) -> Engine:
    """
    Build an engine for the given URL.

    In-memory SQLite gets a single shared connection so every session sees
    the same database.
    """
    echo = os.getenv("DB_ECHO", "false").lower() == "true"
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)

    return create_engine(
        database_url,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=echo,
    )


def ensure_audit_schema(engine: Engine) -> None:
    """Create vault_audit_log if missing."""
    with engine.begin() as conn:
        conn.execute(text(AUDIT_TABLE_DDL))


def get_engine() -> Engine:
    """
    Return the process-wide engine, creating it (and the audit table) on
    first use.
    """
    global _engine
    if _engine is None:
        _engine = create_vault_engine(get_database_url())
        ensure_audit_schema(_engine)
        SessionLocal.configure(bind=_engine)
    return _engine


def reset_engine() -> None:
    """Dispose the engine (used by tests between environments)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database session injection.

    SOVEREIGN MANDATE:
        - Session is automatically closed after request
        - Rollback on exception
    """
    get_engine()
    db = SessionLocal()
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

def check_database_connection() -> bool:
    """
    Verify database connectivity.

    Raises:
        Exception: If database connection fails
    """
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        raise Exception(f"Database connection failed: {e}")


# ============================================================================
# END OF DATABASE SESSION MODULE
# ============================================================================
