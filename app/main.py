"""
============================================================================
Pooled Capital Vault v1.0.0
FastAPI Application Entry Point - Sovereign Tier Ingress
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Bearer-authenticated JSON requests
Side Effects: Vault state transitions, audit log writes, metrics

SOVEREIGN MANDATE:
- Every vault operation is atomic: it commits whole or not at all
- Zero tolerance for floating-point math
- Complete audit trail for every committed event
- Fail closed: the vault refuses to start on invalid configuration

============================================================================
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.api.vault import router as vault_router
from app.database.session import SessionLocal, check_database_connection, get_engine, reset_engine
from vault.notifications import NotificationBus
from vault.vault_config import get_vault_config
from vault.vault_errors import (
    AuthorizationError,
    StateError,
    ValidationError,
    VaultConfigurationError,
    VaultError,
)
from vault.vault_facade import VaultFacade, build_vault_facade

# Load environment variables
load_dotenv()

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# GLOBAL INSTANCES
# ============================================================================

# Vault facade singleton (initialized in lifespan or injected by tests)
_vault_facade: Optional[VaultFacade] = None


def get_vault_facade() -> Optional[VaultFacade]:
    """
    Get the global VaultFacade instance.

    Reliability Level: L6 Critical
    Side Effects: None (read-only)

    Returns:
        VaultFacade instance or None if not initialized
    """
    return _vault_facade


def set_vault_facade(facade: Optional[VaultFacade]) -> None:
    """Install (or clear) the global facade."""
    global _vault_facade
    _vault_facade = facade


# ============================================================================
# LIFESPAN MANAGEMENT
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup/shutdown events.

    Startup:
        - Verify audit database connectivity
        - Build the vault from environment configuration (unless injected)

    Shutdown:
        - Dispose database connections
    """
    global _vault_facade

    print("=" * 60)
    print("POOLED CAPITAL VAULT v1.0.0 - SOVEREIGN TIER INFRASTRUCTURE")
    print("=" * 60)
    print(f"Startup Time: {datetime.now(timezone.utc).isoformat()}")

    try:
        get_engine()
        check_database_connection()
        print("[OK] Audit database connection verified")
    except Exception as e:
        print(f"[CRITICAL] Audit database connection failed: {e}")
        print("[CRITICAL] Vault cannot start without its audit log")
        raise

    if _vault_facade is None:
        try:
            config = get_vault_config()
            _vault_facade = build_vault_facade(
                config,
                notifications=NotificationBus(db_session=SessionLocal()),
            )
            print("[OK] Vault initialized")
            print(f"     Asset Token: {config.asset_token}")
            print(f"     Signers: {len(config.signers)}")
            print(f"     Required Approvals: {_vault_facade.required_approvals()}")
            print(f"     Redemption Period: {config.redemption_period_seconds}s")
        except VaultConfigurationError as e:
            print(f"[CRITICAL] {e}")
            print("[CRITICAL] Vault refuses to start half-configured")
            raise
    else:
        print("[OK] Vault facade injected")

    print("=" * 60)
    print("SOVEREIGN MANDATE: Solvency > Liveness")
    print("=" * 60)

    yield

    # Shutdown
    print("=" * 60)
    print("POOLED CAPITAL VAULT - SHUTDOWN INITIATED")
    print(f"Shutdown Time: {datetime.now(timezone.utc).isoformat()}")
    reset_engine()
    print("[OK] Database connections closed")
    print("=" * 60)


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

app = FastAPI(
    title="Pooled Capital Vault",
    description=(
        "Sovereign Tier Infrastructure - Pooled Capital Vault\n\n"
        "**SOVEREIGN MANDATE:** Solvency > Liveness\n\n"
        "Depositors exchange an underlying asset for vault shares at an "
        "administered exchange rate and redeem them through a time-locked "
        "withdrawal queue. Signer quorums govern the whitelist, the signer "
        "set and the assets cap."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# ============================================================================
# MIDDLEWARE
# ============================================================================

# CORS middleware (restrict in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

def status_for_error(exc: VaultError) -> int:
    """HTTP status for a vault error family."""
    if isinstance(exc, AuthorizationError):
        return 403
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, StateError):
        return 409
    return 500


@app.exception_handler(VaultError)
async def vault_exception_handler(request: Request, exc: VaultError):
    """
    Translate vault errors into their HTTP family.

    Reliability Level: SOVEREIGN TIER
    Side Effects: None (the failure was already logged where it was raised)
    """
    return JSONResponse(
        status_code=status_for_error(exc),
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "correlation_id": exc.correlation_id,
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.

    SOVEREIGN MANDATE: No silent failures
    """
    error_code = "SYS-500"
    logger.error(f"[{error_code}] Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error_code": error_code,
            "message": "Internal server error. This incident has been logged.",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


# ============================================================================
# ROUTERS
# ============================================================================

app.include_router(
    vault_router,
    prefix="/api/vault",
    tags=["Vault"]
)


# ============================================================================
# SYSTEM ENDPOINTS
# ============================================================================

@app.get(
    "/",
    summary="System Status",
    description="Returns the current vault status and health information.",
    tags=["System"]
)
async def root():
    """
    Root endpoint returning system status.

    Reliability Level: STANDARD
    Side Effects: Database ping
    """
    db_status = "healthy"
    try:
        check_database_connection()
    except Exception:
        db_status = "unhealthy"

    facade = get_vault_facade()
    return {
        "system": "Pooled Capital Vault",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": db_status,
        "vault": facade.vault_status() if facade is not None else None,
    }


@app.get(
    "/health",
    summary="Health Check",
    description="Lightweight health check for load balancers and monitoring.",
    tags=["System"]
)
async def health_check():
    """
    Lightweight health check endpoint.

    Returns 503 when the database is unreachable or the vault is not
    initialized.
    """
    try:
        check_database_connection()
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected", "error": str(e)}
        )
    if get_vault_facade() is None:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "connected", "vault": "uninitialized"}
        )
    return {"status": "healthy", "database": "connected", "vault": "initialized"}


@app.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Exposes Prometheus metrics for observability.",
    tags=["Observability"]
)
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=os.getenv("VAULT_HOST", "0.0.0.0"),
        port=int(os.getenv("VAULT_PORT", "8080")),
    )


# ============================================================================
# END OF MAIN APPLICATION
# ============================================================================
