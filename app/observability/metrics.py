"""
============================================================================
Vault Prometheus Metrics
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Amounts are int base units
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- vault_events_total: Counter of committed vault events by type
- vault_errors_total: Counter of rejected operations by error code
- vault_quorum_approvals_total: Counter of recorded approvals by kind
- vault_quorum_executions_total: Counter of executed proposals by kind
- vault_exchange_rate: Current exchange rate (1e18 scale)
- vault_withdrawing_assets: Outstanding withdrawal liabilities (asset units)
- vault_total_supply: Outstanding shares (share units)

INT-TO-FLOAT BOUNDARY
---------------------
Amounts stay int inside the vault. They are converted to float ONLY at
the Prometheus boundary.

============================================================================
"""

import logging
from typing import Optional

from prometheus_client import Counter, Gauge

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

VAULT_EVENTS_TOTAL = Counter(
    "vault_events_total",
    "Total number of committed vault events",
    ["event_type"]
)

VAULT_ERRORS_TOTAL = Counter(
    "vault_errors_total",
    "Total number of rejected vault operations",
    ["error_code"]
)

QUORUM_APPROVALS_TOTAL = Counter(
    "vault_quorum_approvals_total",
    "Total number of recorded quorum approvals",
    ["kind"]
)

QUORUM_EXECUTIONS_TOTAL = Counter(
    "vault_quorum_executions_total",
    "Total number of executed quorum proposals",
    ["kind"]
)

EXCHANGE_RATE_GAUGE = Gauge(
    "vault_exchange_rate",
    "Current exchange rate scaled by 1e18"
)

WITHDRAWING_ASSETS_GAUGE = Gauge(
    "vault_withdrawing_assets",
    "Assets reserved for unclaimed withdrawal requests (base units)"
)

TOTAL_SUPPLY_GAUGE = Gauge(
    "vault_total_supply",
    "Outstanding vault shares (base units)"
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_vault_event(event_type: str, correlation_id: Optional[str] = None) -> None:
    """
    Record a committed vault event.

    Side Effects: Increments Prometheus counter
    """
    try:
        VAULT_EVENTS_TOTAL.labels(event_type=event_type).inc()
        logger.debug(
            "Metric: vault_event | event_type=%s | correlation_id=%s",
            event_type, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record vault_event metric | error=%s",
            str(e)
        )


def record_vault_error(error_code: str, correlation_id: Optional[str] = None) -> None:
    """Record a rejected operation by its VLT code."""
    try:
        VAULT_ERRORS_TOTAL.labels(error_code=error_code).inc()
        logger.debug(
            "Metric: vault_error | error_code=%s | correlation_id=%s",
            error_code, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-002] Failed to record vault_error metric | error=%s",
            str(e)
        )


def record_quorum_approval(kind: str, executed: bool) -> None:
    """
    Record one approval, and the execution when it crossed the threshold.
    """
    try:
        QUORUM_APPROVALS_TOTAL.labels(kind=kind).inc()
        if executed:
            QUORUM_EXECUTIONS_TOTAL.labels(kind=kind).inc()
    except Exception as e:
        logger.error(
            "[OBS-003] Failed to record quorum metric | error=%s",
            str(e)
        )


def update_vault_gauges(
    exchange_rate: int,
    withdrawing_assets: int,
    total_supply: int,
) -> None:
    """
    Refresh the state gauges after a committed transition.

    Side Effects: Sets Prometheus gauges
    """
    try:
        EXCHANGE_RATE_GAUGE.set(float(exchange_rate))
        WITHDRAWING_ASSETS_GAUGE.set(float(withdrawing_assets))
        TOTAL_SUPPLY_GAUGE.set(float(total_supply))
    except Exception as e:
        logger.error(
            "[OBS-004] Failed to update vault gauges | error=%s",
            str(e)
        )


# ============================================================================
# END OF METRICS MODULE
# ============================================================================
