"""
============================================================================
Observability Module - Vault Prometheus Metrics
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Side Effects: Exposes Prometheus metrics

============================================================================
"""

from app.observability.metrics import (
    VAULT_EVENTS_TOTAL,
    VAULT_ERRORS_TOTAL,
    QUORUM_APPROVALS_TOTAL,
    QUORUM_EXECUTIONS_TOTAL,
    EXCHANGE_RATE_GAUGE,
    WITHDRAWING_ASSETS_GAUGE,
    TOTAL_SUPPLY_GAUGE,
    record_vault_event,
    record_vault_error,
    record_quorum_approval,
    update_vault_gauges,
)

__all__ = [
    "VAULT_EVENTS_TOTAL",
    "VAULT_ERRORS_TOTAL",
    "QUORUM_APPROVALS_TOTAL",
    "QUORUM_EXECUTIONS_TOTAL",
    "EXCHANGE_RATE_GAUGE",
    "WITHDRAWING_ASSETS_GAUGE",
    "TOTAL_SUPPLY_GAUGE",
    "record_vault_event",
    "record_vault_error",
    "record_quorum_approval",
    "update_vault_gauges",
]
