"""
============================================================================
Vault - Error Taxonomy
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: Every error carries an error_code and correlation_id

Every vault failure is synchronous and aborts the whole operation.
Three families are exposed to callers:

    AuthorizationError  - missing capability, not whitelisted, not a signer,
                          not the request owner
    ValidationError     - zero amount, below minimum, zero address, cap
                          exceeded, rate stale, exceeds redeemable shares
    StateError          - already claimed, already approved, already executed,
                          conflicting payload, insufficient shares, redemption
                          period not elapsed, signer floor violated

ERROR CODES:
    - VLT-001..VLT-009: Authorization
    - VLT-010..VLT-029: Validation
    - VLT-030..VLT-059: State
    - VLT-040: Configuration missing/invalid

============================================================================
"""

from typing import Optional, Dict, Any
import logging

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class VaultErrorCode:
    """
    Vault error codes for audit logging.

    ============================================================================
    ERROR CODE REFERENCE:
    ============================================================================
    VLT-001: Missing capability (admin / rate updater)
    VLT-002: Caller is not a signer
    VLT-003: Destination is not whitelisted
    VLT-004: Caller is not the withdrawal request owner
    VLT-010: Zero amount
    VLT-011: Amount below configured minimum
    VLT-012: Zero address
    VLT-013: Assets cap exceeded
    VLT-014: Exchange rate stale
    VLT-015: Exceeds redeemable shares
    VLT-016: Exchange rate below floor
    VLT-017: Invalid parameter
    VLT-018: Withdrawal request not found
    VLT-019: Invalid proposal id
    VLT-020: Amount exceeds available balance
    VLT-030: Withdrawal already claimed
    VLT-031: Redemption period not elapsed
    VLT-032: Signer already approved
    VLT-033: Proposal already executed
    VLT-034: Conflicting proposal payload
    VLT-035: Insufficient shares
    VLT-036: Signer floor violated
    VLT-037: Signer already present
    VLT-038: Target is not a signer
    VLT-039: Re-entrant call rejected
    VLT-040: Configuration missing or invalid
    VLT-041: Insufficient token balance
    VLT-042: Row hash verification failed
    ============================================================================
    """
    MISSING_CAPABILITY = "VLT-001"
    NOT_SIGNER = "VLT-002"
    NOT_WHITELISTED = "VLT-003"
    NOT_REQUEST_OWNER = "VLT-004"

    ZERO_AMOUNT = "VLT-010"
    BELOW_MINIMUM = "VLT-011"
    ZERO_ADDRESS = "VLT-012"
    CAP_EXCEEDED = "VLT-013"
    RATE_STALE = "VLT-014"
    EXCEEDS_REDEEMABLE = "VLT-015"
    RATE_BELOW_FLOOR = "VLT-016"
    INVALID_PARAMETER = "VLT-017"
    REQUEST_NOT_FOUND = "VLT-018"
    INVALID_PROPOSAL = "VLT-019"
    EXCEEDS_AVAILABLE = "VLT-020"

    ALREADY_CLAIMED = "VLT-030"
    REDEMPTION_PENDING = "VLT-031"
    ALREADY_APPROVED = "VLT-032"
    ALREADY_EXECUTED = "VLT-033"
    CONFLICTING_PAYLOAD = "VLT-034"
    INSUFFICIENT_SHARES = "VLT-035"
    SIGNER_FLOOR = "VLT-036"
    SIGNER_EXISTS = "VLT-037"
    SIGNER_UNKNOWN = "VLT-038"
    REENTRANT_CALL = "VLT-039"
    CONFIG_MISSING = "VLT-040"
    INSUFFICIENT_BALANCE = "VLT-041"
    HASH_MISMATCH = "VLT-042"


# =============================================================================
# Exceptions
# =============================================================================

class VaultError(Exception):
    """
    Base class for every vault failure.

    Reliability Level: SOVEREIGN TIER
    Side Effects: None (raising is the caller's responsibility)
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        correlation_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.error_code = error_code
        self.message = message
        self.correlation_id = correlation_id
        self.context = context or {}
        super().__init__(f"[{error_code}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses and audit records."""
        return {
            "error_code": self.error_code,
            "error_type": type(self).__name__,
            "message": self.message,
            "correlation_id": self.correlation_id,
            "context": {k: str(v) for k, v in self.context.items()},
        }


class AuthorizationError(VaultError):
    """Caller lacks the capability, signer membership or ownership required."""


class ValidationError(VaultError):
    """Input or precondition failed before any state was touched."""


class StateError(VaultError):
    """Operation conflicts with the current state of the vault."""


class VaultConfigurationError(VaultError):
    """
    Raised at startup when configuration is missing or invalid.

    Fail-closed: the vault refuses to start rather than run half-configured.
    """

    def __init__(self, message: str, error_code: str = VaultErrorCode.CONFIG_MISSING):
        super().__init__(error_code, message)


# =============================================================================
# Helpers
# =============================================================================

def fail(
    error_cls: type,
    error_code: str,
    message: str,
    correlation_id: Optional[str] = None,
    **context: Any
) -> VaultError:
    """
    Log a vault failure in the standard format and build the exception.

    Usage:
        raise fail(StateError, VaultErrorCode.ALREADY_CLAIMED, "...", corr_id, id=7)
    """
    details = " | ".join(f"{k}={v}" for k, v in context.items())
    logger.warning(
        f"[{error_code}] {message}"
        + (f" | {details}" if details else "")
        + f" | correlation_id={correlation_id}"
    )
    return error_cls(error_code, message, correlation_id, context)


__all__ = [
    "VaultErrorCode",
    "VaultError",
    "AuthorizationError",
    "ValidationError",
    "StateError",
    "VaultConfigurationError",
    "fail",
]
