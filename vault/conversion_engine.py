"""
============================================================================
Vault - Conversion Engine
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Integer Integrity: mul_div with explicit rounding, no floats

Maps shares <-> assets through a mutable 1e18-scaled exchange rate:

    to_assets(shares) = shares * rate / 10**(18 + DECIMALS_OFFSET)
    to_shares(assets) = assets * 10**(18 + DECIMALS_OFFSET) / rate

ROUNDING POLICY:
    The caller picks the direction, and every entry point picks the one
    that favours the vault:
        deposit  -> to_shares(assets, FLOOR)
        mint     -> to_assets(shares, CEIL)
        withdraw -> to_assets(shares, FLOOR)

ERROR CODES:
    - VLT-014: Exchange rate stale
    - VLT-016: Exchange rate below floor

============================================================================
"""

from typing import Optional
import logging

from vault.fixed_point import DECIMALS_OFFSET, RATE_SCALE, Rounding, mul_div
from vault.vault_errors import StateError, ValidationError, VaultErrorCode, fail
from vault.vault_models import ExchangeRateState

logger = logging.getLogger(__name__)


# Denominator joining the rate scale and the share/asset decimals offset
CONVERSION_SCALE = RATE_SCALE * 10 ** DECIMALS_OFFSET


class ConversionEngine:
    """
    Share/asset conversion driven by an externally supplied rate.

    The engine owns its ExchangeRateState. Staleness is evaluated lazily on
    every rate-dependent call; nothing runs in the background.
    """

    def __init__(self, rate_state: ExchangeRateState) -> None:
        if rate_state.rate <= 0:
            raise ValueError(f"Initial exchange rate must be positive, got {rate_state.rate}")
        if rate_state.rate < rate_state.min_rate:
            raise ValueError(
                f"Initial exchange rate {rate_state.rate} is below floor {rate_state.min_rate}"
            )
        self._rate_state = rate_state

    @property
    def rate_state(self) -> ExchangeRateState:
        return self._rate_state

    @property
    def rate(self) -> int:
        return self._rate_state.rate

    # -------------------------------------------------------------------------
    # Pure conversions
    # -------------------------------------------------------------------------

    def to_assets(self, shares: int, rounding: Rounding) -> int:
        return mul_div(shares, self._rate_state.rate, CONVERSION_SCALE, rounding)

    def to_shares(self, assets: int, rounding: Rounding) -> int:
        return mul_div(assets, CONVERSION_SCALE, self._rate_state.rate, rounding)

    def total_assets(self, total_supply: int) -> int:
        """Asset value of the whole share supply, rounded down."""
        return self.to_assets(total_supply, Rounding.FLOOR)

    # -------------------------------------------------------------------------
    # Staleness
    # -------------------------------------------------------------------------

    def is_stale(self, now: int) -> bool:
        return self._rate_state.is_stale(now)

    def require_fresh(self, now: int, correlation_id: Optional[str] = None) -> None:
        """
        Raise ValidationError (VLT-014) when the rate is older than
        expire_interval.
        """
        if self._rate_state.is_stale(now):
            raise fail(
                ValidationError,
                VaultErrorCode.RATE_STALE,
                "Exchange rate is stale; a fresh rate update is required",
                correlation_id,
                update_time=self._rate_state.update_time,
                expire_interval=self._rate_state.expire_interval,
                now=now,
            )

    # -------------------------------------------------------------------------
    # Mutations (authorization is checked by the caller)
    # -------------------------------------------------------------------------

    def set_rate(self, new_rate: int, now: int, correlation_id: Optional[str] = None) -> int:
        """
        Overwrite the rate and stamp update_time.

        Returns:
            The previous rate (only the single previous value is retained)

        Raises:
            ValidationError: VLT-016 if new_rate < min_rate or new_rate <= 0
        """
        if new_rate <= 0 or new_rate < self._rate_state.min_rate:
            raise fail(
                ValidationError,
                VaultErrorCode.RATE_BELOW_FLOOR,
                "Exchange rate below floor",
                correlation_id,
                new_rate=new_rate,
                min_rate=self._rate_state.min_rate,
            )

        previous_rate = self._rate_state.rate
        self._rate_state.rate = new_rate
        self._rate_state.update_time = now

        logger.info(
            f"[VAULT-CONVERSION] Exchange rate updated | "
            f"previous_rate={previous_rate} | "
            f"new_rate={new_rate} | "
            f"update_time={now} | "
            f"correlation_id={correlation_id}"
        )
        return previous_rate

    def set_expire_interval(self, expire_interval: int) -> int:
        if expire_interval <= 0:
            raise ValidationError(
                VaultErrorCode.INVALID_PARAMETER,
                f"expire_interval must be positive, got {expire_interval}",
            )
        previous = self._rate_state.expire_interval
        self._rate_state.expire_interval = expire_interval
        return previous

    def set_min_rate(self, min_rate: int, correlation_id: Optional[str] = None) -> int:
        """
        Move the floor. The floor may never sit above the live rate,
        otherwise rate >= min_rate would be violated immediately.
        """
        if min_rate < 0:
            raise ValidationError(
                VaultErrorCode.INVALID_PARAMETER,
                f"min_rate must be non-negative, got {min_rate}",
                correlation_id,
            )
        if min_rate > self._rate_state.rate:
            raise fail(
                StateError,
                VaultErrorCode.RATE_BELOW_FLOOR,
                "Current exchange rate would fall below the new floor",
                correlation_id,
                min_rate=min_rate,
                rate=self._rate_state.rate,
            )
        previous = self._rate_state.min_rate
        self._rate_state.min_rate = min_rate
        return previous


__all__ = [
    "CONVERSION_SCALE",
    "ConversionEngine",
]
