"""
============================================================================
Vault - Performance Fee Engine
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Integer Integrity: Basis points, floor division

Charges a performance fee on the profit portion of a withdrawal only:

    profit = max(assets_gross - cost_basis, 0)
    fee    = profit * fee_bps // 10_000
    net    = assets_gross - fee

Guarantees 0 <= fee <= assets_gross, and fee == 0 whenever
assets_gross <= cost_basis.

============================================================================
"""

from dataclasses import dataclass
from typing import Any, Dict

from vault.fixed_point import BPS_DENOMINATOR
from vault.vault_errors import ValidationError, VaultErrorCode

MAX_FEE_BPS = BPS_DENOMINATOR


@dataclass(frozen=True)
class FeeQuote:
    """Breakdown of one withdrawal's gross value."""
    assets_gross: int
    cost_basis: int
    profit: int
    fee: int
    assets_net: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assets_gross": str(self.assets_gross),
            "cost_basis": str(self.cost_basis),
            "profit": str(self.profit),
            "fee": str(self.fee),
            "assets_net": str(self.assets_net),
        }


def validate_fee_bps(fee_bps: int) -> int:
    if not isinstance(fee_bps, int) or isinstance(fee_bps, bool) or not 0 <= fee_bps <= MAX_FEE_BPS:
        raise ValidationError(
            VaultErrorCode.INVALID_PARAMETER,
            f"fee_bps must be an int in [0, {MAX_FEE_BPS}], got {fee_bps!r}",
        )
    return fee_bps


class FeeEngine:
    """Holds the current fee rate and produces FeeQuotes."""

    def __init__(self, fee_bps: int = 0) -> None:
        self._fee_bps = validate_fee_bps(fee_bps)

    @property
    def fee_bps(self) -> int:
        return self._fee_bps

    def set_fee_bps(self, fee_bps: int) -> int:
        previous = self._fee_bps
        self._fee_bps = validate_fee_bps(fee_bps)
        return previous

    def quote(self, assets_gross: int, cost_basis: int) -> FeeQuote:
        if assets_gross > cost_basis:
            profit = assets_gross - cost_basis
            fee = profit * self._fee_bps // BPS_DENOMINATOR
        else:
            profit = 0
            fee = 0
        return FeeQuote(
            assets_gross=assets_gross,
            cost_basis=cost_basis,
            profit=profit,
            fee=fee,
            assets_net=assets_gross - fee,
        )


__all__ = ["FeeEngine", "FeeQuote", "MAX_FEE_BPS", "validate_fee_bps"]
