"""
============================================================================
Vault - Cost Basis Ledger
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Integer Integrity: Proportional allocation by floor division

Per-holder principal (asset units) used to separate profit from capital
when the performance fee is computed.

    deposit            principal[holder] += assets
    withdraw request   principal[holder] -= principal * burned / shares_before
    share transfer     moved = principal[from] * shares / balance(from)

Every proportional step divides by the share balance BEFORE the mutation.
The caller supplies that balance; the ledger never reads share balances
itself.

ERROR CODES:
    - VLT-035: Insufficient shares for transfer

============================================================================
"""

from typing import Dict, Optional
import logging

from vault.fixed_point import Rounding, mul_div
from vault.vault_errors import StateError, ValidationError, VaultErrorCode, fail

logger = logging.getLogger(__name__)


class CostBasisLedger:
    """Holder -> principal mapping. Principal never goes negative."""

    def __init__(self) -> None:
        self._principal: Dict[str, int] = {}

    def principal_of(self, holder: str) -> int:
        return self._principal.get(holder, 0)

    def total_principal(self) -> int:
        return sum(self._principal.values())

    def on_deposit(self, holder: str, assets: int) -> int:
        """Credit principal; returns the holder's new principal."""
        if assets < 0:
            raise ValidationError(
                VaultErrorCode.INVALID_PARAMETER,
                f"Deposit principal must be non-negative, got {assets}",
            )
        new_principal = self.principal_of(holder) + assets
        self._principal[holder] = new_principal
        return new_principal

    def quote_withdraw(self, holder: str, shares_burned: int, shares_before: int) -> int:
        """
        Principal attributable to shares_burned, without mutating anything.

        The fee quote and on_withdraw_request must use the same
        shares_before so that both see the same cost basis.
        """
        if shares_before <= 0 or shares_burned > shares_before:
            raise ValidationError(
                VaultErrorCode.EXCEEDS_REDEEMABLE,
                f"Cannot remove basis for {shares_burned} of {shares_before} shares",
            )
        return mul_div(self.principal_of(holder), shares_burned, shares_before, Rounding.FLOOR)

    def on_withdraw_request(self, holder: str, shares_burned: int, shares_before: int) -> int:
        """
        Remove proportional principal. Must be called with the balance
        captured before the burn.

        Returns:
            The principal removed (the cost basis of the burned shares)
        """
        removed = self.quote_withdraw(holder, shares_burned, shares_before)
        self._principal[holder] = self.principal_of(holder) - removed
        return removed

    def on_transfer(
        self,
        sender: str,
        recipient: str,
        shares: int,
        sender_balance: int,
        correlation_id: Optional[str] = None
    ) -> int:
        """
        Move principal alongside a share transfer.

        Returns:
            The principal moved (0 for self-transfers and zero amounts)

        Raises:
            StateError: VLT-035 if sender_balance < shares
        """
        if sender == recipient or shares == 0:
            return 0
        if sender_balance < shares:
            raise fail(
                StateError,
                VaultErrorCode.INSUFFICIENT_SHARES,
                "Insufficient shares for transfer",
                correlation_id,
                sender=sender,
                balance=sender_balance,
                shares=shares,
            )

        moved = mul_div(self.principal_of(sender), shares, sender_balance, Rounding.FLOOR)
        self._principal[sender] = self.principal_of(sender) - moved
        self._principal[recipient] = self.principal_of(recipient) + moved

        logger.debug(
            f"[VAULT-COST-BASIS] Principal moved | "
            f"sender={sender} | recipient={recipient} | "
            f"shares={shares} | moved={moved} | "
            f"correlation_id={correlation_id}"
        )
        return moved


__all__ = ["CostBasisLedger"]
