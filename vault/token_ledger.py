"""
============================================================================
Vault - Token Ledger
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)

Fungible-token transfer primitive and balance ledger used by the vault for
the underlying asset and any other asset it holds.

InMemoryTokenLedger supports an optional transfer hook invoked after each
transfer settles. The hook models a recipient callback; it is how tests
exercise the facade's re-entrancy guard.

ERROR CODES:
    - VLT-041: Insufficient token balance

============================================================================
"""

from typing import Callable, Dict, Optional, Protocol, Tuple
import logging

from vault.vault_errors import StateError, ValidationError, VaultErrorCode, fail

logger = logging.getLogger(__name__)

# (asset, sender, recipient, amount) -> None
TransferHook = Callable[[str, str, str, int], None]

LedgerSnapshot = Dict[Tuple[str, str], int]


class TokenLedger(Protocol):
    """Transfer primitive the vault relies on."""

    def balance_of(self, asset: str, holder: str) -> int:
        ...

    def transfer(
        self,
        asset: str,
        sender: str,
        recipient: str,
        amount: int,
        correlation_id: Optional[str] = None,
    ) -> None:
        ...

    def snapshot(self) -> LedgerSnapshot:
        ...

    def restore(self, snapshot: LedgerSnapshot) -> None:
        ...


class InMemoryTokenLedger:
    """Balances keyed by (asset, holder)."""

    def __init__(self, transfer_hook: Optional[TransferHook] = None) -> None:
        self._balances: Dict[Tuple[str, str], int] = {}
        self.transfer_hook = transfer_hook

    def balance_of(self, asset: str, holder: str) -> int:
        return self._balances.get((asset, holder), 0)

    def mint(self, asset: str, holder: str, amount: int) -> None:
        """Credit tokens out of thin air (test funding / faucet)."""
        if amount < 0:
            raise ValidationError(
                VaultErrorCode.INVALID_PARAMETER,
                f"Mint amount must be non-negative, got {amount}",
            )
        self._balances[(asset, holder)] = self.balance_of(asset, holder) + amount

    def transfer(
        self,
        asset: str,
        sender: str,
        recipient: str,
        amount: int,
        correlation_id: Optional[str] = None,
    ) -> None:
        if amount < 0:
            raise ValidationError(
                VaultErrorCode.INVALID_PARAMETER,
                f"Transfer amount must be non-negative, got {amount}",
                correlation_id,
            )
        balance = self.balance_of(asset, sender)
        if balance < amount:
            raise fail(
                StateError,
                VaultErrorCode.INSUFFICIENT_BALANCE,
                "Insufficient token balance",
                correlation_id,
                asset=asset,
                holder=sender,
                balance=balance,
                amount=amount,
            )

        self._balances[(asset, sender)] = balance - amount
        self._balances[(asset, recipient)] = self.balance_of(asset, recipient) + amount

        logger.debug(
            f"[VAULT-TOKEN] Transfer settled | "
            f"asset={asset} | sender={sender} | recipient={recipient} | "
            f"amount={amount} | correlation_id={correlation_id}"
        )

        if self.transfer_hook is not None:
            self.transfer_hook(asset, sender, recipient, amount)

    def snapshot(self) -> LedgerSnapshot:
        return dict(self._balances)

    def restore(self, snapshot: LedgerSnapshot) -> None:
        self._balances = dict(snapshot)


__all__ = ["TokenLedger", "InMemoryTokenLedger", "TransferHook", "LedgerSnapshot"]
