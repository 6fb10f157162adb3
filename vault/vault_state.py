"""
============================================================================
Vault - State Aggregate
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)

The one explicit aggregate holding every piece of mutable vault state:

    - exchange rate (ConversionEngine)
    - fee rate (FeeEngine) and per-holder principal (CostBasisLedger)
    - share balances and total supply
    - withdrawal log and liability totals (WithdrawalQueue)
    - signer committee, destination whitelist, assets cap
    - the three quorum engines and the side effects they execute

All mutation goes through VaultFacade, which snapshots this object with
copy.deepcopy before each operation and swaps the snapshot back in if the
operation raises. Quorum side effects are bound methods of this class so
that a deep copy stays internally consistent.

============================================================================
"""

from typing import Dict, Optional, Set
import logging

from vault.conversion_engine import ConversionEngine
from vault.cost_basis import CostBasisLedger
from vault.fee_engine import FeeEngine
from vault.fixed_point import is_zero_address
from vault.quorum_engine import KeyedQuorum, SingletonQuorum
from vault.signer_set import SignerSet
from vault.vault_errors import StateError, ValidationError, VaultErrorCode, fail
from vault.vault_models import (
    AssetsCapChange,
    ProposalKind,
    SignerAction,
    SignerChange,
    WhitelistChange,
)
from vault.withdrawal_queue import WithdrawalQueue

logger = logging.getLogger(__name__)

# Token-ledger holder id of the vault itself
VAULT_ACCOUNT = "vault"


class VaultState:
    """Aggregate root. Owned by exactly one VaultFacade."""

    def __init__(
        self,
        asset_token: str,
        conversion: ConversionEngine,
        fee_engine: FeeEngine,
        queue: WithdrawalQueue,
        signers: SignerSet,
        treasury: Optional[str] = None,
        min_deposit: int = 0,
        min_withdrawal: int = 0,
        assets_cap: int = 0,
    ) -> None:
        self.asset_token = asset_token
        self.conversion = conversion
        self.fee_engine = fee_engine
        self.cost_basis = CostBasisLedger()
        self.queue = queue
        self.signers = signers
        self.treasury = treasury
        self.min_deposit = min_deposit
        self.min_withdrawal = min_withdrawal
        self.assets_cap = assets_cap

        self.share_balances: Dict[str, int] = {}
        self.total_supply = 0
        self.whitelist: Set[str] = set()

        self.whitelist_quorum: KeyedQuorum[WhitelistChange] = KeyedQuorum(
            ProposalKind.WHITELIST,
            signers,
            executor=self._apply_whitelist_change,
            validator=self._validate_whitelist_change,
        )
        self.signer_quorum: SingletonQuorum[SignerChange] = SingletonQuorum(
            ProposalKind.SIGNER_SET,
            signers,
            executor=self._apply_signer_change,
            validator=self._validate_signer_change,
        )
        self.cap_quorum: SingletonQuorum[AssetsCapChange] = SingletonQuorum(
            ProposalKind.ASSETS_CAP,
            signers,
            executor=self._apply_assets_cap_change,
            validator=self._validate_assets_cap_change,
        )

    # -------------------------------------------------------------------------
    # Shares
    # -------------------------------------------------------------------------

    def share_balance_of(self, holder: str) -> int:
        return self.share_balances.get(holder, 0)

    def mint_shares(self, holder: str, shares: int) -> None:
        self.share_balances[holder] = self.share_balance_of(holder) + shares
        self.total_supply += shares

    def burn_shares(self, holder: str, shares: int, correlation_id: Optional[str] = None) -> None:
        balance = self.share_balance_of(holder)
        if balance < shares:
            raise fail(
                StateError,
                VaultErrorCode.INSUFFICIENT_SHARES,
                "Insufficient shares to burn",
                correlation_id,
                holder=holder,
                balance=balance,
                shares=shares,
            )
        self.share_balances[holder] = balance - shares
        self.total_supply -= shares

    def move_shares(self, sender: str, recipient: str, shares: int) -> None:
        self.share_balances[sender] = self.share_balance_of(sender) - shares
        self.share_balances[recipient] = self.share_balance_of(recipient) + shares

    def total_assets(self) -> int:
        return self.conversion.total_assets(self.total_supply)

    # -------------------------------------------------------------------------
    # Quorum side effects
    # -------------------------------------------------------------------------

    def _validate_whitelist_change(self, change: WhitelistChange, correlation_id: Optional[str]) -> None:
        if is_zero_address(change.target):
            raise fail(
                ValidationError,
                VaultErrorCode.ZERO_ADDRESS,
                "Whitelist target cannot be the zero address",
                correlation_id,
            )

    def _apply_whitelist_change(self, change: WhitelistChange, correlation_id: Optional[str]) -> None:
        if change.allow:
            self.whitelist.add(change.target)
        else:
            self.whitelist.discard(change.target)

    def _validate_signer_change(self, change: SignerChange, correlation_id: Optional[str]) -> None:
        if change.action is SignerAction.ADD:
            self.signers.validate_add(change.target, correlation_id)
        else:
            self.signers.validate_remove(change.target, correlation_id)

    def _apply_signer_change(self, change: SignerChange, correlation_id: Optional[str]) -> None:
        # SignerSet.add/remove re-validate against the membership at execution
        if change.action is SignerAction.ADD:
            self.signers.add(change.target, correlation_id)
            return

        self.signers.remove(change.target, correlation_id)
        self.whitelist_quorum.forget_signer(change.target)
        self.cap_quorum.forget_signer(change.target)
        self.signer_quorum.forget_signer(change.target)

    def _validate_assets_cap_change(self, change: AssetsCapChange, correlation_id: Optional[str]) -> None:
        if not isinstance(change.new_cap, int) or change.new_cap < 0:
            raise fail(
                ValidationError,
                VaultErrorCode.INVALID_PARAMETER,
                "Assets cap must be a non-negative int",
                correlation_id,
                new_cap=change.new_cap,
            )

    def _apply_assets_cap_change(self, change: AssetsCapChange, correlation_id: Optional[str]) -> None:
        self.assets_cap = change.new_cap


__all__ = ["VaultState", "VAULT_ACCOUNT"]
