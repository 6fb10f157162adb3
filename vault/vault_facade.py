"""
============================================================================
Vault - Facade (single entry point)
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Integer Integrity: All amounts int base units; rounding always favours the vault
Traceability: Every mutating call carries a correlation_id end to end

PRIME DIRECTIVE:
    "Every call is one indivisible transaction against the whole vault."

TRANSACTION MODEL:
    - One threading.RLock guards the VaultState aggregate (single writer)
    - A mutating call entered while another is in flight on the same
      thread (e.g. from a token transfer hook) fails with VLT-039
    - VaultState and the token ledger are snapshotted on entry and
      restored if the call raises; no partial effect survives
    - Ledger effects precede token transfers
    - VaultEvents are buffered and published only after commit
    - Reads take the same lock and observe a consistent state

ENTRY POINTS:
    Admin:      set_exchange_rate, set_redemption_period, set_expire_interval,
                set_min_deposit, set_min_withdrawal_amount, set_min_rate,
                set_treasury, set_fee_bps
    Public:     deposit, mint, request_withdrawal, claim_withdrawal,
                batch_claim_withdrawal, transfer_shares
    Governance: whitelist_change, signer_change, assets_cap_change,
                protocol_withdraw
    Queries:    see the "Queries" section below

============================================================================
"""

from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union
import copy
import logging
import threading
import time
import uuid

from app.observability.metrics import record_vault_error, update_vault_gauges
from vault.conversion_engine import ConversionEngine
from vault.fee_engine import FeeEngine, FeeQuote, validate_fee_bps
from vault.fixed_point import FixedPointGateway, Rounding, is_zero_address
from vault.notifications import NotificationBus
from vault.permissions import Capability, InMemoryPermissionEngine, PermissionEngine
from vault.quorum_engine import ApprovalOutcome, ProposalSnapshot
from vault.signer_set import SignerSet
from vault.token_ledger import InMemoryTokenLedger, TokenLedger
from vault.vault_config import VaultConfig
from vault.vault_errors import (
    AuthorizationError,
    StateError,
    ValidationError,
    VaultError,
    VaultErrorCode,
    fail,
)
from vault.vault_models import (
    AssetsCapChange,
    ExchangeRateState,
    ProposalKind,
    RangeAggregate,
    SignerAction,
    SignerChange,
    VaultEvent,
    VaultEventType,
    WhitelistChange,
    WithdrawalRequest,
    governance_payload_to_dict,
)
from vault.vault_state import VAULT_ACCOUNT, VaultState
from vault.withdrawal_queue import WithdrawalQueue

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time())


class VaultFacade:
    """
    Orchestrates every vault operation over one VaultState.

    Reliability Level: L6 Critical (Sovereign Tier)
    Side Effects: Mutates VaultState, moves tokens, publishes VaultEvents
    """

    def __init__(
        self,
        state: VaultState,
        permissions: PermissionEngine,
        token_ledger: TokenLedger,
        notifications: Optional[NotificationBus] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._state = state
        self._permissions = permissions
        self._tokens = token_ledger
        self._bus = notifications or NotificationBus()
        self._clock = clock or system_clock
        self._lock = threading.RLock()
        self._entered = False
        self._pending_events: List[VaultEvent] = []

    # =========================================================================
    # Transaction plumbing
    # =========================================================================

    @property
    def notifications(self) -> NotificationBus:
        return self._bus

    @property
    def token_ledger(self) -> TokenLedger:
        return self._tokens

    def now(self) -> int:
        return int(self._clock())

    @contextmanager
    def _transaction(self, operation: str, correlation_id: str) -> Iterator[VaultState]:
        with self._lock:
            if self._entered:
                raise fail(
                    StateError,
                    VaultErrorCode.REENTRANT_CALL,
                    "Re-entrant call rejected",
                    correlation_id,
                    operation=operation,
                )

            self._entered = True
            # The withdrawal log is shared with the backup, not copied;
            # its checkpoint undoes the operation without an O(N) copy.
            queue = self._state.queue
            queue_backup = queue.checkpoint()
            state_backup = copy.deepcopy(self._state, {id(queue): queue})
            ledger_backup = self._tokens.snapshot()
            self._pending_events = []
            try:
                yield self._state
            except Exception as e:
                self._state = state_backup
                queue.rollback(queue_backup)
                self._tokens.restore(ledger_backup)
                self._pending_events = []
                if isinstance(e, VaultError):
                    record_vault_error(e.error_code, correlation_id)
                logger.warning(
                    f"[VAULT-FACADE] Operation rolled back | "
                    f"operation={operation} | "
                    f"error={str(e)} | "
                    f"correlation_id={correlation_id}"
                )
                raise
            finally:
                self._entered = False

            events, self._pending_events = self._pending_events, []
            update_vault_gauges(
                self._state.conversion.rate,
                self._state.queue.total_withdrawing_assets,
                self._state.total_supply,
            )
            self._bus.publish(events)

    def _emit(
        self,
        event_type: VaultEventType,
        actor_id: str,
        correlation_id: str,
        payload: Optional[Dict[str, Any]] = None,
        previous_state: Optional[Dict[str, Any]] = None,
        new_state: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._pending_events.append(VaultEvent(
            event_type=event_type,
            actor_id=actor_id,
            correlation_id=correlation_id,
            payload=payload or {},
            previous_state=previous_state,
            new_state=new_state,
        ))

    @staticmethod
    def _correlation(correlation_id: Optional[str]) -> str:
        return correlation_id or str(uuid.uuid4())

    @staticmethod
    def _require_positive(amount: int, what: str, correlation_id: str) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise fail(
                ValidationError,
                VaultErrorCode.INVALID_PARAMETER,
                f"{what} must be an int",
                correlation_id,
                value=amount,
            )
        if amount <= 0:
            raise fail(
                ValidationError,
                VaultErrorCode.ZERO_AMOUNT,
                f"{what} must be greater than zero",
                correlation_id,
                value=amount,
            )

    @staticmethod
    def _require_non_negative(value: int, what: str, correlation_id: str) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise fail(
                ValidationError,
                VaultErrorCode.INVALID_PARAMETER,
                f"{what} must be a non-negative int",
                correlation_id,
                value=value,
            )

    @staticmethod
    def _require_address(address: Optional[str], what: str, correlation_id: str) -> None:
        if is_zero_address(address):
            raise fail(
                ValidationError,
                VaultErrorCode.ZERO_ADDRESS,
                f"{what} cannot be the zero address",
                correlation_id,
            )

    def _require_admin(self, caller: str, correlation_id: str) -> None:
        self._permissions.require_any(caller, [Capability.ADMIN], correlation_id)

    # =========================================================================
    # Admin configuration
    # =========================================================================

    def set_exchange_rate(self, caller: str, rate: int, correlation_id: Optional[str] = None) -> int:
        """
        Overwrite the exchange rate (RATE_UPDATER or ADMIN).

        Returns:
            The previous rate
        """
        corr = self._correlation(correlation_id)
        with self._transaction("set_exchange_rate", corr) as state:
            self._permissions.require_any(
                caller, [Capability.RATE_UPDATER, Capability.ADMIN], corr
            )
            self._require_positive(rate, "Exchange rate", corr)
            previous_time = state.conversion.rate_state.update_time
            now = self.now()
            previous_rate = state.conversion.set_rate(rate, now, corr)
            self._emit(
                VaultEventType.EXCHANGE_RATE_UPDATED, caller, corr,
                payload={"rate": str(rate)},
                previous_state={"rate": str(previous_rate), "update_time": previous_time},
                new_state={"rate": str(rate), "update_time": now},
            )
        return previous_rate

    def _set_value(
        self,
        caller: str,
        operation: str,
        event_type: VaultEventType,
        field_name: str,
        value: Any,
        apply: Callable[[VaultState], Any],
        correlation_id: Optional[str],
        validate: Optional[Callable[[str], None]] = None,
    ) -> Any:
        """Admin-gated single-value update with before/after audit."""
        corr = self._correlation(correlation_id)
        with self._transaction(operation, corr) as state:
            self._require_admin(caller, corr)
            if validate is not None:
                validate(corr)
            previous = apply(state)
            self._emit(
                event_type, caller, corr,
                payload={field_name: str(value)},
                previous_state={field_name: None if previous is None else str(previous)},
                new_state={field_name: str(value)},
            )
            logger.info(
                f"[VAULT-FACADE] Configuration updated | "
                f"{field_name}={previous} → {value} | "
                f"caller={caller} | correlation_id={corr}"
            )
        return previous

    def set_redemption_period(self, caller: str, seconds: int, correlation_id: Optional[str] = None) -> int:
        return self._set_value(
            caller, "set_redemption_period", VaultEventType.REDEMPTION_PERIOD_UPDATED,
            "redemption_period", seconds,
            lambda s: s.queue.set_redemption_period(seconds),
            correlation_id,
            lambda corr: self._require_non_negative(seconds, "Redemption period", corr),
        )

    def set_expire_interval(self, caller: str, seconds: int, correlation_id: Optional[str] = None) -> int:
        return self._set_value(
            caller, "set_expire_interval", VaultEventType.EXPIRE_INTERVAL_UPDATED,
            "expire_interval", seconds,
            lambda s: s.conversion.set_expire_interval(seconds),
            correlation_id,
            lambda corr: self._require_positive(seconds, "Expire interval", corr),
        )

    def set_min_deposit(self, caller: str, amount: int, correlation_id: Optional[str] = None) -> int:
        def apply(state: VaultState) -> int:
            previous, state.min_deposit = state.min_deposit, amount
            return previous

        return self._set_value(
            caller, "set_min_deposit", VaultEventType.MIN_DEPOSIT_UPDATED,
            "min_deposit", amount, apply, correlation_id,
            lambda corr: self._require_non_negative(amount, "Minimum deposit", corr),
        )

    def set_min_withdrawal_amount(self, caller: str, shares: int, correlation_id: Optional[str] = None) -> int:
        def apply(state: VaultState) -> int:
            previous, state.min_withdrawal = state.min_withdrawal, shares
            return previous

        return self._set_value(
            caller, "set_min_withdrawal_amount", VaultEventType.MIN_WITHDRAWAL_UPDATED,
            "min_withdrawal", shares, apply, correlation_id,
            lambda corr: self._require_non_negative(shares, "Minimum withdrawal", corr),
        )

    def set_min_rate(self, caller: str, min_rate: int, correlation_id: Optional[str] = None) -> int:
        corr = self._correlation(correlation_id)
        return self._set_value(
            caller, "set_min_rate", VaultEventType.MIN_RATE_UPDATED,
            "min_rate", min_rate,
            lambda s: s.conversion.set_min_rate(min_rate, corr),
            corr,
            lambda c: self._require_non_negative(min_rate, "Minimum rate", c),
        )

    def set_treasury(self, caller: str, treasury: str, correlation_id: Optional[str] = None) -> Optional[str]:
        def apply(state: VaultState) -> Optional[str]:
            previous, state.treasury = state.treasury, treasury
            return previous

        return self._set_value(
            caller, "set_treasury", VaultEventType.TREASURY_UPDATED,
            "treasury", treasury, apply, correlation_id,
            lambda corr: self._require_address(treasury, "Treasury", corr),
        )

    def set_fee_bps(self, caller: str, fee_bps: int, correlation_id: Optional[str] = None) -> int:
        def validate(corr: str) -> None:
            try:
                validate_fee_bps(fee_bps)
            except ValidationError as e:
                raise fail(ValidationError, e.error_code, e.message, corr, fee_bps=fee_bps)
            if fee_bps > 0 and is_zero_address(self._state.treasury):
                raise fail(
                    ValidationError,
                    VaultErrorCode.ZERO_ADDRESS,
                    "A treasury must be set before a fee can be charged",
                    corr,
                )

        return self._set_value(
            caller, "set_fee_bps", VaultEventType.FEE_BPS_UPDATED,
            "fee_bps", fee_bps,
            lambda s: s.fee_engine.set_fee_bps(fee_bps),
            correlation_id,
            validate,
        )

    # =========================================================================
    # Deposits
    # =========================================================================

    def _check_deposit(self, state: VaultState, assets: int, receiver: str, corr: str) -> None:
        state.conversion.require_fresh(self.now(), corr)
        self._require_address(receiver, "Receiver", corr)

        if state.min_deposit > 0 and assets < state.min_deposit:
            raise fail(
                ValidationError,
                VaultErrorCode.BELOW_MINIMUM,
                "Deposit below minimum",
                corr,
                assets=assets,
                min_deposit=state.min_deposit,
            )

        total_assets = state.total_assets()
        if total_assets + assets > state.assets_cap:
            raise fail(
                ValidationError,
                VaultErrorCode.CAP_EXCEEDED,
                "Deposit would exceed the assets cap",
                corr,
                assets=assets,
                total_assets=total_assets,
                assets_cap=state.assets_cap,
            )

    def _settle_deposit(
        self,
        state: VaultState,
        caller: str,
        receiver: str,
        assets: int,
        shares: int,
        corr: str,
    ) -> None:
        if shares == 0:
            raise fail(
                ValidationError,
                VaultErrorCode.ZERO_AMOUNT,
                "Deposit would mint zero shares",
                corr,
                assets=assets,
            )

        previous_supply = state.total_supply
        state.mint_shares(receiver, shares)
        principal = state.cost_basis.on_deposit(receiver, assets)
        self._tokens.transfer(state.asset_token, caller, VAULT_ACCOUNT, assets, corr)

        self._emit(
            VaultEventType.DEPOSIT, caller, corr,
            payload={
                "receiver": receiver,
                "assets": str(assets),
                "shares": str(shares),
                "rate": str(state.conversion.rate),
            },
            previous_state={"total_supply": str(previous_supply)},
            new_state={"total_supply": str(state.total_supply), "principal": str(principal)},
        )
        logger.info(
            f"[VAULT-FACADE] Deposit accepted | "
            f"caller={caller} | receiver={receiver} | "
            f"assets={assets} | shares={shares} | "
            f"correlation_id={corr}"
        )

    def deposit(self, caller: str, assets: int, receiver: str, correlation_id: Optional[str] = None) -> int:
        """
        Deposit assets, minting floor-rounded shares to receiver.

        Returns:
            Shares minted
        """
        corr = self._correlation(correlation_id)
        with self._transaction("deposit", corr) as state:
            self._require_positive(assets, "Deposit amount", corr)
            self._check_deposit(state, assets, receiver, corr)
            shares = state.conversion.to_shares(assets, Rounding.FLOOR)
            self._settle_deposit(state, caller, receiver, assets, shares, corr)
        return shares

    def mint(self, caller: str, shares: int, receiver: str, correlation_id: Optional[str] = None) -> int:
        """
        Mint exactly `shares`, charging ceil-rounded assets.

        Returns:
            Assets charged
        """
        corr = self._correlation(correlation_id)
        with self._transaction("mint", corr) as state:
            self._require_positive(shares, "Mint amount", corr)
            state.conversion.require_fresh(self.now(), corr)
            assets = state.conversion.to_assets(shares, Rounding.CEIL)
            self._check_deposit(state, assets, receiver, corr)
            self._settle_deposit(state, caller, receiver, assets, shares, corr)
        return assets

    # =========================================================================
    # Withdrawals
    # =========================================================================

    def request_withdrawal(
        self,
        caller: str,
        shares: int,
        receiver: str,
        correlation_id: Optional[str] = None,
    ) -> WithdrawalRequest:
        """
        Burn shares and enqueue a time-locked withdrawal request.

        Preconditions (in order): fresh rate, shares > 0, minimum withdrawal,
        non-zero receiver, shares <= max_redeemable(caller).
        """
        corr = self._correlation(correlation_id)
        with self._transaction("request_withdrawal", corr) as state:
            now = self.now()
            state.conversion.require_fresh(now, corr)
            self._require_positive(shares, "Withdrawal shares", corr)

            if state.min_withdrawal > 0 and shares < state.min_withdrawal:
                raise fail(
                    ValidationError,
                    VaultErrorCode.BELOW_MINIMUM,
                    "Withdrawal below minimum",
                    corr,
                    shares=shares,
                    min_withdrawal=state.min_withdrawal,
                )

            self._require_address(receiver, "Receiver", corr)

            shares_before = state.share_balance_of(caller)
            if shares > shares_before:
                raise fail(
                    ValidationError,
                    VaultErrorCode.EXCEEDS_REDEEMABLE,
                    "Withdrawal exceeds redeemable shares",
                    corr,
                    shares=shares,
                    redeemable=shares_before,
                )

            assets_gross = state.conversion.to_assets(shares, Rounding.FLOOR)
            if assets_gross == 0:
                raise fail(
                    ValidationError,
                    VaultErrorCode.ZERO_AMOUNT,
                    "Withdrawal would pay out zero assets",
                    corr,
                    shares=shares,
                )

            cost_basis = state.cost_basis.on_withdraw_request(caller, shares, shares_before)
            quote = state.fee_engine.quote(assets_gross, cost_basis)
            state.burn_shares(caller, shares, corr)

            request = state.queue.enqueue(
                owner=caller,
                receiver=receiver,
                shares_burned=shares,
                assets_gross=quote.assets_gross,
                cost_basis=quote.cost_basis,
                assets_net=quote.assets_net,
                fee_amount=quote.fee,
                requested_at=now,
                correlation_id=corr,
            )
            self._emit(
                VaultEventType.WITHDRAWAL_REQUESTED, caller, corr,
                payload=request.to_dict(),
                previous_state={"shares": str(shares_before)},
                new_state={
                    "shares": str(state.share_balance_of(caller)),
                    "total_withdrawing_assets": str(state.queue.total_withdrawing_assets),
                    "claimable_at": state.queue.claimable_at(request),
                },
            )
        return replace(request)

    def _claim_one(self, state: VaultState, caller: str, request_id: int, now: int, corr: str) -> WithdrawalRequest:
        request = state.queue.check_claim(request_id, caller, now, corr)
        if request.fee_amount > 0 and is_zero_address(state.treasury):
            raise fail(
                StateError,
                VaultErrorCode.ZERO_ADDRESS,
                "No treasury configured to receive the fee",
                corr,
                request_id=request_id,
            )

        # Effects before interactions
        state.queue.mark_claimed(request_id, now, corr)
        self._tokens.transfer(state.asset_token, VAULT_ACCOUNT, request.receiver, request.assets_net, corr)
        if request.fee_amount > 0:
            self._tokens.transfer(state.asset_token, VAULT_ACCOUNT, state.treasury, request.fee_amount, corr)

        self._emit(
            VaultEventType.WITHDRAWAL_CLAIMED, caller, corr,
            payload={
                "id": request.id,
                "receiver": request.receiver,
                "assets_net": str(request.assets_net),
                "fee_amount": str(request.fee_amount),
                "treasury": state.treasury if request.fee_amount > 0 else None,
            },
            previous_state={"claimed": False},
            new_state={
                "claimed": True,
                "claimed_at": now,
                "total_withdrawing_assets": str(state.queue.total_withdrawing_assets),
            },
        )
        return replace(request)

    def claim_withdrawal(self, caller: str, request_id: int, correlation_id: Optional[str] = None) -> WithdrawalRequest:
        corr = self._correlation(correlation_id)
        with self._transaction("claim_withdrawal", corr) as state:
            claimed = self._claim_one(state, caller, request_id, self.now(), corr)
        return claimed

    def batch_claim_withdrawal(
        self,
        caller: str,
        request_ids: Sequence[int],
        correlation_id: Optional[str] = None,
    ) -> List[WithdrawalRequest]:
        """
        Claim several requests in order, all or nothing.

        A duplicate id fails as a second claim of an already-claimed
        request and aborts the whole batch.
        """
        corr = self._correlation(correlation_id)
        with self._transaction("batch_claim_withdrawal", corr) as state:
            if not request_ids:
                raise fail(
                    ValidationError,
                    VaultErrorCode.INVALID_PARAMETER,
                    "Batch claim requires at least one request id",
                    corr,
                )
            now = self.now()
            claimed = [self._claim_one(state, caller, rid, now, corr) for rid in request_ids]
            logger.info(
                f"[VAULT-FACADE] Batch claim completed | "
                f"caller={caller} | ids={list(request_ids)} | "
                f"correlation_id={corr}"
            )
        return claimed

    # =========================================================================
    # Share transfers
    # =========================================================================

    def transfer_shares(
        self,
        caller: str,
        recipient: str,
        shares: int,
        correlation_id: Optional[str] = None,
    ) -> int:
        """
        Move shares and the proportional principal behind them.

        Returns:
            Principal moved
        """
        corr = self._correlation(correlation_id)
        with self._transaction("transfer_shares", corr) as state:
            self._require_non_negative(shares, "Transfer shares", corr)
            self._require_address(recipient, "Recipient", corr)
            sender_balance = state.share_balance_of(caller)
            moved = state.cost_basis.on_transfer(caller, recipient, shares, sender_balance, corr)
            if caller != recipient:
                state.move_shares(caller, recipient, shares)
            self._emit(
                VaultEventType.SHARES_TRANSFERRED, caller, corr,
                payload={
                    "recipient": recipient,
                    "shares": str(shares),
                    "principal_moved": str(moved),
                },
                previous_state={"sender_shares": str(sender_balance)},
                new_state={"sender_shares": str(state.share_balance_of(caller))},
            )
        return moved

    # =========================================================================
    # Governance
    # =========================================================================

    def _emit_approval(self, caller: str, corr: str, outcome: ApprovalOutcome) -> None:
        self._emit(
            VaultEventType.QUORUM_APPROVAL, caller, corr,
            payload={
                "kind": outcome.kind.value,
                "key": outcome.key,
                "payload": governance_payload_to_dict(outcome.payload),
                "approval_count": outcome.approval_count,
                "required_approvals": outcome.required_approvals,
                "executed": outcome.executed,
                "reset": outcome.reset,
            },
        )

    def whitelist_change(
        self,
        caller: str,
        target: str,
        allow: bool,
        proposal_id: int,
        correlation_id: Optional[str] = None,
    ) -> ApprovalOutcome:
        corr = self._correlation(correlation_id)
        with self._transaction("whitelist_change", corr) as state:
            was_allowed = target in state.whitelist
            outcome = state.whitelist_quorum.approve(
                caller, proposal_id, WhitelistChange(target=target, allow=bool(allow)), corr
            )
            self._emit_approval(caller, corr, outcome)
            if outcome.executed:
                self._emit(
                    VaultEventType.WHITELIST_UPDATED, caller, corr,
                    payload={"target": target, "proposal_id": proposal_id},
                    previous_state={"allowed": was_allowed},
                    new_state={"allowed": target in state.whitelist},
                )
        return outcome

    def signer_change(
        self,
        caller: str,
        action: Union[SignerAction, str],
        target: str,
        correlation_id: Optional[str] = None,
    ) -> ApprovalOutcome:
        corr = self._correlation(correlation_id)
        with self._transaction("signer_change", corr) as state:
            try:
                signer_action = SignerAction(action)
            except ValueError:
                raise fail(
                    ValidationError,
                    VaultErrorCode.INVALID_PARAMETER,
                    "Unknown signer action",
                    corr,
                    action=action,
                )
            previous_members = list(state.signers.members)
            previous_required = state.signers.required_approvals
            outcome = state.signer_quorum.approve(
                caller, SignerChange(action=signer_action, target=target), corr
            )
            self._emit_approval(caller, corr, outcome)
            if outcome.executed:
                self._emit(
                    VaultEventType.SIGNERS_UPDATED, caller, corr,
                    payload={"action": signer_action.value, "target": target},
                    previous_state={
                        "signers": previous_members,
                        "required_approvals": previous_required,
                    },
                    new_state={
                        "signers": list(state.signers.members),
                        "required_approvals": state.signers.required_approvals,
                    },
                )
        return outcome

    def assets_cap_change(self, caller: str, new_cap: int, correlation_id: Optional[str] = None) -> ApprovalOutcome:
        corr = self._correlation(correlation_id)
        with self._transaction("assets_cap_change", corr) as state:
            previous_cap = state.assets_cap
            outcome = state.cap_quorum.approve(caller, AssetsCapChange(new_cap=new_cap), corr)
            self._emit_approval(caller, corr, outcome)
            if outcome.executed:
                self._emit(
                    VaultEventType.ASSETS_CAP_UPDATED, caller, corr,
                    payload={"new_cap": str(new_cap)},
                    previous_state={"assets_cap": str(previous_cap)},
                    new_state={"assets_cap": str(state.assets_cap)},
                )
        return outcome

    def protocol_withdraw(
        self,
        caller: str,
        asset: str,
        amount: int,
        destination: str,
        correlation_id: Optional[str] = None,
    ) -> int:
        """
        Move a held asset to a whitelisted destination (signers only).

        For the underlying asset only the balance above reserved withdrawal
        liabilities is available.

        Returns:
            Vault balance of `asset` after the transfer
        """
        corr = self._correlation(correlation_id)
        with self._transaction("protocol_withdraw", corr) as state:
            if caller not in state.signers:
                raise fail(
                    AuthorizationError,
                    VaultErrorCode.NOT_SIGNER,
                    "Caller is not a signer",
                    corr,
                    caller=caller,
                )
            if destination not in state.whitelist:
                raise fail(
                    AuthorizationError,
                    VaultErrorCode.NOT_WHITELISTED,
                    "Destination is not whitelisted",
                    corr,
                    destination=destination,
                )
            self._require_positive(amount, "Protocol withdrawal amount", corr)

            available = self._available(state, asset)
            if amount > available:
                raise fail(
                    ValidationError,
                    VaultErrorCode.EXCEEDS_AVAILABLE,
                    "Amount exceeds available balance",
                    corr,
                    asset=asset,
                    amount=amount,
                    available=available,
                )

            previous_balance = self._tokens.balance_of(asset, VAULT_ACCOUNT)
            self._tokens.transfer(asset, VAULT_ACCOUNT, destination, amount, corr)
            new_balance = self._tokens.balance_of(asset, VAULT_ACCOUNT)
            self._emit(
                VaultEventType.PROTOCOL_WITHDRAWAL, caller, corr,
                payload={"asset": asset, "amount": str(amount), "destination": destination},
                previous_state={"vault_balance": str(previous_balance)},
                new_state={"vault_balance": str(new_balance)},
            )
        return new_balance

    def _available(self, state: VaultState, asset: str) -> int:
        balance = self._tokens.balance_of(asset, VAULT_ACCOUNT)
        if asset != state.asset_token:
            return balance
        return max(balance - state.queue.reserved_assets, 0)

    # =========================================================================
    # Queries
    # =========================================================================

    def preview_deposit(self, assets: int) -> int:
        with self._lock:
            return self._state.conversion.to_shares(assets, Rounding.FLOOR)

    def preview_mint(self, shares: int) -> int:
        with self._lock:
            return self._state.conversion.to_assets(shares, Rounding.CEIL)

    def preview_redeem(self, shares: int) -> int:
        """Gross assets for `shares`, before any fee."""
        with self._lock:
            return self._state.conversion.to_assets(shares, Rounding.FLOOR)

    def preview_withdrawal(self, owner: str, shares: int) -> FeeQuote:
        """Fee breakdown a request_withdrawal by `owner` would produce now."""
        with self._lock:
            state = self._state
            gross = state.conversion.to_assets(shares, Rounding.FLOOR)
            basis = state.cost_basis.quote_withdraw(owner, shares, state.share_balance_of(owner))
            return state.fee_engine.quote(gross, basis)

    def max_deposit(self) -> int:
        with self._lock:
            return max(self._state.assets_cap - self._state.total_assets(), 0)

    def max_mint(self) -> int:
        with self._lock:
            return self._state.conversion.to_shares(self.max_deposit(), Rounding.FLOOR)

    def max_redeemable(self, owner: str) -> int:
        with self._lock:
            return self._state.share_balance_of(owner)

    def available_assets(self, asset: Optional[str] = None) -> int:
        with self._lock:
            return self._available(self._state, asset or self._state.asset_token)

    def balance_of(self, holder: str) -> int:
        with self._lock:
            return self._state.share_balance_of(holder)

    def principal_of(self, holder: str) -> int:
        with self._lock:
            return self._state.cost_basis.principal_of(holder)

    def total_supply(self) -> int:
        with self._lock:
            return self._state.total_supply

    def total_assets(self) -> int:
        with self._lock:
            return self._state.total_assets()

    def exchange_rate(self) -> ExchangeRateState:
        with self._lock:
            return replace(self._state.conversion.rate_state)

    def is_rate_stale(self) -> bool:
        with self._lock:
            return self._state.conversion.is_stale(self.now())

    def signers(self) -> List[str]:
        with self._lock:
            return list(self._state.signers.members)

    def required_approvals(self) -> int:
        with self._lock:
            return self._state.signers.required_approvals

    def is_whitelisted(self, target: str) -> bool:
        with self._lock:
            return target in self._state.whitelist

    def assets_cap(self) -> int:
        with self._lock:
            return self._state.assets_cap

    def whitelist_proposal(self, proposal_id: int) -> Optional[ProposalSnapshot]:
        with self._lock:
            return self._state.whitelist_quorum.snapshot(proposal_id)

    def signer_proposal(self) -> Optional[ProposalSnapshot]:
        with self._lock:
            return self._state.signer_quorum.snapshot()

    def assets_cap_proposal(self) -> Optional[ProposalSnapshot]:
        with self._lock:
            return self._state.cap_quorum.snapshot()

    def has_approved(self, kind: ProposalKind, signer: str, proposal_id: Optional[int] = None) -> bool:
        with self._lock:
            if kind is ProposalKind.WHITELIST:
                return proposal_id is not None and self._state.whitelist_quorum.has_approved(proposal_id, signer)
            if kind is ProposalKind.SIGNER_SET:
                return self._state.signer_quorum.has_approved(signer)
            return self._state.cap_quorum.has_approved(signer)

    def get_withdrawal_request(self, request_id: int) -> WithdrawalRequest:
        with self._lock:
            return replace(self._state.queue.get(request_id))

    def is_claimable(self, request_id: int) -> bool:
        with self._lock:
            return self._state.queue.is_claimable(request_id, self.now())

    def time_until_claimable(self, request_id: int) -> int:
        with self._lock:
            return self._state.queue.time_until_claimable(request_id, self.now())

    def filter_withdrawal_requests(
        self,
        owner: Optional[str] = None,
        receiver: Optional[str] = None,
        claimed: Optional[bool] = None,
        claimable: Optional[bool] = None,
        start_id: Optional[int] = None,
        end_id: Optional[int] = None,
    ) -> List[WithdrawalRequest]:
        with self._lock:
            return [
                replace(r) for r in self._state.queue.filter_requests(
                    self.now(), owner, receiver, claimed, claimable, start_id, end_id
                )
            ]

    def aggregate_withdrawal_requests(self, start_id: int, end_id: int) -> RangeAggregate:
        with self._lock:
            return self._state.queue.aggregate_range(start_id, end_id, self.now())

    def withdrawal_requests_of(self, owner: str) -> List[WithdrawalRequest]:
        with self._lock:
            return [replace(r) for r in self._state.queue.requests_of(owner)]

    def withdrawal_totals(self) -> Dict[str, int]:
        with self._lock:
            queue = self._state.queue
            return {
                "total_withdrawing_assets": queue.total_withdrawing_assets,
                "total_withdrawing_shares": queue.total_withdrawing_shares,
                "total_withdrawing_fees": queue.total_withdrawing_fees,
                "reserved_assets": queue.reserved_assets,
                "request_count": len(queue),
            }

    def vault_status(self) -> Dict[str, Any]:
        """Summary for the HTTP root and health checks."""
        with self._lock:
            state = self._state
            return {
                "asset_token": state.asset_token,
                "exchange_rate": state.conversion.rate_state.to_dict(),
                "exchange_rate_display": FixedPointGateway().format_rate(state.conversion.rate),
                "rate_stale": state.conversion.is_stale(self.now()),
                "total_supply": str(state.total_supply),
                "total_assets": str(state.total_assets()),
                "assets_cap": str(state.assets_cap),
                "fee_bps": state.fee_engine.fee_bps,
                "redemption_period": state.queue.redemption_period,
                "signers": list(state.signers.members),
                "required_approvals": state.signers.required_approvals,
                "total_withdrawing_assets": str(state.queue.total_withdrawing_assets),
            }


# =============================================================================
# Factory
# =============================================================================

def build_vault_facade(
    config: VaultConfig,
    token_ledger: Optional[TokenLedger] = None,
    permissions: Optional[PermissionEngine] = None,
    notifications: Optional[NotificationBus] = None,
    clock: Optional[Clock] = None,
) -> VaultFacade:
    """
    Assemble a facade from configuration.

    The rate is considered fresh as of construction time.
    """
    clock = clock or system_clock
    config.validate()

    rate_state = ExchangeRateState(
        rate=config.initial_rate,
        update_time=int(clock()),
        expire_interval=config.expire_interval_seconds,
        min_rate=config.min_rate,
    )
    state = VaultState(
        asset_token=config.asset_token,
        conversion=ConversionEngine(rate_state),
        fee_engine=FeeEngine(config.fee_bps),
        queue=WithdrawalQueue(config.redemption_period_seconds),
        signers=SignerSet(config.signers, config.min_signers),
        treasury=config.treasury,
        min_deposit=config.min_deposit,
        min_withdrawal=config.min_withdrawal,
        assets_cap=config.assets_cap,
    )

    if permissions is None:
        permissions = InMemoryPermissionEngine({
            Capability.ADMIN: config.admins,
            Capability.RATE_UPDATER: config.rate_updaters,
        })

    facade = VaultFacade(
        state=state,
        permissions=permissions,
        token_ledger=token_ledger if token_ledger is not None else InMemoryTokenLedger(),
        notifications=notifications,
        clock=clock,
    )
    logger.info(
        f"[VAULT-FACADE] Vault initialized | "
        f"asset_token={config.asset_token} | "
        f"signers={len(config.signers)} | "
        f"required_approvals={state.signers.required_approvals} | "
        f"assets_cap={config.assets_cap}"
    )
    return facade


__all__ = ["VaultFacade", "build_vault_facade", "system_clock", "Clock"]
