"""
============================================================================
Vault - Withdrawal Request Queue
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Integer Integrity: Running totals are exact ints
Traceability: All operations include correlation_id for audit

WITHDRAWAL LIFECYCLE STATE MACHINE:
    REQUESTED → CLAIMABLE (implicit: now >= requested_at + redemption_period)
    CLAIMABLE → CLAIMED   (owner claims; terminal)

    CLAIMABLE is never stored. It is recomputed from the clock and the
    current redemption period on every read. There is no cancellation.

LIABILITY LEDGER:
    The queue is an append-only, 1-based indexed log. Assets stay in the
    vault's general balance until claim; the running totals below are the
    vault's outstanding liabilities:

        total_withdrawing_assets == sum(unclaimed.assets_net)
        total_withdrawing_shares == sum(unclaimed.shares_burned)
        total_withdrawing_fees   == sum(unclaimed.fee_amount)

CLAIM GUARDS (evaluated in order, first failure wins):
    1. caller must be the owner             (VLT-004, AuthorizationError)
    2. request must not be claimed          (VLT-030, StateError)
    3. redemption period must have elapsed  (VLT-031, StateError)

ERROR CODES:
    - VLT-004: Caller is not the request owner
    - VLT-018: Request not found
    - VLT-030: Already claimed
    - VLT-031: Redemption period not elapsed
    - VLT-042: Row hash mismatch

============================================================================
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Iterable
import logging

from vault.vault_errors import (
    AuthorizationError,
    StateError,
    ValidationError,
    VaultErrorCode,
    fail,
)
from vault.vault_models import (
    RangeAggregate,
    RowHasher,
    WithdrawalRequest,
    WithdrawalState,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# VALID_TRANSITIONS Constant
# =============================================================================

VALID_TRANSITIONS: Dict[WithdrawalState, List[WithdrawalState]] = {
    WithdrawalState.REQUESTED: [WithdrawalState.CLAIMABLE],
    WithdrawalState.CLAIMABLE: [WithdrawalState.CLAIMED],
    WithdrawalState.CLAIMED: [],  # Terminal state
}

TERMINAL_STATES: List[WithdrawalState] = [WithdrawalState.CLAIMED]


@dataclass(frozen=True)
class QueueCheckpoint:
    """Watermark and totals taken before a facade operation."""
    last_id: int
    redemption_period: int
    total_withdrawing_assets: int
    total_withdrawing_shares: int
    total_withdrawing_fees: int


# =============================================================================
# WithdrawalQueue Class
# =============================================================================

class WithdrawalQueue:
    """
    Append-only log of withdrawal requests with running liability totals.

    ============================================================================
    OPERATIONS:
    ============================================================================
    enqueue()            Append a request (id = previous id + 1)
    check_claim()        Evaluate the three claim guards without mutating
    mark_claimed()       Effects of a claim: flag + totals (no transfers)
    state_of()           REQUESTED / CLAIMABLE / CLAIMED at a given time
    filter_requests()    Projection by owner/receiver/status/id range
    aggregate_range()    Totals over an id range
    checkpoint()         O(1) undo point; rollback() restores it
    ============================================================================

    Reliability Level: L6 Critical (Sovereign Tier)
    Side Effects: Mutates in-memory log and totals; transfers are the
                  caller's responsibility and must follow mark_claimed()
    """

    def __init__(self, redemption_period: int) -> None:
        self._validate_period(redemption_period)
        self._redemption_period = redemption_period
        self._requests: Dict[int, WithdrawalRequest] = {}
        self._last_id = 0
        self._total_withdrawing_assets = 0
        self._total_withdrawing_shares = 0
        self._total_withdrawing_fees = 0
        self._claim_journal: List[int] = []

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate_period(redemption_period: int) -> None:
        if redemption_period < 0:
            raise ValidationError(
                VaultErrorCode.INVALID_PARAMETER,
                f"redemption_period must be non-negative, got {redemption_period}",
            )

    @property
    def redemption_period(self) -> int:
        return self._redemption_period

    def set_redemption_period(self, redemption_period: int) -> int:
        """
        Replace the period. Applies to every unclaimed request, since
        eligibility is recomputed rather than stored.
        """
        self._validate_period(redemption_period)
        previous = self._redemption_period
        self._redemption_period = redemption_period
        return previous

    # -------------------------------------------------------------------------
    # Totals
    # -------------------------------------------------------------------------

    @property
    def total_withdrawing_assets(self) -> int:
        return self._total_withdrawing_assets

    @property
    def total_withdrawing_shares(self) -> int:
        return self._total_withdrawing_shares

    @property
    def total_withdrawing_fees(self) -> int:
        return self._total_withdrawing_fees

    @property
    def reserved_assets(self) -> int:
        """Assets the vault must keep for pending claims (net + fees)."""
        return self._total_withdrawing_assets + self._total_withdrawing_fees

    @property
    def last_id(self) -> int:
        return self._last_id

    def __len__(self) -> int:
        return len(self._requests)

    # -------------------------------------------------------------------------
    # Checkpoint & rollback
    # -------------------------------------------------------------------------

    def checkpoint(self) -> QueueCheckpoint:
        """
        Capture enough to undo the next operation in O(1).

        The log is append-only and a claim only flips a flag, so undoing
        means dropping ids above the watermark and un-flagging the claims
        journaled since the checkpoint. One checkpoint is live at a time.
        """
        self._claim_journal = []
        return QueueCheckpoint(
            last_id=self._last_id,
            redemption_period=self._redemption_period,
            total_withdrawing_assets=self._total_withdrawing_assets,
            total_withdrawing_shares=self._total_withdrawing_shares,
            total_withdrawing_fees=self._total_withdrawing_fees,
        )

    def rollback(self, checkpoint: QueueCheckpoint) -> None:
        for request_id in reversed(self._claim_journal):
            request = self._requests.get(request_id)
            if request is not None:
                request.claimed = False
                request.claimed_at = None
        self._claim_journal = []

        for request_id in range(checkpoint.last_id + 1, self._last_id + 1):
            self._requests.pop(request_id, None)

        self._last_id = checkpoint.last_id
        self._redemption_period = checkpoint.redemption_period
        self._total_withdrawing_assets = checkpoint.total_withdrawing_assets
        self._total_withdrawing_shares = checkpoint.total_withdrawing_shares
        self._total_withdrawing_fees = checkpoint.total_withdrawing_fees

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        owner: str,
        receiver: str,
        shares_burned: int,
        assets_gross: int,
        cost_basis: int,
        assets_net: int,
        fee_amount: int,
        requested_at: int,
        correlation_id: str,
    ) -> WithdrawalRequest:
        """
        Append a new request and grow the running totals.

        The caller has already burned the shares; enqueue never fails after
        validation because it only appends.
        """
        if assets_net + fee_amount != assets_gross or fee_amount < 0:
            raise ValidationError(
                VaultErrorCode.INVALID_PARAMETER,
                f"Inconsistent withdrawal amounts: gross={assets_gross} "
                f"net={assets_net} fee={fee_amount}",
                correlation_id,
            )

        request_id = self._last_id + 1
        request = WithdrawalRequest(
            id=request_id,
            owner=owner,
            receiver=receiver,
            shares_burned=shares_burned,
            assets_gross=assets_gross,
            cost_basis=cost_basis,
            assets_net=assets_net,
            fee_amount=fee_amount,
            requested_at=requested_at,
            correlation_id=correlation_id,
        )
        request.row_hash = RowHasher.compute(request)

        self._requests[request_id] = request
        self._last_id = request_id
        self._total_withdrawing_assets += assets_net
        self._total_withdrawing_shares += shares_burned
        self._total_withdrawing_fees += fee_amount

        logger.info(
            f"[VAULT-QUEUE] Withdrawal request enqueued | "
            f"id={request_id} | owner={owner} | receiver={receiver} | "
            f"shares_burned={shares_burned} | assets_net={assets_net} | "
            f"fee={fee_amount} | correlation_id={correlation_id}"
        )
        return request

    # -------------------------------------------------------------------------
    # Lookup & state
    # -------------------------------------------------------------------------

    def get(self, request_id: int, correlation_id: Optional[str] = None) -> WithdrawalRequest:
        request = self._requests.get(request_id) if request_id > 0 else None
        if request is None:
            raise fail(
                ValidationError,
                VaultErrorCode.REQUEST_NOT_FOUND,
                "Withdrawal request not found",
                correlation_id,
                request_id=request_id,
            )
        return request

    def claimable_at(self, request: WithdrawalRequest) -> int:
        return request.requested_at + self._redemption_period

    def state_of(self, request_id: int, now: int) -> WithdrawalState:
        request = self.get(request_id)
        if request.claimed:
            return WithdrawalState.CLAIMED
        if now >= self.claimable_at(request):
            return WithdrawalState.CLAIMABLE
        return WithdrawalState.REQUESTED

    def is_claimable(self, request_id: int, now: int) -> bool:
        return self.state_of(request_id, now) is WithdrawalState.CLAIMABLE

    def time_until_claimable(self, request_id: int, now: int) -> int:
        """Seconds left before a claim may succeed (0 if claimable or claimed)."""
        request = self.get(request_id)
        if request.claimed:
            return 0
        return max(0, self.claimable_at(request) - now)

    # -------------------------------------------------------------------------
    # Claim
    # -------------------------------------------------------------------------

    def check_claim(
        self,
        request_id: int,
        caller: str,
        now: int,
        correlation_id: Optional[str] = None,
    ) -> WithdrawalRequest:
        """Evaluate the claim guards in order without mutating anything."""
        request = self.get(request_id, correlation_id)

        if caller != request.owner:
            raise fail(
                AuthorizationError,
                VaultErrorCode.NOT_REQUEST_OWNER,
                "Only the request owner may claim",
                correlation_id,
                request_id=request_id,
                caller=caller,
            )

        if request.claimed:
            raise fail(
                StateError,
                VaultErrorCode.ALREADY_CLAIMED,
                "Withdrawal request already claimed",
                correlation_id,
                request_id=request_id,
            )

        if now < self.claimable_at(request):
            raise fail(
                StateError,
                VaultErrorCode.REDEMPTION_PENDING,
                "Redemption period has not elapsed",
                correlation_id,
                request_id=request_id,
                claimable_at=self.claimable_at(request),
                now=now,
            )

        if not RowHasher.verify(request):
            raise StateError(
                VaultErrorCode.HASH_MISMATCH,
                f"Withdrawal request {request_id} failed integrity verification",
                correlation_id,
            )

        return request

    def mark_claimed(self, request_id: int, now: int, correlation_id: Optional[str] = None) -> WithdrawalRequest:
        """
        Apply the effects of a claim: flag the request and shrink totals.

        Must run after check_claim() and before any token transfer.
        """
        request = self.get(request_id, correlation_id)
        current = self.state_of(request_id, now)
        if WithdrawalState.CLAIMED not in get_valid_transitions(current):
            code = (
                VaultErrorCode.ALREADY_CLAIMED
                if is_terminal_state(current)
                else VaultErrorCode.REDEMPTION_PENDING
            )
            raise fail(
                StateError,
                code,
                "Invalid withdrawal state transition",
                correlation_id,
                request_id=request_id,
                from_state=current.value,
                to_state=WithdrawalState.CLAIMED.value,
            )

        request.claimed = True
        request.claimed_at = now
        self._claim_journal.append(request_id)
        self._total_withdrawing_assets -= request.assets_net
        self._total_withdrawing_shares -= request.shares_burned
        self._total_withdrawing_fees -= request.fee_amount

        logger.info(
            f"[VAULT-QUEUE] State transition completed | "
            f"id={request_id} | "
            f"{WithdrawalState.CLAIMABLE.value} → {WithdrawalState.CLAIMED.value} | "
            f"correlation_id={correlation_id}"
        )
        return request

    # -------------------------------------------------------------------------
    # Projections
    # -------------------------------------------------------------------------

    def iter_requests(self) -> Iterable[WithdrawalRequest]:
        return (self._requests[i] for i in sorted(self._requests))

    def requests_of(self, owner: str) -> List[WithdrawalRequest]:
        return [r for r in self.iter_requests() if r.owner == owner]

    def filter_requests(
        self,
        now: int,
        owner: Optional[str] = None,
        receiver: Optional[str] = None,
        claimed: Optional[bool] = None,
        claimable: Optional[bool] = None,
        start_id: Optional[int] = None,
        end_id: Optional[int] = None,
    ) -> List[WithdrawalRequest]:
        """Every criterion left as None matches everything."""
        results: List[WithdrawalRequest] = []
        for request in self.iter_requests():
            if start_id is not None and request.id < start_id:
                continue
            if end_id is not None and request.id > end_id:
                continue
            if owner is not None and request.owner != owner:
                continue
            if receiver is not None and request.receiver != receiver:
                continue
            if claimed is not None and request.claimed != claimed:
                continue
            if claimable is not None:
                is_claimable = (not request.claimed) and now >= self.claimable_at(request)
                if is_claimable != claimable:
                    continue
            results.append(request)
        return results

    def aggregate_range(self, start_id: int, end_id: int, now: int) -> RangeAggregate:
        """
        Totals over ids in [start_id, end_id] (inclusive). Ids beyond the
        log are ignored; an inverted range is rejected.
        """
        if start_id < 1 or end_id < start_id:
            raise ValidationError(
                VaultErrorCode.INVALID_PARAMETER,
                f"Invalid id range [{start_id}, {end_id}]",
            )

        count = shares = assets = fees = 0
        pending = claimable = claimed = 0
        for request_id in range(start_id, min(end_id, self._last_id) + 1):
            request = self._requests[request_id]
            count += 1
            shares += request.shares_burned
            assets += request.assets_net
            fees += request.fee_amount
            if request.claimed:
                claimed += 1
            elif now >= self.claimable_at(request):
                claimable += 1
            else:
                pending += 1

        return RangeAggregate(
            start_id=start_id,
            end_id=end_id,
            count=count,
            shares_burned=shares,
            assets_net=assets,
            fee_amount=fees,
            pending_count=pending,
            claimable_count=claimable,
            claimed_count=claimed,
        )


# =============================================================================
# Utility Functions
# =============================================================================

def get_valid_transitions(state: WithdrawalState) -> List[WithdrawalState]:
    return VALID_TRANSITIONS.get(state, [])


def is_terminal_state(state: WithdrawalState) -> bool:
    return state in TERMINAL_STATES


__all__ = [
    "VALID_TRANSITIONS",
    "QueueCheckpoint",
    "TERMINAL_STATES",
    "WithdrawalQueue",
    "get_valid_transitions",
    "is_terminal_state",
]
