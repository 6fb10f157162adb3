"""
============================================================================
Vault - Quorum Engine (N-of-M approvals)
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: All approvals logged with correlation_id

One approval algorithm, two proposal-addressing schemes:

KEYED (whitelist changes):
    - The caller supplies a proposal id (> 0)
    - The first approval on an id fixes its payload
    - Later approvals must carry the same payload (VLT-034 otherwise)
    - Once executed, the id is consumed (VLT-033 on any later approval)

SINGLETON WITH RESET (signer-set changes, assets-cap changes):
    - One live slot per kind
    - An approval carrying a different payload replaces the slot's payload
      and discards every prior approval before being counted
    - After execution the approvals are cleared for every signer while the
      payload stays, so approving the same payload again starts a new round

COMMON RULES:
    - Only committee signers may approve (VLT-002)
    - A signer approves a live payload at most once (VLT-032)
    - The threshold is read from the SignerSet at evaluation time, never
      captured when the proposal was opened
    - The side effect runs synchronously inside the approval that reaches
      the threshold; there is no separate execute step
    - Nothing is recorded if validation or the side effect raises

============================================================================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Optional, Set, TypeVar
import logging

from vault.signer_set import SignerSet
from vault.vault_errors import (
    AuthorizationError,
    StateError,
    ValidationError,
    VaultErrorCode,
    fail,
)
from vault.vault_models import ProposalKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Executor / validator signature: (payload, correlation_id) -> None
PayloadHook = Callable[[Any, Optional[str]], None]


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class QuorumProposal(Generic[T]):
    """
    Live proposal state. Never handed out directly; callers get a
    ProposalSnapshot without the approval set.
    """
    payload: T
    approvals: Set[str] = field(default_factory=set)
    executed: bool = False

    @property
    def approval_count(self) -> int:
        return len(self.approvals)


@dataclass(frozen=True)
class ProposalSnapshot:
    """Plain value view of a proposal."""
    kind: ProposalKind
    key: Optional[int]
    payload: Any
    approval_count: int
    required_approvals: int
    executed: bool


@dataclass(frozen=True)
class ApprovalOutcome:
    """Result of one approval call."""
    kind: ProposalKind
    key: Optional[int]
    payload: Any
    signer: str
    approval_count: int
    required_approvals: int
    executed: bool
    reset: bool = False


# =============================================================================
# Base Engine
# =============================================================================

class QuorumEngine(ABC, Generic[T]):
    """
    Shared approval algorithm. Subclasses decide how a call maps onto a
    proposal; _cast() decides whether it executes.
    """

    def __init__(
        self,
        kind: ProposalKind,
        signers: SignerSet,
        executor: PayloadHook,
        validator: Optional[PayloadHook] = None,
    ) -> None:
        self._kind = kind
        self._signers = signers
        self._executor = executor
        self._validator = validator

    @property
    def kind(self) -> ProposalKind:
        return self._kind

    @property
    def required_approvals(self) -> int:
        return self._signers.required_approvals

    def _require_signer(self, signer: str, correlation_id: Optional[str]) -> None:
        if signer not in self._signers:
            raise fail(
                AuthorizationError,
                VaultErrorCode.NOT_SIGNER,
                "Caller is not a signer",
                correlation_id,
                kind=self._kind.value,
                caller=signer,
            )

    def _validate(self, payload: T, correlation_id: Optional[str]) -> None:
        if self._validator is not None:
            self._validator(payload, correlation_id)

    def _cast(
        self,
        proposal: QuorumProposal[T],
        signer: str,
        key: Optional[int],
        correlation_id: Optional[str],
        reset: bool = False,
    ) -> ApprovalOutcome:
        """
        Count one approval and execute when the live threshold is met.

        The proposal is only mutated after the executor returns, so a
        failing side effect leaves the proposal exactly as it was.
        """
        approvals = set(proposal.approvals)
        approvals.add(signer)
        required = self._signers.required_approvals

        if len(approvals) >= required:
            self._executor(proposal.payload, correlation_id)
            count = len(approvals)
            # Cleared for every signer, approvers and non-approvers alike
            proposal.approvals = set()
            proposal.executed = True
            logger.info(
                f"[VAULT-QUORUM] Proposal executed | "
                f"kind={self._kind.value} | key={key} | "
                f"payload={proposal.payload} | "
                f"approvals={count}/{required} | "
                f"correlation_id={correlation_id}"
            )
            return ApprovalOutcome(
                kind=self._kind,
                key=key,
                payload=proposal.payload,
                signer=signer,
                approval_count=count,
                required_approvals=required,
                executed=True,
                reset=reset,
            )

        proposal.approvals = approvals
        proposal.executed = False
        logger.info(
            f"[VAULT-QUORUM] Approval recorded | "
            f"kind={self._kind.value} | key={key} | "
            f"signer={signer} | "
            f"approvals={len(approvals)}/{required} | "
            f"correlation_id={correlation_id}"
        )
        return ApprovalOutcome(
            kind=self._kind,
            key=key,
            payload=proposal.payload,
            signer=signer,
            approval_count=len(approvals),
            required_approvals=required,
            executed=False,
            reset=reset,
        )

    def _snapshot(self, proposal: QuorumProposal[T], key: Optional[int]) -> ProposalSnapshot:
        return ProposalSnapshot(
            kind=self._kind,
            key=key,
            payload=proposal.payload,
            approval_count=proposal.approval_count,
            required_approvals=self._signers.required_approvals,
            executed=proposal.executed,
        )

    @abstractmethod
    def forget_signer(self, signer: str) -> None:
        """Drop a removed signer's pending approvals."""


# =============================================================================
# Keyed Proposals
# =============================================================================

class KeyedQuorum(QuorumEngine[T]):
    """Proposals addressed by a caller-supplied id."""

    def __init__(
        self,
        kind: ProposalKind,
        signers: SignerSet,
        executor: PayloadHook,
        validator: Optional[PayloadHook] = None,
    ) -> None:
        super().__init__(kind, signers, executor, validator)
        self._proposals: Dict[int, QuorumProposal[T]] = {}

    def approve(
        self,
        signer: str,
        key: int,
        payload: T,
        correlation_id: Optional[str] = None,
    ) -> ApprovalOutcome:
        self._require_signer(signer, correlation_id)

        if key <= 0:
            raise fail(
                ValidationError,
                VaultErrorCode.INVALID_PROPOSAL,
                "Proposal id must be positive",
                correlation_id,
                kind=self._kind.value,
                key=key,
            )

        proposal = self._proposals.get(key)
        if proposal is not None:
            if proposal.executed:
                raise fail(
                    StateError,
                    VaultErrorCode.ALREADY_EXECUTED,
                    "Proposal already executed",
                    correlation_id,
                    kind=self._kind.value,
                    key=key,
                )
            if proposal.payload != payload:
                raise fail(
                    StateError,
                    VaultErrorCode.CONFLICTING_PAYLOAD,
                    "Approval payload conflicts with the proposal",
                    correlation_id,
                    kind=self._kind.value,
                    key=key,
                    proposal_payload=proposal.payload,
                    payload=payload,
                )
            if signer in proposal.approvals:
                raise fail(
                    StateError,
                    VaultErrorCode.ALREADY_APPROVED,
                    "Signer already approved this proposal",
                    correlation_id,
                    kind=self._kind.value,
                    key=key,
                    signer=signer,
                )
        else:
            proposal = QuorumProposal(payload=payload)

        self._validate(payload, correlation_id)
        outcome = self._cast(proposal, signer, key, correlation_id)
        self._proposals[key] = proposal
        return outcome

    def snapshot(self, key: int) -> Optional[ProposalSnapshot]:
        proposal = self._proposals.get(key)
        if proposal is None:
            return None
        return self._snapshot(proposal, key)

    def has_approved(self, key: int, signer: str) -> bool:
        proposal = self._proposals.get(key)
        return proposal is not None and signer in proposal.approvals

    def forget_signer(self, signer: str) -> None:
        for proposal in self._proposals.values():
            proposal.approvals.discard(signer)


# =============================================================================
# Singleton Proposals
# =============================================================================

class SingletonQuorum(QuorumEngine[T]):
    """One live proposal slot that resets when the payload changes."""

    def __init__(
        self,
        kind: ProposalKind,
        signers: SignerSet,
        executor: PayloadHook,
        validator: Optional[PayloadHook] = None,
    ) -> None:
        super().__init__(kind, signers, executor, validator)
        self._slot: Optional[QuorumProposal[T]] = None

    def approve(
        self,
        signer: str,
        payload: T,
        correlation_id: Optional[str] = None,
    ) -> ApprovalOutcome:
        self._require_signer(signer, correlation_id)

        reset = False
        if self._slot is None or self._slot.payload != payload:
            reset = self._slot is not None
            proposal: QuorumProposal[T] = QuorumProposal(payload=payload)
        else:
            proposal = self._slot
            if signer in proposal.approvals:
                raise fail(
                    StateError,
                    VaultErrorCode.ALREADY_APPROVED,
                    "Signer already approved this proposal",
                    correlation_id,
                    kind=self._kind.value,
                    signer=signer,
                )

        self._validate(payload, correlation_id)
        outcome = self._cast(proposal, signer, None, correlation_id, reset=reset)

        if reset:
            logger.info(
                f"[VAULT-QUORUM] Proposal slot reset | "
                f"kind={self._kind.value} | "
                f"previous_payload={self._slot.payload if self._slot else None} | "
                f"new_payload={payload} | "
                f"correlation_id={correlation_id}"
            )
        self._slot = proposal
        return outcome

    def snapshot(self) -> Optional[ProposalSnapshot]:
        if self._slot is None:
            return None
        return self._snapshot(self._slot, None)

    def has_approved(self, signer: str) -> bool:
        return self._slot is not None and signer in self._slot.approvals

    def forget_signer(self, signer: str) -> None:
        if self._slot is not None:
            self._slot.approvals.discard(signer)


__all__ = [
    "QuorumProposal",
    "ProposalSnapshot",
    "ApprovalOutcome",
    "QuorumEngine",
    "KeyedQuorum",
    "SingletonQuorum",
]
