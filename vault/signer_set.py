"""
============================================================================
Vault - Signer Committee
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)

Ordered set of unique, non-zero signer addresses governing sensitive vault
changes. The approval threshold is derived from the committee size after
every successful add/remove:

    size <= 2  ->  2
    otherwise  ->  ceil((size + 1) / 2)

The size never drops below the configured floor, and the floor itself is
never below 2, so required_approvals <= size always holds.

ERROR CODES:
    - VLT-012: Zero address
    - VLT-036: Signer floor violated
    - VLT-037: Signer already present
    - VLT-038: Target is not a signer

============================================================================
"""

from typing import Iterable, List, Optional, Tuple
import logging

from vault.fixed_point import is_zero_address
from vault.vault_errors import StateError, ValidationError, VaultErrorCode, fail

logger = logging.getLogger(__name__)

ABSOLUTE_MIN_SIGNERS = 2


def required_approvals_for(size: int) -> int:
    if size <= 2:
        return 2
    # ceil((size + 1) / 2) on ints
    return (size + 2) // 2


class SignerSet:
    """
    Signer membership plus the derived quorum threshold.

    Membership checks are the capability class for governance calls; they
    are kept apart from the single-key admin roles in PermissionEngine.
    """

    def __init__(self, signers: Iterable[str], min_signers: int = ABSOLUTE_MIN_SIGNERS) -> None:
        if min_signers < ABSOLUTE_MIN_SIGNERS:
            raise ValidationError(
                VaultErrorCode.INVALID_PARAMETER,
                f"min_signers must be at least {ABSOLUTE_MIN_SIGNERS}, got {min_signers}",
            )

        members: List[str] = []
        for signer in signers:
            if is_zero_address(signer):
                raise ValidationError(VaultErrorCode.ZERO_ADDRESS, "Signer cannot be the zero address")
            if signer in members:
                raise StateError(VaultErrorCode.SIGNER_EXISTS, f"Duplicate signer {signer}")
            members.append(signer)

        if len(members) < min_signers:
            raise StateError(
                VaultErrorCode.SIGNER_FLOOR,
                f"At least {min_signers} signers are required, got {len(members)}",
            )

        self._members = members
        self._min_signers = min_signers
        self._required_approvals = required_approvals_for(len(members))

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def members(self) -> Tuple[str, ...]:
        return tuple(self._members)

    @property
    def min_signers(self) -> int:
        return self._min_signers

    @property
    def required_approvals(self) -> int:
        return self._required_approvals

    def __contains__(self, signer: object) -> bool:
        return signer in self._members

    def __len__(self) -> int:
        return len(self._members)

    # -------------------------------------------------------------------------
    # Validation (used when an approval is cast and again at execution)
    # -------------------------------------------------------------------------

    def validate_add(self, target: str, correlation_id: Optional[str] = None) -> None:
        if is_zero_address(target):
            raise fail(
                ValidationError,
                VaultErrorCode.ZERO_ADDRESS,
                "Signer cannot be the zero address",
                correlation_id,
            )
        if target in self._members:
            raise fail(
                StateError,
                VaultErrorCode.SIGNER_EXISTS,
                "Signer already present",
                correlation_id,
                target=target,
            )

    def validate_remove(self, target: str, correlation_id: Optional[str] = None) -> None:
        if target not in self._members:
            raise fail(
                StateError,
                VaultErrorCode.SIGNER_UNKNOWN,
                "Target is not a signer",
                correlation_id,
                target=target,
            )
        if len(self._members) - 1 < self._min_signers:
            raise fail(
                StateError,
                VaultErrorCode.SIGNER_FLOOR,
                "Removing this signer would drop below the signer floor",
                correlation_id,
                target=target,
                size=len(self._members),
                min_signers=self._min_signers,
            )

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add(self, target: str, correlation_id: Optional[str] = None) -> int:
        """Append a signer; returns the new required_approvals."""
        self.validate_add(target, correlation_id)
        self._members.append(target)
        return self._recompute(correlation_id)

    def remove(self, target: str, correlation_id: Optional[str] = None) -> int:
        """Remove a signer, preserving the order of the rest."""
        self.validate_remove(target, correlation_id)
        self._members.remove(target)
        return self._recompute(correlation_id)

    def _recompute(self, correlation_id: Optional[str]) -> int:
        previous = self._required_approvals
        self._required_approvals = required_approvals_for(len(self._members))
        logger.info(
            f"[VAULT-SIGNERS] Committee updated | "
            f"size={len(self._members)} | "
            f"required_approvals={previous} → {self._required_approvals} | "
            f"correlation_id={correlation_id}"
        )
        return self._required_approvals


__all__ = ["SignerSet", "required_approvals_for", "ABSOLUTE_MIN_SIGNERS"]
