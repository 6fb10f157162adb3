"""
============================================================================
Vault - Permission Engine
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)

Single capability lookup for single-key roles:

    has_capability(principal, capability) -> bool

Signer membership is a separate capability class governed by quorum and
lives in SignerSet, not here.

ERROR CODES:
    - VLT-001: Missing capability

============================================================================
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Iterable, Optional, Set
import logging

from vault.vault_errors import AuthorizationError, VaultErrorCode, fail

logger = logging.getLogger(__name__)


class Capability(Enum):
    """Single-key roles."""
    ADMIN = "ADMIN"
    RATE_UPDATER = "RATE_UPDATER"


class PermissionEngine(ABC):
    """Capability lookup collaborator."""

    @abstractmethod
    def has_capability(self, principal: str, capability: Capability) -> bool:
        """Return True when principal holds capability."""

    def require_any(
        self,
        principal: str,
        capabilities: Iterable[Capability],
        correlation_id: Optional[str] = None,
    ) -> None:
        """
        Raise AuthorizationError (VLT-001) unless principal holds at least
        one of the capabilities.
        """
        wanted = list(capabilities)
        if any(self.has_capability(principal, c) for c in wanted):
            return
        raise fail(
            AuthorizationError,
            VaultErrorCode.MISSING_CAPABILITY,
            "Caller lacks the required capability",
            correlation_id,
            caller=principal,
            required="|".join(c.value for c in wanted),
        )


class InMemoryPermissionEngine(PermissionEngine):
    """Role table held in process memory."""

    def __init__(self, grants: Optional[Dict[Capability, Iterable[str]]] = None) -> None:
        self._grants: Dict[Capability, Set[str]] = {c: set() for c in Capability}
        for capability, principals in (grants or {}).items():
            self._grants[capability].update(principals)

    def has_capability(self, principal: str, capability: Capability) -> bool:
        return principal in self._grants[capability]

    def grant(self, principal: str, capability: Capability) -> None:
        self._grants[capability].add(principal)
        logger.info(
            f"[VAULT-PERMISSIONS] Capability granted | "
            f"principal={principal} | capability={capability.value}"
        )

    def revoke(self, principal: str, capability: Capability) -> None:
        self._grants[capability].discard(principal)
        logger.info(
            f"[VAULT-PERMISSIONS] Capability revoked | "
            f"principal={principal} | capability={capability.value}"
        )

    def holders(self, capability: Capability) -> Set[str]:
        return set(self._grants[capability])


__all__ = ["Capability", "PermissionEngine", "InMemoryPermissionEngine"]
