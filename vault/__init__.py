"""
============================================================================
Pooled-Capital Vault - Core Layer
============================================================================

Exchange-rate conversion, cost-basis fees, time-locked withdrawal queue
and N-of-M signer governance behind a single transactional facade.

Reliability Level: L6 Critical
============================================================================
"""

from vault.vault_errors import (
    VaultErrorCode,
    VaultError,
    AuthorizationError,
    ValidationError,
    StateError,
    VaultConfigurationError,
)

from vault.fixed_point import (
    Rounding,
    mul_div,
    FixedPointGateway,
    ZERO_ADDRESS,
)

from vault.vault_models import (
    WithdrawalState,
    ProposalKind,
    SignerAction,
    VaultEventType,
    ExchangeRateState,
    WithdrawalRequest,
    RangeAggregate,
    WhitelistChange,
    SignerChange,
    AssetsCapChange,
    VaultEvent,
    RowHasher,
)

from vault.conversion_engine import ConversionEngine
from vault.cost_basis import CostBasisLedger
from vault.fee_engine import FeeEngine, FeeQuote
from vault.withdrawal_queue import WithdrawalQueue
from vault.signer_set import SignerSet, required_approvals_for
from vault.quorum_engine import (
    KeyedQuorum,
    SingletonQuorum,
    ProposalSnapshot,
    ApprovalOutcome,
)
from vault.permissions import Capability, PermissionEngine, InMemoryPermissionEngine
from vault.token_ledger import TokenLedger, InMemoryTokenLedger
from vault.notifications import NotificationBus
from vault.vault_state import VaultState, VAULT_ACCOUNT
from vault.vault_config import VaultConfig, get_vault_config, reset_vault_config
from vault.vault_facade import VaultFacade, build_vault_facade

__all__ = [
    # Errors
    "VaultErrorCode",
    "VaultError",
    "AuthorizationError",
    "ValidationError",
    "StateError",
    "VaultConfigurationError",
    # Fixed point
    "Rounding",
    "mul_div",
    "FixedPointGateway",
    "ZERO_ADDRESS",
    # Models
    "WithdrawalState",
    "ProposalKind",
    "SignerAction",
    "VaultEventType",
    "ExchangeRateState",
    "WithdrawalRequest",
    "RangeAggregate",
    "WhitelistChange",
    "SignerChange",
    "AssetsCapChange",
    "VaultEvent",
    "RowHasher",
    # Engines
    "ConversionEngine",
    "CostBasisLedger",
    "FeeEngine",
    "FeeQuote",
    "WithdrawalQueue",
    "SignerSet",
    "required_approvals_for",
    "KeyedQuorum",
    "SingletonQuorum",
    "ProposalSnapshot",
    "ApprovalOutcome",
    # Collaborators
    "Capability",
    "PermissionEngine",
    "InMemoryPermissionEngine",
    "TokenLedger",
    "InMemoryTokenLedger",
    "NotificationBus",
    # Aggregate & facade
    "VaultState",
    "VAULT_ACCOUNT",
    "VaultConfig",
    "get_vault_config",
    "reset_vault_config",
    "VaultFacade",
    "build_vault_facade",
]
