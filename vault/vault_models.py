"""
============================================================================
Vault - Core Data Models
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Integer Integrity: All amounts are int base units (asset 1e6, share 1e18)
Traceability: All records include correlation_id for audit

This module defines the data models shared across the vault engines:
- ExchangeRateState: the scaled exchange rate and its staleness window
- WithdrawalRequest: immutable withdrawal record (claimed flag aside)
- Governance payloads: WhitelistChange, SignerChange, AssetsCapChange
- VaultEvent: committed notification record with before/after state
- RowHasher: SHA-256 integrity verification for withdrawal requests

ERROR CODES:
    - VLT-042: Hash mismatch (integrity violation)

============================================================================
"""

from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import hashlib
import json
import uuid
import logging

from vault.vault_errors import VaultErrorCode

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================

class WithdrawalState(Enum):
    """
    Withdrawal request lifecycle states.

    State Machine:
        REQUESTED → CLAIMABLE (implicit, once the redemption period elapses)
        CLAIMABLE → CLAIMED (owner claims)

    Terminal States: CLAIMED
    """
    REQUESTED = "REQUESTED"
    CLAIMABLE = "CLAIMABLE"
    CLAIMED = "CLAIMED"


class ProposalKind(Enum):
    """Governance action guarded by quorum voting."""
    WHITELIST = "WHITELIST"
    SIGNER_SET = "SIGNER_SET"
    ASSETS_CAP = "ASSETS_CAP"


class SignerAction(Enum):
    """Signer-set mutation."""
    ADD = "ADD"
    REMOVE = "REMOVE"


class VaultEventType(Enum):
    """
    Notification types emitted after a committed state transition.
    """
    EXCHANGE_RATE_UPDATED = "EXCHANGE_RATE_UPDATED"
    REDEMPTION_PERIOD_UPDATED = "REDEMPTION_PERIOD_UPDATED"
    EXPIRE_INTERVAL_UPDATED = "EXPIRE_INTERVAL_UPDATED"
    MIN_DEPOSIT_UPDATED = "MIN_DEPOSIT_UPDATED"
    MIN_WITHDRAWAL_UPDATED = "MIN_WITHDRAWAL_UPDATED"
    MIN_RATE_UPDATED = "MIN_RATE_UPDATED"
    TREASURY_UPDATED = "TREASURY_UPDATED"
    FEE_BPS_UPDATED = "FEE_BPS_UPDATED"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL_REQUESTED = "WITHDRAWAL_REQUESTED"
    WITHDRAWAL_CLAIMED = "WITHDRAWAL_CLAIMED"
    SHARES_TRANSFERRED = "SHARES_TRANSFERRED"
    QUORUM_APPROVAL = "QUORUM_APPROVAL"
    WHITELIST_UPDATED = "WHITELIST_UPDATED"
    SIGNERS_UPDATED = "SIGNERS_UPDATED"
    ASSETS_CAP_UPDATED = "ASSETS_CAP_UPDATED"
    PROTOCOL_WITHDRAWAL = "PROTOCOL_WITHDRAWAL"


# =============================================================================
# Custom JSON Encoder
# =============================================================================

class VaultJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for vault records.

    Handles:
    - datetime -> ISO format string
    - UUID -> str
    - Enum -> value
    - set -> sorted list
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, uuid.UUID):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


# =============================================================================
# Exchange Rate State
# =============================================================================

@dataclass
class ExchangeRateState:
    """
    Scaled exchange rate (1e18 = one asset unit per share unit at parity).

    Invariant: rate >= min_rate. The rate changes only through an
    authorized update; the engines never move it on their own.
    """
    rate: int
    update_time: int
    expire_interval: int
    min_rate: int = 0

    def is_stale(self, now: int) -> bool:
        return now - self.update_time > self.expire_interval

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rate": str(self.rate),
            "update_time": self.update_time,
            "expire_interval": self.expire_interval,
            "min_rate": str(self.min_rate),
        }


# =============================================================================
# WithdrawalRequest Dataclass
# =============================================================================

@dataclass
class WithdrawalRequest:
    """
    Withdrawal request record.

    ============================================================================
    WITHDRAWAL REQUEST FIELDS:
    ============================================================================
    - id: Monotonic, 1-based request id (0 is reserved/invalid)
    - owner: Share holder who burned shares; the only principal that may claim
    - receiver: Payout target of assets_net
    - shares_burned: Shares destroyed when the request was created
    - assets_gross: Asset value of the burned shares (floor rounded)
    - cost_basis: Principal removed from the owner for these shares
    - assets_net: Assets owed to receiver (assets_gross - fee_amount)
    - fee_amount: Performance fee owed to the treasury on claim
    - requested_at: Epoch seconds when the request was created
    - claimed: False until the single successful claim
    - correlation_id: Audit trail identifier
    - row_hash: SHA-256 over every field except claimed and row_hash
    ============================================================================

    Reliability Level: L6 Critical (Sovereign Tier)
    Side Effects: None (data container)
    """
    id: int
    owner: str
    receiver: str
    shares_burned: int
    assets_gross: int
    cost_basis: int
    assets_net: int
    fee_amount: int
    requested_at: int
    correlation_id: str
    claimed: bool = False
    claimed_at: Optional[int] = None
    row_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with amounts as strings."""
        return {
            "id": self.id,
            "owner": self.owner,
            "receiver": self.receiver,
            "shares_burned": str(self.shares_burned),
            "assets_gross": str(self.assets_gross),
            "cost_basis": str(self.cost_basis),
            "assets_net": str(self.assets_net),
            "fee_amount": str(self.fee_amount),
            "requested_at": self.requested_at,
            "claimed": self.claimed,
            "claimed_at": self.claimed_at,
            "correlation_id": self.correlation_id,
            "row_hash": self.row_hash,
        }


@dataclass(frozen=True)
class RangeAggregate:
    """Totals over a contiguous id range of the withdrawal log."""
    start_id: int
    end_id: int
    count: int
    shares_burned: int
    assets_net: int
    fee_amount: int
    pending_count: int
    claimable_count: int
    claimed_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_id": self.start_id,
            "end_id": self.end_id,
            "count": self.count,
            "shares_burned": str(self.shares_burned),
            "assets_net": str(self.assets_net),
            "fee_amount": str(self.fee_amount),
            "pending_count": self.pending_count,
            "claimable_count": self.claimable_count,
            "claimed_count": self.claimed_count,
        }


# =============================================================================
# Governance Payloads
# =============================================================================

@dataclass(frozen=True)
class WhitelistChange:
    """Allow or disallow a protocol-withdrawal destination."""
    target: str
    allow: bool


@dataclass(frozen=True)
class SignerChange:
    """Add or remove a committee signer."""
    action: SignerAction
    target: str


@dataclass(frozen=True)
class AssetsCapChange:
    """Overwrite the deposit cap (asset units)."""
    new_cap: int


def governance_payload_to_dict(payload: Any) -> Dict[str, Any]:
    """Plain dict view of a quorum payload for events and API responses."""
    if isinstance(payload, WhitelistChange):
        return {"target": payload.target, "allow": payload.allow}
    if isinstance(payload, SignerChange):
        return {"action": payload.action.value, "target": payload.target}
    if isinstance(payload, AssetsCapChange):
        return {"new_cap": str(payload.new_cap)}
    return {"value": str(payload)}


# =============================================================================
# VaultEvent Dataclass
# =============================================================================

@dataclass
class VaultEvent:
    """
    Notification emitted after a committed state transition.

    previous_state/new_state carry enough of the before/after values to
    reconstruct the change during an audit.
    """
    event_type: VaultEventType
    actor_id: str
    correlation_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    previous_state: Optional[Dict[str, Any]] = None
    new_state: Optional[Dict[str, Any]] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "actor_id": self.actor_id,
            "correlation_id": self.correlation_id,
            "payload": self.payload,
            "previous_state": self.previous_state,
            "new_state": self.new_state,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# RowHasher Class
# =============================================================================

class RowHasher:
    """
    SHA-256 integrity verification for withdrawal requests.

    ============================================================================
    ROW HASH COMPUTATION:
    ============================================================================
    1. Extract hashable fields from the record
    2. Convert to canonical JSON (sorted keys, no whitespace)
    3. Compute SHA-256 of the UTF-8 bytes
    4. Return hex digest (64 characters)

    claimed, claimed_at and row_hash are excluded: they are the only fields
    allowed to change after creation.
    ============================================================================

    Reliability Level: L6 Critical (Sovereign Tier)
    Side Effects: None (pure computation)
    """

    HASHABLE_FIELDS: List[str] = [
        "id",
        "owner",
        "receiver",
        "shares_burned",
        "assets_gross",
        "cost_basis",
        "assets_net",
        "fee_amount",
        "requested_at",
        "correlation_id",
    ]

    @staticmethod
    def compute(record: WithdrawalRequest) -> str:
        hash_data = {}
        for field_name in RowHasher.HASHABLE_FIELDS:
            value = getattr(record, field_name, None)
            # Amounts as strings so precision never depends on the JSON parser
            hash_data[field_name] = str(value) if isinstance(value, int) else value

        json_str = json.dumps(
            hash_data,
            sort_keys=True,
            separators=(",", ":"),
            cls=VaultJSONEncoder
        )
        return hashlib.sha256(json_str.encode("utf-8")).hexdigest()

    @staticmethod
    def verify(record: WithdrawalRequest) -> bool:
        """
        Verify stored hash matches computed hash.

        Side Effects: Logs VLT-042 on mismatch
        """
        if record.row_hash is None:
            logger.warning(
                f"[VAULT-MODELS] Row hash missing for withdrawal request | "
                f"id={record.id} | "
                f"correlation_id={record.correlation_id}"
            )
            return False

        computed_hash = RowHasher.compute(record)
        if record.row_hash != computed_hash:
            logger.error(
                f"[{VaultErrorCode.HASH_MISMATCH}] Row hash verification failed | "
                f"id={record.id} | "
                f"stored_hash={record.row_hash} | "
                f"computed_hash={computed_hash} | "
                f"correlation_id={record.correlation_id}"
            )
            return False

        return True


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    # Enums
    "WithdrawalState",
    "ProposalKind",
    "SignerAction",
    "VaultEventType",
    # Data classes
    "ExchangeRateState",
    "WithdrawalRequest",
    "RangeAggregate",
    "WhitelistChange",
    "SignerChange",
    "AssetsCapChange",
    "governance_payload_to_dict",
    "VaultEvent",
    # Utilities
    "RowHasher",
    "VaultJSONEncoder",
]
