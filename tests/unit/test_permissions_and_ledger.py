"""
Unit Tests for Permissions and the In-Memory Token Ledger

Reliability Level: SOVEREIGN TIER

Tests:
- Capability grants, revocation and require_any (VLT-001)
- Token transfers, insufficient balance (VLT-041), transfer hooks
- Snapshot/restore used by facade rollback
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from vault.permissions import Capability, InMemoryPermissionEngine
from vault.token_ledger import InMemoryTokenLedger
from vault.vault_errors import AuthorizationError, StateError, ValidationError, VaultErrorCode


class TestPermissions:

    def test_grants_from_constructor(self) -> None:
        engine = InMemoryPermissionEngine({Capability.ADMIN: ["admin"]})
        assert engine.has_capability("admin", Capability.ADMIN)
        assert not engine.has_capability("admin", Capability.RATE_UPDATER)

    def test_require_any_accepts_one_match(self) -> None:
        engine = InMemoryPermissionEngine({Capability.RATE_UPDATER: ["oracle"]})
        engine.require_any("oracle", [Capability.RATE_UPDATER, Capability.ADMIN])

    def test_require_any_rejects_without_match(self) -> None:
        engine = InMemoryPermissionEngine()
        with pytest.raises(AuthorizationError) as exc_info:
            engine.require_any("mallory", [Capability.ADMIN], "corr-perm")
        assert exc_info.value.error_code == VaultErrorCode.MISSING_CAPABILITY
        assert exc_info.value.correlation_id == "corr-perm"

    def test_grant_and_revoke(self) -> None:
        engine = InMemoryPermissionEngine()
        engine.grant("carol", Capability.ADMIN)
        assert engine.holders(Capability.ADMIN) == {"carol"}
        engine.revoke("carol", Capability.ADMIN)
        assert engine.holders(Capability.ADMIN) == set()


class TestTokenLedger:

    def test_transfer_moves_balance(self) -> None:
        ledger = InMemoryTokenLedger()
        ledger.mint("USDC", "alice", 100)
        ledger.transfer("USDC", "alice", "bob", 40)
        assert ledger.balance_of("USDC", "alice") == 60
        assert ledger.balance_of("USDC", "bob") == 40

    def test_assets_are_separate(self) -> None:
        ledger = InMemoryTokenLedger()
        ledger.mint("USDC", "alice", 100)
        assert ledger.balance_of("WETH", "alice") == 0

    def test_insufficient_balance_rejected(self) -> None:
        ledger = InMemoryTokenLedger()
        ledger.mint("USDC", "alice", 10)
        with pytest.raises(StateError) as exc_info:
            ledger.transfer("USDC", "alice", "bob", 11)
        assert exc_info.value.error_code == VaultErrorCode.INSUFFICIENT_BALANCE
        assert ledger.balance_of("USDC", "alice") == 10

    def test_negative_amounts_rejected(self) -> None:
        ledger = InMemoryTokenLedger()
        with pytest.raises(ValidationError):
            ledger.mint("USDC", "alice", -1)
        with pytest.raises(ValidationError):
            ledger.transfer("USDC", "alice", "bob", -1)

    def test_hook_sees_settled_transfer(self) -> None:
        seen = []
        ledger = InMemoryTokenLedger()
        ledger.transfer_hook = lambda *args: seen.append((args, ledger.balance_of("USDC", "bob")))
        ledger.mint("USDC", "alice", 5)
        ledger.transfer("USDC", "alice", "bob", 5)
        assert seen == [(("USDC", "alice", "bob", 5), 5)]

    def test_snapshot_restore(self) -> None:
        ledger = InMemoryTokenLedger()
        ledger.mint("USDC", "alice", 100)
        snapshot = ledger.snapshot()
        ledger.transfer("USDC", "alice", "bob", 100)
        ledger.restore(snapshot)
        assert ledger.balance_of("USDC", "alice") == 100
        assert ledger.balance_of("USDC", "bob") == 0
