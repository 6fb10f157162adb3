"""
Shared fixtures for the vault test suite.

Reliability Level: SOVEREIGN TIER

Every facade built here uses a deterministic clock, an in-memory token
ledger and a three-signer committee (2 approvals required).
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from vault.fixed_point import RATE_SCALE
from vault.token_ledger import InMemoryTokenLedger
from vault.vault_config import VaultConfig
from vault.vault_facade import build_vault_facade


START_TIME = 1_700_000_000


class FixedClock:
    """Manually advanced clock (epoch seconds)."""

    def __init__(self, now: int = START_TIME) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def ledger() -> InMemoryTokenLedger:
    ledger = InMemoryTokenLedger()
    ledger.mint("USDC", "alice", 1_000_000_000)
    ledger.mint("USDC", "bob", 1_000_000_000)
    return ledger


@pytest.fixture
def vault_config() -> VaultConfig:
    return VaultConfig(
        asset_token="USDC",
        initial_rate=RATE_SCALE,
        expire_interval_seconds=86_400,
        redemption_period_seconds=604_800,
        fee_bps=0,
        treasury="treasury",
        assets_cap=10 ** 15,
        signers=["signer_a", "signer_b", "signer_c"],
        admins=["admin"],
        rate_updaters=["oracle"],
        database_url="sqlite:///:memory:",
    )


@pytest.fixture
def facade(vault_config, ledger, clock):
    return build_vault_facade(vault_config, token_ledger=ledger, clock=clock)
