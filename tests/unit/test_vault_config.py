"""
Unit Tests for Vault Configuration Parsing

Reliability Level: SOVEREIGN TIER

Tests the vault configuration module:
- Default values for optional configuration
- Custom values from environment variables
- Invalid integers fall back to defaults with a warning
- Missing signers fail with VLT-040
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from vault.fixed_point import RATE_SCALE
from vault.vault_config import (
    DEFAULT_EXPIRE_INTERVAL_SECONDS,
    DEFAULT_REDEMPTION_PERIOD_SECONDS,
    VaultConfig,
    get_vault_config,
    reset_vault_config,
)
from vault.vault_errors import VaultConfigurationError, VaultErrorCode


ENV_VARS = [
    "VAULT_ASSET_TOKEN",
    "VAULT_INITIAL_RATE",
    "VAULT_MIN_RATE",
    "VAULT_EXPIRE_INTERVAL_SECONDS",
    "VAULT_REDEMPTION_PERIOD_SECONDS",
    "VAULT_MIN_DEPOSIT",
    "VAULT_MIN_WITHDRAWAL",
    "VAULT_FEE_BPS",
    "VAULT_TREASURY",
    "VAULT_ASSETS_CAP",
    "VAULT_SIGNERS",
    "VAULT_MIN_SIGNERS",
    "VAULT_ADMINS",
    "VAULT_RATE_UPDATERS",
    "VAULT_DATABASE_URL",
]


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_environment():
    """
    Clean environment variables before and after each test.
    """
    original_env = {}
    for var in ENV_VARS:
        original_env[var] = os.environ.get(var)
        if var in os.environ:
            del os.environ[var]

    reset_vault_config()

    yield

    for var, value in original_env.items():
        if value is not None:
            os.environ[var] = value
        elif var in os.environ:
            del os.environ[var]

    reset_vault_config()


# =============================================================================
# Defaults
# =============================================================================

class TestDefaultValues:

    def test_dataclass_defaults(self) -> None:
        config = VaultConfig()
        assert config.asset_token == "USDC"
        assert config.initial_rate == RATE_SCALE
        assert config.expire_interval_seconds == DEFAULT_EXPIRE_INTERVAL_SECONDS
        assert config.redemption_period_seconds == DEFAULT_REDEMPTION_PERIOD_SECONDS
        assert config.fee_bps == 0
        assert config.assets_cap == 0
        assert config.signers == []

    def test_from_environment_uses_defaults(self) -> None:
        os.environ["VAULT_SIGNERS"] = "s1,s2"
        config = VaultConfig.from_environment()
        assert config.signers == ["s1", "s2"]
        assert config.redemption_period_seconds == DEFAULT_REDEMPTION_PERIOD_SECONDS


# =============================================================================
# Custom values
# =============================================================================

class TestCustomValues:

    def test_all_values_read(self) -> None:
        os.environ.update({
            "VAULT_ASSET_TOKEN": "USDT",
            "VAULT_INITIAL_RATE": str(11 * 10 ** 17),
            "VAULT_FEE_BPS": "2000",
            "VAULT_TREASURY": "treasury",
            "VAULT_ASSETS_CAP": "1000000000000",
            "VAULT_SIGNERS": " s1 , s2 ,s3,,s2 ",
            "VAULT_ADMINS": "admin",
            "VAULT_RATE_UPDATERS": "oracle_1,oracle_2",
        })
        config = VaultConfig.from_environment()
        assert config.asset_token == "USDT"
        assert config.initial_rate == 11 * 10 ** 17
        assert config.fee_bps == 2000
        assert config.treasury == "treasury"
        assert config.assets_cap == 10 ** 12
        assert config.signers == ["s1", "s2", "s3"]
        assert config.rate_updaters == ["oracle_1", "oracle_2"]

    def test_invalid_integer_falls_back_to_default(self) -> None:
        os.environ["VAULT_SIGNERS"] = "s1,s2"
        os.environ["VAULT_REDEMPTION_PERIOD_SECONDS"] = "one week"
        config = VaultConfig.from_environment()
        assert config.redemption_period_seconds == DEFAULT_REDEMPTION_PERIOD_SECONDS

    def test_to_dict_hides_role_holders(self) -> None:
        config = VaultConfig(signers=["s1", "s2"], admins=["admin"])
        data = config.to_dict()
        assert data["admins_count"] == 1
        assert "admins" not in data
        assert data["initial_rate"] == str(RATE_SCALE)


# =============================================================================
# Validation
# =============================================================================

class TestValidation:

    def test_missing_signers_fails(self) -> None:
        with pytest.raises(VaultConfigurationError) as exc_info:
            VaultConfig.from_environment()
        assert exc_info.value.error_code == VaultErrorCode.CONFIG_MISSING
        assert "VAULT_SIGNERS" in exc_info.value.message

    def test_validate_false_skips_checks(self) -> None:
        config = VaultConfig.from_environment(validate=False)
        assert config.signers == []

    def test_fee_without_treasury_fails(self) -> None:
        config = VaultConfig(signers=["s1", "s2"], fee_bps=100)
        with pytest.raises(VaultConfigurationError) as exc_info:
            config.validate()
        assert "VAULT_TREASURY" in exc_info.value.message

    def test_every_problem_is_reported(self) -> None:
        config = VaultConfig(initial_rate=0, fee_bps=20_000, assets_cap=-1)
        with pytest.raises(VaultConfigurationError) as exc_info:
            config.validate()
        message = exc_info.value.message
        assert "VAULT_INITIAL_RATE" in message
        assert "VAULT_FEE_BPS" in message
        assert "VAULT_ASSETS_CAP" in message
        assert "VAULT_SIGNERS" in message

    def test_min_signers_raises_the_bar(self) -> None:
        config = VaultConfig(signers=["s1", "s2"], min_signers=3)
        with pytest.raises(VaultConfigurationError):
            config.validate()

    def test_initial_rate_below_floor_fails(self) -> None:
        config = VaultConfig(signers=["s1", "s2"], initial_rate=5, min_rate=10)
        with pytest.raises(VaultConfigurationError):
            config.validate()


def test_singleton_is_cached_until_reset() -> None:
    os.environ["VAULT_SIGNERS"] = "s1,s2"
    first = get_vault_config()
    os.environ["VAULT_SIGNERS"] = "s1,s2,s3"
    assert get_vault_config() is first
    reset_vault_config()
    assert get_vault_config().signers == ["s1", "s2", "s3"]
