"""
============================================================================
Vault Schemas - Pydantic Models for the Vault API
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Amounts are int base units, sent as JSON strings or ints
Side Effects: None (pure validation)

SOVEREIGN MANDATE:
- Zero tolerance for floating-point amounts
- Base-unit amounts travel as strings on the way out, so 18-decimal share
  balances survive JavaScript clients

============================================================================
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vault.fixed_point import FixedPointGateway
from vault.vault_errors import ValidationError as VaultValidationError
from vault.vault_models import SignerAction

_gateway = FixedPointGateway()


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def parse_base_units(value: Any, field_name: str) -> int:
    """
    Accept an int or a string integer in base units, via FixedPointGateway.

    Raises:
        ValueError: When the value is not a non-negative integer amount
            (floats, bools and fractional strings included)
    """
    try:
        return _gateway.to_units(value, 0)
    except VaultValidationError as e:
        raise ValueError(f"{field_name}: {e.message}") from e


class _AmountModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ============================================================================
# REQUEST MODELS
# ============================================================================

class DepositRequest(_AmountModel):
    """Deposit assets (6-decimal base units)."""
    assets: int = Field(..., description="Asset amount in base units")
    receiver: str = Field(..., min_length=1, max_length=128)

    @field_validator("assets", mode="before")
    @classmethod
    def validate_assets(cls, v: Any) -> int:
        return parse_base_units(v, "assets")


class MintRequest(_AmountModel):
    """Mint an exact number of shares (18-decimal base units)."""
    shares: int = Field(..., description="Share amount in base units")
    receiver: str = Field(..., min_length=1, max_length=128)

    @field_validator("shares", mode="before")
    @classmethod
    def validate_shares(cls, v: Any) -> int:
        return parse_base_units(v, "shares")


class WithdrawalRequestIn(_AmountModel):
    """Burn shares into a time-locked withdrawal request."""
    shares: int = Field(..., description="Share amount in base units")
    receiver: str = Field(..., min_length=1, max_length=128)

    @field_validator("shares", mode="before")
    @classmethod
    def validate_shares(cls, v: Any) -> int:
        return parse_base_units(v, "shares")


class BatchClaimRequest(_AmountModel):
    """Claim several requests atomically, in order."""
    request_ids: List[int] = Field(..., min_length=1)


class TransferSharesRequest(_AmountModel):
    recipient: str = Field(..., min_length=1, max_length=128)
    shares: int = Field(..., description="Share amount in base units")

    @field_validator("shares", mode="before")
    @classmethod
    def validate_shares(cls, v: Any) -> int:
        return parse_base_units(v, "shares")


class ExchangeRateUpdate(_AmountModel):
    """New rate, scaled by 1e18."""
    rate: int

    @field_validator("rate", mode="before")
    @classmethod
    def validate_rate(cls, v: Any) -> int:
        return parse_base_units(v, "rate")


class ParameterUpdate(_AmountModel):
    """New value for an integer admin parameter."""
    value: int

    @field_validator("value", mode="before")
    @classmethod
    def validate_value(cls, v: Any) -> int:
        return parse_base_units(v, "value")


class TreasuryUpdate(_AmountModel):
    treasury: str = Field(..., min_length=1, max_length=128)


class WhitelistApproval(_AmountModel):
    proposal_id: int
    target: str = Field(..., min_length=1, max_length=128)
    allow: bool


class SignerApproval(_AmountModel):
    action: SignerAction
    target: str = Field(..., min_length=1, max_length=128)


class AssetsCapApproval(_AmountModel):
    new_cap: int

    @field_validator("new_cap", mode="before")
    @classmethod
    def validate_new_cap(cls, v: Any) -> int:
        return parse_base_units(v, "new_cap")


class ProtocolWithdrawRequest(_AmountModel):
    asset: str = Field(..., min_length=1, max_length=32)
    amount: int
    destination: str = Field(..., min_length=1, max_length=128)

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v: Any) -> int:
        return parse_base_units(v, "amount")


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class WithdrawalRequestOut(BaseModel):
    id: int
    owner: str
    receiver: str
    shares_burned: str
    assets_gross: str
    cost_basis: str
    assets_net: str
    fee_amount: str
    requested_at: int
    claimed: bool
    claimed_at: Optional[int] = None
    correlation_id: str
    row_hash: Optional[str] = None


class ApprovalOutcomeOut(BaseModel):
    kind: str
    key: Optional[int] = None
    payload: Dict[str, Any]
    signer: str
    approval_count: int
    required_approvals: int
    executed: bool
    reset: bool
    correlation_id: str


class ProposalOut(BaseModel):
    kind: str
    key: Optional[int] = None
    payload: Dict[str, Any]
    approval_count: int
    required_approvals: int
    executed: bool


class ErrorResponse(BaseModel):
    """Error body for every vault failure."""
    error_code: str
    message: str
    timestamp: str
    correlation_id: Optional[str] = None


# ============================================================================
# END OF VAULT SCHEMA
# ============================================================================
