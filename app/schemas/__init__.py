# ============================================================================
# Pydantic Schemas - Vault API Validation Layer
# ============================================================================

from app.schemas.vault import (
    DepositRequest,
    MintRequest,
    WithdrawalRequestIn,
    BatchClaimRequest,
    TransferSharesRequest,
    ExchangeRateUpdate,
    ParameterUpdate,
    TreasuryUpdate,
    WhitelistApproval,
    SignerApproval,
    AssetsCapApproval,
    ProtocolWithdrawRequest,
    WithdrawalRequestOut,
    ApprovalOutcomeOut,
    ProposalOut,
    ErrorResponse,
)

__all__ = [
    "DepositRequest",
    "MintRequest",
    "WithdrawalRequestIn",
    "BatchClaimRequest",
    "TransferSharesRequest",
    "ExchangeRateUpdate",
    "ParameterUpdate",
    "TreasuryUpdate",
    "WhitelistApproval",
    "SignerApproval",
    "AssetsCapApproval",
    "ProtocolWithdrawRequest",
    "WithdrawalRequestOut",
    "ApprovalOutcomeOut",
    "ProposalOut",
    "ErrorResponse",
]
