"""
============================================================================
Vault API Endpoints
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints:
    - Bearer token authentication required on every mutating endpoint
    - The bearer value is the calling principal (holder, admin or signer)
    - All amounts are int base units (strings accepted), never floats
Side Effects:
    - Vault state transitions through VaultFacade
    - Audit log entries for every committed event
    - Prometheus metrics updates

ENDPOINTS:
    POST /api/vault/deposit                      - Deposit assets
    POST /api/vault/mint                         - Mint exact shares
    POST /api/vault/withdrawals                  - Request a withdrawal
    POST /api/vault/withdrawals/{id}/claim       - Claim one request
    POST /api/vault/withdrawals/claim-batch      - Claim several, atomically
    POST /api/vault/shares/transfer              - Transfer shares
    POST /api/vault/admin/exchange-rate          - Update the exchange rate
    POST /api/vault/admin/{parameter}            - Update an admin parameter
    POST /api/vault/admin/treasury               - Update the fee treasury
    POST /api/vault/governance/whitelist         - Approve a whitelist change
    POST /api/vault/governance/signers           - Approve a signer change
    POST /api/vault/governance/assets-cap        - Approve an assets cap change
    POST /api/vault/governance/protocol-withdraw - Move assets to a whitelisted destination
    GET  /api/vault/...                          - Read-only queries

ERROR CODES:
    SEC-001: Missing authentication
    VLT-xxx: Vault errors (403 authorization, 422 validation, 409 state)

============================================================================
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from app.schemas.vault import (
    ApprovalOutcomeOut,
    AssetsCapApproval,
    BatchClaimRequest,
    DepositRequest,
    ErrorResponse,
    ExchangeRateUpdate,
    MintRequest,
    ParameterUpdate,
    ProposalOut,
    ProtocolWithdrawRequest,
    SignerApproval,
    TransferSharesRequest,
    TreasuryUpdate,
    WhitelistApproval,
    WithdrawalRequestIn,
    WithdrawalRequestOut,
)
from vault.quorum_engine import ApprovalOutcome, ProposalSnapshot
from vault.vault_errors import VaultErrorCode
from vault.vault_facade import VaultFacade
from vault.vault_models import ProposalKind, governance_payload_to_dict

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    403: {"model": ErrorResponse, "description": "Authorization error"},
    409: {"model": ErrorResponse, "description": "State error"},
    422: {"model": ErrorResponse, "description": "Validation error"},
}


# ============================================================================
# Authentication Dependency
# ============================================================================

def get_current_principal(
    authorization: Optional[str] = Header(None, description="Bearer token")
) -> str:
    """
    Extract the calling principal from the authorization header.

    Raises:
        HTTPException: 401 SEC-001 if authentication missing/invalid
    """
    if not authorization or not authorization.startswith("Bearer "):
        logger.warning("[SEC-001] Missing or malformed Authorization header")
        raise HTTPException(
            status_code=401,
            detail={
                "error_code": "SEC-001",
                "message": "Authorization header required. Use: Bearer <principal>",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )

    principal = authorization[7:].strip()
    if not principal:
        logger.warning("[SEC-001] Empty principal in Bearer token")
        raise HTTPException(
            status_code=401,
            detail={
                "error_code": "SEC-001",
                "message": "Empty principal in Bearer token",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )

    return principal


def get_correlation_id(
    x_correlation_id: Optional[str] = Header(None, description="Caller-supplied correlation id")
) -> str:
    return x_correlation_id or str(uuid.uuid4())


# ============================================================================
# Facade Dependency
# ============================================================================

def get_vault_facade() -> VaultFacade:
    """
    Get the global VaultFacade instance.

    Raises:
        HTTPException: 503 if the vault has not been initialized
    """
    from app.main import get_vault_facade as get_global_facade

    facade = get_global_facade()
    if facade is None:
        logger.error("[VAULT-API] Vault facade not initialized")
        raise HTTPException(
            status_code=503,
            detail={
                "error_code": "SYS-503",
                "message": "Vault not initialized",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )
    return facade


# ============================================================================
# Serialization Helpers
# ============================================================================

def _outcome_out(outcome: ApprovalOutcome, correlation_id: str) -> ApprovalOutcomeOut:
    return ApprovalOutcomeOut(
        kind=outcome.kind.value,
        key=outcome.key,
        payload=governance_payload_to_dict(outcome.payload),
        signer=outcome.signer,
        approval_count=outcome.approval_count,
        required_approvals=outcome.required_approvals,
        executed=outcome.executed,
        reset=outcome.reset,
        correlation_id=correlation_id,
    )


def _proposal_out(snapshot: Optional[ProposalSnapshot]) -> ProposalOut:
    if snapshot is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error_code": VaultErrorCode.INVALID_PROPOSAL,
                "message": "No such proposal",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )
    return ProposalOut(
        kind=snapshot.kind.value,
        key=snapshot.key,
        payload=governance_payload_to_dict(snapshot.payload),
        approval_count=snapshot.approval_count,
        required_approvals=snapshot.required_approvals,
        executed=snapshot.executed,
    )


# ============================================================================
# Deposits & Withdrawals
# ============================================================================

@router.post("/deposit", responses=ERROR_RESPONSES, summary="Deposit assets")
async def deposit(
    body: DepositRequest,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    shares = facade.deposit(principal, body.assets, body.receiver, correlation_id)
    return {"shares": str(shares), "correlation_id": correlation_id}


@router.post("/mint", responses=ERROR_RESPONSES, summary="Mint exact shares")
async def mint(
    body: MintRequest,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    assets = facade.mint(principal, body.shares, body.receiver, correlation_id)
    return {"assets": str(assets), "correlation_id": correlation_id}


@router.post(
    "/withdrawals",
    response_model=WithdrawalRequestOut,
    responses=ERROR_RESPONSES,
    summary="Request a withdrawal",
)
async def request_withdrawal(
    body: WithdrawalRequestIn,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    request = facade.request_withdrawal(principal, body.shares, body.receiver, correlation_id)
    return request.to_dict()


@router.post(
    "/withdrawals/claim-batch",
    response_model=List[WithdrawalRequestOut],
    responses=ERROR_RESPONSES,
    summary="Claim several withdrawal requests atomically",
)
async def batch_claim_withdrawal(
    body: BatchClaimRequest,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> List[Dict[str, Any]]:
    claimed = facade.batch_claim_withdrawal(principal, body.request_ids, correlation_id)
    return [r.to_dict() for r in claimed]


@router.post(
    "/withdrawals/{request_id}/claim",
    response_model=WithdrawalRequestOut,
    responses=ERROR_RESPONSES,
    summary="Claim a withdrawal request",
)
async def claim_withdrawal(
    request_id: int,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    return facade.claim_withdrawal(principal, request_id, correlation_id).to_dict()


@router.post("/shares/transfer", responses=ERROR_RESPONSES, summary="Transfer shares")
async def transfer_shares(
    body: TransferSharesRequest,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    moved = facade.transfer_shares(principal, body.recipient, body.shares, correlation_id)
    return {"principal_moved": str(moved), "correlation_id": correlation_id}


# ============================================================================
# Admin
# ============================================================================

@router.post("/admin/exchange-rate", responses=ERROR_RESPONSES, summary="Update the exchange rate")
async def set_exchange_rate(
    body: ExchangeRateUpdate,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    previous = facade.set_exchange_rate(principal, body.rate, correlation_id)
    return {"previous_rate": str(previous), "rate": str(body.rate), "correlation_id": correlation_id}


@router.post("/admin/treasury", responses=ERROR_RESPONSES, summary="Update the fee treasury")
async def set_treasury(
    body: TreasuryUpdate,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    previous = facade.set_treasury(principal, body.treasury, correlation_id)
    return {"previous": previous, "treasury": body.treasury, "correlation_id": correlation_id}


# URL segment -> facade setter
ADMIN_PARAMETERS = {
    "redemption-period": "set_redemption_period",
    "expire-interval": "set_expire_interval",
    "min-deposit": "set_min_deposit",
    "min-withdrawal": "set_min_withdrawal_amount",
    "min-rate": "set_min_rate",
    "fee-bps": "set_fee_bps",
}


@router.post("/admin/{parameter}", responses=ERROR_RESPONSES, summary="Update an admin parameter")
async def set_parameter(
    parameter: str,
    body: ParameterUpdate,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    setter = ADMIN_PARAMETERS.get(parameter)
    if setter is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error_code": VaultErrorCode.INVALID_PARAMETER,
                "message": f"Unknown parameter '{parameter}'",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )
    previous = getattr(facade, setter)(principal, body.value, correlation_id)
    return {
        "parameter": parameter,
        "previous": str(previous),
        "value": str(body.value),
        "correlation_id": correlation_id,
    }


# ============================================================================
# Governance
# ============================================================================

@router.post(
    "/governance/whitelist",
    response_model=ApprovalOutcomeOut,
    responses=ERROR_RESPONSES,
    summary="Approve a whitelist change",
)
async def whitelist_change(
    body: WhitelistApproval,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> ApprovalOutcomeOut:
    outcome = facade.whitelist_change(
        principal, body.target, body.allow, body.proposal_id, correlation_id
    )
    return _outcome_out(outcome, correlation_id)


@router.post(
    "/governance/signers",
    response_model=ApprovalOutcomeOut,
    responses=ERROR_RESPONSES,
    summary="Approve a signer-set change",
)
async def signer_change(
    body: SignerApproval,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> ApprovalOutcomeOut:
    outcome = facade.signer_change(principal, body.action, body.target, correlation_id)
    return _outcome_out(outcome, correlation_id)


@router.post(
    "/governance/assets-cap",
    response_model=ApprovalOutcomeOut,
    responses=ERROR_RESPONSES,
    summary="Approve an assets cap change",
)
async def assets_cap_change(
    body: AssetsCapApproval,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> ApprovalOutcomeOut:
    outcome = facade.assets_cap_change(principal, body.new_cap, correlation_id)
    return _outcome_out(outcome, correlation_id)


@router.post(
    "/governance/protocol-withdraw",
    responses=ERROR_RESPONSES,
    summary="Transfer a held asset to a whitelisted destination",
)
async def protocol_withdraw(
    body: ProtocolWithdrawRequest,
    principal: str = Depends(get_current_principal),
    correlation_id: str = Depends(get_correlation_id),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    remaining = facade.protocol_withdraw(
        principal, body.asset, body.amount, body.destination, correlation_id
    )
    return {"vault_balance": str(remaining), "correlation_id": correlation_id}


@router.get("/governance/whitelist/{proposal_id}", response_model=ProposalOut)
async def get_whitelist_proposal(
    proposal_id: int,
    facade: VaultFacade = Depends(get_vault_facade),
) -> ProposalOut:
    return _proposal_out(facade.whitelist_proposal(proposal_id))


@router.get("/governance/signers", response_model=ProposalOut)
async def get_signer_proposal(facade: VaultFacade = Depends(get_vault_facade)) -> ProposalOut:
    return _proposal_out(facade.signer_proposal())


@router.get("/governance/assets-cap", response_model=ProposalOut)
async def get_assets_cap_proposal(facade: VaultFacade = Depends(get_vault_facade)) -> ProposalOut:
    return _proposal_out(facade.assets_cap_proposal())


@router.get("/governance/{kind}/approvals/{signer}")
async def has_approved(
    kind: ProposalKind,
    signer: str,
    proposal_id: Optional[int] = Query(None),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    return {
        "kind": kind.value,
        "signer": signer,
        "proposal_id": proposal_id,
        "approved": facade.has_approved(kind, signer, proposal_id),
    }


# ============================================================================
# Queries
# ============================================================================

@router.get("/status")
async def vault_status(facade: VaultFacade = Depends(get_vault_facade)) -> Dict[str, Any]:
    return facade.vault_status()


@router.get("/accounts/{holder}")
async def account(holder: str, facade: VaultFacade = Depends(get_vault_facade)) -> Dict[str, Any]:
    return {
        "holder": holder,
        "shares": str(facade.balance_of(holder)),
        "principal": str(facade.principal_of(holder)),
        "max_redeemable": str(facade.max_redeemable(holder)),
    }


@router.get("/limits")
async def limits(facade: VaultFacade = Depends(get_vault_facade)) -> Dict[str, Any]:
    return {
        "max_deposit": str(facade.max_deposit()),
        "max_mint": str(facade.max_mint()),
        "available_assets": str(facade.available_assets()),
        "total_supply": str(facade.total_supply()),
        "total_assets": str(facade.total_assets()),
    }


@router.get("/preview")
async def preview(
    assets: Optional[int] = Query(None, ge=0),
    shares: Optional[int] = Query(None, ge=0),
    owner: Optional[str] = Query(None),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    if assets is not None:
        result["deposit_shares"] = str(facade.preview_deposit(assets))
    if shares is not None:
        result["mint_assets"] = str(facade.preview_mint(shares))
        result["redeem_assets"] = str(facade.preview_redeem(shares))
        if owner is not None:
            result["withdrawal"] = facade.preview_withdrawal(owner, shares).to_dict()
    return result


@router.get("/withdrawals/totals")
async def withdrawal_totals(facade: VaultFacade = Depends(get_vault_facade)) -> Dict[str, Any]:
    return {k: str(v) for k, v in facade.withdrawal_totals().items()}


@router.get("/withdrawals/aggregate")
async def aggregate_withdrawals(
    start_id: int = Query(..., ge=1),
    end_id: int = Query(..., ge=1),
    facade: VaultFacade = Depends(get_vault_facade),
) -> Dict[str, Any]:
    return facade.aggregate_withdrawal_requests(start_id, end_id).to_dict()


@router.get("/withdrawals", response_model=List[WithdrawalRequestOut])
async def filter_withdrawals(
    owner: Optional[str] = Query(None),
    receiver: Optional[str] = Query(None),
    claimed: Optional[bool] = Query(None),
    claimable: Optional[bool] = Query(None),
    start_id: Optional[int] = Query(None, ge=1),
    end_id: Optional[int] = Query(None, ge=1),
    facade: VaultFacade = Depends(get_vault_facade),
) -> List[Dict[str, Any]]:
    requests = facade.filter_withdrawal_requests(
        owner=owner,
        receiver=receiver,
        claimed=claimed,
        claimable=claimable,
        start_id=start_id,
        end_id=end_id,
    )
    return [r.to_dict() for r in requests]


@router.get("/withdrawals/{request_id}")
async def get_withdrawal(request_id: int, facade: VaultFacade = Depends(get_vault_facade)) -> Dict[str, Any]:
    request = facade.get_withdrawal_request(request_id)
    return {
        **request.to_dict(),
        "is_claimable": facade.is_claimable(request_id),
        "time_until_claimable": facade.time_until_claimable(request_id),
    }


# ============================================================================
# END OF VAULT API
# ============================================================================
