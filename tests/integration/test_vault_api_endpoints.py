"""
============================================================================
Integration Test: Vault API Endpoints
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Input Constraints: FastAPI TestClient, real VaultFacade over an in-memory ledger
Side Effects: None (no audit database)

REQUIREMENTS:
- Test deposit and withdrawal flows via API
- Test governance approvals via API
- Test 401 for unauthenticated requests
- Test 403 / 409 / 422 mapping of vault errors
- Test base-unit amounts travel as strings, floats refused

============================================================================
"""

import os
import sys

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.api.vault import get_vault_facade, router as vault_router
from app.main import vault_exception_handler
from vault.vault_errors import VaultError

WEEK = 604_800
HUNDRED_SHARES = str(100 * 10 ** 18)


# ============================================================================
# Test App Setup
# ============================================================================

def create_test_app(facade) -> FastAPI:
    """Create FastAPI test application with the vault router."""
    app = FastAPI(title="Vault API Test")
    app.include_router(vault_router, prefix="/api/vault")
    app.add_exception_handler(VaultError, vault_exception_handler)
    app.dependency_overrides[get_vault_facade] = lambda: facade
    return app


@pytest.fixture
def client(facade):
    with TestClient(create_test_app(facade)) as test_client:
        yield test_client


def auth(principal: str):
    return {"Authorization": f"Bearer {principal}"}


def deposit(client, principal: str = "alice", assets: str = "100000000"):
    return client.post(
        "/api/vault/deposit",
        json={"assets": assets, "receiver": principal},
        headers=auth(principal),
    )


# ============================================================================
# Authentication
# ============================================================================

class TestAuthentication:

    def test_missing_header_returns_401(self, client) -> None:
        response = client.post("/api/vault/deposit", json={"assets": "1", "receiver": "alice"})
        assert response.status_code == 401
        assert response.json()["detail"]["error_code"] == "SEC-001"

    def test_malformed_header_returns_401(self, client) -> None:
        response = client.post(
            "/api/vault/deposit",
            json={"assets": "1", "receiver": "alice"},
            headers={"Authorization": "Basic alice"},
        )
        assert response.status_code == 401

    def test_empty_principal_returns_401(self, client) -> None:
        response = client.post(
            "/api/vault/deposit",
            json={"assets": "1", "receiver": "alice"},
            headers={"Authorization": "Bearer    "},
        )
        assert response.status_code == 401


# ============================================================================
# Deposits
# ============================================================================

class TestDepositEndpoints:

    def test_deposit(self, client, facade) -> None:
        response = deposit(client)
        assert response.status_code == 200
        assert response.json()["shares"] == HUNDRED_SHARES
        assert facade.balance_of("alice") == 100 * 10 ** 18

    def test_integer_amount_accepted(self, client) -> None:
        response = client.post(
            "/api/vault/deposit",
            json={"assets": 100_000_000, "receiver": "alice"},
            headers=auth("alice"),
        )
        assert response.status_code == 200

    def test_correlation_id_is_echoed(self, client, facade) -> None:
        response = client.post(
            "/api/vault/deposit",
            json={"assets": "100000000", "receiver": "alice"},
            headers={**auth("alice"), "X-Correlation-ID": "corr-api-1"},
        )
        assert response.json()["correlation_id"] == "corr-api-1"
        assert facade.notifications.history[-1].correlation_id == "corr-api-1"

    @pytest.mark.parametrize("bad_amount", [1.5, "1.5", "-1", True, "abc"])
    def test_bad_amounts_rejected(self, client, bad_amount) -> None:
        response = client.post(
            "/api/vault/deposit",
            json={"assets": bad_amount, "receiver": "alice"},
            headers=auth("alice"),
        )
        assert response.status_code == 422

    def test_unknown_field_rejected(self, client) -> None:
        response = client.post(
            "/api/vault/deposit",
            json={"assets": "1", "receiver": "alice", "memo": "hi"},
            headers=auth("alice"),
        )
        assert response.status_code == 422

    def test_zero_deposit_maps_to_422(self, client) -> None:
        response = deposit(client, assets="0")
        assert response.status_code == 422
        assert response.json()["error_code"] == "VLT-010"

    def test_unfunded_deposit_maps_to_409(self, client) -> None:
        response = deposit(client, principal="carol")
        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "VLT-041"
        assert body["correlation_id"]

    def test_mint(self, client) -> None:
        response = client.post(
            "/api/vault/mint",
            json={"shares": HUNDRED_SHARES, "receiver": "alice"},
            headers=auth("alice"),
        )
        assert response.status_code == 200
        assert response.json()["assets"] == "100000000"


# ============================================================================
# Withdrawals
# ============================================================================

class TestWithdrawalEndpoints:

    def test_request_and_claim(self, client, clock) -> None:
        deposit(client)
        response = client.post(
            "/api/vault/withdrawals",
            json={"shares": HUNDRED_SHARES, "receiver": "alice"},
            headers=auth("alice"),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["id"] == 1
        assert body["assets_net"] == "100000000"
        assert body["claimed"] is False

        early = client.post("/api/vault/withdrawals/1/claim", headers=auth("alice"))
        assert early.status_code == 409
        assert early.json()["error_code"] == "VLT-031"

        status = client.get("/api/vault/withdrawals/1").json()
        assert status["is_claimable"] is False
        assert status["time_until_claimable"] == WEEK

        clock.advance(WEEK)
        claimed = client.post("/api/vault/withdrawals/1/claim", headers=auth("alice"))
        assert claimed.status_code == 200
        assert claimed.json()["claimed"] is True

    def test_claim_by_stranger_is_403(self, client, clock) -> None:
        deposit(client)
        client.post(
            "/api/vault/withdrawals",
            json={"shares": HUNDRED_SHARES, "receiver": "alice"},
            headers=auth("alice"),
        )
        clock.advance(WEEK)
        response = client.post("/api/vault/withdrawals/1/claim", headers=auth("bob"))
        assert response.status_code == 403
        assert response.json()["error_code"] == "VLT-004"

    def test_batch_claim_and_queries(self, client, clock) -> None:
        deposit(client)
        for _ in range(2):
            client.post(
                "/api/vault/withdrawals",
                json={"shares": str(50 * 10 ** 18), "receiver": "alice"},
                headers=auth("alice"),
            )
        totals = client.get("/api/vault/withdrawals/totals").json()
        assert totals["total_withdrawing_assets"] == "100000000"
        assert totals["request_count"] == "2"

        clock.advance(WEEK)
        response = client.post(
            "/api/vault/withdrawals/claim-batch",
            json={"request_ids": [1, 2]},
            headers=auth("alice"),
        )
        assert response.status_code == 200
        assert [r["id"] for r in response.json()] == [1, 2]

        listed = client.get("/api/vault/withdrawals", params={"owner": "alice", "claimed": True}).json()
        assert len(listed) == 2
        aggregate = client.get("/api/vault/withdrawals/aggregate", params={"start_id": 1, "end_id": 2}).json()
        assert aggregate["claimed_count"] == 2

    def test_empty_batch_rejected(self, client) -> None:
        response = client.post(
            "/api/vault/withdrawals/claim-batch",
            json={"request_ids": []},
            headers=auth("alice"),
        )
        assert response.status_code == 422

    def test_unknown_request_is_422(self, client) -> None:
        response = client.get("/api/vault/withdrawals/99")
        assert response.status_code == 422
        assert response.json()["error_code"] == "VLT-018"


# ============================================================================
# Transfers, admin and queries
# ============================================================================

class TestAccountEndpoints:

    def test_transfer_and_account_view(self, client) -> None:
        deposit(client)
        response = client.post(
            "/api/vault/shares/transfer",
            json={"recipient": "bob", "shares": str(25 * 10 ** 18)},
            headers=auth("alice"),
        )
        assert response.status_code == 200
        assert response.json()["principal_moved"] == "25000000"

        account = client.get("/api/vault/accounts/bob").json()
        assert account["shares"] == str(25 * 10 ** 18)
        assert account["principal"] == "25000000"

    def test_preview_and_limits(self, client) -> None:
        preview = client.get(
            "/api/vault/preview", params={"assets": 100_000_000, "shares": HUNDRED_SHARES}
        ).json()
        assert preview["deposit_shares"] == HUNDRED_SHARES
        assert preview["mint_assets"] == "100000000"
        assert "withdrawal" not in preview

        limits = client.get("/api/vault/limits").json()
        assert limits["total_supply"] == "0"

    def test_status(self, client) -> None:
        status = client.get("/api/vault/status").json()
        assert status["asset_token"] == "USDC"
        assert status["exchange_rate_display"] == "1"
        assert status["required_approvals"] == 2


class TestAdminEndpoints:

    def test_exchange_rate_update(self, client, facade) -> None:
        response = client.post(
            "/api/vault/admin/exchange-rate",
            json={"rate": str(11 * 10 ** 17)},
            headers=auth("oracle"),
        )
        assert response.status_code == 200
        assert response.json()["previous_rate"] == str(10 ** 18)
        assert facade.exchange_rate().rate == 11 * 10 ** 17

    def test_exchange_rate_requires_capability(self, client) -> None:
        response = client.post(
            "/api/vault/admin/exchange-rate",
            json={"rate": "1"},
            headers=auth("alice"),
        )
        assert response.status_code == 403
        assert response.json()["error_code"] == "VLT-001"

    def test_parameter_update(self, client, facade) -> None:
        response = client.post(
            "/api/vault/admin/redemption-period",
            json={"value": 3600},
            headers=auth("admin"),
        )
        assert response.status_code == 200
        assert response.json()["previous"] == "604800"
        assert facade.vault_status()["redemption_period"] == 3600

    def test_unknown_parameter_is_404(self, client) -> None:
        response = client.post(
            "/api/vault/admin/max-leverage",
            json={"value": 1},
            headers=auth("admin"),
        )
        assert response.status_code == 404

    def test_treasury_update(self, client) -> None:
        response = client.post(
            "/api/vault/admin/treasury",
            json={"treasury": "new_treasury"},
            headers=auth("admin"),
        )
        assert response.status_code == 200
        assert response.json()["previous"] == "treasury"


# ============================================================================
# Governance
# ============================================================================

class TestGovernanceEndpoints:

    def test_whitelist_flow(self, client, facade) -> None:
        body = {"proposal_id": 1, "target": "dest", "allow": True}
        first = client.post("/api/vault/governance/whitelist", json=body, headers=auth("signer_a"))
        assert first.status_code == 200
        assert first.json()["executed"] is False
        assert first.json()["payload"] == {"target": "dest", "allow": True}

        approved = client.get("/api/vault/governance/WHITELIST/approvals/signer_a", params={"proposal_id": 1})
        assert approved.json()["approved"] is True

        second = client.post("/api/vault/governance/whitelist", json=body, headers=auth("signer_b"))
        assert second.json()["executed"] is True
        assert facade.is_whitelisted("dest")

        proposal = client.get("/api/vault/governance/whitelist/1").json()
        assert proposal["executed"] is True

    def test_conflicting_whitelist_payload_is_409(self, client) -> None:
        client.post(
            "/api/vault/governance/whitelist",
            json={"proposal_id": 1, "target": "dest", "allow": True},
            headers=auth("signer_a"),
        )
        response = client.post(
            "/api/vault/governance/whitelist",
            json={"proposal_id": 1, "target": "dest", "allow": False},
            headers=auth("signer_b"),
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "VLT-034"

    def test_signer_and_cap_flows(self, client, facade) -> None:
        for signer in ("signer_a", "signer_b"):
            response = client.post(
                "/api/vault/governance/signers",
                json={"action": "ADD", "target": "signer_d"},
                headers=auth(signer),
            )
        assert response.json()["executed"] is True
        assert facade.required_approvals() == 3

        reset = None
        for signer, cap in (("signer_a", "1000"), ("signer_b", "2000")):
            reset = client.post(
                "/api/vault/governance/assets-cap",
                json={"new_cap": cap},
                headers=auth(signer),
            ).json()
        assert reset["reset"] is True
        assert reset["payload"] == {"new_cap": "2000"}

        proposal = client.get("/api/vault/governance/assets-cap").json()
        assert proposal["approval_count"] == 1
        assert proposal["required_approvals"] == 3

    def test_bad_signer_action_is_422(self, client) -> None:
        response = client.post(
            "/api/vault/governance/signers",
            json={"action": "PROMOTE", "target": "signer_d"},
            headers=auth("signer_a"),
        )
        assert response.status_code == 422

    def test_missing_proposal_is_404(self, client) -> None:
        assert client.get("/api/vault/governance/signers").status_code == 404
        assert client.get("/api/vault/governance/whitelist/5").status_code == 404

    def test_protocol_withdraw(self, client, ledger) -> None:
        for signer in ("signer_a", "signer_b"):
            client.post(
                "/api/vault/governance/whitelist",
                json={"proposal_id": 1, "target": "dest", "allow": True},
                headers=auth(signer),
            )
        deposit(client)
        response = client.post(
            "/api/vault/governance/protocol-withdraw",
            json={"asset": "USDC", "amount": "40000000", "destination": "dest"},
            headers=auth("signer_c"),
        )
        assert response.status_code == 200
        assert response.json()["vault_balance"] == "60000000"
        assert ledger.balance_of("USDC", "dest") == 40_000_000

    def test_protocol_withdraw_by_non_signer_is_403(self, client) -> None:
        response = client.post(
            "/api/vault/governance/protocol-withdraw",
            json={"asset": "USDC", "amount": "1", "destination": "dest"},
            headers=auth("alice"),
        )
        assert response.status_code == 403
        assert response.json()["error_code"] == "VLT-002"
