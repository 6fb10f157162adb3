"""
Unit Tests for the Withdrawal Queue State Machine

Reliability Level: SOVEREIGN TIER

Tests the REQUESTED → CLAIMABLE → CLAIMED lifecycle:
- Monotonic 1-based ids
- Redemption gate: claimable at requested_at + period, not one second earlier
- Claim guard order: owner (VLT-004), claimed (VLT-030), period (VLT-031)
- Running totals shrink only on claim
- Row hash tamper detection (VLT-042)
- Filtering and range aggregation
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from vault.vault_errors import AuthorizationError, StateError, ValidationError, VaultErrorCode
from vault.vault_models import RowHasher, WithdrawalState
from vault.withdrawal_queue import (
    WithdrawalQueue,
    get_valid_transitions,
    is_terminal_state,
)

PERIOD = 100


def enqueue(queue: WithdrawalQueue, owner: str = "alice", at: int = 1000, net: int = 90, fee: int = 10):
    return queue.enqueue(
        owner=owner,
        receiver=owner + "_wallet",
        shares_burned=10 ** 18,
        assets_gross=net + fee,
        cost_basis=50,
        assets_net=net,
        fee_amount=fee,
        requested_at=at,
        correlation_id="corr-enqueue",
    )


@pytest.fixture
def queue() -> WithdrawalQueue:
    return WithdrawalQueue(PERIOD)


class TestEnqueue:

    def test_ids_start_at_one_and_increase(self, queue) -> None:
        assert enqueue(queue).id == 1
        assert enqueue(queue).id == 2
        assert queue.last_id == 2
        assert len(queue) == 2

    def test_totals_grow(self, queue) -> None:
        enqueue(queue, net=90, fee=10)
        enqueue(queue, net=45, fee=5)
        assert queue.total_withdrawing_assets == 135
        assert queue.total_withdrawing_fees == 15
        assert queue.total_withdrawing_shares == 2 * 10 ** 18
        assert queue.reserved_assets == 150

    def test_inconsistent_amounts_rejected(self, queue) -> None:
        with pytest.raises(ValidationError):
            queue.enqueue("alice", "alice", 1, 100, 0, 50, 10, 1000, "corr")
        assert len(queue) == 0

    def test_row_hash_assigned(self, queue) -> None:
        request = enqueue(queue)
        assert request.row_hash is not None
        assert RowHasher.verify(request)

    def test_unknown_id_rejected(self, queue) -> None:
        for bad_id in (0, -1, 99):
            with pytest.raises(ValidationError) as exc_info:
                queue.get(bad_id)
            assert exc_info.value.error_code == VaultErrorCode.REQUEST_NOT_FOUND


class TestRedemptionGate:

    def test_one_second_early_is_rejected(self, queue) -> None:
        enqueue(queue, at=1000)
        with pytest.raises(StateError) as exc_info:
            queue.check_claim(1, "alice", 1000 + PERIOD - 1)
        assert exc_info.value.error_code == VaultErrorCode.REDEMPTION_PENDING

    def test_exactly_at_period_is_claimable(self, queue) -> None:
        enqueue(queue, at=1000)
        assert queue.check_claim(1, "alice", 1000 + PERIOD).id == 1
        assert queue.is_claimable(1, 1000 + PERIOD)

    def test_states_follow_the_clock(self, queue) -> None:
        enqueue(queue, at=1000)
        assert queue.state_of(1, 1000) is WithdrawalState.REQUESTED
        assert queue.state_of(1, 1000 + PERIOD) is WithdrawalState.CLAIMABLE
        queue.mark_claimed(1, 1000 + PERIOD)
        assert queue.state_of(1, 1000 + PERIOD) is WithdrawalState.CLAIMED

    def test_time_until_claimable(self, queue) -> None:
        enqueue(queue, at=1000)
        assert queue.time_until_claimable(1, 1000) == PERIOD
        assert queue.time_until_claimable(1, 1000 + PERIOD + 50) == 0

    def test_period_change_applies_to_existing_requests(self, queue) -> None:
        enqueue(queue, at=1000)
        assert queue.set_redemption_period(10) == PERIOD
        assert queue.is_claimable(1, 1010)

    def test_negative_period_rejected(self) -> None:
        with pytest.raises(ValidationError):
            WithdrawalQueue(-1)


class TestClaimGuards:

    def test_owner_checked_before_period(self, queue) -> None:
        enqueue(queue, at=1000)
        with pytest.raises(AuthorizationError) as exc_info:
            queue.check_claim(1, "mallory", 1000)
        assert exc_info.value.error_code == VaultErrorCode.NOT_REQUEST_OWNER

    def test_receiver_cannot_claim(self, queue) -> None:
        enqueue(queue, at=1000)
        with pytest.raises(AuthorizationError):
            queue.check_claim(1, "alice_wallet", 1000 + PERIOD)

    def test_second_claim_rejected(self, queue) -> None:
        enqueue(queue, at=1000)
        queue.mark_claimed(1, 1000 + PERIOD)
        with pytest.raises(StateError) as exc_info:
            queue.check_claim(1, "alice", 1000 + PERIOD)
        assert exc_info.value.error_code == VaultErrorCode.ALREADY_CLAIMED
        with pytest.raises(StateError):
            queue.mark_claimed(1, 1000 + PERIOD)

    def test_claim_shrinks_totals(self, queue) -> None:
        enqueue(queue, net=90, fee=10)
        enqueue(queue, net=45, fee=5)
        claimed = queue.mark_claimed(1, 1000 + PERIOD)
        assert claimed.claimed is True
        assert claimed.claimed_at == 1000 + PERIOD
        assert queue.total_withdrawing_assets == 45
        assert queue.total_withdrawing_fees == 5
        assert queue.total_withdrawing_shares == 10 ** 18

    def test_tampered_request_rejected(self, queue) -> None:
        request = enqueue(queue, at=1000)
        request.assets_net += 1
        with pytest.raises(StateError) as exc_info:
            queue.check_claim(1, "alice", 1000 + PERIOD)
        assert exc_info.value.error_code == VaultErrorCode.HASH_MISMATCH


class TestProjections:

    def test_filter_by_owner_and_claimed(self, queue) -> None:
        enqueue(queue, owner="alice", at=1000)
        enqueue(queue, owner="bob", at=1000)
        enqueue(queue, owner="alice", at=1050)
        queue.mark_claimed(1, 1100)

        assert [r.id for r in queue.filter_requests(1100, owner="alice")] == [1, 3]
        assert [r.id for r in queue.filter_requests(1100, claimed=False)] == [2, 3]
        assert [r.id for r in queue.filter_requests(1100, claimable=True)] == [2]
        assert [r.id for r in queue.filter_requests(1100, start_id=2, end_id=2)] == [2]
        assert [r.id for r in queue.requests_of("bob")] == [2]

    def test_aggregate_range(self, queue) -> None:
        enqueue(queue, at=1000, net=90, fee=10)
        enqueue(queue, at=1000, net=45, fee=5)
        enqueue(queue, at=1050, net=9, fee=1)
        queue.mark_claimed(1, 1100)

        aggregate = queue.aggregate_range(1, 10, 1100)
        assert aggregate.count == 3
        assert aggregate.assets_net == 144
        assert aggregate.fee_amount == 16
        assert aggregate.claimed_count == 1
        assert aggregate.claimable_count == 1
        assert aggregate.pending_count == 1

    def test_inverted_range_rejected(self, queue) -> None:
        with pytest.raises(ValidationError):
            queue.aggregate_range(3, 2, 0)


class TestTransitionTable:

    def test_table_shape(self) -> None:
        assert get_valid_transitions(WithdrawalState.REQUESTED) == [WithdrawalState.CLAIMABLE]
        assert is_terminal_state(WithdrawalState.CLAIMED)
        assert not is_terminal_state(WithdrawalState.CLAIMABLE)

    def test_requested_cannot_jump_to_claimed(self, queue) -> None:
        enqueue(queue, at=1000)
        with pytest.raises(StateError) as exc_info:
            queue.mark_claimed(1, 1000 + PERIOD - 1)
        assert exc_info.value.error_code == VaultErrorCode.REDEMPTION_PENDING
        assert queue.state_of(1, 1000 + PERIOD - 1) is WithdrawalState.REQUESTED
        assert queue.total_withdrawing_assets == 90

    def test_claimed_is_terminal(self, queue) -> None:
        enqueue(queue, at=1000)
        queue.mark_claimed(1, 1000 + PERIOD)
        with pytest.raises(StateError) as exc_info:
            queue.mark_claimed(1, 1000 + PERIOD + 1)
        assert exc_info.value.error_code == VaultErrorCode.ALREADY_CLAIMED
        assert queue.total_withdrawing_assets == 0


class TestCheckpoint:

    def test_rollback_drops_new_requests_and_unclaims(self, queue) -> None:
        enqueue(queue, at=1000)
        checkpoint = queue.checkpoint()

        queue.mark_claimed(1, 1000 + PERIOD)
        enqueue(queue, at=1050, net=45, fee=5)
        queue.set_redemption_period(10)
        queue.rollback(checkpoint)

        assert len(queue) == 1
        assert queue.last_id == 1
        request = queue.get(1)
        assert request.claimed is False
        assert request.claimed_at is None
        assert queue.total_withdrawing_assets == 90
        assert queue.total_withdrawing_fees == 10
        assert queue.total_withdrawing_shares == 10 ** 18
        assert queue.redemption_period == PERIOD
        assert enqueue(queue).id == 2

    def test_new_checkpoint_forgets_committed_claims(self, queue) -> None:
        enqueue(queue, at=1000)
        queue.checkpoint()
        queue.mark_claimed(1, 1000 + PERIOD)

        checkpoint = queue.checkpoint()
        queue.rollback(checkpoint)
        assert queue.get(1).claimed is True
        assert queue.total_withdrawing_assets == 0
