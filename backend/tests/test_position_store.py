import pytest

from conftest import blob
from shadowvault.core.errors import (
    AttestationExpired,
    BridgePending,
    ComplianceFailed,
    InvalidBridgeState,
    LoanAlreadyActive,
    NoActiveLoan,
    NoBridgePending,
    OrderAlreadyOpen,
    OrderNotCancellable,
    OrderNotMatchable,
    PositionNotFound,
)
from shadowvault.infrastructure.store import transitions
from shadowvault.infrastructure.store.position_store import PositionStore
from shadowvault.schemas.actions import WithdrawType
from shadowvault.schemas.state import (
    BridgeStatus,
    DestinationChain,
    OrderSide,
    OrderStatus,
    UserRecords,
)

NOW = 1_700_000_000
DAY = transitions.SECONDS_PER_DAY


def _funded(owner: str = "alice") -> UserRecords:
    records = UserRecords()
    transitions.credit_deposit(records, owner, blob(1), blob(2), NOW)
    return records

# ═══════════════════════════════════════════════════════════════════════════════
# STORE
# ═══════════════════════════════════════════════════════════════════════════════

def test_stage_is_a_deep_copy():
    store = PositionStore()
    store.commit("alice", _funded())

    staged = store.stage("alice")
    staged.position.deposit_count = 99
    assert store.get("alice").position.deposit_count == 1


def test_commit_skips_empty_bundle_for_unknown_user():
    store = PositionStore()
    store.commit("ghost", store.stage("ghost"))
    assert store.get("ghost") is None
    assert store.users() == []


def test_position_count_and_users():
    store = PositionStore()
    store.commit("bob", _funded("bob"))
    store.commit("alice", _funded("alice"))
    assert store.users() == ["alice", "bob"]
    assert store.position_count == 2


def test_lock_for_is_stable_per_user():
    store = PositionStore()
    assert store.lock_for("alice") is store.lock_for("alice")
    assert store.lock_for("alice") is not store.lock_for("bob")


def test_check_consistency_flags_mismatch():
    store = PositionStore()
    records = _funded()
    transitions.borrow(records, blob(3), blob(4), 100, 8_000, NOW)
    store.commit("alice", records)
    assert store.check_consistency("alice") == []

    broken = store.stage("alice")
    broken.position.has_active_loan = False
    store.commit("alice", broken)
    assert len(store.check_consistency("alice")) == 1

# ═══════════════════════════════════════════════════════════════════════════════
# DEPOSIT / WITHDRAW TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════════

def test_credit_deposit_creates_once():
    records = UserRecords()
    assert transitions.credit_deposit(records, "alice", blob(1), blob(2), NOW) is True
    assert transitions.credit_deposit(records, "alice", blob(5), blob(2), NOW + 1) is False

    position = records.position
    assert position.deposit_count == 2
    assert position.created_at == NOW
    assert position.last_deposit_at == NOW + 1
    assert position.balance_commitment == blob(5)


def test_require_position():
    with pytest.raises(PositionNotFound):
        transitions.require_position(UserRecords(), "alice")


def test_full_withdrawal_zeroes_position():
    records = _funded()
    transitions.debit_withdrawal(records, WithdrawType.FULL, blob(9), NOW + 10)
    position = records.position
    assert position.encrypted_principal.is_zero
    assert position.is_empty
    assert position.nullifier == blob(9)
    assert position.withdrawal_count == 1


def test_partial_withdrawal_rolls_commitment_and_nullifier():
    records = _funded()
    transitions.debit_withdrawal(records, WithdrawType.PARTIAL, blob(9), NOW, blob(7))
    assert records.position.balance_commitment == blob(7)
    assert records.position.nullifier == blob(9)


def test_require_unencumbered():
    records = _funded()
    transitions.borrow(records, blob(3), blob(4), 100, 8_000, NOW)
    with pytest.raises(LoanAlreadyActive):
        transitions.require_unencumbered(records.position)

    records = _funded()
    transitions.initiate_bridge(records, DestinationChain.ETHEREUM, blob(3), NOW)
    with pytest.raises(BridgePending):
        transitions.require_unencumbered(records.position)

# ═══════════════════════════════════════════════════════════════════════════════
# LENDING TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════════

def test_borrow_repay_cycle():
    records = _funded()
    loan = transitions.borrow(records, blob(3), blob(4), 250, 8_000, NOW)
    assert loan.is_active and records.position.has_active_loan
    assert records.position.encrypted_yield.commitment == blob(4)

    with pytest.raises(LoanAlreadyActive):
        transitions.borrow(records, blob(3), blob(4), 250, 8_000, NOW)

    transitions.close_loan(records, NOW + 5)
    assert not records.loan.is_active
    assert not records.position.has_active_loan
    assert records.position.encrypted_yield.is_zero

    with pytest.raises(NoActiveLoan):
        transitions.close_loan(records, NOW + 6)
    with pytest.raises(NoActiveLoan):
        transitions.set_collateral(records, blob(8), NOW + 6)

# ═══════════════════════════════════════════════════════════════════════════════
# ORDER TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════════

def test_order_lifecycle():
    records = _funded()
    order = transitions.place_limit_order(records, OrderSide.SELL, blob(3), blob(4), NOW)
    assert order.status is OrderStatus.OPEN

    with pytest.raises(OrderAlreadyOpen):
        transitions.place_limit_order(records, OrderSide.BUY, blob(3), blob(4), NOW)

    transitions.fill_order_partially(records, NOW + 1)
    assert records.order.status is OrderStatus.PARTIALLY_FILLED
    with pytest.raises(OrderNotMatchable):
        transitions.fill_order_partially(records, NOW + 2)

    transitions.cancel_order(records, NOW + 3)
    assert records.order.status is OrderStatus.CANCELLED
    assert records.position.encrypted_principal.commitment == blob(3)
    with pytest.raises(OrderNotCancellable):
        transitions.cancel_order(records, NOW + 4)
    with pytest.raises(OrderNotMatchable):
        transitions.match_order(records, NOW + 4)

    # a finished order can be replaced
    transitions.place_limit_order(records, OrderSide.BUY, blob(5), blob(6), NOW + 5)
    transitions.match_order(records, NOW + 6)
    assert records.order.status is OrderStatus.FILLED
    assert records.position.balance_commitment == blob(6)


def test_cancel_without_order():
    with pytest.raises(OrderNotCancellable):
        transitions.cancel_order(_funded(), NOW)

# ═══════════════════════════════════════════════════════════════════════════════
# BRIDGE TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════════

def test_bridge_lifecycle():
    records = _funded()
    with pytest.raises(NoBridgePending):
        transitions.verify_bridge_completion(records, NOW)

    request = transitions.initiate_bridge(records, DestinationChain.ARBITRUM, blob(3), NOW)
    assert request.status is BridgeStatus.PENDING
    assert request.dest_chain_id == 42161
    assert records.position.has_pending_bridge

    with pytest.raises(BridgePending):
        transitions.initiate_bridge(records, DestinationChain.BASE, blob(3), NOW)

    transitions.verify_bridge_completion(records, NOW + 60)
    assert records.bridge.status is BridgeStatus.COMPLETED
    assert not records.position.has_pending_bridge

    with pytest.raises(NoBridgePending):
        transitions.cancel_bridge(records, NOW + 61)


def test_bridge_flag_without_pending_status():
    records = _funded()
    transitions.initiate_bridge(records, DestinationChain.ETHEREUM, blob(3), NOW)
    records.bridge.status = BridgeStatus.FAILED
    with pytest.raises(InvalidBridgeState):
        transitions.verify_bridge_completion(records, NOW)


@pytest.mark.parametrize("status", [BridgeStatus.COMPLETED, BridgeStatus.FAILED, BridgeStatus.CANCELLED])
def test_terminal_bridge_status_cannot_settle_again(status):
    assert status.is_terminal
    assert not BridgeStatus.PENDING.is_terminal

    records = _funded()
    transitions.initiate_bridge(records, DestinationChain.ETHEREUM, blob(3), NOW)
    records.bridge.status = status
    with pytest.raises(InvalidBridgeState):
        transitions.cancel_bridge(records, NOW)
    assert records.position.has_pending_bridge


def test_cancel_bridge_and_claim_inbound():
    records = _funded()
    transitions.initiate_bridge(records, DestinationChain.ETHEREUM, blob(3), NOW)
    transitions.cancel_bridge(records, NOW + 1)
    assert records.bridge.status is BridgeStatus.CANCELLED
    assert not records.position.has_pending_bridge

    assert transitions.claim_inbound(records, blob(11), NOW + 2).status is BridgeStatus.CANCELLED
    assert records.position.encrypted_principal.commitment == blob(11)

    transitions.initiate_bridge(records, DestinationChain.ETHEREUM, blob(3), NOW + 3)
    request = transitions.claim_inbound(records, blob(12), NOW + 4)
    assert request.status is BridgeStatus.COMPLETED
    assert not records.position.has_pending_bridge

# ═══════════════════════════════════════════════════════════════════════════════
# COMPLIANCE TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════════

def test_attestation_before_first_deposit_carries_over():
    records = UserRecords()
    att = transitions.submit_attestation(records, "alice", "oracle", blob(1), 30, 75, NOW)
    assert att.is_valid and att.risk_score == 32
    assert att.expires_at == NOW + 30 * DAY

    transitions.credit_deposit(records, "alice", blob(1), blob(2), NOW + 1)
    assert records.position.compliance_verified
    assert records.position.compliance_expiry == att.expires_at


def test_attestation_risk_threshold():
    with pytest.raises(ComplianceFailed):
        transitions.submit_attestation(_funded(), "alice", "oracle", blob(3), 30, 75, NOW)


def test_verify_expired_attestation():
    records = _funded()
    transitions.submit_attestation(records, "alice", "oracle", blob(1), 1, 75, NOW)
    with pytest.raises(AttestationExpired):
        transitions.verify_attestation(records, "alice", 30, NOW + DAY + 1)
    # failed verify leaves the record untouched
    assert records.attestation.is_valid

    transitions.renew_attestation(records, "alice", "oracle", blob(2), 30, 75, NOW + DAY + 2)
    assert records.attestation.expires_at == NOW + DAY + 2 + 30 * DAY


def test_revoke_then_renew_requires_submit():
    records = _funded()
    transitions.submit_attestation(records, "alice", "oracle", blob(1), 30, 75, NOW)
    transitions.revoke_attestation(records, "alice")
    assert not records.position.compliance_verified

    with pytest.raises(ComplianceFailed):
        transitions.revoke_attestation(records, "alice")
    with pytest.raises(ComplianceFailed):
        transitions.renew_attestation(records, "alice", "oracle", blob(2), 30, 75, NOW + 1)
    with pytest.raises(ComplianceFailed):
        transitions.verify_attestation(records, "alice", 30, NOW + 1)
