"""
Per-user state machine.

Every function here mutates a *staged* ``UserRecords`` bundle in place
and raises a ``VaultRevertError`` before touching anything if the
transition is illegal. The router commits the bundle only after every
function in the action has returned, so a revert never leaves a
half-applied transition behind.

State machine (per user):
    NoPosition ──deposit──▶ Active

    loan:    Inactive ──borrow──▶ Active ──repay / liquidate──▶ Inactive
    bridge:  None ──initiate──▶ Pending ──verify / claim──▶ Completed
                                        └──cancel──────────▶ Cancelled
    order:   None ──place──▶ Open ──match──▶ Filled
                             │  └──partial fill──▶ PartiallyFilled
                             └──cancel──▶ Cancelled
    attest:  None ──submit──▶ Valid ──revoke──▶ Invalid
                               └──(time)──▶ Expired ──renew──▶ Valid

Position flags (``has_active_loan``, ``has_pending_bridge``,
``compliance_verified``) are written by the same function that changes
the entity they mirror.
"""

from __future__ import annotations

from typing import Optional

from shadowvault.core.crypto.commitments import ZERO_COMMITMENT, risk_score_from_hash
from shadowvault.core.errors import (
    AttestationExpired,
    BridgePending,
    ComplianceFailed,
    InvalidBridgeState,
    InvalidParameter,
    LoanAlreadyActive,
    NoActiveLoan,
    NoBridgePending,
    OrderAlreadyOpen,
    OrderNotCancellable,
    OrderNotMatchable,
    PositionNotFound,
)
from shadowvault.schemas.actions import WithdrawType
from shadowvault.schemas.state import (
    BridgeRequest,
    BridgeStatus,
    ComplianceAttestation,
    DarkPoolOrder,
    DestinationChain,
    EncryptedAmount,
    EncryptedPosition,
    LendingPosition,
    OrderSide,
    OrderStatus,
    UserRecords,
)

SECONDS_PER_DAY = 86_400

CANCELLABLE_ORDER_STATES = (OrderStatus.OPEN, OrderStatus.PARTIALLY_FILLED)
REPLACEABLE_ORDER_STATES = (OrderStatus.NONE, OrderStatus.FILLED, OrderStatus.CANCELLED)


# ═══════════════════════════════════════════════════════════════════════════════
# POSITION
# ═══════════════════════════════════════════════════════════════════════════════

def require_position(records: UserRecords, owner: str) -> EncryptedPosition:
    if records.position is None:
        raise PositionNotFound("no shielded position for caller", {"user": owner})
    return records.position


def touch(position: EncryptedPosition, now: int) -> None:
    """Count one action against the position."""
    position.action_count += 1
    position.last_action_at = now


def credit_deposit(
    records: UserRecords,
    owner: str,
    amount_commitment: bytes,
    blinding_factor: bytes,
    now: int,
) -> bool:
    """
    Record a deposit on the caller's position, creating it on first use.

    Returns:
        True if the position was created by this deposit.
    """
    created = records.position is None
    if created:
        records.position = EncryptedPosition(owner=owner, created_at=now)
        # an attestation submitted before the first deposit carries over
        att = records.attestation
        if att is not None and att.is_valid:
            records.position.compliance_verified = True
            records.position.compliance_expiry = att.expires_at

    position = records.position
    position.encrypted_principal = EncryptedAmount(
        handle=blinding_factor, commitment=amount_commitment,
    )
    position.balance_commitment = amount_commitment
    position.deposit_count += 1
    position.last_deposit_at = now
    position.last_action_at = now
    return created


def require_unencumbered(position: EncryptedPosition) -> None:
    """A position with an open loan or an in-flight bridge cannot be withdrawn from."""
    if position.has_active_loan:
        raise LoanAlreadyActive(
            "repay the active loan before withdrawing", {"user": position.owner},
        )
    if position.has_pending_bridge:
        raise BridgePending(
            "a bridge request is still pending", {"user": position.owner},
        )


def debit_withdrawal(
    records: UserRecords,
    withdraw_type: WithdrawType,
    nullifier: bytes,
    now: int,
    remaining_commitment: Optional[bytes] = None,
) -> None:
    """Apply the commitment side of a withdrawal. The nullifier is already recorded."""
    position = records.position
    if withdraw_type is WithdrawType.PARTIAL:
        if remaining_commitment is None:
            raise InvalidParameter("partial withdrawal needs the remaining principal commitment")
        position.encrypted_principal = EncryptedAmount(
            handle=position.encrypted_principal.handle,
            commitment=remaining_commitment,
        )
        position.balance_commitment = remaining_commitment
    elif withdraw_type is WithdrawType.FULL:
        position.encrypted_principal = EncryptedAmount()
        position.encrypted_yield = EncryptedAmount()
        position.balance_commitment = ZERO_COMMITMENT
    else:
        position.encrypted_yield = EncryptedAmount()

    position.nullifier = nullifier
    position.withdrawal_count += 1
    position.last_action_at = now


# ═══════════════════════════════════════════════════════════════════════════════
# LENDING
# ═══════════════════════════════════════════════════════════════════════════════

def _require_active_loan(records: UserRecords) -> LendingPosition:
    if records.loan is None or not records.loan.is_active:
        raise NoActiveLoan("no active loan", {"user": records.position.owner})
    return records.loan


def borrow(
    records: UserRecords,
    collateral_commitment: bytes,
    borrow_commitment: bytes,
    interest_rate_bps: int,
    liquidation_threshold_bps: int,
    now: int,
) -> LendingPosition:
    position = records.position
    if position.has_active_loan or (records.loan is not None and records.loan.is_active):
        raise LoanAlreadyActive("a loan is already active", {"user": position.owner})

    records.loan = LendingPosition(
        borrower=position.owner,
        encrypted_collateral=EncryptedAmount(commitment=collateral_commitment),
        encrypted_borrow=EncryptedAmount(commitment=borrow_commitment),
        interest_rate_bps=interest_rate_bps,
        originated_at=now,
        last_accrual_at=now,
        liquidation_threshold_bps=liquidation_threshold_bps,
        is_active=True,
    )
    position.has_active_loan = True
    position.encrypted_yield = EncryptedAmount(commitment=borrow_commitment)
    return records.loan


def close_loan(records: UserRecords, now: int) -> LendingPosition:
    """Repay or liquidation: deactivate the loan and clear the mirrored flag."""
    loan = _require_active_loan(records)
    loan.is_active = False
    loan.last_accrual_at = now
    records.position.has_active_loan = False
    records.position.encrypted_yield = EncryptedAmount()
    return loan


def set_collateral(records: UserRecords, collateral_commitment: bytes, now: int) -> LendingPosition:
    loan = _require_active_loan(records)
    loan.encrypted_collateral = EncryptedAmount(commitment=collateral_commitment)
    loan.last_accrual_at = now
    return loan


# ═══════════════════════════════════════════════════════════════════════════════
# SWAPS & DARK POOL
# ═══════════════════════════════════════════════════════════════════════════════

def execute_swap(records: UserRecords, amount_in_commitment: bytes, min_out_commitment: bytes) -> None:
    """Immediate swap: no order is persisted, the position commitments roll forward."""
    position = records.position
    position.encrypted_principal = EncryptedAmount(
        handle=position.encrypted_principal.handle,
        commitment=amount_in_commitment,
    )
    position.balance_commitment = min_out_commitment


def place_limit_order(
    records: UserRecords,
    side: OrderSide,
    amount_commitment: bytes,
    price_commitment: bytes,
    now: int,
) -> DarkPoolOrder:
    current = records.order
    if current is not None and current.status not in REPLACEABLE_ORDER_STATES:
        raise OrderAlreadyOpen(
            f"order is still {current.status.value}",
            {"user": records.position.owner, "status": current.status.value},
        )

    records.order = DarkPoolOrder(
        maker=records.position.owner,
        side=side,
        encrypted_amount=EncryptedAmount(commitment=amount_commitment),
        encrypted_price=EncryptedAmount(commitment=price_commitment),
        status=OrderStatus.OPEN,
        created_at=now,
        updated_at=now,
    )
    return records.order


def cancel_order(records: UserRecords, now: int) -> DarkPoolOrder:
    order = records.order
    if order is None or order.status not in CANCELLABLE_ORDER_STATES:
        status = order.status.value if order is not None else OrderStatus.NONE.value
        raise OrderNotCancellable(
            f"order is {status}", {"user": records.position.owner, "status": status},
        )
    order.status = OrderStatus.CANCELLED
    order.updated_at = now
    # unfilled size returns to the shielded principal
    records.position.encrypted_principal = EncryptedAmount(
        handle=records.position.encrypted_principal.handle,
        commitment=order.encrypted_amount.commitment,
    )
    return order


def match_order(records: UserRecords, now: int) -> DarkPoolOrder:
    order = records.order
    if order is None or order.status not in CANCELLABLE_ORDER_STATES:
        status = order.status.value if order is not None else OrderStatus.NONE.value
        raise OrderNotMatchable(
            f"order is {status}", {"user": records.position.owner, "status": status},
        )
    order.status = OrderStatus.FILLED
    order.updated_at = now
    records.position.balance_commitment = order.encrypted_price.commitment
    return order


def fill_order_partially(records: UserRecords, now: int) -> DarkPoolOrder:
    """Venue-reported partial fill. Only an OPEN order can move to PARTIALLY_FILLED."""
    order = records.order
    if order is None or order.status is not OrderStatus.OPEN:
        status = order.status.value if order is not None else OrderStatus.NONE.value
        raise OrderNotMatchable(
            f"order is {status}", {"user": records.position.owner, "status": status},
        )
    order.status = OrderStatus.PARTIALLY_FILLED
    order.updated_at = now
    return order


# ═══════════════════════════════════════════════════════════════════════════════
# BRIDGE
# ═══════════════════════════════════════════════════════════════════════════════

def _require_pending_bridge(records: UserRecords) -> BridgeRequest:
    position = records.position
    request = records.bridge
    if request is None or not position.has_pending_bridge:
        raise NoBridgePending("no bridge request pending", {"user": position.owner})
    if request.status.is_terminal:
        raise InvalidBridgeState(
            f"bridge request is {request.status.value}",
            {"user": position.owner, "status": request.status.value},
        )
    return request


def initiate_bridge(
    records: UserRecords,
    dest_chain: DestinationChain,
    amount_commitment: bytes,
    now: int,
) -> BridgeRequest:
    position = records.position
    if position.has_pending_bridge:
        raise BridgePending("a bridge request is already pending", {"user": position.owner})

    records.bridge = BridgeRequest(
        user=position.owner,
        dest_chain_id=dest_chain.chain_id,
        amount_commitment=amount_commitment,
        status=BridgeStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
    position.has_pending_bridge = True
    position.encrypted_principal = EncryptedAmount(
        handle=position.encrypted_principal.handle,
        commitment=amount_commitment,
    )
    return records.bridge


def verify_bridge_completion(records: UserRecords, now: int) -> BridgeRequest:
    request = _require_pending_bridge(records)
    request.status = BridgeStatus.COMPLETED
    request.updated_at = now
    records.position.has_pending_bridge = False
    return request


def cancel_bridge(records: UserRecords, now: int) -> BridgeRequest:
    request = _require_pending_bridge(records)
    request.status = BridgeStatus.CANCELLED
    request.updated_at = now
    records.position.has_pending_bridge = False
    records.position.encrypted_principal = EncryptedAmount(
        handle=records.position.encrypted_principal.handle,
        commitment=request.amount_commitment,
    )
    return request


def claim_inbound(records: UserRecords, amount_commitment: bytes, now: int) -> Optional[BridgeRequest]:
    """Credit an inbound transfer. A pending outbound request of the caller settles with it."""
    position = records.position
    position.encrypted_principal = EncryptedAmount(
        handle=position.encrypted_principal.handle,
        commitment=amount_commitment,
    )
    request = records.bridge
    if request is not None and request.status is BridgeStatus.PENDING:
        request.status = BridgeStatus.COMPLETED
        request.updated_at = now
    position.has_pending_bridge = False
    return request


# ═══════════════════════════════════════════════════════════════════════════════
# COMPLIANCE
# ═══════════════════════════════════════════════════════════════════════════════

def _attest(
    records: UserRecords,
    owner: str,
    provider: str,
    attestation_hash: bytes,
    validity_days: int,
    max_risk_score: int,
    now: int,
) -> ComplianceAttestation:
    risk_score = risk_score_from_hash(attestation_hash)
    if risk_score > max_risk_score:
        raise ComplianceFailed(
            f"risk score {risk_score} above threshold {max_risk_score}",
            {"user": owner, "risk_score": risk_score},
        )

    expires_at = now + validity_days * SECONDS_PER_DAY
    records.attestation = ComplianceAttestation(
        user=owner,
        provider=provider,
        attestation_hash=attestation_hash,
        risk_score=risk_score,
        is_valid=True,
        attested_at=now,
        expires_at=expires_at,
    )
    if records.position is not None:
        records.position.compliance_verified = True
        records.position.compliance_expiry = expires_at
    return records.attestation


def submit_attestation(records: UserRecords, owner: str, provider: str, attestation_hash: bytes,
                       validity_days: int, max_risk_score: int, now: int) -> ComplianceAttestation:
    return _attest(records, owner, provider, attestation_hash, validity_days, max_risk_score, now)


def verify_attestation(records: UserRecords, owner: str, validity_days: int, now: int) -> ComplianceAttestation:
    """
    Re-check a stored attestation and extend its validity window.

    Expiry is evaluated lazily here. A failing verify raises before any
    field changes, so an expired attestation keeps ``is_valid`` set
    until it is renewed or revoked.
    """
    att = records.attestation
    if att is None or not att.is_valid:
        raise ComplianceFailed("no valid attestation on file", {"user": owner})
    if att.is_expired(now):
        raise AttestationExpired(
            "attestation expired", {"user": owner, "expires_at": att.expires_at},
        )

    att.risk_score = risk_score_from_hash(att.attestation_hash)
    att.expires_at = now + validity_days * SECONDS_PER_DAY
    if records.position is not None:
        records.position.compliance_verified = True
        records.position.compliance_expiry = att.expires_at
    return att


def revoke_attestation(records: UserRecords, owner: str) -> ComplianceAttestation:
    att = records.attestation
    if att is None or not att.is_valid:
        raise ComplianceFailed("no valid attestation to revoke", {"user": owner})
    att.is_valid = False
    if records.position is not None:
        records.position.compliance_verified = False
        records.position.compliance_expiry = 0
    return att


def renew_attestation(records: UserRecords, owner: str, provider: str, attestation_hash: bytes,
                      validity_days: int, max_risk_score: int, now: int) -> ComplianceAttestation:
    """Replace a valid or expired attestation. A revoked, unexpired one needs a fresh submit."""
    att = records.attestation
    if att is None or not (att.is_valid or att.is_expired(now)):
        raise ComplianceFailed("nothing to renew", {"user": owner})
    return _attest(records, owner, provider, attestation_hash, validity_days, max_risk_score, now)
