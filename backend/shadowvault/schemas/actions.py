"""
Pydantic schemas for inbound vault actions and their receipts.

Each action category has one payload model. Variant-specific fields are
``Optional``; which of them an action needs is enforced by the router,
which raises ``InvalidParameter`` / ``InvalidProof`` rather than a schema
error so every rejection uses the vault's revert taxonomy.

Opaque blobs (commitments, proofs, nullifiers) accept raw ``bytes`` or a
hex string (optionally ``0x``-prefixed), which is what the HTTP surface
sends.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from shadowvault.schemas.state import DestinationChain, OrderSide, Venue, VaultModel


def _coerce_blob(value: Any) -> Any:
    """Decode hex strings into bytes; leave everything else to pydantic."""
    if isinstance(value, str):
        text = value[2:] if value.startswith("0x") else value
        try:
            return bytes.fromhex(text)
        except ValueError:
            raise ValueError("expected a hex-encoded byte string") from None
    return value


# ═══════════════════════════════════════════════════════════════════════════════
# VARIANT TAGS
# ═══════════════════════════════════════════════════════════════════════════════

class WithdrawType(str, Enum):
    PARTIAL = "partial"
    FULL = "full"
    YIELD_ONLY = "yield_only"


class LendAction(str, Enum):
    BORROW = "borrow"
    REPAY = "repay"
    LIQUIDATE = "liquidate"
    ADD_COLLATERAL = "add_collateral"
    WITHDRAW_COLLATERAL = "withdraw_collateral"


class SwapAction(str, Enum):
    EXECUTE = "execute"
    PLACE_LIMIT_ORDER = "place_limit_order"
    CANCEL_ORDER = "cancel_order"
    MATCH_DARK_POOL = "match_dark_pool"


class SwapRoute(str, Enum):
    VENUE_A = "venue_a"          # swap router
    DARK_POOL = "dark_pool"      # venue B
    SPLIT = "split"              # weighted across both


class BridgeAction(str, Enum):
    INITIATE_OUTBOUND = "initiate_outbound"
    CLAIM_INBOUND = "claim_inbound"
    CANCEL_REQUEST = "cancel_request"
    VERIFY_COMPLETION = "verify_completion"


class ComplianceAction(str, Enum):
    SUBMIT = "submit"
    VERIFY = "verify"
    REVOKE = "revoke"
    RENEW = "renew"


class AdminAction(str, Enum):
    DEPOSIT_REWARDS = "deposit_rewards"
    UPDATE_YIELD_RATE = "update_yield_rate"
    TOGGLE_SDK = "toggle_sdk"
    SET_EMERGENCY_MODE = "set_emergency_mode"
    SET_PAUSED = "set_paused"
    UPDATE_FEES = "update_fees"
    SET_COMPLIANCE_REQUIRED = "set_compliance_required"


# ═══════════════════════════════════════════════════════════════════════════════
# PAYLOADS
# ═══════════════════════════════════════════════════════════════════════════════

class InitializeParams(VaultModel):
    deposit_fee_bps: int = 10
    withdrawal_fee_bps: int = 10
    lending_fee_bps: int = 50
    swap_fee_bps: int = 30
    bridge_fee_bps: int = 25
    initial_yield_bps: int = 500
    compliance_required: bool = False

    encrypted_compute_enabled: bool = True
    private_transfer_enabled: bool = True
    dark_pool_enabled: bool = True
    lending_market_enabled: bool = True
    bridge_relay_enabled: bool = True
    swap_router_enabled: bool = True
    compliance_oracle_enabled: bool = True


class DepositParams(VaultModel):
    amount: int
    amount_commitment: bytes
    blinding_factor: bytes

    @field_validator("amount_commitment", "blinding_factor", mode="before")
    @classmethod
    def decode_blobs(cls, v: Any) -> Any:
        return _coerce_blob(v)


class WithdrawParams(VaultModel):
    withdraw_type: WithdrawType
    expected_amount: int
    withdrawal_proof: bytes
    ownership_proof: bytes
    nullifier: bytes
    amount_commitment: Optional[bytes] = None  # remaining principal, PARTIAL only

    @field_validator(
        "withdrawal_proof", "ownership_proof", "nullifier", "amount_commitment",
        mode="before",
    )
    @classmethod
    def decode_blobs(cls, v: Any) -> Any:
        return _coerce_blob(v)


class LendParams(VaultModel):
    action: LendAction
    interest_rate_bps: int = 0
    collateral_commitment: Optional[bytes] = None
    borrow_commitment: Optional[bytes] = None
    repayment_commitment: Optional[bytes] = None
    liquidation_proof: Optional[bytes] = None

    @field_validator(
        "collateral_commitment", "borrow_commitment", "repayment_commitment",
        "liquidation_proof",
        mode="before",
    )
    @classmethod
    def decode_blobs(cls, v: Any) -> Any:
        return _coerce_blob(v)


class SwapParams(VaultModel):
    action: SwapAction
    proof: bytes
    route: SwapRoute = SwapRoute.VENUE_A
    split_weight_bps: int = 5_000  # share routed to venue A when route == SPLIT
    amount_in_commitment: Optional[bytes] = None
    min_out_commitment: Optional[bytes] = None
    limit_price_commitment: Optional[bytes] = None
    side: OrderSide = OrderSide.BUY
    max_slippage_bps: int = 50

    @field_validator(
        "proof", "amount_in_commitment", "min_out_commitment", "limit_price_commitment",
        mode="before",
    )
    @classmethod
    def decode_blobs(cls, v: Any) -> Any:
        return _coerce_blob(v)


class BridgeParams(VaultModel):
    action: BridgeAction
    bridge_proof: bytes
    dest_chain: DestinationChain = DestinationChain.ETHEREUM
    amount_commitment: Optional[bytes] = None
    inbound_proof: Optional[bytes] = None

    @field_validator("bridge_proof", "amount_commitment", "inbound_proof", mode="before")
    @classmethod
    def decode_blobs(cls, v: Any) -> Any:
        return _coerce_blob(v)


class ComplianceParams(VaultModel):
    action: ComplianceAction
    disclosure_proof: bytes
    attestation_hash: Optional[bytes] = None
    validity_days: int = 30

    @field_validator("disclosure_proof", "attestation_hash", mode="before")
    @classmethod
    def decode_blobs(cls, v: Any) -> Any:
        return _coerce_blob(v)


class AdminControl(VaultModel):
    """
    Admin action with explicit per-field partial updates.

    For TOGGLE_SDK and UPDATE_FEES, a field left as ``None`` is a no-op,
    never a reset to a default.
    """
    action: AdminAction

    # DEPOSIT_REWARDS
    amount: Optional[int] = None
    # UPDATE_YIELD_RATE
    new_rate_bps: Optional[int] = None
    # SET_EMERGENCY_MODE / SET_PAUSED / SET_COMPLIANCE_REQUIRED
    enabled: Optional[bool] = None
    paused: Optional[bool] = None
    required: Optional[bool] = None

    # TOGGLE_SDK
    encrypted_compute_enabled: Optional[bool] = None
    private_transfer_enabled: Optional[bool] = None
    dark_pool_enabled: Optional[bool] = None
    lending_market_enabled: Optional[bool] = None
    bridge_relay_enabled: Optional[bool] = None
    swap_router_enabled: Optional[bool] = None
    compliance_oracle_enabled: Optional[bool] = None

    # UPDATE_FEES
    deposit_fee_bps: Optional[int] = None
    withdrawal_fee_bps: Optional[int] = None
    lending_fee_bps: Optional[int] = None
    swap_fee_bps: Optional[int] = None
    bridge_fee_bps: Optional[int] = None


class FaucetRequest(VaultModel):
    """Development funding: shielded-asset tokens minted to the caller's account."""
    amount: int = Field(..., gt=0)


# ═══════════════════════════════════════════════════════════════════════════════
# RECEIPT
# ═══════════════════════════════════════════════════════════════════════════════

class ActionReceipt(VaultModel):
    """Returned by every successful action: updated aggregates plus action-specific outcome."""
    action: str
    user: str
    total_shielded_tvl: int
    total_positions: int
    venue: Optional[Venue] = None
    net_amount: Optional[int] = None
    fee: Optional[int] = None
    status: Optional[str] = None
    event_hash: str = ""
    timestamp: int = 0
    details: dict = Field(default_factory=dict)
