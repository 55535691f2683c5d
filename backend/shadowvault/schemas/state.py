"""
Pydantic schemas for persisted vault state.

These models are the entity set the vault owns:

- VaultConfig: one per vault, admin-owned. Fee rates, yield rate,
  pause/emergency switches, venue enable flags and aggregate counters.
- EncryptedPosition: one per user. Only opaque commitments are stored;
  the plaintext principal never reaches the vault.
- LendingPosition, BridgeRequest, DarkPoolOrder, ComplianceAttestation:
  zero-or-one per user, each with its own lifecycle.

The cached flags on EncryptedPosition (``has_active_loan``,
``has_pending_bridge``, ``compliance_verified``) mirror the state of the
owning entity and are only ever written in the same commit that mutates
that entity.

Bytes fields serialize to hex in JSON mode.
"""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from shadowvault.core.crypto.commitments import ZERO_COMMITMENT


class VaultModel(BaseModel):
    """Shared base: hex encoding for opaque blobs in JSON."""
    model_config = ConfigDict(ser_json_bytes="hex")


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════════════

class Venue(str, Enum):
    """External venue programs the vault can route to. Each has an enable flag."""
    ENCRYPTED_COMPUTE = "encrypted_compute"
    PRIVATE_TRANSFER = "private_transfer"
    DARK_POOL = "dark_pool"
    LENDING_MARKET = "lending_market"
    BRIDGE_RELAY = "bridge_relay"
    SWAP_ROUTER = "swap_router"
    COMPLIANCE_ORACLE = "compliance_oracle"

    @property
    def flag(self) -> str:
        """Name of the VaultConfig field that enables this venue."""
        return f"{self.value}_enabled"


class BridgeStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not BridgeStatus.PENDING


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderStatus(str, Enum):
    NONE = "none"
    OPEN = "open"
    PARTIALLY_FILLED = "partially_filled"
    FILLED = "filled"
    CANCELLED = "cancelled"


class DestinationChain(str, Enum):
    """Symbolic destination tags accepted by the bridge relay."""
    ETHEREUM = "ethereum"
    POLYGON = "polygon"
    ARBITRUM = "arbitrum"
    OPTIMISM = "optimism"
    BASE = "base"
    AVALANCHE = "avalanche"
    BSC = "bsc"

    @property
    def chain_id(self) -> int:
        return CHAIN_IDS[self]


CHAIN_IDS: Dict[DestinationChain, int] = {
    DestinationChain.ETHEREUM: 1,
    DestinationChain.POLYGON: 137,
    DestinationChain.ARBITRUM: 42161,
    DestinationChain.OPTIMISM: 10,
    DestinationChain.BASE: 8453,
    DestinationChain.AVALANCHE: 43114,
    DestinationChain.BSC: 56,
}


# ═══════════════════════════════════════════════════════════════════════════════
# VAULT CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

class VaultConfig(VaultModel):
    """Global vault parameters. Every ``*_bps`` field is within [0, 10000]."""
    admin: str
    treasury: str
    shielded_asset: str
    secondary_asset: str

    # Aggregates
    total_shielded_tvl: int = 0
    total_positions: int = 0
    accrued_fees: int = 0

    # Fee schedule
    deposit_fee_bps: int = Field(default=10, ge=0, le=10_000)
    withdrawal_fee_bps: int = Field(default=10, ge=0, le=10_000)
    lending_fee_bps: int = Field(default=50, ge=0, le=10_000)
    swap_fee_bps: int = Field(default=30, ge=0, le=10_000)
    bridge_fee_bps: int = Field(default=25, ge=0, le=10_000)
    current_yield_bps: int = Field(default=500, ge=0, le=10_000)

    # Switches
    is_paused: bool = False
    emergency_mode: bool = False
    compliance_required: bool = False

    # Venue flags
    encrypted_compute_enabled: bool = True
    private_transfer_enabled: bool = True
    dark_pool_enabled: bool = True
    lending_market_enabled: bool = True
    bridge_relay_enabled: bool = True
    swap_router_enabled: bool = True
    compliance_oracle_enabled: bool = True

    initialized_at: int = 0
    last_yield_update: int = 0

    @property
    def is_operational(self) -> bool:
        return not self.is_paused and not self.emergency_mode

    def venue_enabled(self, venue: Venue) -> bool:
        return getattr(self, venue.flag)

    def venue_flags(self) -> Dict[str, bool]:
        return {v.value: self.venue_enabled(v) for v in Venue}


# ═══════════════════════════════════════════════════════════════════════════════
# PER-USER RECORDS
# ═══════════════════════════════════════════════════════════════════════════════

class EncryptedAmount(VaultModel):
    """Opaque ciphertext handle plus the commitment that binds it."""
    handle: bytes = ZERO_COMMITMENT
    commitment: bytes = ZERO_COMMITMENT

    @property
    def is_zero(self) -> bool:
        return not any(self.handle) and not any(self.commitment)


class EncryptedPosition(VaultModel):
    owner: str
    encrypted_principal: EncryptedAmount = Field(default_factory=EncryptedAmount)
    encrypted_yield: EncryptedAmount = Field(default_factory=EncryptedAmount)
    balance_commitment: bytes = ZERO_COMMITMENT

    deposit_count: int = 0
    withdrawal_count: int = 0
    action_count: int = 0

    has_active_loan: bool = False
    has_pending_bridge: bool = False
    compliance_verified: bool = False
    compliance_expiry: int = 0

    nullifier: bytes = ZERO_COMMITMENT  # most recently consumed

    created_at: int = 0
    last_deposit_at: int = 0
    last_action_at: int = 0

    @property
    def is_empty(self) -> bool:
        """No principal, no yield, no open loan."""
        return (
            self.encrypted_principal.is_zero
            and self.encrypted_yield.is_zero
            and not self.has_active_loan
        )

    def is_compliant(self, now: int) -> bool:
        return self.compliance_verified and self.compliance_expiry > now


class LendingPosition(VaultModel):
    borrower: str
    encrypted_collateral: EncryptedAmount = Field(default_factory=EncryptedAmount)
    encrypted_borrow: EncryptedAmount = Field(default_factory=EncryptedAmount)
    interest_rate_bps: int = Field(default=0, ge=0, le=10_000)
    originated_at: int = 0
    last_accrual_at: int = 0
    liquidation_threshold_bps: int = 8_000
    is_active: bool = False


class BridgeRequest(VaultModel):
    user: str
    dest_chain_id: int
    amount_commitment: bytes = ZERO_COMMITMENT
    status: BridgeStatus = BridgeStatus.PENDING
    created_at: int = 0
    updated_at: int = 0


class DarkPoolOrder(VaultModel):
    maker: str
    side: OrderSide = OrderSide.BUY
    encrypted_amount: EncryptedAmount = Field(default_factory=EncryptedAmount)
    encrypted_price: EncryptedAmount = Field(default_factory=EncryptedAmount)
    status: OrderStatus = OrderStatus.NONE
    created_at: int = 0
    updated_at: int = 0


class ComplianceAttestation(VaultModel):
    user: str
    provider: str = ""
    attestation_hash: bytes = ZERO_COMMITMENT
    risk_score: int = Field(default=0, ge=0, le=100)
    is_valid: bool = False
    attested_at: int = 0
    expires_at: int = 0

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at


class UserRecords(VaultModel):
    """
    Everything the vault stores for one user.

    Actions work on a deep copy of this bundle and commit it back in one
    step, so the position flags and the entities they mirror are always
    written together.
    """
    position: Optional[EncryptedPosition] = None
    loan: Optional[LendingPosition] = None
    bridge: Optional[BridgeRequest] = None
    order: Optional[DarkPoolOrder] = None
    attestation: Optional[ComplianceAttestation] = None
