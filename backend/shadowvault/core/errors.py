"""
Vault Revert Taxonomy.

Every rejected vault action raises a subclass of ``VaultRevertError``.
A revert is the Python equivalent of an on-chain ``require!`` failure:
it is raised synchronously, before any record is mutated, so the caller
observes either the full effect of an action or none of it.

Hierarchy:
    VaultRevertError
    ├── Unauthorized
    ├── AlreadyInitialized / NotInitialized
    ├── VaultPaused
    ├── VenueDisabled
    ├── NullifierReused
    ├── LoanAlreadyActive / NoActiveLoan
    ├── BridgePending / NoBridgePending / InvalidBridgeState
    ├── OrderNotCancellable / OrderNotMatchable / OrderAlreadyOpen
    ├── AttestationExpired / ComplianceRequired / ComplianceFailed
    ├── PositionNotFound
    ├── InsufficientShieldedBalance / InsufficientFunds
    └── InvalidParameter
        ├── InvalidProof
        └── SlippageExceeded
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class VaultRevertError(Exception):
    """
    Base class for all rejected vault actions.

    Attributes:
        code: Stable machine-readable error code (e.g. ``VAULT_PAUSED``).
        reason: Human-readable explanation.
        details: Extra context for logs and API responses. Never contains
                 plaintext amounts, only identities and public parameters.
    """

    code = "VAULT_REVERT"

    def __init__(self, reason: str = "", details: Optional[Dict[str, Any]] = None):
        self.reason = reason or self.__class__.__name__
        self.details = details or {}
        super().__init__(f"VAULT REVERT [{self.code}]: {self.reason}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-safe dictionary."""
        return {
            "code": self.code,
            "reason": self.reason,
            "details": self.details,
        }


# ── Authorization & Lifecycle ──

class Unauthorized(VaultRevertError):
    code = "UNAUTHORIZED"


class AlreadyInitialized(VaultRevertError):
    code = "ALREADY_INITIALIZED"


class NotInitialized(VaultRevertError):
    code = "NOT_INITIALIZED"


class VaultPaused(VaultRevertError):
    code = "VAULT_PAUSED"


class VenueDisabled(VaultRevertError):
    code = "VENUE_DISABLED"


# ── Commitments & Nullifiers ──

class NullifierReused(VaultRevertError):
    code = "NULLIFIER_REUSED"


class PositionNotFound(VaultRevertError):
    code = "POSITION_NOT_FOUND"


class InsufficientShieldedBalance(VaultRevertError):
    code = "INSUFFICIENT_SHIELDED_BALANCE"


class InsufficientFunds(VaultRevertError):
    """Raised by the asset ledger when a source account cannot cover a transfer."""
    code = "INSUFFICIENT_FUNDS"


# ── Lending ──

class LoanAlreadyActive(VaultRevertError):
    code = "LOAN_ALREADY_ACTIVE"


class NoActiveLoan(VaultRevertError):
    code = "NO_ACTIVE_LOAN"


# ── Bridge ──

class BridgePending(VaultRevertError):
    code = "BRIDGE_PENDING"


class NoBridgePending(VaultRevertError):
    code = "NO_BRIDGE_PENDING"


class InvalidBridgeState(VaultRevertError):
    code = "INVALID_BRIDGE_STATE"


# ── Dark Pool ──

class OrderNotCancellable(VaultRevertError):
    code = "ORDER_NOT_CANCELLABLE"


class OrderNotMatchable(VaultRevertError):
    code = "ORDER_NOT_MATCHABLE"


class OrderAlreadyOpen(VaultRevertError):
    code = "ORDER_ALREADY_OPEN"


# ── Compliance ──

class AttestationExpired(VaultRevertError):
    code = "ATTESTATION_EXPIRED"


class ComplianceRequired(VaultRevertError):
    code = "COMPLIANCE_REQUIRED"


class ComplianceFailed(VaultRevertError):
    code = "COMPLIANCE_FAILED"


# ── Parameters ──

class InvalidParameter(VaultRevertError):
    code = "INVALID_PARAMETER"


class InvalidProof(InvalidParameter):
    code = "INVALID_PROOF"


class SlippageExceeded(InvalidParameter):
    code = "SLIPPAGE_EXCEEDED"
