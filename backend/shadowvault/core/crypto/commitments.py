"""
Commitment & proof well-formedness checks.

The vault never sees plaintext amounts. Commitments, proofs, nullifiers
and attestation hashes arrive as opaque 32-byte blobs; the only checks
performed here are structural (exact length, not all-zero). Semantic
verification is the job of the injected ``Verifier``.

Helpers in this module also derive the public digests the vault
publishes alongside its events:
    - risk_score_from_hash:  bounded 0..99 score from an attestation hash
    - xor_commitments:       swap commitment (amount_in XOR min_out)
    - view_digest:           blake2b digest binding a valuation view
"""

from __future__ import annotations

import hashlib
from typing import Optional

from shadowvault.core.errors import InvalidParameter, InvalidProof


# ═══════════════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════════

COMMITMENT_LEN = 32
PROOF_LEN = 32
ZERO_COMMITMENT = bytes(COMMITMENT_LEN)


# ═══════════════════════════════════════════════════════════════════════════════
# STRUCTURAL VALIDATION
# ═══════════════════════════════════════════════════════════════════════════════

def is_well_formed(value: Optional[bytes], length: int = COMMITMENT_LEN) -> bool:
    """True if ``value`` is exactly ``length`` bytes and not all zero."""
    if not isinstance(value, (bytes, bytearray)):
        return False
    return len(value) == length and any(value)


def require_commitment(value: Optional[bytes], field: str) -> bytes:
    """
    Validate a commitment-like blob.

    Raises:
        InvalidParameter: Missing, wrong length, or all-zero value.
    """
    if not is_well_formed(value, COMMITMENT_LEN):
        raise InvalidParameter(
            f"{field} must be a non-zero {COMMITMENT_LEN}-byte value",
            {"field": field},
        )
    return bytes(value)


def require_proof(value: Optional[bytes], field: str) -> bytes:
    """Same as ``require_commitment`` but raises ``InvalidProof``."""
    if not is_well_formed(value, PROOF_LEN):
        raise InvalidProof(
            f"{field} must be a non-zero {PROOF_LEN}-byte proof",
            {"field": field},
        )
    return bytes(value)


# ═══════════════════════════════════════════════════════════════════════════════
# DERIVED DIGESTS
# ═══════════════════════════════════════════════════════════════════════════════

def risk_score_from_hash(attestation_hash: bytes) -> int:
    """Deterministic 0..99 risk score: byte sum of the hash modulo 100."""
    return sum(attestation_hash) % 100


def xor_commitments(left: bytes, right: bytes) -> bytes:
    """Bytewise XOR of two equal-length commitments."""
    if len(left) != len(right):
        raise InvalidParameter("commitment length mismatch")
    return bytes(a ^ b for a, b in zip(left, right))


def view_digest(owner: str, balance_commitment: bytes, yield_bps: int, timestamp: int) -> str:
    """
    Digest binding a read-only position view to its inputs.

    A verifier holding the same public inputs can recompute the digest
    without learning the principal behind ``balance_commitment``.
    """
    h = hashlib.blake2b(digest_size=COMMITMENT_LEN)
    h.update(owner.encode("utf-8"))
    h.update(balance_commitment)
    h.update(yield_bps.to_bytes(8, "little"))
    h.update(timestamp.to_bytes(8, "little", signed=True))
    return h.hexdigest()
