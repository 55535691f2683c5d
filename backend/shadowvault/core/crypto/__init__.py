"""
SHADOWVAULT Commitment Layer.

Opaque-blob handling for the confidential vault. Plaintext amounts never
reach this package.

Public API:
    - NullifierLedger:     Atomic single-use spend tokens per position.
    - Verifier:            Injected proof-verification capability.
    - StructuralVerifier:  Default verifier (well-formedness only).
    - ProofKind:           Claim a proof blob establishes.
"""

from shadowvault.core.crypto.commitments import (
    COMMITMENT_LEN,
    PROOF_LEN,
    ZERO_COMMITMENT,
    require_commitment,
    require_proof,
)
from shadowvault.core.crypto.nullifier_ledger import NullifierLedger
from shadowvault.core.crypto.verifier import ProofKind, StructuralVerifier, Verifier

__all__ = [
    "COMMITMENT_LEN",
    "PROOF_LEN",
    "ZERO_COMMITMENT",
    "require_commitment",
    "require_proof",
    "NullifierLedger",
    "Verifier",
    "StructuralVerifier",
    "ProofKind",
]
