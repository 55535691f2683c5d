"""
Proof Verifier — injected capability for opaque proof blobs.

The vault does not implement a proof system. Every proof it receives is
handed to a ``Verifier`` together with the kind of claim it is supposed
to establish. The only contract is: deterministic boolean, no side
effects.

``StructuralVerifier`` is the default backend. It accepts any
well-formed (32-byte, non-zero) blob, which is what the vault itself
already enforces; it exists so the router always has a verifier to
call and tests can swap in a rejecting one.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol, runtime_checkable

from shadowvault.core.crypto.commitments import PROOF_LEN, is_well_formed

logger = logging.getLogger(__name__)


class ProofKind(str, Enum):
    """Claim a proof blob is meant to establish."""
    WITHDRAWAL = "withdrawal"
    OWNERSHIP = "ownership"
    LIQUIDATION = "liquidation"
    SWAP = "swap"
    BRIDGE = "bridge"
    INBOUND = "inbound"
    DISCLOSURE = "disclosure"


@runtime_checkable
class Verifier(Protocol):
    def verify(self, kind: ProofKind, payload: bytes) -> bool:
        ...


class StructuralVerifier:
    """
    Accepts every well-formed proof blob.

    Usage:
        verifier = StructuralVerifier()
        verifier.verify(ProofKind.WITHDRAWAL, proof)  # True for 32 non-zero bytes
    """

    @property
    def backend(self) -> str:
        return "structural"

    def verify(self, kind: ProofKind, payload: bytes) -> bool:
        ok = is_well_formed(payload, PROOF_LEN)
        if not ok:
            logger.debug(f"[VERIFIER] {kind.value} proof rejected — malformed blob")
        return ok
