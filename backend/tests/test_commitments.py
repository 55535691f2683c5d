import threading

import pytest

from conftest import blob
from shadowvault.core.crypto import (
    NullifierLedger,
    ProofKind,
    StructuralVerifier,
    Verifier,
    ZERO_COMMITMENT,
    require_commitment,
    require_proof,
)
from shadowvault.core.crypto.commitments import (
    is_well_formed,
    risk_score_from_hash,
    view_digest,
    xor_commitments,
)
from shadowvault.core.errors import InvalidParameter, InvalidProof, NullifierReused

# ═══════════════════════════════════════════════════════════════════════════════
# WELL-FORMEDNESS
# ═══════════════════════════════════════════════════════════════════════════════

def test_is_well_formed():
    assert is_well_formed(blob(1))
    assert not is_well_formed(ZERO_COMMITMENT)
    assert not is_well_formed(b"\x01" * 31)
    assert not is_well_formed(None)
    assert not is_well_formed("01" * 32)


def test_require_commitment_and_proof_raise_distinct_errors():
    assert require_commitment(blob(2), "c") == blob(2)
    with pytest.raises(InvalidParameter) as exc:
        require_commitment(ZERO_COMMITMENT, "amount_commitment")
    assert exc.value.details == {"field": "amount_commitment"}

    with pytest.raises(InvalidProof):
        require_proof(None, "withdrawal_proof")
    # InvalidProof is an InvalidParameter
    with pytest.raises(InvalidParameter):
        require_proof(b"", "withdrawal_proof")


# ═══════════════════════════════════════════════════════════════════════════════
# DERIVED DIGESTS
# ═══════════════════════════════════════════════════════════════════════════════

def test_risk_score_from_hash():
    assert risk_score_from_hash(blob(1)) == 32
    assert risk_score_from_hash(blob(3)) == 96
    assert risk_score_from_hash(blob(4)) == 28  # 128 % 100


def test_xor_commitments():
    assert xor_commitments(blob(0x0F), blob(0xF0)) == blob(0xFF)
    assert xor_commitments(blob(7), blob(7)) == ZERO_COMMITMENT
    with pytest.raises(InvalidParameter):
        xor_commitments(blob(1), b"\x01")


def test_view_digest_binds_inputs():
    base = view_digest("alice", blob(1), 500, 1_700_000_000)
    assert len(base) == 64
    assert base == view_digest("alice", blob(1), 500, 1_700_000_000)
    assert base != view_digest("bob", blob(1), 500, 1_700_000_000)
    assert base != view_digest("alice", blob(1), 501, 1_700_000_000)
    assert base != view_digest("alice", blob(1), 500, 1_700_000_001)


# ═══════════════════════════════════════════════════════════════════════════════
# VERIFIER
# ═══════════════════════════════════════════════════════════════════════════════

def test_structural_verifier():
    verifier = StructuralVerifier()
    assert isinstance(verifier, Verifier)
    assert verifier.backend == "structural"
    assert verifier.verify(ProofKind.WITHDRAWAL, blob(9))
    assert not verifier.verify(ProofKind.OWNERSHIP, ZERO_COMMITMENT)


# ═══════════════════════════════════════════════════════════════════════════════
# NULLIFIER LEDGER
# ═══════════════════════════════════════════════════════════════════════════════

def test_nullifier_single_use_per_owner():
    ledger = NullifierLedger()
    ledger.record("alice", blob(1))
    with pytest.raises(NullifierReused):
        ledger.record("alice", blob(1))
    # another owner may use the same bytes
    ledger.record("bob", blob(1))
    assert ledger.contains("alice", blob(1))
    assert ledger.count("alice") == 1
    assert ledger.size == 2


def test_nullifier_keeps_history():
    ledger = NullifierLedger()
    ledger.record("alice", blob(1))
    ledger.record("alice", blob(2))
    # an older nullifier is still rejected after a newer one was recorded
    with pytest.raises(NullifierReused):
        ledger.record("alice", blob(1))


def test_nullifier_discard_and_malformed():
    ledger = NullifierLedger()
    ledger.record("alice", blob(5))
    ledger.discard("alice", blob(5))
    assert not ledger.contains("alice", blob(5))
    ledger.record("alice", blob(5))

    with pytest.raises(InvalidParameter):
        ledger.record("alice", ZERO_COMMITMENT)


def test_nullifier_concurrent_reuse_single_winner():
    ledger = NullifierLedger()
    results = []
    barrier = threading.Barrier(8)

    def attempt():
        barrier.wait()
        try:
            ledger.record("alice", blob(42))
            results.append("ok")
        except NullifierReused:
            results.append("reused")

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count("ok") == 1
    assert results.count("reused") == 7
