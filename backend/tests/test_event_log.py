from dataclasses import replace

from shadowvault.infrastructure import EventKind, MerkleTree, VaultEventLog
from shadowvault.infrastructure.blockchain.ledger import GENESIS_HASH

# ═══════════════════════════════════════════════════════════════════════════════
# MERKLE TREE
# ═══════════════════════════════════════════════════════════════════════════════

def test_merkle_tree_empty_and_odd_leaves():
    tree = MerkleTree()
    assert tree.root == GENESIS_HASH
    assert tree.verify([])

    for leaf in ("a" * 64, "b" * 64, "c" * 64):
        tree.add_leaf(leaf)
    assert tree.leaf_count == 3
    assert tree.verify(["a" * 64, "b" * 64, "c" * 64])
    assert not tree.verify(["a" * 64, "c" * 64, "b" * 64])

# ═══════════════════════════════════════════════════════════════════════════════
# EVENT CHAIN
# ═══════════════════════════════════════════════════════════════════════════════

def _populated() -> VaultEventLog:
    log = VaultEventLog()
    log.record(EventKind.INITIALIZE, "admin", timestamp=1)
    log.record(EventKind.DEPOSIT, "alice", commitment="01" * 32, metadata={"created": True}, timestamp=2)
    log.record(EventKind.DEPOSIT, "bob", commitment="02" * 32, timestamp=3)
    log.record(EventKind.WITHDRAW, "alice", commitment="09" * 32, timestamp=4)
    return log


def test_chain_links_entries():
    log = _populated()
    assert log.chain_length == 4
    first = log.get_entry(0)
    second = log.get_entry(1)
    assert first["previous_hash"] == GENESIS_HASH
    assert second["previous_hash"] == first["entry_hash"]
    assert log.get_entry(4) is None
    assert log.merkle_root == log.get_entry(3)["merkle_root"]


def test_pagination_and_filters():
    log = _populated()
    assert [e["index"] for e in log.get_chain(limit=2)] == [3, 2]
    assert [e["index"] for e in log.get_chain(limit=2, offset=2)] == [1, 0]
    assert [e["index"] for e in log.get_filtered(user="alice")] == [3, 1]
    assert [e["index"] for e in log.get_filtered(kind=EventKind.DEPOSIT)] == [2, 1]
    assert log.get_filtered(kind=EventKind.BRIDGE) == []


def test_stats():
    stats = _populated().get_stats()
    assert stats.total_entries == 4
    assert stats.by_kind == {"initialize": 1, "deposit": 2, "withdraw": 1}
    assert stats.is_chain_valid


def test_integrity_detects_tampering():
    log = _populated()
    assert log.verify_integrity().is_valid

    # rewrite an entry's commitment in place
    log._chain[1] = replace(log._chain[1], commitment="ff" * 32)
    report = log.verify_integrity()
    assert not report.is_valid
    assert report.first_invalid_index == 1


def test_empty_log_is_valid():
    report = VaultEventLog().verify_integrity()
    assert report.is_valid
    assert report.chain_length == 0
    assert report.merkle_root == GENESIS_HASH


def test_inclusion_proofs_verify_against_root():
    log = _populated()
    for index in range(log.chain_length):
        entry = log.get_entry(index)
        proof = log.inclusion_proof(index)
        assert MerkleTree.verify_path(entry["entry_hash"], proof, log.merkle_root)

    wrong = log.get_entry(0)["entry_hash"]
    assert not MerkleTree.verify_path(wrong, log.inclusion_proof(1), log.merkle_root)
