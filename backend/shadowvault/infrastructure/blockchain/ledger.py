"""
VaultEventLog — Tamper-Evident Vault Event Chain.

Every committed vault action (deposit, withdrawal, swap, bridge,
compliance, lending, admin) becomes one immutable entry. Entries are
linked by hash and folded into a Merkle root, so a user holding an
entry can prove it is part of the log without seeing anyone else's.

Architecture:
    ┌────────────────────────────────────────────────────────────┐
    │  VaultEventLog (owned by one ShieldedVault)                │
    │                                                            │
    │  record() ─→ body digest ─→ link to previous ─→ Merkle leaf│
    │                   │                                  │     │
    │                   └──── verify_integrity() ◀─────────┘     │
    │                         inclusion_proof(i) ─→ sibling path │
    └────────────────────────────────────────────────────────────┘

Privacy Invariants:
    - Plaintext shielded amounts are never recorded. Entries carry
      commitments, nullifiers and public parameters only.
    - An entry digest covers its predecessor's digest.
    - A single altered entry changes the Merkle root.

Usage:
    log = VaultEventLog()
    event = log.record(
        kind=EventKind.DEPOSIT,
        user="alice",
        commitment=amount_commitment.hex(),
        timestamp=1_700_000_000,
    )
    proof = log.inclusion_proof(event.index)
    assert MerkleTree.verify_path(event.entry_hash, proof, log.merkle_root)
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════════

GENESIS_HASH = "0" * 64
EVENT_LOG_VERSION = 1

# Sibling position in an inclusion path
LEFT = "L"
RIGHT = "R"


# ═══════════════════════════════════════════════════════════════════════════════
# DATA MODELS
# ═══════════════════════════════════════════════════════════════════════════════

class EventKind(str, Enum):
    """Vault action categories recorded on the chain."""
    INITIALIZE = "initialize"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    LEND = "lend"
    SWAP = "swap"
    BRIDGE = "bridge"
    COMPLIANCE = "compliance"
    ADMIN = "admin"


@dataclass(frozen=True)
class VaultEvent:
    """
    One committed vault action.

    ``entry_hash`` is the digest of ``body()``; ``merkle_root`` is the
    log root right after this entry was appended.
    """
    index: int
    timestamp: int
    kind: str
    user: str
    commitment: str
    metadata: Dict[str, Any]
    previous_hash: str
    entry_hash: str
    merkle_root: str = ""

    def body(self) -> Dict[str, Any]:
        """The hashed fields, in the form ``_digest`` canonicalizes."""
        return {
            "v": EVENT_LOG_VERSION,
            "index": self.index,
            "timestamp": self.timestamp,
            "kind": self.kind,
            "user": self.user,
            "commitment": self.commitment,
            "metadata": self.metadata,
            "previous_hash": self.previous_hash,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class IntegrityReport(BaseModel):
    """Outcome of ``VaultEventLog.verify_integrity``."""
    is_valid: bool = True
    chain_length: int = 0
    merkle_root: str = GENESIS_HASH
    first_invalid_index: int = -1
    error_message: str = ""
    verified_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class EventLogStats(BaseModel):
    total_entries: int = 0
    by_kind: Dict[str, int] = Field(default_factory=dict)
    merkle_root: str = GENESIS_HASH
    is_chain_valid: bool = True


# ═══════════════════════════════════════════════════════════════════════════════
# HASHING
# ═══════════════════════════════════════════════════════════════════════════════

def _digest(payload: Dict[str, Any]) -> str:
    """SHA-256 over canonical JSON (sorted keys, no whitespace)."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _node(left: str, right: str) -> str:
    return hashlib.sha256(f"{left}{right}".encode("utf-8")).hexdigest()


# ═══════════════════════════════════════════════════════════════════════════════
# MERKLE TREE
# ═══════════════════════════════════════════════════════════════════════════════

class MerkleTree:
    """
    Binary Merkle tree over entry digests.

    An unpaired node is hashed with itself. The empty tree's root is
    ``GENESIS_HASH``.
    """

    def __init__(self) -> None:
        self._leaves: List[str] = []
        self._root = GENESIS_HASH

    @property
    def root(self) -> str:
        return self._root

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    def add_leaf(self, leaf: str) -> str:
        self._leaves.append(leaf)
        self._root = self._levels(self._leaves)[-1][0]
        return self._root

    def verify(self, leaves: List[str]) -> bool:
        """True if ``leaves`` (in order) fold to the current root."""
        return self._fold(leaves) == self._root

    def path(self, index: int) -> List[Tuple[str, str]]:
        """
        Sibling path from leaf ``index`` up to the root.

        Returns:
            List of ``(sibling_hash, side)`` pairs, ``side`` being where the
            sibling sits (``LEFT`` or ``RIGHT``).
        """
        if not 0 <= index < len(self._leaves):
            raise IndexError(f"no leaf at index {index}")
        path: List[Tuple[str, str]] = []
        for level in self._levels(self._leaves)[:-1]:
            if index % 2:
                path.append((level[index - 1], LEFT))
            else:
                sibling = level[index + 1] if index + 1 < len(level) else level[index]
                path.append((sibling, RIGHT))
            index //= 2
        return path

    @staticmethod
    def verify_path(leaf: str, path: List[Tuple[str, str]], root: str) -> bool:
        current = leaf
        for sibling, side in path:
            current = _node(sibling, current) if side == LEFT else _node(current, sibling)
        return current == root

    @classmethod
    def _fold(cls, leaves: List[str]) -> str:
        return cls._levels(leaves)[-1][0] if leaves else GENESIS_HASH

    @staticmethod
    def _levels(leaves: List[str]) -> List[List[str]]:
        levels = [list(leaves)]
        while len(levels[-1]) > 1:
            below = levels[-1]
            pairs = zip(below[0::2], below[1::2] + [below[-1]] * (len(below) % 2))
            levels.append([_node(left, right) for left, right in pairs])
        return levels


# ═══════════════════════════════════════════════════════════════════════════════
# VAULT EVENT LOG
# ═══════════════════════════════════════════════════════════════════════════════

class VaultEventLog:
    """
    Append-only event chain.

    The vault calls ``record`` only after an action has committed, so the
    chain never contains a rejected action. Writes and snapshot reads are
    serialized by one lock.
    """

    def __init__(self) -> None:
        self._chain: List[VaultEvent] = []
        self._tree = MerkleTree()
        self._lock = threading.Lock()

    # ── Write ──

    def record(
        self,
        kind: EventKind,
        user: str,
        commitment: str = "",
        metadata: Optional[Dict[str, Any]] = None,
        timestamp: int = 0,
    ) -> VaultEvent:
        """
        Append one entry.

        Args:
            kind: Action category.
            user: Acting identity (user or admin).
            commitment: Hex public digest of the action (commitment,
                nullifier or swap XOR), or empty.
            metadata: JSON-safe public parameters.
            timestamp: Vault clock time of the action.
        """
        with self._lock:
            draft = VaultEvent(
                index=len(self._chain),
                timestamp=timestamp,
                kind=kind.value,
                user=user,
                commitment=commitment,
                metadata=dict(metadata or {}),
                previous_hash=self._chain[-1].entry_hash if self._chain else GENESIS_HASH,
                entry_hash="",
            )
            entry_hash = _digest(draft.body())
            root = self._tree.add_leaf(entry_hash)
            event = VaultEvent(**{**asdict(draft), "entry_hash": entry_hash, "merkle_root": root})
            self._chain.append(event)

        logger.debug(f"[EVENTS] #{event.index} {event.kind} by {user} — root={root[:16]}...")
        return event

    # ── Read ──

    @property
    def chain_length(self) -> int:
        return len(self._chain)

    @property
    def merkle_root(self) -> str:
        return self._tree.root

    def _snapshot(self) -> List[VaultEvent]:
        with self._lock:
            return list(self._chain)

    def get_chain(self, limit: int = 100, offset: int = 0) -> List[Dict]:
        """Serialized entries, newest first."""
        newest_first = self._snapshot()[::-1]
        return [e.to_dict() for e in newest_first[offset: offset + limit]]

    def get_entry(self, index: int) -> Optional[Dict]:
        chain = self._snapshot()
        return chain[index].to_dict() if 0 <= index < len(chain) else None

    def get_filtered(self, kind: Optional[EventKind] = None, user: Optional[str] = None,
                     limit: int = 50) -> List[Dict]:
        """Entries matching ``kind`` and/or ``user``, newest first."""
        matches = [
            e for e in reversed(self._snapshot())
            if (kind is None or e.kind == kind.value) and (user is None or e.user == user)
        ]
        return [e.to_dict() for e in matches[:limit]]

    def get_stats(self) -> EventLogStats:
        by_kind: Dict[str, int] = {}
        for e in self._snapshot():
            by_kind[e.kind] = by_kind.get(e.kind, 0) + 1
        report = self.verify_integrity()
        return EventLogStats(
            total_entries=report.chain_length,
            by_kind=by_kind,
            merkle_root=report.merkle_root,
            is_chain_valid=report.is_valid,
        )

    def inclusion_proof(self, index: int) -> List[Tuple[str, str]]:
        """Merkle path proving entry ``index`` is under the current root."""
        with self._lock:
            return self._tree.path(index)

    # ── Integrity ──

    def verify_integrity(self) -> IntegrityReport:
        """Recompute every digest, check each back-link, then the Merkle root."""
        chain = self._snapshot()
        root = self._tree.root

        broken = self._first_break(chain)
        if broken is not None:
            index, message = broken
            logger.error(f"[EVENTS] Integrity failure: {message}")
            return IntegrityReport(
                is_valid=False, chain_length=len(chain), merkle_root=root,
                first_invalid_index=index, error_message=message,
            )

        if not self._tree.verify([e.entry_hash for e in chain]):
            logger.error("[EVENTS] Integrity failure: Merkle root mismatch")
            return IntegrityReport(
                is_valid=False, chain_length=len(chain), merkle_root=root,
                error_message="Merkle root does not match the entry digests",
            )

        return IntegrityReport(is_valid=True, chain_length=len(chain), merkle_root=root)

    @staticmethod
    def _first_break(chain: List[VaultEvent]) -> Optional[Tuple[int, str]]:
        expected_prev = GENESIS_HASH
        for event in chain:
            if event.previous_hash != expected_prev:
                return event.index, f"entry {event.index} does not link to its predecessor"
            if _digest(event.body()) != event.entry_hash:
                return event.index, f"entry {event.index} was modified after commit"
            expected_prev = event.entry_hash
        return None
