"""
Nullifier Ledger — single-use spend tokens per position.

A nullifier, once recorded for a position, can never be recorded again.
The check and the insert happen under one lock, so two concurrent
withdrawals presenting the same nullifier produce exactly one success
and one ``NullifierReused``.

Unlike a TTL replay cache, entries are never evicted: the ledger keeps
every nullifier a position has consumed, not only the most recent one.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Set

from shadowvault.core.crypto.commitments import require_commitment
from shadowvault.core.errors import NullifierReused

logger = logging.getLogger(__name__)


class NullifierLedger:
    """
    Append-only set of consumed nullifiers keyed by position owner.

    Usage:
        ledger = NullifierLedger()
        ledger.record("alice", nullifier)   # ok
        ledger.record("alice", nullifier)   # NullifierReused
    """

    def __init__(self) -> None:
        self._spent: Dict[str, Set[bytes]] = {}
        self._lock = threading.Lock()

    def record(self, owner: str, nullifier: bytes) -> None:
        """
        Atomically check-and-record a nullifier.

        Raises:
            InvalidParameter: Malformed nullifier.
            NullifierReused: Nullifier already consumed for this owner.
        """
        nullifier = require_commitment(nullifier, "nullifier")
        with self._lock:
            spent = self._spent.setdefault(owner, set())
            if nullifier in spent:
                logger.warning(
                    f"[NULLIFIER] Replay rejected — owner={owner} "
                    f"nullifier={nullifier.hex()[:16]}..."
                )
                raise NullifierReused(
                    "nullifier already consumed for this position",
                    {"owner": owner},
                )
            spent.add(nullifier)

    def discard(self, owner: str, nullifier: bytes) -> None:
        """Undo a ``record`` whose surrounding action failed to commit."""
        with self._lock:
            self._spent.get(owner, set()).discard(nullifier)

    def contains(self, owner: str, nullifier: bytes) -> bool:
        with self._lock:
            return nullifier in self._spent.get(owner, ())

    def count(self, owner: str) -> int:
        """Number of nullifiers consumed by ``owner``."""
        with self._lock:
            return len(self._spent.get(owner, ()))

    @property
    def size(self) -> int:
        """Total nullifiers tracked across all positions."""
        with self._lock:
            return sum(len(s) for s in self._spent.values())
