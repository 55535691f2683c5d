"""
SHADOWVAULT Infrastructure Module.

Exports the stateful components of the vault:
    - VaultEventLog: Tamper-evident event chain with Merkle tree
    - PositionStore: Per-user records with staged commits
    - VaultController: Configuration holder and action gates
    - ShieldedVault: Action router tying them together
"""

from shadowvault.infrastructure.blockchain.ledger import (
    EventKind,
    EventLogStats,
    IntegrityReport,
    MerkleTree,
    VaultEvent,
    VaultEventLog,
)
from shadowvault.infrastructure.store.position_store import PositionStore
from shadowvault.infrastructure.vault.admin import VaultController
from shadowvault.infrastructure.vault.router import ShieldedVault

__all__ = [
    "EventKind",
    "EventLogStats",
    "IntegrityReport",
    "MerkleTree",
    "VaultEvent",
    "VaultEventLog",
    "PositionStore",
    "VaultController",
    "ShieldedVault",
]
