"""
PositionStore — per-user record storage with staged commits.

Each user owns one ``UserRecords`` bundle (position, loan, bridge
request, dark-pool order, attestation). Actions never mutate the stored
bundle directly:

    with store.lock_for(user):
        staged = store.stage(user)      # deep copy
        ...transitions on staged...
        store.commit(user, staged)      # single swap

A revert raised between ``stage`` and ``commit`` simply drops the copy,
so every rejected action leaves the stored records unchanged.

Concurrency:
    One ``threading.Lock`` per user serializes that user's actions.
    Different users never share a lock here.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from shadowvault.schemas.state import BridgeStatus, UserRecords

logger = logging.getLogger(__name__)


class PositionStore:
    """In-memory record store keyed by user identity."""

    def __init__(self) -> None:
        self._records: Dict[str, UserRecords] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    # ── Locking ──

    def lock_for(self, user: str) -> threading.Lock:
        """Return the user's action lock, creating it on first use."""
        with self._guard:
            lock = self._locks.get(user)
            if lock is None:
                lock = self._locks[user] = threading.Lock()
            return lock

    # ── Staging ──

    def stage(self, user: str) -> UserRecords:
        """Deep copy of the user's records (empty bundle for unknown users)."""
        with self._guard:
            current = self._records.get(user)
        if current is None:
            return UserRecords()
        return current.model_copy(deep=True)

    def commit(self, user: str, records: UserRecords) -> None:
        with self._guard:
            if user not in self._records and records == UserRecords():
                return
            self._records[user] = records

    # ── Read Interface ──

    def get(self, user: str) -> Optional[UserRecords]:
        """Snapshot of the user's records, or None if nothing is stored."""
        with self._guard:
            current = self._records.get(user)
        return current.model_copy(deep=True) if current is not None else None

    def users(self) -> List[str]:
        with self._guard:
            return sorted(self._records)

    @property
    def position_count(self) -> int:
        with self._guard:
            return sum(1 for r in self._records.values() if r.position is not None)

    # ── Consistency ──

    def check_consistency(self, user: str) -> List[str]:
        """
        Check that the cached position flags agree with their entities.

        Returns:
            List of violation messages (empty when consistent).
        """
        records = self.get(user)
        if records is None or records.position is None:
            return []

        violations: List[str] = []
        position = records.position

        loan_active = records.loan is not None and records.loan.is_active
        if position.has_active_loan != loan_active:
            violations.append(
                f"has_active_loan={position.has_active_loan} but loan.is_active={loan_active}"
            )

        bridge_pending = (
            records.bridge is not None and records.bridge.status is BridgeStatus.PENDING
        )
        if position.has_pending_bridge != bridge_pending:
            violations.append(
                f"has_pending_bridge={position.has_pending_bridge} but bridge pending={bridge_pending}"
            )

        if position.compliance_verified and (
            records.attestation is None or not records.attestation.is_valid
        ):
            violations.append("compliance_verified set without a valid attestation")

        if violations:
            logger.error(f"[STORE] Inconsistent records for {user}: {violations}")
        return violations
