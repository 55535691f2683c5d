"""
Asset ledger: the token balances behind the shielded vault.

The vault only needs two things from the underlying token program: the
balance of an account and a transfer between accounts. Anything else
(minting, wrapping, decimals) belongs to the token program itself.

``InMemoryAssetLedger`` is the reference implementation used by the
HTTP app and the tests.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Protocol, Tuple

from shadowvault.core.errors import InsufficientFunds, InvalidParameter

logger = logging.getLogger(__name__)


class AssetLedger(Protocol):
    def balance_of(self, account: str, asset: str) -> int:
        ...

    def transfer(self, asset: str, source: str, dest: str, amount: int) -> None:
        ...


class InMemoryAssetLedger:
    """
    Integer balances keyed by (account, asset).

    Usage:
        assets = InMemoryAssetLedger()
        assets.mint("alice", "wSOL", 100_000_000_000)
        assets.transfer("wSOL", "alice", "vault", 50_000_000_000)
    """

    def __init__(self) -> None:
        self._balances: Dict[Tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def mint(self, account: str, asset: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidParameter("mint amount must be positive", {"field": "amount"})
        with self._lock:
            key = (account, asset)
            self._balances[key] = self._balances.get(key, 0) + amount

    def balance_of(self, account: str, asset: str) -> int:
        with self._lock:
            return self._balances.get((account, asset), 0)

    def transfer(self, asset: str, source: str, dest: str, amount: int) -> None:
        """
        Move ``amount`` of ``asset`` from ``source`` to ``dest``.

        Raises:
            InvalidParameter: Negative amount.
            InsufficientFunds: Source balance below ``amount``.
        """
        if amount < 0:
            raise InvalidParameter("transfer amount must be non-negative", {"field": "amount"})
        if amount == 0 or source == dest:
            return
        with self._lock:
            available = self._balances.get((source, asset), 0)
            if available < amount:
                raise InsufficientFunds(
                    f"{source} holds {available} {asset}, needs {amount}",
                    {"account": source, "asset": asset},
                )
            self._balances[(source, asset)] = available - amount
            self._balances[(dest, asset)] = self._balances.get((dest, asset), 0) + amount

    def total_supply(self, asset: str) -> int:
        with self._lock:
            return sum(v for (_, a), v in self._balances.items() if a == asset)
