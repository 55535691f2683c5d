"""
Outbound venue signalling.

After an action commits, the vault hands the relevant external venue a
``VenueSignal``: which venue, which action, whose position, and the
opaque blobs the venue needs. The vault never inspects what the venue
does with it.

``VenueOutbox`` is the in-process gateway: it keeps every signal in
order so an operator (or a test) can drain and forward them.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Protocol

from pydantic import Field

from shadowvault.schemas.state import Venue, VaultModel

logger = logging.getLogger(__name__)


class VenueSignal(VaultModel):
    venue: Venue
    action: str
    user: str
    payload: Dict[str, bytes] = Field(default_factory=dict)
    timestamp: int = 0


class VenueGateway(Protocol):
    def signal(self, signal: VenueSignal) -> None:
        ...


class VenueOutbox:
    """Thread-safe FIFO of signals awaiting delivery."""

    def __init__(self) -> None:
        self._pending: List[VenueSignal] = []
        self._lock = threading.Lock()

    def signal(self, signal: VenueSignal) -> None:
        with self._lock:
            self._pending.append(signal)
        logger.info(f"[VENUE] {signal.venue.value} ← {signal.action} for {signal.user}")

    def pending(self, venue: Optional[Venue] = None) -> List[VenueSignal]:
        """Signals not yet drained, optionally for one venue."""
        with self._lock:
            signals = list(self._pending)
        if venue is not None:
            signals = [s for s in signals if s.venue is venue]
        return signals

    def drain(self) -> List[VenueSignal]:
        """Remove and return every pending signal."""
        with self._lock:
            signals, self._pending = self._pending, []
        return signals
