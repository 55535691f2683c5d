import threading

import pytest

from shadowvault.core.config import Settings
from shadowvault.core.crypto.verifier import ProofKind
from shadowvault.infrastructure.vault.router import ShieldedVault
from shadowvault.schemas.actions import InitializeParams
from shadowvault.services.asset_ledger import InMemoryAssetLedger
from shadowvault.services.venues import VenueOutbox

ADMIN = "admin"
ALICE = "alice"
BOB = "bob"
ASSET = "wSOL"
START = 1_700_000_000
FUNDING = 200_000_000_000


def blob(n: int) -> bytes:
    """32-byte non-zero blob with every byte set to ``n``."""
    return bytes([n]) * 32


class FakeClock:
    def __init__(self, now: int = START) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class RejectingVerifier:
    """Rejects every proof of the listed kinds."""

    def __init__(self, *kinds: ProofKind) -> None:
        self.kinds = set(kinds)

    def verify(self, kind: ProofKind, payload: bytes) -> bool:
        return kind not in self.kinds


class GatedVerifier:
    """Blocks on proofs of one kind until ``release`` is set; accepts everything."""

    def __init__(self, kind: ProofKind) -> None:
        self.kind = kind
        self.entered = threading.Event()
        self.release = threading.Event()

    def verify(self, kind: ProofKind, payload: bytes) -> bool:
        if kind is self.kind:
            self.entered.set()
            self.release.wait(5)
        return True


class FailingGateway:
    def signal(self, signal) -> None:
        raise ConnectionError("venue unreachable")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def assets():
    ledger = InMemoryAssetLedger()
    for account in (ADMIN, ALICE, BOB):
        ledger.mint(account, ASSET, FUNDING)
    return ledger


@pytest.fixture
def outbox():
    return VenueOutbox()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def bare_vault(assets, outbox, clock, settings):
    return ShieldedVault(assets=assets, venues=outbox, clock=clock, settings=settings)


@pytest.fixture
def vault(bare_vault):
    bare_vault.initialize(ADMIN, InitializeParams())
    return bare_vault
