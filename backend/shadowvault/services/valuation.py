"""
Read-only position valuation.

``accrue_view`` reports what a position is earning without revealing
what it holds: the yield rate, the time since the rate was last set
(clamped to one year), the lending collateral commitment if a loan is
open, and a digest binding the view to its public inputs. The position
owner, who knows the plaintext principal, can apply
``accounting.accrue_yield`` to ``elapsed_seconds`` locally.

Never checks the pause flag and never writes.
"""

from __future__ import annotations

from typing import Optional

from shadowvault.core.accounting import SECONDS_PER_YEAR
from shadowvault.core.crypto.commitments import view_digest
from shadowvault.schemas.state import UserRecords, VaultConfig, VaultModel


class PositionView(VaultModel):
    owner: str
    balance_commitment: bytes
    principal_commitment: bytes
    yield_commitment: bytes
    lending_collateral_commitment: Optional[bytes] = None
    current_yield_bps: int
    elapsed_seconds: int
    has_active_loan: bool
    has_pending_bridge: bool
    compliance_verified: bool
    computation_proof: str
    computed_at: int


def accrue_view(config: VaultConfig, records: UserRecords, now: int) -> PositionView:
    """
    Build the valuation view for one position.

    Args:
        config: Vault configuration snapshot.
        records: Snapshot of the user's records; must hold a position.
        now: Vault clock time.
    """
    position = records.position
    elapsed = min(max(now - config.last_yield_update, 0), SECONDS_PER_YEAR)

    collateral = None
    if records.loan is not None and records.loan.is_active:
        collateral = records.loan.encrypted_collateral.commitment

    return PositionView(
        owner=position.owner,
        balance_commitment=position.balance_commitment,
        principal_commitment=position.encrypted_principal.commitment,
        yield_commitment=position.encrypted_yield.commitment,
        lending_collateral_commitment=collateral,
        current_yield_bps=config.current_yield_bps,
        elapsed_seconds=elapsed,
        has_active_loan=position.has_active_loan,
        has_pending_bridge=position.has_pending_bridge,
        compliance_verified=position.is_compliant(now),
        computation_proof=view_digest(
            position.owner, position.balance_commitment, config.current_yield_bps, now,
        ),
        computed_at=now,
    )
