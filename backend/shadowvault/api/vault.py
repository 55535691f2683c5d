"""
Vault API — HTTP surface for the ShieldedVault action router.

Every action endpoint takes the caller identity from the
``X-Vault-Caller`` header and the action payload as JSON (opaque blobs
hex-encoded). Reverts map to HTTP errors with the revert code in the
body:

    403  UNAUTHORIZED
    404  POSITION_NOT_FOUND
    423  VAULT_PAUSED, VENUE_DISABLED
    400  INVALID_PARAMETER, INVALID_PROOF, SLIPPAGE_EXCEEDED
    409  every other state conflict (nullifier reuse, loan/bridge/order state…)

The process vault runs on an in-memory asset ledger. Accounts are funded
at boot from ``SEED_BALANCES`` or on demand through ``POST /vault/faucet``.

Usage:
    from shadowvault.api.vault import vault_router
    app.include_router(vault_router)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from shadowvault.core.config import Settings, settings
from shadowvault.core.errors import (
    InvalidParameter,
    PositionNotFound,
    Unauthorized,
    VaultPaused,
    VaultRevertError,
    VenueDisabled,
)
from shadowvault.infrastructure.blockchain.ledger import EventKind
from shadowvault.infrastructure.vault.router import ShieldedVault
from shadowvault.schemas.actions import (
    ActionReceipt,
    AdminControl,
    BridgeParams,
    ComplianceParams,
    DepositParams,
    FaucetRequest,
    InitializeParams,
    LendParams,
    SwapParams,
    WithdrawParams,
)
from shadowvault.services.asset_ledger import InMemoryAssetLedger

logger = logging.getLogger(__name__)

vault_router = APIRouter(prefix="/vault", tags=["Vault"])


# ═══════════════════════════════════════════════════════════════════════════════
# VAULT INSTANCE
# ═══════════════════════════════════════════════════════════════════════════════

def build_vault(app_settings: Settings) -> ShieldedVault:
    """Process vault on an in-memory asset ledger, seeded from ``SEED_BALANCES``."""
    assets = InMemoryAssetLedger()
    for account, amount in app_settings.SEED_BALANCES.items():
        assets.mint(account, app_settings.SHIELDED_ASSET, amount)
        logger.info(f"[FAUCET] Seeded {account} with {amount} {app_settings.SHIELDED_ASSET}")
    return ShieldedVault(assets=assets, settings=app_settings)


_vault = build_vault(settings)


def get_vault() -> ShieldedVault:
    """FastAPI dependency returning the process vault. Overridden in tests."""
    return _vault


async def get_caller(
    x_vault_caller: str = Header(..., alias="X-Vault-Caller"),
) -> str:
    caller = x_vault_caller.strip()
    if not caller:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "MISSING_CALLER", "message": "X-Vault-Caller header is empty."},
        )
    return caller


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR MAPPING
# ═══════════════════════════════════════════════════════════════════════════════

def _status_for(exc: VaultRevertError) -> int:
    if isinstance(exc, Unauthorized):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, PositionNotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (VaultPaused, VenueDisabled)):
        return status.HTTP_423_LOCKED
    if isinstance(exc, InvalidParameter):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_409_CONFLICT


def _revert(exc: VaultRevertError) -> HTTPException:
    return HTTPException(
        status_code=_status_for(exc),
        detail={"error": exc.code, "message": exc.reason, "details": exc.details},
    )


def _receipt(receipt: ActionReceipt) -> Dict[str, Any]:
    return receipt.model_dump(mode="json")


# ═══════════════════════════════════════════════════════════════════════════════
# ACTION ROUTES
# ═══════════════════════════════════════════════════════════════════════════════

@vault_router.post("/initialize", summary="Create the vault configuration (caller becomes admin)")
def initialize_vault(
    params: InitializeParams,
    caller: str = Depends(get_caller),
    vault: ShieldedVault = Depends(get_vault),
) -> Dict[str, Any]:
    try:
        config = vault.initialize(caller, params)
    except VaultRevertError as exc:
        raise _revert(exc)
    return config.model_dump(mode="json")


@vault_router.post("/deposit", summary="Shield funds into the caller's position")
def deposit(
    params: DepositParams,
    caller: str = Depends(get_caller),
    vault: ShieldedVault = Depends(get_vault),
) -> Dict[str, Any]:
    try:
        return _receipt(vault.deposit(caller, params))
    except VaultRevertError as exc:
        raise _revert(exc)


@vault_router.post("/withdraw", summary="Unshield funds, consuming one nullifier")
def withdraw(
    params: WithdrawParams,
    caller: str = Depends(get_caller),
    vault: ShieldedVault = Depends(get_vault),
) -> Dict[str, Any]:
    try:
        return _receipt(vault.withdraw(caller, params))
    except VaultRevertError as exc:
        raise _revert(exc)


@vault_router.post("/lend", summary="Borrow, repay, liquidate or adjust collateral")
def lend(
    params: LendParams,
    caller: str = Depends(get_caller),
    vault: ShieldedVault = Depends(get_vault),
) -> Dict[str, Any]:
    try:
        return _receipt(vault.lend(caller, params))
    except VaultRevertError as exc:
        raise _revert(exc)


@vault_router.post("/swap", summary="Execute a private swap or manage a dark-pool order")
def swap(
    params: SwapParams,
    caller: str = Depends(get_caller),
    vault: ShieldedVault = Depends(get_vault),
) -> Dict[str, Any]:
    try:
        return _receipt(vault.swap(caller, params))
    except VaultRevertError as exc:
        raise _revert(exc)


@vault_router.post("/bridge", summary="Cross-chain bridge actions")
def bridge(
    params: BridgeParams,
    caller: str = Depends(get_caller),
    vault: ShieldedVault = Depends(get_vault),
) -> Dict[str, Any]:
    try:
        return _receipt(vault.bridge(caller, params))
    except VaultRevertError as exc:
        raise _revert(exc)


@vault_router.post("/compliance", summary="Submit, verify, revoke or renew an attestation")
def compliance(
    params: ComplianceParams,
    caller: str = Depends(get_caller),
    vault: ShieldedVault = Depends(get_vault),
) -> Dict[str, Any]:
    try:
        return _receipt(vault.compliance(caller, params))
    except VaultRevertError as exc:
        raise _revert(exc)


@vault_router.post("/admin", summary="Admin-only configuration change")
def admin_control(
    control: AdminControl,
    caller: str = Depends(get_caller),
    vault: ShieldedVault = Depends(get_vault),
) -> Dict[str, Any]:
    try:
        return _receipt(vault.admin_control(caller, control))
    except VaultRevertError as exc:
        raise _revert(exc)


# ═══════════════════════════════════════════════════════════════════════════════
# DEVELOPMENT FUNDING
# ═══════════════════════════════════════════════════════════════════════════════

@vault_router.post("/faucet", summary="Mint shielded-asset tokens to the caller (in-memory ledger only)")
def faucet(
    request: FaucetRequest,
    caller: str = Depends(get_caller),
    vault: ShieldedVault = Depends(get_vault),
) -> Dict[str, Any]:
    """
    Fund the caller's plain account so it has something to deposit.

    Only available while ``FAUCET_ENABLED`` is set and the vault runs on
    the in-memory asset ledger; a real token program is funded elsewhere.
    """
    if not settings.FAUCET_ENABLED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "FAUCET_DISABLED", "message": "The development faucet is disabled."},
        )
    if not isinstance(vault.assets, InMemoryAssetLedger):
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail={"error": "FAUCET_UNAVAILABLE", "message": "The asset ledger cannot mint."},
        )
    if request.amount > settings.FAUCET_MAX_AMOUNT:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": InvalidParameter.code,
                "message": f"Faucet amount above {settings.FAUCET_MAX_AMOUNT}.",
                "details": {"field": "amount", "max": settings.FAUCET_MAX_AMOUNT},
            },
        )

    try:
        asset = vault.config().shielded_asset
    except VaultRevertError as exc:
        raise _revert(exc)
    vault.assets.mint(caller, asset, request.amount)
    logger.info(f"[FAUCET] Minted {request.amount} {asset} to {caller}")
    return {
        "account": caller,
        "asset": asset,
        "amount": request.amount,
        "balance": vault.assets.balance_of(caller, asset),
    }


# ═══════════════════════════════════════════════════════════════════════════════
# READ-ONLY ROUTES
# ═══════════════════════════════════════════════════════════════════════════════

@vault_router.get("/config", summary="Current vault configuration")
def get_config(vault: ShieldedVault = Depends(get_vault)) -> Dict[str, Any]:
    try:
        return vault.config().model_dump(mode="json")
    except VaultRevertError as exc:
        raise _revert(exc)


@vault_router.get("/positions/{user}", summary="All records held for a user")
def get_position(user: str, vault: ShieldedVault = Depends(get_vault)) -> Dict[str, Any]:
    records = vault.records(user)
    if records is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": PositionNotFound.code, "message": f"No records for '{user}'."},
        )
    return records.model_dump(mode="json")


@vault_router.get("/positions/{user}/accrue", summary="Read-only valuation view")
def get_accrue_view(user: str, vault: ShieldedVault = Depends(get_vault)) -> Dict[str, Any]:
    try:
        return vault.accrue_view(user).model_dump(mode="json")
    except VaultRevertError as exc:
        raise _revert(exc)


@vault_router.get("/events", summary="Vault event chain (newest first)")
def get_events(
    kind: Optional[EventKind] = Query(default=None),
    user: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    vault: ShieldedVault = Depends(get_vault),
) -> List[Dict[str, Any]]:
    return vault.event_log.get_filtered(kind=kind, user=user, limit=limit)


@vault_router.get("/events/integrity", summary="Verify the event chain")
def get_event_integrity(vault: ShieldedVault = Depends(get_vault)) -> Dict[str, Any]:
    return vault.event_log.verify_integrity().model_dump()


@vault_router.get("/events/{index}/proof", summary="Merkle inclusion proof for one event")
def get_event_proof(index: int, vault: ShieldedVault = Depends(get_vault)) -> Dict[str, Any]:
    entry = vault.event_log.get_entry(index)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "EVENT_NOT_FOUND", "message": f"No event at index {index}."},
        )
    return {
        "entry_hash": entry["entry_hash"],
        "merkle_root": vault.event_log.merkle_root,
        "path": [{"sibling": sibling, "side": side} for sibling, side in vault.event_log.inclusion_proof(index)],
    }
