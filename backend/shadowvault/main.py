"""
SHADOWVAULT — Core API Entry Point.

Confidential-position vault. This module initializes the FastAPI
application, boots the process vault with the configured admin identity
and registers the vault action router plus the health endpoint.

Action Pipeline (per request):
    1. Pydantic validation (schema boundary, hex blobs → bytes)
    2. Gates: operational, venue enabled, admin identity
    3. Per-user state machine on staged records
    4. Proof verification + nullifier check-and-set
    5. Settlement, commit, event log entry, venue signal
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shadowvault.api.vault import get_vault, vault_router
from shadowvault.core.config import settings
from shadowvault.infrastructure.vault.router import ShieldedVault
from shadowvault.schemas.actions import InitializeParams

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# --- Application boot timestamp for uptime tracking ---
_BOOT_TIME: float = time.time()

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Confidential-position vault API",
    version="0.1.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
)

# --- CORS Configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(vault_router)


# ═══════════════════════════════════════════════════════════════════════════════
# VAULT BOOT
# ═══════════════════════════════════════════════════════════════════════════════

def _boot_vault() -> None:
    """Initialize the process vault with default parameters if nobody has yet."""
    vault = get_vault()
    if vault.controller.is_initialized:
        return
    vault.initialize(settings.VAULT_ADMIN, InitializeParams())
    logger.info(f"[MAIN] Vault booted — admin={settings.VAULT_ADMIN}")


_boot_vault()


# ═══════════════════════════════════════════════════════════════════════════════
# SYSTEM ENDPOINTS
# ═══════════════════════════════════════════════════════════════════════════════

@app.get("/")
def root() -> dict:
    """Root endpoint — confirms the API process is alive."""
    return {"message": "SHADOWVAULT API is operational", "status": "online"}


@app.get("/health")
def health_check(vault: ShieldedVault = Depends(get_vault)) -> dict:
    """
    Health check endpoint for orchestration and monitoring.

    Returns the process status, uptime in seconds, API version, a UTC
    timestamp and the vault's operational switches.
    """
    config = vault.config() if vault.controller.is_initialized else None
    return {
        "status": "operational",
        "uptime_seconds": round(time.time() - _BOOT_TIME, 2),
        "version": "0.1.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "vault_initialized": config is not None,
        "vault_paused": config.is_paused if config else None,
        "emergency_mode": config.emergency_mode if config else None,
        "event_chain_length": vault.event_log.chain_length,
    }


if __name__ == "__main__":
    import uvicorn
    import os
    port = int(os.environ.get("PORT", settings.PORT))
    uvicorn.run("shadowvault.main:app", host="0.0.0.0", port=port, reload=True)
