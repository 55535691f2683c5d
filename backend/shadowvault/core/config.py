from typing import Dict

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "SHADOWVAULT"
    API_V1_STR: str = "/api/v1"

    # Deployment
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Vault identities (used by the HTTP app on boot)
    VAULT_ADMIN: str = "shadowvault-admin"
    VAULT_TREASURY: str = "shadowvault-treasury"
    VAULT_ACCOUNT: str = "shadowvault-vault"
    SHIELDED_ASSET: str = "wSOL"
    SECONDARY_ASSET: str = "USDC"

    # Development funding of the in-memory asset ledger
    SEED_BALANCES: Dict[str, int] = {}  # account → shielded-asset amount, minted at boot
    FAUCET_ENABLED: bool = True
    FAUCET_MAX_AMOUNT: int = 1_000_000_000_000

    # Protocol limits
    MIN_DEPOSIT: int = 1_000_000
    MAX_YIELD_BPS: int = 5_000
    MAX_SLIPPAGE_BPS: int = 1_000
    MAX_RISK_SCORE: int = 75
    MAX_VALIDITY_DAYS: int = 365
    LIQUIDATION_THRESHOLD_BPS: int = 8_000

    class Config:
        case_sensitive = True
        env_file = ".env"

settings = Settings()
