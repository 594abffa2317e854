from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    # App Settings
    APP_NAME: str = "Contract Cache API"
    PROJECT_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: str = "*"  # Comma-separated string or "*"

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = False
    RATE_LIMIT: str = "10/second"

    # Cache store
    DATABASE_URL: str = "sqlite+aiosqlite:///./cache.db"
    CACHE_TABLE_NAME: str = "contract_cache"
    CACHE_SWEEP_INTERVAL_SECONDS: int = 3600  # 0 disables the sweep
    CACHE_SWEEP_GRACE_SECONDS: int = 7 * 24 * 3600

    # Chain
    RPC_ENDPOINT: str = ""
    RPC_TIMEOUT: int = 5000  # milliseconds
    CHAIN_ID: str = "1"
    CONTRACT_ADDRESSES: str = ""  # Comma-separated allow-list, empty accepts all

    # Event monitor
    MONITOR_ENABLED: bool = True
    MONITOR_INTERVAL_SECONDS: int = 300
    MONITOR_LOOKBACK_BLOCKS: int = 10
    MONITOR_MAX_BLOCK_RANGE: int = 500  # per eth_getLogs, 0 is unbounded

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Parse ALLOWED_ORIGINS
    @property
    def allowed_origins_list(self) -> List[str]:
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def contract_allow_list(self) -> List[str]:
        return [
            a.strip().lower() for a in self.CONTRACT_ADDRESSES.split(",") if a.strip()
        ]

    @property
    def rpc_timeout_seconds(self) -> float:
        return self.RPC_TIMEOUT / 1000


settings = Settings()

if settings.RPC_TIMEOUT <= 0:
    raise ValueError("RPC_TIMEOUT must be a positive number of milliseconds.")

if settings.MONITOR_MAX_BLOCK_RANGE < 0:
    raise ValueError("MONITOR_MAX_BLOCK_RANGE must be zero or a positive block count.")
