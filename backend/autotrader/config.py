from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./autotrader.db"
    database_echo: bool = False

    # Fernet key for exchange secrets at rest (empty = store plaintext)
    encryption_key: str = ""

    # Binance REST API
    binance_base_url: str = "https://api.binance.com"
    binance_recv_window: Optional[int] = None  # ms; omitted from signed params when unset
    binance_public_api_key: str = ""  # Sent on proxied public market data calls
    exchange_timeout_seconds: float = 10.0

    @field_validator("binance_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # Position monitor (in-process scheduler for TP/SL exit checks)
    position_monitor_enabled: bool = False
    position_monitor_interval_seconds: int = 30
    max_close_attempts: int = 3  # Failed exits before a position is marked close_failed

    # HTTP
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Logging
    log_level: str = "INFO"

    def get_cors_origins_list(self) -> List[str]:
        """Split the comma-separated CORS origins into a list"""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
