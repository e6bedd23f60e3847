"""Configuration management for the tradeadvisor application."""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Broker gateway configuration
    broker_base_url: str = "http://localhost:3030/v1"
    broker_api_key: str = ""
    broker_api_secret: str = ""
    caller_address: str = ""

    # Market data configuration
    binance_base_url: str = "https://fapi.binance.com"
    tracked_symbols: str = "0GUSDT,BTCUSDT,ETHUSDT,BNBUSDT,SOLUSDT,ADAUSDT"
    price_refresh_interval: float = 10.0
    price_max_age: float = 10.0

    # Remote call budgets in seconds
    ledger_timeout: float = 10.0
    inference_timeout: float = 60.0

    # Logging Configuration
    log_level: str = "INFO"
    log_file: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="TRADEADVISOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def tracked_symbol_list(self) -> List[str]:
        """Get tracked symbols as an upper-cased list."""
        return [s.strip().upper() for s in self.tracked_symbols.split(",") if s.strip()]


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create settings singleton instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
