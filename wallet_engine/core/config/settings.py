# wallet_engine/core/config/settings.py

from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables or .env file.
    Includes general app settings and the fixed-point precision used by the lot engine.
    """
    # General App Settings
    APP_NAME: str = "Wallet Lot Engine API"
    APP_VERSION: str = "0.1.0"
    DEBUG_MODE: bool = False

    # API Specific Settings
    API_V1_STR: str = "/api/v1"

    # Logging Settings
    LOG_LEVEL: str = "INFO"  # e.g., DEBUG, INFO, WARNING, ERROR, CRITICAL

    # Numeric Settings
    DECIMAL_PRECISION: int = 28
    SHARE_PRECISION: int = 5
    CURRENCY_PRECISION: int = 2
    TARGET_PRICE_PRECISION: int = 4
    PERCENT_PRECISION: int = 2
    PRICE_PRECISION: int = 6
    LOT_MATCH_PRECISION: int = 4

    # Engine Defaults
    DEFAULT_SWING_HOLD_RATIO: int = 50
    DIP_LOOKBACK_DAYS: int = 5
    EVENT_PAGE_SIZE: int = 100

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent.parent.parent / ".env"),
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )

settings = Settings()
