"""Application configuration settings."""

import os
from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_default_database_url() -> str:
    """Get the default database URL, using the mounted volume path if available."""
    if os.path.isdir("/data"):
        return "sqlite:////data/meterbook.db"
    return "sqlite:///./meterbook.db"


# Display order used in billing summaries; flats not listed sort alphabetically after these.
DEFAULT_FLAT_ORDER = [
    "S1", "A1", "B1", "C1", "D1", "Guest House", "H1",
    "A2", "B2", "C2", "D2", "E2", "F2", "G2", "H2",
    "A3", "B3", "C3", "D3", "E3", "F3", "G3", "H3",
    "A4", "B4", "C4", "D4", "E4", "F4", "G4", "H4",
    "P1", "P2",
]  # fmt: skip


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    PROJECT_NAME: str = "Meterbook"
    VERSION: str = "0.1.0"
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Database - defaults to the volume path if /data exists
    DATABASE_URL: str = _get_default_database_url()
    # Upper bound for waiting on store locks before failing with a retryable error
    STORE_TIMEOUT_SECONDS: float = 5.0

    # Month bucketing of readings (IANA zone name)
    BILLING_TIMEZONE: str = "UTC"

    # Pricing used until an admin saves global settings
    DEFAULT_TARIFF_PER_UNIT: Decimal = Decimal("0")
    DEFAULT_MINIMUM_PRICE: Decimal = Decimal("250")
    DEFAULT_UNIT_FACTOR: Decimal = Decimal("2.3")

    # Itemized minimum charge for records approved before it was snapshotted
    DEFAULT_MINIMUM_CHARGE: Decimal = Decimal("25")
    RECEIPT_DUE_DAYS: int = 5
    FLAT_ORDER: list[str] = DEFAULT_FLAT_ORDER

    # One non-rejected reading per flat and month
    ENFORCE_MONTHLY_LIMIT: bool = False

    # Remote OCR service
    OCR_URL: str = "http://localhost:8001/recognize"
    OCR_TIMEOUT_SECONDS: float = 30.0


settings = Settings()
