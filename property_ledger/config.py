"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import os
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


def _parse_buckets(raw: str) -> tuple[int, ...]:
    """Parse a comma list such as "30,60,90" into ascending day boundaries."""
    values = tuple(int(part) for part in raw.split(",") if part.strip())
    if not values or list(values) != sorted(set(values)):
        raise ValueError(f"AGING_BUCKETS must be strictly ascending, got '{raw}'")
    return values


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Property Ledger"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./property_ledger.db"
    )

    # Ledger policy
    SUSPENSE_ACCOUNT_CODE: str = os.getenv("SUSPENSE_ACCOUNT_CODE", "9998")
    VERIFY_INTEGRITY_ON_POST: bool = (
        os.getenv("VERIFY_INTEGRITY_ON_POST", "true").lower() == "true"
    )
    AGING_BUCKETS: tuple[int, ...] = _parse_buckets(
        os.getenv("AGING_BUCKETS", "30,60,90")
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    The Settings object is created once and reused, so the
    environment is read a single time per process.
    """
    return Settings()
