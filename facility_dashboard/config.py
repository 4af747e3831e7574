"""
Configuration settings for the facility dashboard.
"""

import sys
from typing import Optional

from dotenv import load_dotenv
from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FACILITY_DASHBOARD_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    data_dir: str = ".data"

    # Import defaults
    default_facility_name: str = "Alpine Vista"
    default_currency: str = "USD"

    # Auto-detection scans at most this many rows for line-item labels
    detection_scan_rows: int = 50

    log_level: str = "INFO"


# Global settings instance
settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Replace loguru's default sink with a stderr sink at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=(level or settings.log_level).upper())
