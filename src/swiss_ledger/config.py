"""Configuration management for the Swiss Coin ledger."""

import logging
from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Ledger settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Currency settings
    default_currency: str = Field(default="USD", min_length=3, max_length=3)
    minor_unit_digits: int = Field(default=2, ge=0, le=4)

    # Balances within this tolerance of zero count as settled
    balance_epsilon: Decimal = Field(default=Decimal("0.01"), gt=0)

    # Reconciliation policy
    allow_over_settlement: bool = False

    # Subscriptions due within this many days are "due soon"
    due_soon_days: int = Field(default=7, ge=0)

    log_level: str = "INFO"


def load_settings() -> Settings:
    """Load ledger settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load ledger settings. Check the environment variables "
            f"or .env file.\n"
            f"Error: {e}"
        ) from e


def configure_logging(settings: Settings | None = None, verbose: bool = False):
    """Setup logging configuration."""
    if verbose:
        level = logging.DEBUG
    elif settings is not None:
        level = getattr(logging, settings.log_level.upper(), logging.INFO)
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
