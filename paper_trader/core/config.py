"""Configuration management for the Paper Trader simulator."""

from decimal import Decimal
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# =============================================================================
# System Configuration
# =============================================================================


class SystemConfig(BaseSettings):
    """System-level configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development", validation_alias="ENVIRONMENT"
    )
    app_name: str = Field(default="Paper Trader", validation_alias="APP_NAME")
    app_version: str = Field(default="1.0.0", validation_alias="APP_VERSION")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )


# =============================================================================
# Trade Execution Configuration
# =============================================================================


class TradingEngineConfig(BaseSettings):
    """Fee, slippage and starting-balance settings for simulated execution."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    # Flat fee charged on the gross USD value of every trade (0.001 = 0.1%)
    transaction_fee_rate: Decimal = Field(
        default=Decimal("0.001"), validation_alias="TRANSACTION_FEE_RATE"
    )

    # Adverse slippage drawn uniformly from [min, max] (0.0001 = 0.01%)
    min_slippage: Decimal = Field(
        default=Decimal("0.0001"), validation_alias="MIN_SLIPPAGE"
    )
    max_slippage: Decimal = Field(
        default=Decimal("0.0005"), validation_alias="MAX_SLIPPAGE"
    )

    # Balance a new wallet starts with
    default_balance_usd: Decimal = Field(
        default=Decimal("10000"), validation_alias="DEFAULT_BALANCE_USD"
    )

    @field_validator("transaction_fee_rate", "min_slippage", "max_slippage")
    @classmethod
    def validate_rate(cls, v):
        """Validate that a rate is a fraction in [0, 1)."""
        if v < 0 or v >= 1:
            raise ValueError("Rate must be between 0 and 1")
        return v

    @field_validator("default_balance_usd")
    @classmethod
    def validate_default_balance(cls, v):
        if v <= 0:
            raise ValueError("Default balance must be positive")
        return v

    @model_validator(mode="after")
    def validate_slippage_range(self):
        """Validate min_slippage <= max_slippage."""
        if self.min_slippage > self.max_slippage:
            raise ValueError("min_slippage must not exceed max_slippage")
        return self


# =============================================================================
# Database Configuration
# =============================================================================


class DatabaseConfig(BaseSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    database_url: str = Field(
        default="sqlite:///./data/paper_trader.db", validation_alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, validation_alias="DATABASE_ECHO")


# =============================================================================
# Exchange / Market Data Configuration
# =============================================================================


class ExchangeConfig(BaseSettings):
    """Market data source configuration (public endpoints only)."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    exchange_id: str = Field(default="binance", validation_alias="EXCHANGE_ID")
    quote_currency: str = Field(default="USDT", validation_alias="QUOTE_CURRENCY")
    timeout_ms: int = Field(default=10000, validation_alias="EXCHANGE_TIMEOUT_MS")

    @field_validator("timeout_ms")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_file: str = Field(default="logs/paper_trader.log", validation_alias="LOG_FILE")


# =============================================================================
# Global Configuration Container
# =============================================================================


class PaperTraderConfig:
    """
    Container for all Paper Trader configurations.

    Usage:
        from paper_trader.core.config import engine_config

        fee_rate = engine_config.trading.transaction_fee_rate
        db_url = engine_config.database.database_url
    """

    def __init__(self):
        self.system = SystemConfig()
        self.trading = TradingEngineConfig()
        self.database = DatabaseConfig()
        self.exchange = ExchangeConfig()
        self.logging = LoggingConfig()

    def validate_configuration(self) -> dict:
        """
        Validate the complete configuration and return any issues.

        Returns:
            Dictionary with 'valid' boolean and 'issues' list
        """
        issues = []

        # Fees above 5% make every round trip lose more than typical moves
        if self.trading.transaction_fee_rate > Decimal("0.05"):
            issues.append(
                f"Transaction fee rate ({self.trading.transaction_fee_rate}) is unusually high"
            )

        if self.trading.max_slippage > Decimal("0.05"):
            issues.append(
                f"Max slippage ({self.trading.max_slippage}) is unusually high"
            )

        url = self.database.database_url
        if not url.startswith(("sqlite", "postgresql", "mysql")):
            issues.append(f"Unsupported database URL: {url}")

        return {"valid": len(issues) == 0, "issues": issues}


# =============================================================================
# Global Configuration Instances
# =============================================================================

engine_config = PaperTraderConfig()

# Shortcuts to the sections of engine_config
trading_engine_config = engine_config.trading
database_config = engine_config.database
exchange_config = engine_config.exchange
logging_config = engine_config.logging


__all__ = [
    "trading_engine_config",
    "database_config",
    "exchange_config",
    "logging_config",
    "PaperTraderConfig",
    "engine_config",
    "SystemConfig",
    "TradingEngineConfig",
    "DatabaseConfig",
    "ExchangeConfig",
    "LoggingConfig",
]
