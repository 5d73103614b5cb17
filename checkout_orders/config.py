from decimal import Decimal
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


def find_env_file() -> str:
    """Find .env file - check local dir, then project root."""
    local_env = Path(".env")
    root_env = Path("../.env")

    if local_env.exists():
        return str(local_env)
    elif root_env.exists():
        return str(root_env)
    return ".env"  # default


class Config(BaseSettings):
    """Configuration for the checkout orders service."""

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Stripe
    STRIPE_SECRET_KEY: str = ""

    # Shopify
    SHOPIFY_ACCESS_TOKEN: str = ""
    SHOPIFY_STORE_URL: str = ""
    SHOPIFY_API_VERSION: str = "2024-10"
    CURRENCY: str = "USD"

    # Database
    DATABASE_URL: str = ""
    DB_AUTO_CREATE: bool = True

    # Reconciliation
    AMOUNT_TOLERANCE: Decimal = Decimal("0.02")

    # Backfill
    STATE_DIR: str = "state"
    BACKFILL_LOOKBACK_DAYS: int = 3
    BACKFILL_INTERVAL_SECONDS: int = 0  # 0 disables background polling

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8003
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    @property
    def shopify_store_domain(self) -> str:
        """Store domain without scheme or trailing slash."""
        domain = self.SHOPIFY_STORE_URL.strip()
        for prefix in ("https://", "http://"):
            if domain.startswith(prefix):
                domain = domain[len(prefix):]
        return domain.rstrip("/")

    @property
    def shopify_rest_url(self) -> str:
        """Get Shopify Admin REST API base URL"""
        return f"https://{self.shopify_store_domain}/admin/api/{self.SHOPIFY_API_VERSION}"

    @property
    def backfill_lookback_days(self) -> int:
        return max(1, min(self.BACKFILL_LOOKBACK_DAYS, 14))

    def validate_required_config(self) -> list:
        """Validate that required configuration is present"""
        errors = []

        if not self.STRIPE_SECRET_KEY:
            errors.append("STRIPE_SECRET_KEY is required")

        if not self.SHOPIFY_ACCESS_TOKEN:
            errors.append("SHOPIFY_ACCESS_TOKEN is required")

        if not self.SHOPIFY_STORE_URL:
            errors.append("SHOPIFY_STORE_URL is required")

        if not self.DATABASE_URL:
            errors.append("DATABASE_URL is required")

        return errors

    def require(self) -> "Config":
        errors = self.validate_required_config()
        if errors:
            raise ConfigurationError(errors)
        return self

    def get_config_summary(self) -> dict:
        """Get a summary of configuration (without sensitive data)"""
        return {
            "shopify_store_url": self.shopify_store_domain,
            "shopify_api_version": self.SHOPIFY_API_VERSION,
            "stripe_configured": bool(self.STRIPE_SECRET_KEY),
            "database_configured": bool(self.DATABASE_URL),
            "amount_tolerance": str(self.AMOUNT_TOLERANCE),
            "backfill_interval_seconds": self.BACKFILL_INTERVAL_SECONDS,
            "debug": self.DEBUG,
            "host": self.HOST,
            "port": self.PORT,
            "log_level": self.LOG_LEVEL,
        }


def get_config() -> Config:
    """Get configuration instance."""
    return Config()
