"""Portal configuration from environment variables."""

import logging
from typing import Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class PortalConfig(BaseSettings):
    """Portal configuration loaded from environment variables.

    Pydantic automatically loads values from:
    1. OS environment variables (at instantiation time)
    2. .env file (if env_file is set)

    Instantiate AFTER environment variables are loaded; use get_portal_config().
    """

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = "sqlite+aiosqlite:///./pgportal.db"
    log_file: str = "logs/server.log"

    # Simulated payment gateway round trip, seconds
    payment_processing_delay: float = 2.0

    # Optional: payment feedback is sent to the tenant's Telegram chat when set
    telegram_bot_token: str = ""

    cors_origins: list[str] = ["*"]

    def validate(self) -> None:
        """Validate configuration values."""
        if self.payment_processing_delay < 0:
            raise ValueError("PAYMENT_PROCESSING_DELAY must not be negative")
        if "+" not in self.database_url.split("://", 1)[0]:
            raise ValueError(
                f"DATABASE_URL must name an async driver (e.g. sqlite+aiosqlite), "
                f"got {self.database_url!r}"
            )


_portal_config_instance: Optional[PortalConfig] = None


def get_portal_config() -> PortalConfig:
    """Get or create the portal config instance."""
    global _portal_config_instance
    if _portal_config_instance is None:
        _portal_config_instance = PortalConfig()
        _portal_config_instance.validate()
        logger.debug("Loaded portal config: database_url=%s", _portal_config_instance.database_url)
    return _portal_config_instance


def reset_portal_config() -> None:
    """Forget the cached config so the next access re-reads the environment."""
    global _portal_config_instance
    _portal_config_instance = None


class _PortalConfigProxy:
    """Proxy to provide attribute access while lazy-loading the config."""

    def __getattr__(self, name: str):
        return getattr(get_portal_config(), name)


portal_config = _PortalConfigProxy()

__all__ = ["PortalConfig", "portal_config", "get_portal_config", "reset_portal_config"]
