"""
BT Bridge Configuration

Settings are read from environment variables prefixed with BTBRIDGE_
and from a ``.env`` file in the working directory, if present.

Key settings:
- BTBRIDGE_ROSBRIDGE_HOST / BTBRIDGE_ROSBRIDGE_PORT: rosbridge server
- BTBRIDGE_TICK_INTERVAL_MS: period of the auto-run timer
- BTBRIDGE_AUTORUN: start ticking as soon as a tree is loaded
- BTBRIDGE_EXPAND_ON_CHANGE: unfold collapsed subtrees hiding a change
- BTBRIDGE_TYPE_SERVICE: introspection service used to resolve action types
"""

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """BT Bridge configuration settings."""

    app_name: str = "BT Bridge"

    # Rosbridge connection
    rosbridge_host: str = "localhost"
    rosbridge_port: int = Field(9090, ge=1, le=65535)
    open_timeout_s: float = Field(5.0, gt=0)

    # Interpreter loop
    tick_interval_ms: int = Field(20, gt=0)
    autorun: bool = True
    expand_on_change: bool = True

    # Trees and remote type resolution
    main_tree: str = "BehaviorTree"
    type_service: str = "/rosapi/topic_type"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="BTBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def tick_interval_s(self) -> float:
        return self.tick_interval_ms / 1000.0

    @property
    def rosbridge_address(self) -> str:
        return f"{self.rosbridge_host}:{self.rosbridge_port}"


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings, read once."""
    settings = Settings()
    logger.debug(f"Settings loaded for rosbridge at {settings.rosbridge_address}")
    return settings


__all__ = ["Settings", "get_settings"]
