"""Configuration management for Egile Plugins."""

from typing import Literal

from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings

from egile_plugins.exceptions import ConfigurationError


class PluginSettings(BaseSettings):
    """Configuration settings loaded from environment variables."""

    # Command surface
    event_prefix: str = "plugins"

    # Default manager policy flags
    no_event_add: bool = False
    no_event_removal: bool = False
    throw_no_method: bool = False
    throw_no_plugin: bool = False

    # Entry point discovery
    entry_point_group: str = "egile_plugins.plugins"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    model_config = {
        "env_prefix": "EGILE_PLUGINS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Global config instance
_config: PluginSettings | None = None


def get_config() -> PluginSettings:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        try:
            _config = PluginSettings()
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid plugin settings: {e}") from e
    return _config


def set_config(config: PluginSettings | None) -> None:
    """Set the global configuration instance. Passing None forces a reload."""
    global _config
    _config = config
