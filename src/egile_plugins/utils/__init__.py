"""Utilities for Egile Plugins."""

from egile_plugins.utils.logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
