"""Egile Plugins - an in-process plugin registry and dispatcher."""

from egile_plugins.capability import Capability, Loadable, Plugin, Unloadable
from egile_plugins.config import PluginSettings
from egile_plugins.entry import PluginConfig, PluginEntry, PluginType
from egile_plugins.event import PluginEvent
from egile_plugins.eventbus import Eventbus, EventbusLike
from egile_plugins.exceptions import (
    EgilePluginsError,
    LoadError,
    NoMethodError,
    NoTargetError,
    ValidationError,
)
from egile_plugins.loader import ImportLoader, discover_plugin_configs
from egile_plugins.manager import ManagerOptions, PluginManager, PluginMethod
from egile_plugins.proxy import EventProxy

__version__ = "0.1.0"
__all__ = [
    "Capability",
    "EgilePluginsError",
    "EventProxy",
    "Eventbus",
    "EventbusLike",
    "ImportLoader",
    "LoadError",
    "Loadable",
    "ManagerOptions",
    "NoMethodError",
    "NoTargetError",
    "Plugin",
    "PluginConfig",
    "PluginEntry",
    "PluginEvent",
    "PluginManager",
    "PluginMethod",
    "PluginSettings",
    "PluginType",
    "Unloadable",
    "ValidationError",
    "discover_plugin_configs",
    "__version__",
]
