"""Plugin configuration and registry entries."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr

if TYPE_CHECKING:
    from egile_plugins.proxy import EventProxy


class PluginType(str, Enum):
    """How the capability object of an entry was obtained."""

    INSTANCE = "instance"
    REQUIRE_MODULE = "require-module"
    REQUIRE_PATH = "require-path"


class PluginConfig(BaseModel):
    """
    Registration request for one plugin.

    Either `instance` is given, or `target` (falling back to `name`) is
    resolved through the loader.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="ignore")

    name: StrictStr = Field(min_length=1)
    target: StrictStr | None = None
    instance: Any = None
    options: dict[str, Any] | None = None


@dataclass
class PluginEntry:
    """The registry's record for one registered plugin."""

    name: str
    type: PluginType
    instance: Any
    target: str | None = None
    methods: dict[str, Callable[..., Any]] = field(default_factory=dict)
    event_proxy: EventProxy | None = None
    options: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True

    def get_method(self, method_name: str) -> Callable[..., Any] | None:
        """Return the callable registered under `method_name`, if any."""
        return self.methods.get(method_name)

    def has_method(self, method_name: str) -> bool:
        return method_name in self.methods

    def replace_event_proxy(self, event_proxy: EventProxy | None) -> None:
        """Destroy the current proxy, if any, and install a new one."""
        if self.event_proxy is not None and not self.event_proxy.destroyed:
            self.event_proxy.destroy()
        self.event_proxy = event_proxy
