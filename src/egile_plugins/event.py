"""Event envelope passed to event-style plugin dispatch targets."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from egile_plugins.proxy import EventProxy

INVOKE_COUNT_KEY = "$$plugin_invoke_count"
INVOKE_NAMES_KEY = "$$plugin_invoke_names"


@dataclass
class PluginEvent:
    """
    Envelope shared by every plugin invoked during one event dispatch.

    `data` is the payload the caller gets back. The remaining fields are
    overwritten before each plugin is invoked.
    """

    data: dict[str, Any] = field(default_factory=dict)
    eventbus: EventProxy | None = None
    plugin_name: str | None = None
    plugin_options: dict[str, Any] | None = None

    @classmethod
    def create(cls, data: Mapping[str, Any] | None = None, copy_data: bool = True) -> PluginEvent:
        """
        Build an envelope from a single payload.

        Args:
            data: The payload.
            copy_data: If True, deep copy the payload, otherwise use it as is.
        """
        if data is None:
            data = {}
        if copy_data:
            return cls(data=copy.deepcopy(dict(data)))
        return cls(data=data if isinstance(data, dict) else dict(data))

    @classmethod
    def from_props(
        cls,
        copy_props: Mapping[str, Any] | None = None,
        passthru_props: Mapping[str, Any] | None = None,
    ) -> PluginEvent:
        """
        Build an envelope for command-style dispatch.

        `copy_props` is deep copied so plugins cannot reach the caller's
        objects through it. A `passthru_props` dict becomes the payload
        itself, so top-level changes made by plugins reach the caller; on a
        key clash the pass-through value wins.
        """
        copied = copy.deepcopy(dict(copy_props or {}))
        if passthru_props is None:
            return cls(data=copied)
        data = passthru_props if isinstance(passthru_props, dict) else dict(passthru_props)
        for key, value in copied.items():
            data.setdefault(key, value)
        return cls(data=data)

    def bind(self, plugin_name: str, plugin_options: dict[str, Any], eventbus: EventProxy | None) -> None:
        """Point the transient fields at the next plugin to invoke."""
        self.plugin_name = plugin_name
        self.plugin_options = plugin_options
        self.eventbus = eventbus

    def finalize(self, invoked: list[str]) -> dict[str, Any]:
        """Attach invocation metadata and return the payload."""
        self.data[INVOKE_COUNT_KEY] = len(invoked)
        self.data[INVOKE_NAMES_KEY] = list(invoked)
        return self.data
