"""Capability sets and the optional plugin lifecycle hooks."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from types import ModuleType
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from egile_plugins.exceptions import ValidationError

if TYPE_CHECKING:
    from egile_plugins.event import PluginEvent

LOAD_HOOK = "on_plugin_load"
UNLOAD_HOOK = "on_plugin_unload"


@runtime_checkable
class Loadable(Protocol):
    """A plugin that wants to be notified once it is registered."""

    def on_plugin_load(self, event: PluginEvent) -> None: ...


@runtime_checkable
class Unloadable(Protocol):
    """A plugin that wants to be notified right before it is removed."""

    def on_plugin_unload(self, event: PluginEvent) -> None: ...


@runtime_checkable
class Capability(Protocol):
    """An object declaring its dispatchable methods explicitly."""

    def plugin_methods(self) -> Mapping[str, Callable[..., Any]]: ...


class Plugin:
    """
    Convenience base class for plugins.

    Every public method defined on a subclass becomes dispatchable. The
    lifecycle hooks are only part of the capability set when a subclass
    overrides them.

    Example:
        ```python
        from egile_plugins import Plugin, PluginManager

        class Counter(Plugin):
            def on_plugin_load(self, event):
                event.eventbus.on("app:tick", self.tick)

            def tick(self):
                ...

        manager = PluginManager()
        manager.add({"name": "counter", "instance": Counter()})
        ```
    """

    @property
    def description(self) -> str:
        """
        Description of what this plugin does.

        Returns:
            A human-readable description.
        """
        return ""

    @property
    def version(self) -> str:
        """
        Version of this plugin.

        Returns:
            A version string (e.g., "1.0.0").
        """
        return "0.1.0"

    def on_plugin_load(self, event: PluginEvent) -> None:
        """
        Called once the plugin has been registered.

        Args:
            event: Envelope whose `eventbus` is the plugin's scoped proxy.
        """
        pass

    def on_plugin_unload(self, event: PluginEvent) -> None:
        """
        Called right before the plugin is removed, while its proxy is live.

        Args:
            event: Envelope whose `eventbus` is the plugin's scoped proxy.
        """
        pass

    def plugin_methods(self) -> dict[str, Callable[..., Any]]:
        """Return the public methods declared by subclasses."""
        return _declared_methods(self, skip=(Plugin, object))

    def get_info(self) -> dict[str, str]:
        """Get plugin information as a dictionary."""
        return {
            "description": self.description,
            "version": self.version,
        }


def get_capability_methods(instance: Any) -> dict[str, Callable[..., Any]]:
    """
    Build the capability set of a plugin instance.

    Args:
        instance: The capability object.

    Returns:
        An ordered mapping of method name to callable.

    Raises:
        ValidationError: If `plugin_methods()` returns something that is not
            a mapping of names to callables.
    """
    if isinstance(instance, Mapping):
        return {
            name: value
            for name, value in instance.items()
            if isinstance(name, str) and callable(value)
        }

    declared = getattr(instance, "plugin_methods", None)
    if callable(declared) and not isinstance(instance, type):
        methods = declared()
        if not isinstance(methods, Mapping):
            raise ValidationError("'plugin_methods()' did not return a mapping.")
        for name, value in methods.items():
            if not isinstance(name, str) or not callable(value):
                raise ValidationError(
                    f"'plugin_methods()' entry {name!r} is not a named callable."
                )
        return dict(methods)

    if isinstance(instance, ModuleType):
        return _module_methods(instance)

    return _declared_methods(instance)


def _declared_methods(
    instance: Any, skip: tuple[type, ...] = (object,)
) -> dict[str, Callable[..., Any]]:
    """Collect public callables, most derived class first, then instance attributes."""
    names: list[str] = []
    for cls in type(instance).__mro__:
        if cls in skip:
            continue
        names.extend(vars(cls))
    names.extend(getattr(instance, "__dict__", {}))

    methods: dict[str, Callable[..., Any]] = {}
    for name in names:
        if name.startswith("_") or name in methods:
            continue
        # Properties are never methods, and must not be evaluated here
        if isinstance(inspect.getattr_static(instance, name, None), property):
            continue
        value = getattr(instance, name, None)
        if callable(value):
            methods[name] = value
    return methods


def _module_methods(module: ModuleType) -> dict[str, Callable[..., Any]]:
    """Collect a module's exported callables."""
    exported = getattr(module, "__all__", None)
    methods: dict[str, Callable[..., Any]] = {}
    if exported is not None:
        for name in exported:
            value = getattr(module, name, None)
            if callable(value):
                methods[name] = value
        return methods

    for name, value in vars(module).items():
        if name.startswith("_") or not callable(value):
            continue
        # Skip names the module merely imported
        if getattr(value, "__module__", None) != module.__name__:
            continue
        methods[name] = value
    return methods
