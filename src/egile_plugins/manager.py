"""Plugin registry and dispatcher for Egile Plugins."""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, StrictBool
from pydantic import ValidationError as PydanticValidationError

from egile_plugins.capability import LOAD_HOOK, UNLOAD_HOOK, get_capability_methods
from egile_plugins.config import get_config
from egile_plugins.entry import PluginConfig, PluginEntry, PluginType
from egile_plugins.event import PluginEvent
from egile_plugins.eventbus import EventbusLike, collect_results
from egile_plugins.exceptions import (
    LoadError,
    ManagerDestroyedError,
    NoMethodError,
    NoTargetError,
    ValidationError,
)
from egile_plugins.loader import ImportLoader, PluginLoader, target_type
from egile_plugins.proxy import EventProxy

logger = logging.getLogger(__name__)

Target = str | Iterable[str] | None


class ManagerOptions(BaseModel):
    """Policy flags of a PluginManager."""

    model_config = ConfigDict(extra="forbid")

    # Refuse `<prefix>:add` and `<prefix>:add:all` bus commands
    no_event_add: StrictBool = False
    # Refuse `<prefix>:remove` and `<prefix>:remove:all` bus commands
    no_event_removal: StrictBool = False
    # Raise NoMethodError when a dispatch invoked nothing
    throw_no_method: StrictBool = False
    # Raise NoTargetError when a dispatch matched no enabled plugin
    throw_no_plugin: StrictBool = False


class PluginMethod(NamedTuple):
    """A (plugin name, method name) pair."""

    plugin: str
    method: str


class PluginManager:
    """
    Registry of named plugins with several dispatch protocols.

    Plugins are invoked in registration order. Disabled plugins stay
    registered but are skipped by every dispatch.

    When an event bus is bound, each plugin receives its own EventProxy
    through the `on_plugin_load` hook, and the manager itself answers the
    `<prefix>:*` commands on that bus.

    Example:
        ```python
        from egile_plugins import Eventbus, PluginManager

        class Adder:
            def add(self, a, b):
                return a + b

        manager = PluginManager(eventbus=Eventbus())
        manager.add({"name": "adder", "instance": Adder()})

        manager.invoke_sync("add", 1, 2)  # 3
        ```
    """

    def __init__(
        self,
        eventbus: EventbusLike | None = None,
        event_prefix: str | None = None,
        loader: PluginLoader | None = None,
        **options: bool,
    ):
        """
        Initialize the PluginManager.

        Args:
            eventbus: Optional bus to bind the command surface to.
            event_prefix: Prefix of the bus commands. Defaults to the
                configured `event_prefix` ("plugins").
            loader: Resolves plugin targets. Defaults to ImportLoader.
            **options: Policy flags, see ManagerOptions. Defaults come from
                the configured settings.
        """
        settings = get_config()

        self._plugins: dict[str, PluginEntry] | None = {}
        self._eventbus: EventbusLike | None = None
        self._event_prefix: str = settings.event_prefix
        self._loader: PluginLoader = loader or ImportLoader()
        self._options = ManagerOptions(
            no_event_add=settings.no_event_add,
            no_event_removal=settings.no_event_removal,
            throw_no_method=settings.throw_no_method,
            throw_no_plugin=settings.throw_no_plugin,
        )

        self.set_options(**options)

        if eventbus is not None:
            self.set_eventbus(eventbus, event_prefix)

    def _check_alive(self) -> dict[str, PluginEntry]:
        """Return the registry, raising once the manager has been destroyed."""
        if self._plugins is None:
            raise ManagerDestroyedError()
        return self._plugins

    @property
    def event_prefix(self) -> str:
        """Prefix of the bus commands."""
        return self._event_prefix

    # Registration ---------------------------------------------------------

    def add(self, config: PluginConfig | Mapping[str, Any]) -> None:
        """
        Register a plugin.

        Args:
            config: A PluginConfig or a mapping with `name` and optionally
                `instance`, `target` and `options`.

        Raises:
            ValidationError: If the config is malformed.
            LoadError: If the plugin target cannot be resolved.
        """
        registry = self._check_alive()
        plugin_config = self._validate_config(config)
        name = plugin_config.name

        target: str | None
        if plugin_config.instance is not None:
            instance = plugin_config.instance
            plugin_type = PluginType.INSTANCE
            target = None
        else:
            target = plugin_config.target or name
            plugin_type = target_type(target)
            try:
                instance = self._loader.resolve(target)
            except LoadError:
                raise
            except Exception as e:
                raise LoadError(name, f"Failed to load '{target}': {e}") from e

        methods = get_capability_methods(instance)

        if name in registry:
            logger.info("Replacing plugin '%s'", name)
            self.remove(name)

        registry[name] = PluginEntry(
            name=name,
            type=plugin_type,
            instance=instance,
            target=target,
            methods=methods,
            event_proxy=self.create_event_proxy(),
            options=copy.deepcopy(plugin_config.options or {}),
        )
        logger.info("Added plugin '%s' (%s)", name, plugin_type.value)

        self._invoke_sync_events(LOAD_HOOK, target=name, quiet=True)

    def add_all(self, configs: Iterable[PluginConfig | Mapping[str, Any]]) -> None:
        """
        Register several plugins in order.

        Not atomic: a failure leaves the plugins registered before it in place.
        """
        self._check_alive()
        if isinstance(configs, (str, Mapping)) or not isinstance(configs, Iterable):
            raise ValidationError("'configs' is not an iterable of plugin configs.")
        for config in configs:
            self.add(config)

    def is_valid_config(self, config: Any) -> bool:
        """Check whether `config` would pass registration validation."""
        try:
            self._validate_config(config)
        except ValidationError:
            return False
        return True

    def _validate_config(self, config: Any) -> PluginConfig:
        if isinstance(config, PluginConfig):
            return config
        if not isinstance(config, Mapping):
            raise ValidationError(f"'config' is not a mapping: {config!r}.")
        try:
            return PluginConfig.model_validate(dict(config))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid plugin config {dict(config)!r}: {e}") from e

    # Removal --------------------------------------------------------------

    def remove(self, plugin_name: str) -> bool:
        """
        Unload and remove a plugin.

        `on_plugin_unload` runs while the plugin's proxy is still live, then
        every subscription made through the proxy is revoked.

        Returns:
            True if the plugin was registered.
        """
        registry = self._check_alive()
        self._check_name(plugin_name, "plugin_name")

        entry = registry.get(plugin_name)
        if entry is None:
            return False

        self._invoke_sync_events(UNLOAD_HOOK, target=plugin_name, quiet=True)
        entry.replace_event_proxy(None)
        registry.pop(plugin_name, None)
        logger.info("Removed plugin '%s'", plugin_name)
        return True

    def remove_all(self) -> None:
        """Unload and remove every plugin."""
        registry = self._check_alive()
        self._invoke_sync_events(UNLOAD_HOOK, target=list(registry), quiet=True)
        for entry in registry.values():
            entry.replace_event_proxy(None)
        registry.clear()
        logger.info("Removed all plugins")

    def destroy(self) -> None:
        """
        Remove every plugin and detach from the event bus.

        The manager cannot be used afterwards.
        """
        self.remove_all()
        if self._eventbus is not None:
            self._unbind_commands(self._eventbus, self._event_prefix)
        self._plugins = None
        self._eventbus = None
        logger.debug("PluginManager destroyed")

    # Enable / disable -----------------------------------------------------

    def enable_plugin(self, plugin_name: str, enabled: bool) -> bool:
        """
        Set the enabled state of one plugin.

        Returns:
            True if the plugin is registered.
        """
        registry = self._check_alive()
        self._check_name(plugin_name, "plugin_name")
        self._check_bool(enabled, "enabled")

        entry = registry.get(plugin_name)
        if entry is None:
            return False
        entry.enabled = enabled
        return True

    def enable_plugins(self, plugin_names: Iterable[str], enabled: bool) -> bool:
        """
        Set the enabled state of several plugins.

        Returns:
            False if any of the names is not registered.
        """
        registry = self._check_alive()
        self._check_bool(enabled, "enabled")
        if plugin_names is None:
            raise ValidationError("'plugin_names' is required.")

        success = True
        for plugin_name in self._resolve_target(plugin_names):
            entry = registry.get(plugin_name)
            if entry is None:
                success = False
            else:
                entry.enabled = enabled
        return success

    def enable_all_plugins(self, enabled: bool) -> None:
        """Set the enabled state of every plugin."""
        registry = self._check_alive()
        self._check_bool(enabled, "enabled")
        for entry in registry.values():
            entry.enabled = enabled

    # Introspection --------------------------------------------------------

    def get_eventbus(self) -> EventbusLike | None:
        """Return the bound event bus, if any."""
        self._check_alive()
        return self._eventbus

    def create_event_proxy(self) -> EventProxy | None:
        """Return a new EventProxy over the bound bus, or None without a bus."""
        self._check_alive()
        return EventProxy(self._eventbus) if self._eventbus is not None else None

    def get_options(self) -> dict[str, bool]:
        """Return a copy of the manager's policy flags."""
        self._check_alive()
        return self._options.model_dump()

    def get_plugin_options(self, plugin_name: str) -> dict[str, Any] | None:
        """Return a deep copy of a plugin's options, or None if it is not registered."""
        registry = self._check_alive()
        self._check_name(plugin_name, "plugin_name")

        entry = registry.get(plugin_name)
        if entry is None:
            return None
        return copy.deepcopy(entry.options)

    def get_plugin_names(self, enabled: bool | None = None) -> list[str]:
        """List plugin names in registration order, optionally filtered by enabled state."""
        return [entry.name for entry in self._filter_entries(enabled)]

    def get_method_names(
        self, enabled: bool | None = None, plugin_name: str | None = None
    ) -> list[str]:
        """
        List the distinct method names exposed by the selected plugins.

        Args:
            enabled: Only consider plugins in this state. None considers all.
            plugin_name: Only consider this plugin.
        """
        names: dict[str, None] = {}
        for entry in self._filter_entries(enabled):
            if plugin_name is None or entry.name == plugin_name:
                names.update(dict.fromkeys(entry.methods))
        return list(names)

    def get_plugin_method_names(self, enabled: bool | None = None) -> list[PluginMethod]:
        """List every (plugin, method) pair in registration order."""
        return [
            PluginMethod(entry.name, method_name)
            for entry in self._filter_entries(enabled)
            for method_name in entry.methods
        ]

    def has_plugin(self, plugin_name: str) -> bool:
        """Check whether a plugin is registered under `plugin_name`."""
        registry = self._check_alive()
        self._check_name(plugin_name, "plugin_name")
        return plugin_name in registry

    def has_method(self, method_name: str) -> bool:
        """Check whether any plugin, enabled or not, exposes `method_name`."""
        registry = self._check_alive()
        self._check_name(method_name, "method_name")
        return any(entry.has_method(method_name) for entry in registry.values())

    def has_plugin_method(self, plugin_name: str, method_name: str) -> bool:
        """Check whether the named plugin exposes `method_name`."""
        registry = self._check_alive()
        self._check_name(plugin_name, "plugin_name")
        self._check_name(method_name, "method_name")

        entry = registry.get(plugin_name)
        return entry is not None and entry.has_method(method_name)

    def _filter_entries(self, enabled: bool | None) -> list[PluginEntry]:
        registry = self._check_alive()
        if enabled is not None:
            self._check_bool(enabled, "enabled")
        return [
            entry
            for entry in registry.values()
            if enabled is None or entry.enabled is enabled
        ]

    # Dispatch -------------------------------------------------------------

    def invoke_sync(
        self, method_name: str, *args: Any, target: Target = None, **kwargs: Any
    ) -> Any:
        """
        Invoke a method on every selected plugin and collect the results.

        Args:
            method_name: The method to invoke.
            *args: Positional arguments for the method.
            target: A plugin name, an iterable of names, or None for all
                plugins in registration order.
            **kwargs: Keyword arguments for the method.

        Returns:
            None if no plugin returned a value, the value if exactly one did,
            otherwise the list of values in invocation order.

        Raises:
            ValidationError: If `method_name` or `target` is malformed.
            NoTargetError: If `throw_no_plugin` is set and no enabled plugin matched.
            NoMethodError: If `throw_no_method` is set and nothing was invoked.
        """
        return collect_results(self._invoke(method_name, target, args, kwargs))

    def invoke_async(
        self, method_name: str, *args: Any, target: Target = None, **kwargs: Any
    ) -> Awaitable[Any]:
        """
        Invoke a method on every selected plugin and return one awaitable.

        The methods are called right away, one after another. Awaiting the
        returned value awaits every awaitable result concurrently; the
        resolved value follows the same rules as `invoke_sync`. Any failure,
        validation included, is raised when the awaitable is awaited, never
        from this call.
        """
        try:
            results = self._invoke(method_name, target, args, kwargs)
        except Exception as e:
            return _reject(e)
        return _gather(results)

    def invoke_sync_event(
        self,
        method_name: str,
        copy_props: Mapping[str, Any] | None = None,
        passthru_props: Mapping[str, Any] | None = None,
        target: Target = None,
    ) -> dict[str, Any]:
        """
        Invoke a method on every selected plugin with one shared PluginEvent.

        Args:
            method_name: The method to invoke.
            copy_props: Payload values deep copied into the event.
            passthru_props: Payload values passed by reference.
            target: A plugin name, an iterable of names, or None for all.

        Returns:
            The event payload, including the `$$plugin_invoke_count` and
            `$$plugin_invoke_names` metadata.
        """
        return self._invoke_sync_events(
            method_name, copy_props, passthru_props, target=target
        )

    def _invoke(
        self,
        method_name: str,
        target: Target,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> list[Any]:
        self._check_name(method_name, "method_name")

        has_plugin = False
        has_method = False
        results = []

        for entry in self._iter_candidates(self._resolve_target(target)):
            has_plugin = True
            method = entry.get_method(method_name)
            if method is None:
                continue
            has_method = True
            result = method(*args, **kwargs)
            if result is not None:
                results.append(result)

        self._check_policy(method_name, has_plugin, has_method)
        return results

    def _invoke_sync_events(
        self,
        method_name: str,
        copy_props: Mapping[str, Any] | None = None,
        passthru_props: Mapping[str, Any] | None = None,
        target: Target = None,
        quiet: bool = False,
    ) -> dict[str, Any]:
        """
        Event dispatch shared by `invoke_sync_event` and the lifecycle hooks.

        A quiet dispatch reaches disabled plugins too and never applies the
        error policy.
        """
        self._check_name(method_name, "method_name")
        if copy_props is not None and not isinstance(copy_props, Mapping):
            raise ValidationError("'copy_props' is not a mapping.")
        if passthru_props is not None and not isinstance(passthru_props, Mapping):
            raise ValidationError("'passthru_props' is not a mapping.")

        names = self._resolve_target(target)
        event = PluginEvent.from_props(copy_props, passthru_props)

        has_plugin = False
        invoked: list[str] = []

        for entry in self._iter_candidates(names, include_disabled=quiet):
            has_plugin = True
            method = entry.get_method(method_name)
            if method is None:
                continue
            event.bind(entry.name, copy.deepcopy(entry.options), entry.event_proxy)
            method(event)
            invoked.append(entry.name)

        if not quiet:
            self._check_policy(method_name, has_plugin, bool(invoked))

        return event.finalize(invoked)

    def _iter_candidates(
        self, names: list[str], include_disabled: bool = False
    ) -> Iterator[PluginEntry]:
        """Yield the registered entries among `names`, looked up as dispatch progresses."""
        registry = self._check_alive()
        for name in names:
            entry = registry.get(name)
            if entry is not None and (entry.enabled or include_disabled):
                yield entry

    def _resolve_target(self, target: Target) -> list[str]:
        if target is None:
            return list(self._check_alive())
        if isinstance(target, str):
            return [target]
        if isinstance(target, Mapping) or not isinstance(target, Iterable):
            raise ValidationError("'target' is not a string or an iterable of strings.")

        names = list(target)
        for name in names:
            if not isinstance(name, str):
                raise ValidationError(f"'target' contains a non-string entry: {name!r}.")
        return names

    def _check_policy(self, method_name: str, has_plugin: bool, has_method: bool) -> None:
        if self._options.throw_no_plugin and not has_plugin:
            raise NoTargetError()
        if self._options.throw_no_method and not has_method:
            raise NoMethodError(method_name)

    # Options & event bus --------------------------------------------------

    def set_options(self, options: Mapping[str, bool] | None = None, **kwargs: bool) -> None:
        """
        Update policy flags.

        Accepts `no_event_add`, `no_event_removal`, `throw_no_method` and
        `throw_no_plugin`, as a mapping or as keyword arguments.

        Raises:
            ValidationError: On an unknown flag or a non-bool value.
        """
        updates = dict(options or {})
        updates.update(kwargs)
        if not updates:
            return
        try:
            self._options = ManagerOptions.model_validate(
                {**self._options.model_dump(), **updates}
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid manager options {updates!r}: {e}") from e

    def set_eventbus(
        self, eventbus: EventbusLike, event_prefix: str | None = None
    ) -> PluginManager:
        """
        Bind the manager and its plugins to an event bus.

        Registered plugins are unloaded, given a proxy over the new bus, and
        loaded again; the command surface moves from the old bus to the new
        one under `event_prefix`.

        Args:
            eventbus: The bus to bind.
            event_prefix: Command prefix. Defaults to the configured one.

        Returns:
            The manager, for chaining.
        """
        registry = self._check_alive()
        if not isinstance(eventbus, EventbusLike):
            raise ValidationError("'eventbus' does not implement on/off/trigger/trigger_sync.")
        if event_prefix is None:
            event_prefix = get_config().event_prefix
        self._check_name(event_prefix, "event_prefix")

        old_eventbus = self._eventbus
        old_prefix = self._event_prefix

        if eventbus is old_eventbus:
            if event_prefix != old_prefix:
                self._unbind_commands(eventbus, old_prefix)
                self._bind_commands(eventbus, event_prefix)
                self._event_prefix = event_prefix
            return self

        if registry:
            names = list(registry)
            self._invoke_sync_events(UNLOAD_HOOK, target=names, quiet=True)
            for entry in registry.values():
                entry.replace_event_proxy(EventProxy(eventbus))
            self._invoke_sync_events(LOAD_HOOK, target=names, quiet=True)
            logger.info("Moved %d plugin(s) to a new event bus", len(names))

        if old_eventbus is not None:
            self._unbind_commands(old_eventbus, old_prefix)
        self._bind_commands(eventbus, event_prefix)

        self._eventbus = eventbus
        self._event_prefix = event_prefix
        return self

    def _command_table(self) -> list[tuple[str, Callable[..., Any]]]:
        return [
            ("add", self._add_eventbus),
            ("add:all", self._add_all_eventbus),
            ("enable:all:plugins", self.enable_all_plugins),
            ("enable:plugin", self.enable_plugin),
            ("enable:plugins", self.enable_plugins),
            ("get:method:names", self.get_method_names),
            ("get:options", self.get_options),
            ("get:plugin:method:names", self.get_plugin_method_names),
            ("get:plugin:names", self.get_plugin_names),
            ("get:plugin:options", self.get_plugin_options),
            ("has:method", self.has_method),
            ("has:plugin", self.has_plugin),
            ("has:plugin:method", self.has_plugin_method),
            ("invoke:async", self.invoke_async),
            ("invoke:sync", self.invoke_sync),
            ("invoke:sync:event", self.invoke_sync_event),
            ("remove", self._remove_eventbus),
            ("remove:all", self._remove_all_eventbus),
        ]

    def _bind_commands(self, eventbus: EventbusLike, event_prefix: str) -> None:
        for action, handler in self._command_table():
            eventbus.on(f"{event_prefix}:{action}", handler, self)

    def _unbind_commands(self, eventbus: EventbusLike, event_prefix: str) -> None:
        for action, handler in self._command_table():
            eventbus.off(f"{event_prefix}:{action}", handler, self)

    def _add_eventbus(self, config: PluginConfig | Mapping[str, Any]) -> bool:
        if self._options.no_event_add:
            logger.debug("Refused '%s:add' from the event bus", self._event_prefix)
            return False
        self.add(config)
        return True

    def _add_all_eventbus(self, configs: Iterable[PluginConfig | Mapping[str, Any]]) -> bool:
        if self._options.no_event_add:
            logger.debug("Refused '%s:add:all' from the event bus", self._event_prefix)
            return False
        self.add_all(configs)
        return True

    def _remove_eventbus(self, plugin_name: str) -> bool:
        if self._options.no_event_removal:
            logger.debug("Refused '%s:remove' from the event bus", self._event_prefix)
            return False
        return self.remove(plugin_name)

    def _remove_all_eventbus(self) -> bool:
        if self._options.no_event_removal:
            logger.debug("Refused '%s:remove:all' from the event bus", self._event_prefix)
            return False
        self.remove_all()
        return True

    # Validation helpers ---------------------------------------------------

    @staticmethod
    def _check_name(value: Any, label: str) -> None:
        if not isinstance(value, str):
            raise ValidationError(f"'{label}' is not a string.")

    @staticmethod
    def _check_bool(value: Any, label: str) -> None:
        if not isinstance(value, bool):
            raise ValidationError(f"'{label}' is not a boolean.")


async def _resolve(value: Any) -> Any:
    """Await `value` if it is awaitable, otherwise return it."""
    if inspect.isawaitable(value):
        return await value
    return value


async def _gather(results: list[Any]) -> Any:
    """Await the collected results and shape them like `invoke_sync`."""
    if not results:
        return None
    if len(results) == 1:
        return await _resolve(results[0])
    return collect_results(
        list(await asyncio.gather(*(_resolve(result) for result in results)))
    )


async def _reject(error: Exception) -> Any:
    """Re-raise a dispatch failure once awaited."""
    raise error
