"""Tests for the event bus command surface and bus rebinding."""

import pytest

from egile_plugins.eventbus import Eventbus
from egile_plugins.exceptions import ValidationError
from egile_plugins.manager import PluginManager

COMMAND_COUNT = 18


class PluginTestSync:
    def __init__(self):
        self.c = 3

    def test(self, a, b):
        return a + b + self.c


class BusPlugin:
    """Subscribes to `app:ping` through its scoped proxy."""

    def __init__(self, log=None):
        self.log = log if log is not None else []

    def on_plugin_load(self, event):
        self.log.append(("load", event.plugin_name))
        self.name = event.plugin_name
        event.eventbus.on("app:ping", self.ping)

    def on_plugin_unload(self, event):
        self.log.append(("unload", event.plugin_name))

    def ping(self):
        return self.name


class TestCommandSurface:
    """Tests for driving the manager through bus messages."""

    def test_commands_are_bound(self, eventbus):
        PluginManager(eventbus=eventbus)

        assert eventbus.listener_count() == COMMAND_COUNT
        assert "plugins:invoke:sync:event" in eventbus.get_event_names()

    def test_add_and_introspect_over_the_bus(self, eventbus):
        manager = PluginManager(eventbus=eventbus)

        assert eventbus.trigger_sync("plugins:add", {"name": "a", "instance": PluginTestSync()}) is True
        eventbus.trigger("plugins:add:all", [{"name": "b", "instance": PluginTestSync()}])

        assert manager.get_plugin_names() == ["a", "b"]
        assert eventbus.trigger_sync("plugins:has:plugin", "a") is True
        assert eventbus.trigger_sync("plugins:has:method", "test") is True
        assert eventbus.trigger_sync("plugins:has:plugin:method", "a", "test") is True
        assert eventbus.trigger_sync("plugins:get:plugin:names") == ["a", "b"]
        assert eventbus.trigger_sync("plugins:get:method:names") == ["test"]
        assert len(eventbus.trigger_sync("plugins:get:plugin:method:names")) == 2
        assert eventbus.trigger_sync("plugins:get:options")["no_event_add"] is False

    def test_dispatch_over_the_bus(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": PluginTestSync()})
        manager.add({"name": "b", "instance": PluginTestSync()})

        assert eventbus.trigger_sync("plugins:invoke:sync", "test", 1, 2) == [6, 6]
        assert eventbus.trigger_sync("plugins:invoke:sync", "test", 1, 2, target="b") == 6

        eventbus.trigger("plugins:enable:plugin", "a", False)
        assert eventbus.trigger_sync("plugins:invoke:sync", "test", 1, 2) == 6

        eventbus.trigger("plugins:enable:all:plugins", False)
        assert eventbus.trigger_sync("plugins:get:plugin:names", True) == []

        eventbus.trigger("plugins:enable:plugins", ["a", "b"], True)
        assert eventbus.trigger_sync("plugins:get:plugin:names", True) == ["a", "b"]

    def test_event_dispatch_over_the_bus(self, eventbus):
        manager = PluginManager(eventbus=eventbus)

        def increment(event):
            event.data["count"] += 1

        manager.add({"name": "A", "instance": {"test": increment}})
        manager.add({"name": "B", "instance": {"test": increment}})

        event = eventbus.trigger_sync("plugins:invoke:sync:event", "test", {"count": 0})
        assert event["count"] == 2

    @pytest.mark.asyncio
    async def test_async_dispatch_over_the_bus(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": PluginTestSync()})

        assert await eventbus.trigger_sync("plugins:invoke:async", "test", 1, 2) == 6

    @pytest.mark.filterwarnings("ignore:coroutine .* was never awaited")
    def test_async_trigger_over_the_bus_runs_plugins(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        calls = []
        manager.add({"name": "a", "instance": {"run": lambda: calls.append("a")}})

        eventbus.trigger("plugins:invoke:async", "run")

        assert calls == ["a"]

    def test_plugin_options_over_the_bus(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": PluginTestSync(), "options": {"x": 1}})

        assert eventbus.trigger_sync("plugins:get:plugin:options", "a") == {"x": 1}

    def test_remove_over_the_bus(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": PluginTestSync()})
        manager.add({"name": "b", "instance": PluginTestSync()})

        assert eventbus.trigger_sync("plugins:remove", "a") is True
        assert manager.get_plugin_names() == ["b"]

        eventbus.trigger("plugins:remove:all")
        assert manager.get_plugin_names() == []

    def test_no_event_add(self, eventbus):
        manager = PluginManager(eventbus=eventbus, no_event_add=True)

        assert eventbus.trigger_sync("plugins:add", {"name": "a", "instance": PluginTestSync()}) is False
        assert eventbus.trigger_sync("plugins:add:all", [{"name": "a", "instance": PluginTestSync()}]) is False
        assert manager.get_plugin_names() == []

        manager.add({"name": "a", "instance": PluginTestSync()})
        assert eventbus.trigger_sync("plugins:invoke:sync", "test", 1, 2) == 6

    def test_no_event_removal(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": PluginTestSync()})
        manager.set_options(no_event_removal=True)

        assert eventbus.trigger_sync("plugins:remove", "a") is False
        assert eventbus.trigger_sync("plugins:remove:all") is False
        assert manager.get_plugin_names() == ["a"]

    def test_custom_prefix(self, eventbus):
        manager = PluginManager(eventbus=eventbus, event_prefix="ext")
        manager.add({"name": "a", "instance": PluginTestSync()})

        assert manager.event_prefix == "ext"
        assert eventbus.trigger_sync("ext:has:plugin", "a") is True
        assert eventbus.trigger_sync("plugins:has:plugin", "a") is None

    def test_destroy_unbinds_everything(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": BusPlugin()})

        manager.destroy()

        assert eventbus.listener_count() == 0

    def test_rejects_non_bus(self, manager):
        with pytest.raises(ValidationError):
            manager.set_eventbus(object())
        with pytest.raises(ValidationError):
            manager.set_eventbus(Eventbus(), 1)


class TestScopedSubscriptions:
    """Tests for plugin subscriptions made through EventProxy."""

    def test_plugin_receives_its_own_proxy(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": BusPlugin()})
        manager.add({"name": "b", "instance": BusPlugin()})

        assert eventbus.trigger_sync("app:ping") == ["a", "b"]

    def test_no_proxy_without_bus(self, manager):
        seen = []
        manager.add({"name": "a", "instance": {"on_plugin_load": lambda ev: seen.append(ev.eventbus)}})

        assert seen == [None]
        assert manager.create_event_proxy() is None

    def test_remove_revokes_only_that_plugins_subscriptions(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": BusPlugin()})
        manager.add({"name": "b", "instance": BusPlugin()})

        manager.remove("a")

        assert eventbus.listener_count("app:ping") == 1
        assert eventbus.trigger_sync("app:ping") == "b"

    def test_remove_all_revokes_every_subscription(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": BusPlugin()})
        manager.add({"name": "b", "instance": BusPlugin()})

        manager.remove_all()

        assert eventbus.listener_count("app:ping") == 0
        assert eventbus.listener_count() == COMMAND_COUNT

    def test_unload_hook_runs_while_proxy_is_live(self, eventbus):
        farewells = []
        eventbus.on("app:bye", farewells.append)

        def unload(event):
            event.eventbus.trigger("app:bye", event.plugin_name)

        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": {"on_plugin_unload": unload}})
        manager.remove("a")

        assert farewells == ["a"]

    def test_duplicate_name_revokes_old_subscriptions(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": BusPlugin()})
        manager.add({"name": "a", "instance": BusPlugin()})

        assert eventbus.listener_count("app:ping") == 1


class TestRebind:
    """Tests for moving the manager to another bus."""

    def test_rebind_reloads_every_plugin_once(self):
        old_bus, new_bus = Eventbus("old"), Eventbus("new")
        log = []
        manager = PluginManager(eventbus=old_bus)
        manager.add({"name": "a", "instance": BusPlugin(log)})
        manager.add({"name": "b", "instance": BusPlugin(log)})
        manager.enable_plugin("b", False)
        log.clear()

        manager.set_eventbus(new_bus)

        assert log == [("unload", "a"), ("unload", "b"), ("load", "a"), ("load", "b")]
        assert old_bus.listener_count() == 0
        assert new_bus.listener_count("app:ping") == 2
        assert new_bus.listener_count() == COMMAND_COUNT + 2
        assert manager.get_eventbus() is new_bus

    def test_rebind_to_same_bus_is_a_no_op(self, eventbus):
        log = []
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": BusPlugin(log)})
        log.clear()

        assert manager.set_eventbus(eventbus) is manager
        assert log == []
        assert eventbus.listener_count() == COMMAND_COUNT + 1

    def test_same_bus_new_prefix_moves_commands(self, eventbus):
        manager = PluginManager(eventbus=eventbus)
        manager.add({"name": "a", "instance": PluginTestSync()})

        manager.set_eventbus(eventbus, "other")

        assert eventbus.trigger_sync("plugins:has:plugin", "a") is None
        assert eventbus.trigger_sync("other:has:plugin", "a") is True
        assert eventbus.listener_count() == COMMAND_COUNT

    def test_bind_after_registration(self, eventbus):
        log = []
        manager = PluginManager()
        manager.add({"name": "a", "instance": {"on_plugin_load": lambda ev: log.append(ev.eventbus)}})

        manager.set_eventbus(eventbus)

        assert log[0] is None
        assert log[1] is not None
        assert log[1].eventbus is eventbus
