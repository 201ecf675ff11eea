"""
Sample Egile Plugins Application

This example demonstrates registering plugins, dispatching to them directly
and driving the manager through an event bus.

Usage:
    python -m examples.sample_plugins
"""

import asyncio

from egile_plugins import Eventbus, Plugin, PluginManager
from egile_plugins.utils import setup_logging


# Example: plugin listening on the shared bus through its scoped proxy
class TickCounter(Plugin):
    """Counts `app:tick` events and reports the total on demand."""

    def __init__(self):
        self.ticks = 0

    def on_plugin_load(self, event):
        event.eventbus.on("app:tick", self.tick)

    def tick(self):
        self.ticks += 1

    def report(self, event):
        event.data.setdefault("ticks", {})[event.plugin_name] = self.ticks


class Calculator(Plugin):
    """Plain synchronous and asynchronous methods."""

    def add(self, a, b):
        return a + b

    async def slow_add(self, a, b):
        await asyncio.sleep(0.1)
        return a + b


def demo_direct(manager: PluginManager, eventbus: Eventbus):
    """Demonstrate direct dispatch."""
    print("\n" + "=" * 50)
    print("Direct Dispatch Demo")
    print("=" * 50)

    for _ in range(3):
        eventbus.trigger("app:tick")

    print(f"add(1, 2)        -> {manager.invoke_sync('add', 1, 2)}")
    print(f"report           -> {manager.invoke_sync_event('report')}")
    print(f"slow_add(2, 3)   -> {asyncio.run(manager.invoke_async('slow_add', 2, 3))}")


def demo_eventbus(manager: PluginManager, eventbus: Eventbus):
    """Demonstrate bus-driven control."""
    print("\n" + "=" * 50)
    print("Event Bus Demo")
    print("=" * 50)

    print(f"plugins:get:plugin:names -> {eventbus.trigger_sync('plugins:get:plugin:names')}")
    eventbus.trigger("plugins:enable:plugin", "calculator", False)
    print(f"disabled calculator, add -> {eventbus.trigger_sync('plugins:invoke:sync', 'add', 1, 2)}")

    eventbus.trigger("plugins:remove", "ticks")
    print(f"app:tick subscribers     -> {eventbus.listener_count('app:tick')}")


if __name__ == "__main__":
    setup_logging(level="INFO")

    eventbus = Eventbus()
    manager = PluginManager(eventbus=eventbus)
    manager.add_all(
        [
            {"name": "ticks", "instance": TickCounter()},
            {"name": "calculator", "instance": Calculator()},
        ]
    )

    demo_direct(manager, eventbus)
    demo_eventbus(manager, eventbus)

    manager.destroy()
