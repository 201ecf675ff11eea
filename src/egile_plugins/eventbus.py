"""Publish/subscribe bus contract and a minimal in-process implementation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from egile_plugins.exceptions import ValidationError

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


@runtime_checkable
class EventbusLike(Protocol):
    """The four bus operations PluginManager and EventProxy depend on."""

    def on(self, event_name: str, handler: Handler, context: Any = None) -> Any: ...

    def off(
        self,
        event_name: str | None = None,
        handler: Handler | None = None,
        context: Any = None,
    ) -> Any: ...

    def trigger(self, event_name: str, *args: Any, **kwargs: Any) -> Any: ...

    def trigger_sync(self, event_name: str, *args: Any, **kwargs: Any) -> Any: ...


@dataclass(frozen=True)
class Subscription:
    """One handler bound to one event name."""

    event_name: str
    handler: Handler
    context: Any = None

    def matches(
        self,
        event_name: str | None = None,
        handler: Handler | None = None,
        context: Any = None,
    ) -> bool:
        """Check whether this subscription matches an `off()` filter. None matches anything."""
        if event_name is not None and event_name != self.event_name:
            return False
        if handler is not None and handler != self.handler:
            return False
        if context is not None and context is not self.context:
            return False
        return True


def collect_results(results: list[Any]) -> Any:
    """Shape collected results: none -> None, one -> the value, more -> the list."""
    if not results:
        return None
    if len(results) == 1:
        return results[0]
    return results


class Eventbus:
    """
    In-process event bus.

    Handlers are invoked in subscription order. `context` only serves as an
    identity used to select subscriptions in `off()`.

    Example:
        ```python
        bus = Eventbus()
        bus.on("app:ready", lambda: print("ready"))
        bus.trigger("app:ready")
        ```
    """

    def __init__(self, name: str = "eventbus"):
        self.name = name
        self._subscriptions: dict[str, list[Subscription]] = {}

    def on(self, event_name: str, handler: Handler, context: Any = None) -> Eventbus:
        """
        Subscribe a handler to an event.

        Args:
            event_name: The event name.
            handler: Callable invoked with the trigger arguments.
            context: Optional identity used to target the subscription in `off()`.

        Returns:
            The bus, for chaining.
        """
        if not isinstance(event_name, str):
            raise ValidationError("'event_name' is not a string.")
        if not callable(handler):
            raise ValidationError("'handler' is not callable.")

        self._subscriptions.setdefault(event_name, []).append(
            Subscription(event_name, handler, context)
        )
        logger.debug("Subscribed to '%s' on %s", event_name, self.name)
        return self

    def off(
        self,
        event_name: str | None = None,
        handler: Handler | None = None,
        context: Any = None,
    ) -> Eventbus:
        """
        Remove every subscription matching the given filter.

        Arguments left as None match anything, so `off()` clears the bus.
        """
        for name in list(self._subscriptions):
            kept = [
                sub
                for sub in self._subscriptions[name]
                if not sub.matches(event_name, handler, context)
            ]
            if kept:
                self._subscriptions[name] = kept
            else:
                del self._subscriptions[name]
        return self

    def trigger(self, event_name: str, *args: Any, **kwargs: Any) -> None:
        """Invoke every handler of an event, discarding results."""
        for sub in list(self._subscriptions.get(event_name, ())):
            sub.handler(*args, **kwargs)

    def trigger_sync(self, event_name: str, *args: Any, **kwargs: Any) -> Any:
        """
        Invoke every handler of an event and collect their results.

        Returns:
            None when no handler returned a value, the single value when one
            did, otherwise the list of values in subscription order.
        """
        results = []
        for sub in list(self._subscriptions.get(event_name, ())):
            result = sub.handler(*args, **kwargs)
            if result is not None:
                results.append(result)
        return collect_results(results)

    def subscriptions(self, event_name: str | None = None) -> list[Subscription]:
        """List current subscriptions, optionally for one event."""
        if event_name is not None:
            return list(self._subscriptions.get(event_name, ()))
        return [sub for subs in self._subscriptions.values() for sub in subs]

    def listener_count(self, event_name: str | None = None) -> int:
        """Count current subscriptions, optionally for one event."""
        return len(self.subscriptions(event_name))

    def get_event_names(self) -> list[str]:
        """List event names with at least one subscription."""
        return list(self._subscriptions)
