"""Revocable view over a shared event bus."""

from __future__ import annotations

import logging
from typing import Any

from egile_plugins.eventbus import EventbusLike, Handler, Subscription
from egile_plugins.exceptions import ProxyDestroyedError, ValidationError

logger = logging.getLogger(__name__)


class EventProxy:
    """
    Wraps an event bus and remembers every subscription made through it.

    Each plugin gets its own proxy. `destroy()` unsubscribes exactly the
    bindings made through this proxy, leaving other subscribers of the
    shared bus untouched. A destroyed proxy cannot be reused.
    """

    def __init__(self, eventbus: EventbusLike):
        if eventbus is None:
            raise ValidationError("'eventbus' is required.")
        self._eventbus: EventbusLike | None = eventbus
        self._bindings: list[Subscription] = []

    @property
    def eventbus(self) -> EventbusLike:
        """The wrapped bus."""
        return self._require_bus()

    @property
    def destroyed(self) -> bool:
        return self._eventbus is None

    def on(self, event_name: str, handler: Handler, context: Any = None) -> EventProxy:
        """Subscribe on the wrapped bus and record the binding."""
        bus = self._require_bus()
        # Without an explicit context the proxy itself keys the binding, so
        # revoking it never matches another subscriber sharing the handler
        if context is None:
            context = self
        bus.on(event_name, handler, context)
        binding = Subscription(event_name, handler, context)
        if binding not in self._bindings:
            self._bindings.append(binding)
        return self

    def off(
        self,
        event_name: str | None = None,
        handler: Handler | None = None,
        context: Any = None,
    ) -> EventProxy:
        """
        Unsubscribe recorded bindings matching the filter.

        Only bindings made through this proxy are affected, even when the
        filter is empty.
        """
        bus = self._require_bus()
        kept = []
        for binding in self._bindings:
            if binding.matches(event_name, handler, context):
                bus.off(binding.event_name, binding.handler, binding.context)
            else:
                kept.append(binding)
        self._bindings = kept
        return self

    def trigger(self, event_name: str, *args: Any, **kwargs: Any) -> Any:
        """Fire an event on the wrapped bus."""
        return self._require_bus().trigger(event_name, *args, **kwargs)

    def trigger_sync(self, event_name: str, *args: Any, **kwargs: Any) -> Any:
        """Fire an event on the wrapped bus and collect handler results."""
        return self._require_bus().trigger_sync(event_name, *args, **kwargs)

    def get_bindings(self) -> list[Subscription]:
        """List the bindings currently recorded by this proxy."""
        return list(self._bindings)

    def destroy(self) -> None:
        """Revoke every recorded binding and detach from the bus."""
        bus = self._require_bus()
        for binding in self._bindings:
            bus.off(binding.event_name, binding.handler, binding.context)
        logger.debug("EventProxy revoked %d subscription(s)", len(self._bindings))
        self._bindings = []
        self._eventbus = None

    revoke_all = destroy

    def _require_bus(self) -> EventbusLike:
        if self._eventbus is None:
            raise ProxyDestroyedError()
        return self._eventbus
