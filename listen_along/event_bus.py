"""
Topic publish/subscribe bus shared by every component.

Topics carry one kind of event each (a stream channel such as "live_users",
or an observable state such as "playback_state"). Delivery is synchronous;
callers that must not be held up by listeners schedule publish() on the loop.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

_LOGGER = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]


class EventBus:
    """A simple synchronous publish/subscribe event bus."""

    def __init__(self):
        # Listeners per topic, in subscription order
        self.topics: Dict[str, List[Listener]] = {}

    def subscribe(self, topic: str, listener: Listener) -> None:
        self.topics.setdefault(topic, []).append(listener)

    def unsubscribe(self, topic: str, listener: Listener) -> None:
        listeners = self.topics.get(topic)
        if listeners and listener in listeners:
            listeners.remove(listener)
            if not listeners:
                del self.topics[topic]

    def publish(self, topic: str, data: Optional[Dict[str, Any]] = None) -> None:
        """
        Hands `data` to every listener of `topic`.

        Each listener receives its own shallow copy tagged with "__topic".
        A listener that raises is logged and skipped; the rest still run.
        """
        base = dict(data or {})
        base["__topic"] = topic

        # Snapshot: a listener may unsubscribe while we iterate.
        for listener in list(self.topics.get(topic, ())):
            try:
                listener(dict(base))
            except Exception:
                _LOGGER.exception("Error in event listener for topic %s", topic)

# Client helpers for subscriptions

def subscribe(func: Callable) -> Callable:
    """Decorator to mark a method for event bus subscription."""
    func._event_bus_subscribe = True
    return func

class EventHandler:
    """
    A base class for components that subscribe to events.

    Every method decorated with @subscribe is subscribed to the topic of the
    same name. Subclasses set their own attributes before calling
    super().__init__(), since subscription happens here.
    """
    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus
        self._subscribed: List[Tuple[str, Listener]] = []
        self._subscribe_all_methods()

    def _subscribe_all_methods(self):
        for method_name in dir(self):
            method = getattr(self, method_name, None)
            if not getattr(method, "_event_bus_subscribe", False):
                continue

            self.event_bus.subscribe(method_name, method)
            self._subscribed.append((method_name, method))
            _LOGGER.debug("%s subscribed to '%s'", type(self).__name__, method_name)

    def unsubscribe_all(self) -> None:
        for topic, method in self._subscribed:
            self.event_bus.unsubscribe(topic, method)
        self._subscribed.clear()
