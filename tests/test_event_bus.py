"""Tests for the event bus."""

from listen_along.event_bus import EventBus, EventHandler, subscribe


class Handler(EventHandler):
    def __init__(self, event_bus: EventBus) -> None:
        self.seen = []
        super().__init__(event_bus)

    @subscribe
    def heartbeat(self, data: dict) -> None:
        self.seen.append(data)


def test_handler_subscribes_by_method_name() -> None:
    bus = EventBus()
    handler = Handler(bus)

    bus.publish("heartbeat", {"timestamp": "now"})
    bus.publish("friends", {"action": "x"})

    assert handler.seen == [{"timestamp": "now", "__topic": "heartbeat"}]


def test_unsubscribe_all() -> None:
    bus = EventBus()
    handler = Handler(bus)

    handler.unsubscribe_all()
    bus.publish("heartbeat")

    assert handler.seen == []


def test_listener_error_does_not_stop_delivery() -> None:
    bus = EventBus()
    received = []

    def broken(_data):
        raise RuntimeError("bug")

    bus.subscribe("friends", broken)
    bus.subscribe("friends", received.append)
    bus.publish("friends", {"action": "accepted"})

    assert received[0]["action"] == "accepted"


def test_listeners_get_independent_copies() -> None:
    bus = EventBus()
    first, second = [], []

    def mutate(data):
        data["action"] = "changed"
        first.append(data)

    bus.subscribe("friends", mutate)
    bus.subscribe("friends", second.append)
    original = {"action": "accepted"}
    bus.publish("friends", original)

    assert second[0]["action"] == "accepted"
    assert original == {"action": "accepted"}
