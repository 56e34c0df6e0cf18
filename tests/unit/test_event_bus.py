"""Unit tests for the EventBus."""

import asyncio

import pytest

from collabxp.core.event.bus import EventBus
from collabxp.core.event.types import ListenerPriority


@pytest.mark.unit
class TestSubscription:
    """Test listener subscription bookkeeping."""

    def test_subscribe_returns_identifier(self, event_bus):
        """Subscribing should return an identifier tied to the event."""
        async def handler(data):
            return None

        identifier = event_bus.subscribe("progression.leveled_up", handler)

        assert identifier.endswith("@progression.leveled_up")
        assert event_bus.get_listener_count("progression.leveled_up") == 1

    def test_duplicate_identifier_ignored(self, event_bus):
        """Subscribing twice with one identifier should register once."""
        def handler(data):
            return None

        event_bus.subscribe("a", handler, identifier="same")
        event_bus.subscribe("a", handler, identifier="same")

        assert event_bus.get_listener_count("a") == 1

    def test_callback_must_take_one_argument(self, event_bus):
        """Callbacks must accept exactly one argument."""
        def handler(name, data):
            return None

        with pytest.raises(ValueError):
            event_bus.subscribe("a", handler)

    def test_unsubscribe(self, event_bus):
        """Unsubscribing should remove the listener once."""
        identifier = event_bus.subscribe("a", lambda data: None)

        assert event_bus.unsubscribe("a", identifier) is True
        assert event_bus.unsubscribe("a", identifier) is False
        assert event_bus.get_all_events() == []

    def test_clear(self, event_bus):
        """Clear should remove every listener."""
        event_bus.subscribe("a", lambda data: None, identifier="one")
        event_bus.subscribe("b", lambda data: None, identifier="two")

        event_bus.clear()

        assert event_bus.get_listener_count() == 0


@pytest.mark.unit
class TestPublish:
    """Test event dispatch."""

    async def test_priority_order(self, event_bus):
        """Listeners should run in priority order."""
        calls = []

        async def normal(data):
            calls.append("normal")

        async def high(data):
            calls.append("high")

        async def critical(data):
            calls.append("critical")

        event_bus.subscribe("e", normal, identifier="n")
        event_bus.subscribe("e", high, priority=ListenerPriority.HIGH, identifier="h")
        event_bus.subscribe("e", critical, priority=ListenerPriority.CRITICAL, identifier="c")

        await event_bus.publish("e", {})

        assert calls == ["critical", "high", "normal"]

    async def test_wildcard_subscription(self, event_bus):
        """Wildcard subscriptions should match only their namespace."""
        received = []
        event_bus.subscribe("progression.*", lambda data: received.append(data["n"]))

        await event_bus.publish("progression.xp_awarded", {"n": 1})
        await event_bus.publish("session.started", {"n": 2})

        assert received == [1]

    async def test_results_returned(self, event_bus):
        """Publish should return listener results."""
        event_bus.subscribe("e", lambda data: data["x"] * 2)

        assert await event_bus.publish("e", {"x": 4}) == [8]

    async def test_no_listeners(self, event_bus):
        """Publishing with no listeners should return an empty list."""
        assert await event_bus.publish("nobody.listens", {}) == []

    async def test_once_listener(self, event_bus):
        """Once-listeners should run a single time."""
        received = []
        event_bus.subscribe("e", lambda data: received.append(1), once=True)

        await event_bus.publish("e", {})
        await event_bus.publish("e", {})

        assert received == [1]

    async def test_failing_listener_is_isolated(self, event_bus):
        """A failing listener should not stop the others and should be counted."""
        def broken(data):
            raise RuntimeError("boom")

        event_bus.subscribe("e", broken, identifier="broken")
        event_bus.subscribe("e", lambda data: "ok", identifier="fine")

        results = await event_bus.publish("e", {})

        assert sorted(results, key=str) == [None, "ok"]
        summary = event_bus.get_metrics_summary()
        assert summary["total_errors"] == 1
        assert summary["errors_by_event"] == {"e": 1}

    async def test_high_priority_timeout(self, config_manager):
        """Slow HIGH listeners should time out and be counted as errors."""
        bus = EventBus(config_manager, high_timeout_seconds=0.01)

        async def slow(data):
            await asyncio.sleep(1)

        bus.subscribe("e", slow, priority=ListenerPriority.HIGH)

        assert await bus.publish("e", {}) == [None]
        assert bus.get_metrics_summary()["total_errors"] == 1

    async def test_low_priority_runs_in_background(self, event_bus):
        """LOW listeners should run in the background."""
        received = []

        async def low(data):
            received.append(data)

        event_bus.subscribe("e", low, priority=ListenerPriority.LOW)

        results = await event_bus.publish("e", {"k": 1})
        await event_bus.drain()

        assert results == []
        assert received == [{"k": 1}]

    def test_timeouts_from_config(self, config_manager):
        """Listener timeouts should come from config."""
        config_manager.set("core.event.listener_timeout.high_seconds", 2.5)

        bus = EventBus(config_manager)

        assert bus._high_timeout == 2.5
