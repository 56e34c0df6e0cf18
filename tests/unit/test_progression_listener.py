"""Unit tests for ProgressionListener wiring on a real EventBus."""

import pytest

from collabxp.core.event.bus import EventBus
from collabxp.core.event.types import ListenerPriority
from collabxp.modules.progression.listener import ProgressionListener
from collabxp.modules.progression.service import ProgressionService


@pytest.fixture
def bus(config_manager) -> EventBus:
    return EventBus(config_manager)


@pytest.fixture
def wired(memory_store, config_manager, bus, clock):
    service = ProgressionService(memory_store, config_manager, bus, clock=clock)
    listener = ProgressionListener(service, bus)
    listener.register()
    yield service, listener
    listener.unregister()


@pytest.mark.unit
class TestRegistration:
    """Test listener subscription management."""

    def test_register_subscribes_at_high_priority(
        self, memory_store, config_manager, mock_event_bus
    ):
        """Registering should subscribe both events at HIGH priority once."""
        service = ProgressionService(memory_store, config_manager, None)
        listener = ProgressionListener(service, mock_event_bus)

        listener.register()
        listener.register()

        assert mock_event_bus.subscribe.call_count == 2
        for call in mock_event_bus.subscribe.call_args_list:
            assert call.kwargs["priority"] is ListenerPriority.HIGH
        assert listener.registered is True

    def test_unregister(self, wired, bus):
        """Unregistering should remove both subscriptions."""
        _, listener = wired

        listener.unregister()

        assert bus.get_listener_count("progression.action") == 0
        assert bus.get_listener_count("session.started") == 0
        assert listener.registered is False


@pytest.mark.unit
class TestActionEvents:
    """Test handling of published platform events."""

    async def test_action_event_updates_progression(self, wired, bus):
        """Action events should update the actor's progression."""
        service, _ = wired

        await bus.publish(
            "progression.action",
            {
                "actor_id": 7,
                "action_type": "TASK_COMPLETED",
                "payload": {"before_deadline": True},
            },
        )

        data = await service.get_user_game_data(7)
        assert data["stats"]["tasks_completed"] == 1
        assert data["achievements"] == ["first_task", "early_bird"]
        assert data["xp"] == 135

    async def test_unknown_action_type_is_ignored(self, wired, bus, memory_store):
        """Unknown action types should be ignored."""
        results = await bus.publish(
            "progression.action", {"actor_id": 7, "action_type": "DANCE_OFF"}
        )

        assert results == [None]
        assert len(memory_store) == 0

    async def test_missing_actor_is_ignored(self, wired, bus, memory_store):
        """Events without an actor should be ignored."""
        await bus.publish("progression.action", {"action_type": "TASK_CREATED"})

        assert len(memory_store) == 0

    async def test_session_started_updates_streak(self, wired, bus):
        """Session start should update the login streak."""
        service, _ = wired

        results = await bus.publish("session.started", {"actor_id": "u-9"})

        assert results == [1]
        data = await service.get_user_game_data("u-9")
        assert data["streak"] == 1
        assert data["xp"] == 5

    async def test_domain_events_reach_other_listeners(self, wired, bus):
        """Progression events should reach other bus listeners."""
        seen = []

        async def on_level_up(data):
            seen.append(data)

        bus.subscribe("progression.leveled_up", on_level_up)

        await bus.publish(
            "progression.action", {"actor_id": "u-1", "action_type": "PROJECT_COMPLETED"}
        )

        # 100 XP + project_finisher 200
        assert [(d["old_level"], d["new_level"]) for d in seen] == [(1, 2), (2, 3)]

    async def test_listener_failure_is_isolated(self, wired, bus, mocker):
        """A failing progression update should not break the publisher."""
        service, _ = wired
        mocker.patch.object(service, "record_action", side_effect=RuntimeError("boom"))

        results = await bus.publish(
            "progression.action", {"actor_id": "u-1", "action_type": "TASK_CREATED"}
        )

        assert results == [None]
        assert bus.get_metrics_summary()["total_errors"] == 1
