"""
Unit tests for ProgressionService.

Tests XP awards, achievement evaluation, login streaks, action processing,
stats counters and the read model against the in-memory store.
"""

import asyncio
import logging
from datetime import timedelta

import pytest

from collabxp.core.exceptions import LockAcquisitionError
from collabxp.domain.models.progression import ProgressionState, ProgressionStats
from collabxp.modules.progression.actions import ActionType, TaskCompleted
from collabxp.modules.progression.locks import LocalUserLocks
from collabxp.modules.progression.service import ProgressionService
from collabxp.modules.progression.store import InMemoryProgressionStore
from collabxp.modules.shared.exceptions import InvalidAmountError, ValidationError
from tests.conftest import published_events, published_payloads

USER = "user-1"


async def _seed(store: InMemoryProgressionStore, state: ProgressionState) -> None:
    await store.apply_update(state.user_id, lambda current: (state, None))


def _error_record(caplog, operation: str):
    prefix = f"Service error during {operation}"
    return next(r for r in caplog.records if r.getMessage().startswith(prefix))


@pytest.mark.unit
class TestAwardXP:
    """Test XP awards and level-ups."""

    async def test_award_without_level_up(self, service):
        """Small awards should add XP without levelling up."""
        result = await service.award_xp(USER, 30, "bonus")

        assert result.to_dict() == {"xp": 30, "level": 1, "leveled_up": False}

    async def test_award_levels_up(self, service, mock_event_bus):
        """Crossing a threshold should level up and publish both events."""
        await service.award_xp(USER, 30, "bonus")

        result = await service.award_xp(USER, 80, "bonus")

        assert result.xp == 110
        assert result.level == 2
        assert result.leveled_up is True
        assert published_events(mock_event_bus)[-2:] == [
            "progression.xp_awarded",
            "progression.leveled_up",
        ]

    @pytest.mark.parametrize("amount", [0, -5, 1.5, "10", True, None])
    async def test_invalid_amount_writes_nothing(
        self, service, memory_store, mock_event_bus, amount
    ):
        """Invalid amounts should be rejected before any write."""
        with pytest.raises(InvalidAmountError):
            await service.award_xp(USER, amount, "bonus")

        assert len(memory_store) == 0
        mock_event_bus.publish.assert_not_awaited()

    async def test_invalid_amount_is_a_validation_error(self, service):
        """InvalidAmountError should be a ValidationError."""
        with pytest.raises(ValidationError):
            await service.award_xp(USER, 0, "bonus")

    async def test_records_last_xp_gain(self, service, memory_store, clock):
        """Awards should record the last XP gain with reason and time."""
        await service.award_xp(USER, 40, "mentoring")

        state = await memory_store.get_record(USER)
        assert state.last_xp_gain.amount == 40
        assert state.last_xp_gain.reason == "mentoring"
        assert state.last_xp_gain.timestamp == clock.now

    async def test_reaching_level_10_unlocks_level_achievement(self, service):
        """Reaching level 10 should unlock level_10 and grant its reward."""
        result = await service.award_xp(USER, 11000, "import")

        data = await service.get_user_game_data(USER)
        assert data["achievements"] == ["level_10"]
        assert result.xp == 11300
        assert result.level == 10

    async def test_level_achievement_reward_does_not_cascade_again(self, service, mock_event_bus):
        """The level_10 reward should not trigger another level check."""
        result = await service.award_xp(USER, 14800, "import")

        # level_10 reward pushes the user to level 11 without another evaluation
        assert result.xp == 15100
        assert result.level == 11
        assert len(published_payloads(mock_event_bus, "progression.achievement_unlocked")) == 1

    async def test_integer_user_ids_are_normalized(self, service):
        """Integer user ids should be stored as strings."""
        await service.award_xp(42, 10, "bonus")

        data = await service.get_user_game_data("42")
        assert data["xp"] == 10

    async def test_blank_user_id_rejected(self, service):
        """Blank user ids should be rejected."""
        with pytest.raises(ValidationError):
            await service.award_xp("  ", 10, "bonus")

    async def test_concurrent_awards_are_not_lost(self, service):
        """Concurrent awards for one user should all be applied."""
        await asyncio.gather(*(service.award_xp(USER, 10, "bonus") for _ in range(20)))

        data = await service.get_user_game_data(USER)
        assert data["xp"] == 200
        assert data["level"] == 2


@pytest.mark.unit
class TestCheckAchievements:
    """Test achievement checks for actions."""

    async def test_first_task_scenario(self, service, memory_store):
        """First task after 110 XP should unlock first_task and reach 160 XP."""
        await service.award_xp(USER, 30, "bonus")
        await service.award_xp(USER, 80, "bonus")
        await service.update_user_stats(USER, "tasks_completed")

        unlocked = await service.check_achievements(USER, "TASK_COMPLETED")

        assert [a.id for a in unlocked] == ["first_task"]
        state = await memory_store.get_record(USER)
        assert state.xp == 160
        assert state.achievements == ("first_task",)
        assert state.last_xp_gain.reason == "Achievements unlocked"

    async def test_rewards_are_summed_into_one_award(self, service, memory_store, mock_event_bus):
        """Several unlocks should be granted as one summed award."""
        await service.update_user_stats(USER, "tasks_completed", 10)

        unlocked = await service.check_achievements(
            USER,
            ActionType.TASK_COMPLETED,
            {"before_deadline": True, "completed_today": 5, "without_revisions": True},
        )

        assert [a.id for a in unlocked] == [
            "task_master_10",
            "speed_demon",
            "early_bird",
            "perfectionist",
        ]
        awards = published_payloads(mock_event_bus, "progression.xp_awarded")
        assert [p["amount"] for p in awards] == [375]
        state = await memory_store.get_record(USER)
        assert state.xp == 375
        assert state.level == 3

    async def test_already_unlocked_is_not_repeated(self, service):
        """Held achievements should not be unlocked twice."""
        await service.update_user_stats(USER, "tasks_completed")
        await service.check_achievements(USER, "TASK_COMPLETED")

        assert await service.check_achievements(USER, "TASK_COMPLETED") == []

        data = await service.get_user_game_data(USER)
        assert data["xp"] == 50

    async def test_unknown_action_type(self, service, memory_store, mock_event_bus):
        """Unknown action types should return nothing and write nothing."""
        assert await service.check_achievements(USER, "DANCE_OFF") == []

        assert len(memory_store) == 0
        mock_event_bus.publish.assert_not_awaited()
        assert service.get_metrics()["unknown_actions"] == 1

    async def test_nothing_satisfied_writes_nothing(self, service, memory_store):
        """No satisfied achievement should mean no write."""
        assert await service.check_achievements(USER, "CODE_REVIEW") == []

        assert len(memory_store) == 0

    async def test_typed_action(self, service):
        """Typed actions should be accepted directly."""
        unlocked = await service.check_achievements(USER, TaskCompleted(before_deadline=True))

        assert [a.id for a in unlocked] == ["early_bird"]


@pytest.mark.unit
class TestLoginStreak:
    """Test daily login streak updates."""

    async def test_first_login(self, service, memory_store, clock):
        """First login should start the streak and award the daily XP."""
        streak = await service.update_login_streak(USER)

        state = await memory_store.get_record(USER)
        assert streak == 1
        assert state.xp == 5
        assert state.last_login == clock.now

    async def test_same_day_is_a_no_op(self, service, mock_event_bus, clock):
        """A second login the same day should change nothing."""
        await service.update_login_streak(USER)
        published = mock_event_bus.publish.await_count
        clock.advance(hours=8)

        streak = await service.update_login_streak(USER)

        data = await service.get_user_game_data(USER)
        assert streak == 1
        assert data["xp"] == 5
        assert mock_event_bus.publish.await_count == published

    async def test_consecutive_days_grow_with_bonus(self, service, clock):
        """Consecutive days should grow the streak and add the bonus."""
        await service.update_login_streak(USER)
        clock.advance(days=1)

        streak = await service.update_login_streak(USER)

        data = await service.get_user_game_data(USER)
        assert streak == 2
        assert data["xp"] == 5 + 15

    async def test_gap_resets_streak(self, service, clock):
        """A missed day should reset the streak to 1."""
        await service.update_login_streak(USER)
        clock.advance(days=1)
        await service.update_login_streak(USER)
        clock.advance(days=3)

        streak = await service.update_login_streak(USER)

        data = await service.get_user_game_data(USER)
        assert streak == 1
        assert data["xp"] == 5 + 15 + 5

    async def test_seventh_day_unlocks_streak_week(self, service, memory_store, clock):
        """The seventh consecutive day should unlock streak_week."""
        await _seed(
            memory_store,
            ProgressionState(user_id=USER, streak=6, last_login=clock.now - timedelta(days=1)),
        )

        streak = await service.update_login_streak(USER)

        state = await memory_store.get_record(USER)
        assert streak == 7
        assert state.achievements == ("streak_week",)
        assert state.xp == 15 + 150

    async def test_streak_events(self, service, mock_event_bus):
        """Streak updates should publish a streak event."""
        await service.update_login_streak(USER)

        payload = published_payloads(mock_event_bus, "progression.streak_updated")[0]
        assert payload == {"user_id": USER, "previous_streak": 0, "streak": 1}


@pytest.mark.unit
class TestRecordAction:
    """Test full action processing."""

    async def test_first_task_completion(self, service, mock_event_bus):
        """A first task should count, award XP and unlock first_task."""
        outcome = await service.record_action(USER, "TASK_COMPLETED")

        assert outcome.to_dict() == {
            "xp": 75,
            "level": 1,
            "leveled_up": False,
            "xp_awarded": 75,
            "unlocked": ["first_task"],
        }
        assert published_events(mock_event_bus) == [
            "progression.stats_updated",
            "progression.xp_awarded",
            "progression.achievement_unlocked",
            "progression.xp_awarded",
        ]

    async def test_early_completion(self, service):
        """Early completion should earn the early XP value."""
        outcome = await service.record_action(
            USER, "TASK_COMPLETED", {"beforeDeadline": True}
        )

        assert outcome.xp == 35 + 50 + 50
        assert outcome.level == 2
        assert outcome.leveled_up is True
        assert outcome.unlocked == ("first_task", "early_bird")

    async def test_message_sent_only_counts(self, service):
        """Messages should only increment the counter."""
        outcome = await service.record_action(USER, ActionType.MESSAGE_SENT)

        data = await service.get_user_game_data(USER)
        assert outcome.xp_awarded == 0
        assert data["stats"]["messages_sent"] == 1
        assert data["xp"] == 0

    async def test_fiftieth_message(self, service, memory_store):
        """The fiftieth message should unlock social_butterfly."""
        await _seed(
            memory_store,
            ProgressionState(user_id=USER, stats=ProgressionStats(messages_sent=49)),
        )

        outcome = await service.record_action(USER, "MESSAGE_SENT")

        assert outcome.unlocked == ("social_butterfly",)
        assert outcome.xp_awarded == 75

    async def test_unknown_action(self, service, memory_store):
        """Unknown actions should return None and write nothing."""
        assert await service.record_action(USER, "DANCE_OFF", {}) is None

        assert len(memory_store) == 0

    async def test_action_without_effect_writes_nothing(self, service, memory_store, mock_event_bus):
        """An action with no effect should not write or publish."""
        outcome = await service.record_action(USER, "STREAK_UPDATE", {"streak": 3})

        assert outcome.xp_awarded == 0
        assert len(memory_store) == 0
        mock_event_bus.publish.assert_not_awaited()

    async def test_xp_value_override_from_config(self, memory_store, config_manager, clock):
        """Configured XP values should override the defaults."""
        config_manager.set("progression.xp_values.TASK_CREATED", 12)
        service = ProgressionService(memory_store, config_manager, None, clock=clock)

        outcome = await service.record_action(USER, "TASK_CREATED")

        assert outcome.xp_awarded == 12


@pytest.mark.unit
class TestUpdateUserStats:
    """Test direct stat counter updates."""

    async def test_increment(self, service):
        """Stats should increment by the given amount."""
        stats = await service.update_user_stats(USER, "code_reviews", 3)

        assert stats.code_reviews == 3

    async def test_unknown_stat(self, service, memory_store):
        """Unknown stat names should raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            await service.update_user_stats(USER, "karma")

        assert exc_info.value.field == "stat_name"
        assert len(memory_store) == 0

    @pytest.mark.parametrize("increment", [0, -2, 1.0])
    async def test_increment_must_be_positive(self, service, increment):
        """Increments must be positive."""
        with pytest.raises(ValidationError):
            await service.update_user_stats(USER, "code_reviews", increment)


@pytest.mark.unit
class TestReadModel:
    """Test the read-only game data views."""

    async def test_default_game_data(self, service, memory_store):
        """Unknown users should get the default shape without a write."""
        data = await service.get_user_game_data("nobody")

        assert data == {
            "xp": 0,
            "level": 1,
            "achievements": [],
            "badges": [],
            "streak": 0,
            "last_login": None,
            "stats": {
                "tasks_completed": 0,
                "tasks_created": 0,
                "projects_created": 0,
                "projects_completed": 0,
                "comments_added": 0,
                "milestones_reached": 0,
                "code_reviews": 0,
                "messages_sent": 0,
                "helped_teammates": 0,
            },
            "next_level_xp": 100,
        }
        assert len(memory_store) == 0

    async def test_achievement_progress(self, service):
        """Progress should cover counter achievements and show 100 once unlocked."""
        await service.update_user_stats(USER, "code_reviews", 4)
        await service.record_action(USER, "TASK_COMPLETED")

        progress = await service.get_achievement_progress(USER)

        assert progress["reviewer"] == pytest.approx(40.0)
        assert progress["first_task"] == 100.0
        assert progress["task_master_10"] == pytest.approx(10.0)
        assert "early_bird" not in progress
        assert len(progress) == 10


@pytest.mark.unit
class TestErrorPropagation:
    """Test storage and lock failures."""

    async def test_storage_errors_propagate(self, service, memory_store, mock_event_bus, mocker):
        """Storage errors should propagate unchanged without publishing."""
        mocker.patch.object(
            memory_store, "apply_update", side_effect=RuntimeError("disk full")
        )

        with pytest.raises(RuntimeError, match="disk full"):
            await service.award_xp(USER, 10, "bonus")

        mock_event_bus.publish.assert_not_awaited()
        assert service.get_metrics()["errors"] == 1

    async def test_storage_errors_logged_as_alerts(self, service, memory_store, mocker, caplog):
        """Unexpected storage failures should be logged at ERROR and flagged for alerting."""
        mocker.patch.object(
            memory_store, "apply_update", side_effect=RuntimeError("disk full")
        )

        with caplog.at_level(logging.DEBUG), pytest.raises(RuntimeError):
            await service.award_xp(USER, 10, "bonus")

        record = _error_record(caplog, "award_xp")
        assert record.levelno == logging.ERROR
        assert record.severity == "error"
        assert record.alert is True
        assert record.transient is False

    async def test_lock_timeouts_logged_as_warnings(self, memory_store, config_manager, clock, caplog):
        """A lock timeout should be logged at WARNING as a transient, non-alerting error."""
        locks = LocalUserLocks(wait_timeout=0.01)
        service = ProgressionService(memory_store, config_manager, locks=locks, clock=clock)

        with caplog.at_level(logging.DEBUG):
            async with locks.hold(USER):
                with pytest.raises(LockAcquisitionError):
                    await service.award_xp(USER, 10, "bonus")

        record = _error_record(caplog, "award_xp")
        assert record.levelno == logging.WARNING
        assert record.severity == "warning"
        assert record.alert is False
        assert record.transient is True
        assert service.get_metrics()["errors"] == 1
