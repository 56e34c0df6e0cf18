"""Unit tests for the achievement catalog and predicates."""

import pytest

from collabxp.domain.models.base import DomainValidationError
from collabxp.domain.models.progression import ProgressionStats
from collabxp.modules.progression.achievements import (
    DEFAULT_REGISTRY,
    Achievement,
    AchievementRegistry,
    Rarity,
    stat_equals,
)
from collabxp.modules.progression.actions import (
    ActionType,
    HelpedTeammate,
    LevelReached,
    MessageSent,
    ProjectCompleted,
    StreakUpdate,
    TaskCompleted,
)


def _ids(achievements):
    return [a.id for a in achievements]


@pytest.mark.unit
class TestDefaultCatalog:
    """Test the built-in achievement catalog."""

    def test_catalog_contents(self):
        """Catalog should hold all sixteen achievements with their rewards and rarities."""
        expected = {
            "first_task": (50, Rarity.COMMON),
            "task_master_10": (100, Rarity.COMMON),
            "task_master_50": (250, Rarity.RARE),
            "task_master_100": (500, Rarity.EPIC),
            "speed_demon": (75, Rarity.RARE),
            "early_bird": (50, Rarity.COMMON),
            "team_player": (100, Rarity.RARE),
            "streak_week": (150, Rarity.RARE),
            "streak_month": (500, Rarity.EPIC),
            "project_creator": (100, Rarity.COMMON),
            "project_finisher": (200, Rarity.RARE),
            "reviewer": (100, Rarity.COMMON),
            "social_butterfly": (75, Rarity.COMMON),
            "milestone_achiever": (200, Rarity.RARE),
            "level_10": (300, Rarity.EPIC),
            "perfectionist": (150, Rarity.RARE),
        }

        assert {a.id: (a.xp_reward, a.rarity) for a in DEFAULT_REGISTRY} == expected

    def test_catalog_entries_for_ui(self):
        """Catalog entries should expose display fields for the UI."""
        entry = DEFAULT_REGISTRY.catalog()[0]

        assert entry == {
            "id": "first_task",
            "name": "Getting Started",
            "description": "Complete your first task",
            "icon": "🎯",
            "xp": 50,
            "rarity": "common",
        }

    def test_lookup(self):
        """Registry should support membership, lookup and len."""
        assert "reviewer" in DEFAULT_REGISTRY
        assert DEFAULT_REGISTRY.get("nope") is None
        assert len(DEFAULT_REGISTRY) == 16


@pytest.mark.unit
class TestEvaluate:
    """Test achievement evaluation against actions and stats."""

    def test_first_task(self):
        """First completed task should unlock first_task."""
        unlocked = DEFAULT_REGISTRY.evaluate(
            TaskCompleted(), ProgressionStats(tasks_completed=1)
        )

        assert _ids(unlocked) == ["first_task"]

    def test_first_task_only_at_exactly_one(self):
        """first_task should not unlock past the first task."""
        unlocked = DEFAULT_REGISTRY.evaluate(
            TaskCompleted(), ProgressionStats(tasks_completed=2)
        )

        assert unlocked == []

    def test_tenth_task_with_flags(self):
        """Tenth task with all flags should unlock every matching achievement in catalog order."""
        action = TaskCompleted(before_deadline=True, completed_today=5, without_revisions=True)

        unlocked = DEFAULT_REGISTRY.evaluate(action, ProgressionStats(tasks_completed=10))

        assert _ids(unlocked) == ["task_master_10", "speed_demon", "early_bird", "perfectionist"]

    def test_already_unlocked_skipped(self):
        """Held achievements should never be returned again."""
        unlocked = DEFAULT_REGISTRY.evaluate(
            TaskCompleted(before_deadline=True),
            ProgressionStats(tasks_completed=1),
            unlocked=["first_task", "early_bird"],
        )

        assert unlocked == []

    def test_held_achievement_predicate_not_evaluated(self):
        """Predicates of held achievements should not run."""
        calls = []

        def predicate(action, stats):
            calls.append(action)
            return True

        registry = AchievementRegistry(
            [
                Achievement(
                    id="watcher",
                    name="Watcher",
                    description="",
                    icon="",
                    xp_reward=1,
                    rarity=Rarity.COMMON,
                    action_type=ActionType.MESSAGE_SENT,
                    predicate=predicate,
                )
            ]
        )

        assert registry.evaluate(MessageSent(), ProgressionStats(), ["watcher"]) == []
        assert calls == []

    def test_scoped_to_action_type(self):
        """Only achievements scoped to the action type should be evaluated."""
        # tasks_completed == 1 but the action is not a task completion
        unlocked = DEFAULT_REGISTRY.evaluate(
            HelpedTeammate(), ProgressionStats(tasks_completed=1, helped_teammates=5)
        )

        assert _ids(unlocked) == ["team_player"]

    def test_project_finisher_always(self):
        """Completing a project should always unlock project_finisher."""
        assert _ids(DEFAULT_REGISTRY.evaluate(ProjectCompleted(), ProgressionStats())) == [
            "project_finisher"
        ]

    @pytest.mark.parametrize(
        "streak, expected",
        [(6, []), (7, ["streak_week"]), (30, ["streak_week", "streak_month"])],
    )
    def test_streak_achievements(self, streak, expected):
        """Streak achievements should unlock at 7 and 30 days."""
        unlocked = DEFAULT_REGISTRY.evaluate(StreakUpdate(streak=streak), ProgressionStats())

        assert _ids(unlocked) == expected

    def test_level_10(self):
        """level_10 should unlock once level 10 is reached."""
        assert DEFAULT_REGISTRY.evaluate(LevelReached(level=9), ProgressionStats()) == []
        assert _ids(DEFAULT_REGISTRY.evaluate(LevelReached(level=11), ProgressionStats())) == [
            "level_10"
        ]

    def test_unknown_stat_never_satisfied(self):
        """A predicate on an unknown stat should never be satisfied."""
        predicate = stat_equals("karma", 0)

        assert predicate(MessageSent(), ProgressionStats()) is False


@pytest.mark.unit
class TestProgress:
    """Test progress toward counter-based achievements."""

    def test_counter_progress(self):
        """Progress should be a percentage capped at 100."""
        reviewer = DEFAULT_REGISTRY.get("reviewer")

        assert reviewer.progress(ProgressionStats(code_reviews=4)) == pytest.approx(40.0)
        assert reviewer.progress(ProgressionStats(code_reviews=25)) == 100.0

    def test_flag_achievements_have_no_progress(self):
        """Flag-based achievements should report no progress."""
        assert DEFAULT_REGISTRY.get("early_bird").progress(ProgressionStats()) is None


@pytest.mark.unit
class TestValidation:
    """Test achievement definition validation."""

    def _make(self, **overrides):
        values = dict(
            id="x",
            name="X",
            description="",
            icon="",
            xp_reward=10,
            rarity=Rarity.COMMON,
            action_type=ActionType.CODE_REVIEW,
            predicate=stat_equals("code_reviews", 1),
        )
        values.update(overrides)
        return Achievement(**values)

    def test_reward_must_be_positive(self):
        """XP reward must be positive."""
        with pytest.raises(DomainValidationError):
            self._make(xp_reward=0)

    def test_progress_needs_target(self):
        """A progress stat without a target should be rejected."""
        with pytest.raises(DomainValidationError):
            self._make(progress_stat="code_reviews")

    def test_duplicate_ids_rejected(self):
        """Registry should reject duplicate achievement ids."""
        with pytest.raises(DomainValidationError):
            AchievementRegistry([self._make(), self._make()])
