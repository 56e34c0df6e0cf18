"""
Achievement catalog and unlock predicates.

Each `Achievement` is scoped to one `ActionType`; only achievements scoped to
the action being processed are evaluated. Predicates receive the typed
action and the user's stats *after* the counter increment for that action.

Counter-based achievements declare ``progress_stat`` and ``target`` so the
read model can report progress toward them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from collabxp.domain.models.base import DomainValidationError
from collabxp.domain.models.progression import ProgressionStats
from collabxp.modules.progression.actions import Action, ActionType

Predicate = Callable[[Action, ProgressionStats], bool]


class Rarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


# ============================================================================
# PREDICATE BUILDERS
# ============================================================================


def stat_equals(stat: str, value: int) -> Predicate:
    """Satisfied when ``stat`` is exactly ``value``; never for an unknown stat."""

    def predicate(action: Action, stats: ProgressionStats) -> bool:
        current = stats.get(stat)
        return current is not None and current == value

    return predicate


def stat_at_least(stat: str, value: int) -> Predicate:
    def predicate(action: Action, stats: ProgressionStats) -> bool:
        current = stats.get(stat)
        return current is not None and current >= value

    return predicate


def action_flag(attribute: str) -> Predicate:
    def predicate(action: Action, stats: ProgressionStats) -> bool:
        return bool(getattr(action, attribute, False))

    return predicate


def action_at_least(attribute: str, value: int) -> Predicate:
    def predicate(action: Action, stats: ProgressionStats) -> bool:
        current = getattr(action, attribute, None)
        return isinstance(current, int) and current >= value

    return predicate


def all_of(*predicates: Predicate) -> Predicate:
    def predicate(action: Action, stats: ProgressionStats) -> bool:
        return all(p(action, stats) for p in predicates)

    return predicate


def always(action: Action, stats: ProgressionStats) -> bool:
    return True


# ============================================================================
# ACHIEVEMENT
# ============================================================================


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    icon: str
    xp_reward: int
    rarity: Rarity
    action_type: ActionType
    predicate: Predicate
    progress_stat: Optional[str] = None
    target: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise DomainValidationError("achievement id cannot be empty", field="id")
        if self.xp_reward <= 0:
            raise DomainValidationError(
                f"achievement '{self.id}' must reward positive XP", field="xp_reward"
            )
        if (self.progress_stat is None) != (self.target is None):
            raise DomainValidationError(
                f"achievement '{self.id}' needs both progress_stat and target",
                field="target",
            )
        if self.target is not None and self.target <= 0:
            raise DomainValidationError(
                f"achievement '{self.id}' target must be positive", field="target"
            )

    def is_satisfied(self, action: Action, stats: ProgressionStats) -> bool:
        if action.action_type is not self.action_type:
            return False
        return bool(self.predicate(action, stats))

    def progress(self, stats: ProgressionStats) -> Optional[float]:
        """Percent toward ``target``, capped at 100; None if not counter-based."""
        if self.progress_stat is None or self.target is None:
            return None
        current = stats.get(self.progress_stat)
        if current is None:
            return 0.0
        return min(current / self.target * 100.0, 100.0)

    def to_catalog_entry(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "xp": self.xp_reward,
            "rarity": self.rarity.value,
        }


class AchievementRegistry:
    """Immutable, ordered catalog of achievements keyed by id."""

    def __init__(self, achievements: Iterable[Achievement]) -> None:
        by_id: Dict[str, Achievement] = {}
        for achievement in achievements:
            if achievement.id in by_id:
                raise DomainValidationError(
                    f"duplicate achievement id '{achievement.id}'", field="id"
                )
            by_id[achievement.id] = achievement

        self._by_id = by_id
        self._by_action: Dict[ActionType, Tuple[Achievement, ...]] = {}
        for achievement in by_id.values():
            self._by_action[achievement.action_type] = self._by_action.get(
                achievement.action_type, ()
            ) + (achievement,)

    def __iter__(self) -> Iterator[Achievement]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, achievement_id: object) -> bool:
        return achievement_id in self._by_id

    def get(self, achievement_id: str) -> Optional[Achievement]:
        return self._by_id.get(achievement_id)

    def for_action(self, action_type: ActionType) -> Tuple[Achievement, ...]:
        return self._by_action.get(action_type, ())

    def evaluate(
        self,
        action: Action,
        stats: ProgressionStats,
        unlocked: Iterable[str] = (),
    ) -> List[Achievement]:
        """
        Achievements newly satisfied by ``action``, in catalog order.

        Already-unlocked ids are skipped without running their predicate.
        """
        held = set(unlocked)
        return [
            achievement
            for achievement in self.for_action(action.action_type)
            if achievement.id not in held and achievement.is_satisfied(action, stats)
        ]

    def catalog(self) -> List[Dict[str, object]]:
        return [achievement.to_catalog_entry() for achievement in self]


# ============================================================================
# DEFAULT CATALOG
# ============================================================================

DEFAULT_ACHIEVEMENTS: Tuple[Achievement, ...] = (
    Achievement(
        id="first_task",
        name="Getting Started",
        description="Complete your first task",
        icon="🎯",
        xp_reward=50,
        rarity=Rarity.COMMON,
        action_type=ActionType.TASK_COMPLETED,
        predicate=stat_equals("tasks_completed", 1),
        progress_stat="tasks_completed",
        target=1,
    ),
    Achievement(
        id="task_master_10",
        name="Task Master",
        description="Complete 10 tasks",
        icon="⭐",
        xp_reward=100,
        rarity=Rarity.COMMON,
        action_type=ActionType.TASK_COMPLETED,
        predicate=stat_equals("tasks_completed", 10),
        progress_stat="tasks_completed",
        target=10,
    ),
    Achievement(
        id="task_master_50",
        name="Task Veteran",
        description="Complete 50 tasks",
        icon="🌟",
        xp_reward=250,
        rarity=Rarity.RARE,
        action_type=ActionType.TASK_COMPLETED,
        predicate=stat_equals("tasks_completed", 50),
        progress_stat="tasks_completed",
        target=50,
    ),
    Achievement(
        id="task_master_100",
        name="Task Legend",
        description="Complete 100 tasks",
        icon="💎",
        xp_reward=500,
        rarity=Rarity.EPIC,
        action_type=ActionType.TASK_COMPLETED,
        predicate=stat_equals("tasks_completed", 100),
        progress_stat="tasks_completed",
        target=100,
    ),
    Achievement(
        id="speed_demon",
        name="Speed Demon",
        description="Complete 5 tasks in one day",
        icon="⚡",
        xp_reward=75,
        rarity=Rarity.RARE,
        action_type=ActionType.TASK_COMPLETED,
        predicate=action_at_least("completed_today", 5),
    ),
    Achievement(
        id="early_bird",
        name="Early Bird",
        description="Complete a task before its deadline",
        icon="🐦",
        xp_reward=50,
        rarity=Rarity.COMMON,
        action_type=ActionType.TASK_COMPLETED,
        predicate=action_flag("before_deadline"),
    ),
    Achievement(
        id="team_player",
        name="Team Player",
        description="Help 5 teammates",
        icon="🤝",
        xp_reward=100,
        rarity=Rarity.RARE,
        action_type=ActionType.HELPED_TEAMMATE,
        predicate=stat_equals("helped_teammates", 5),
        progress_stat="helped_teammates",
        target=5,
    ),
    Achievement(
        id="streak_week",
        name="Week Warrior",
        description="Maintain a 7-day login streak",
        icon="🔥",
        xp_reward=150,
        rarity=Rarity.RARE,
        action_type=ActionType.STREAK_UPDATE,
        predicate=action_at_least("streak", 7),
    ),
    Achievement(
        id="streak_month",
        name="Monthly Master",
        description="Maintain a 30-day login streak",
        icon="🏆",
        xp_reward=500,
        rarity=Rarity.EPIC,
        action_type=ActionType.STREAK_UPDATE,
        predicate=action_at_least("streak", 30),
    ),
    Achievement(
        id="project_creator",
        name="Project Creator",
        description="Create your first project",
        icon="🚀",
        xp_reward=100,
        rarity=Rarity.COMMON,
        action_type=ActionType.PROJECT_CREATED,
        predicate=stat_equals("projects_created", 1),
        progress_stat="projects_created",
        target=1,
    ),
    Achievement(
        id="project_finisher",
        name="Project Finisher",
        description="Complete a project",
        icon="✅",
        xp_reward=200,
        rarity=Rarity.RARE,
        action_type=ActionType.PROJECT_COMPLETED,
        predicate=always,
        progress_stat="projects_completed",
        target=1,
    ),
    Achievement(
        id="reviewer",
        name="Code Reviewer",
        description="Review 10 tasks",
        icon="👀",
        xp_reward=100,
        rarity=Rarity.COMMON,
        action_type=ActionType.CODE_REVIEW,
        predicate=stat_equals("code_reviews", 10),
        progress_stat="code_reviews",
        target=10,
    ),
    Achievement(
        id="social_butterfly",
        name="Social Butterfly",
        description="Send 50 messages",
        icon="💬",
        xp_reward=75,
        rarity=Rarity.COMMON,
        action_type=ActionType.MESSAGE_SENT,
        predicate=stat_equals("messages_sent", 50),
        progress_stat="messages_sent",
        target=50,
    ),
    Achievement(
        id="milestone_achiever",
        name="Milestone Achiever",
        description="Reach 5 milestones",
        icon="🎖️",
        xp_reward=200,
        rarity=Rarity.RARE,
        action_type=ActionType.MILESTONE_REACHED,
        predicate=stat_equals("milestones_reached", 5),
        progress_stat="milestones_reached",
        target=5,
    ),
    Achievement(
        id="level_10",
        name="Rising Star",
        description="Reach level 10",
        icon="⭐",
        xp_reward=300,
        rarity=Rarity.EPIC,
        action_type=ActionType.LEVEL_REACHED,
        predicate=action_at_least("level", 10),
    ),
    Achievement(
        id="perfectionist",
        name="Perfectionist",
        description="Complete 10 tasks with no revisions",
        icon="💯",
        xp_reward=150,
        rarity=Rarity.RARE,
        action_type=ActionType.TASK_COMPLETED,
        predicate=all_of(
            action_flag("without_revisions"),
            stat_at_least("tasks_completed", 10),
        ),
    ),
)

DEFAULT_REGISTRY = AchievementRegistry(DEFAULT_ACHIEVEMENTS)
