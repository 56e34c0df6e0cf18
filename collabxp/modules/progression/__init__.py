"""
Progression module: XP, levels, login streaks, achievements and stats.

`ProgressionService` is the only writer of progression records;
`ProgressionListener` feeds it from the EventBus. The achievement catalog
(`DEFAULT_REGISTRY`) and XP value table (`XP_VALUES`) are exported read-only
for UI catalog rendering.
"""

from collabxp.modules.progression.achievements import (
    DEFAULT_ACHIEVEMENTS,
    DEFAULT_REGISTRY,
    Achievement,
    AchievementRegistry,
    Rarity,
)
from collabxp.modules.progression.actions import (
    Action,
    ActionType,
    CodeReview,
    CommentAdded,
    HelpedTeammate,
    LevelReached,
    MessageSent,
    MilestoneReached,
    ProjectCompleted,
    ProjectCreated,
    StreakUpdate,
    TaskCompleted,
    TaskCreated,
    build_action,
)
from collabxp.modules.progression.constants import XP_VALUES
from collabxp.modules.progression.levels import DEFAULT_LEVEL_TABLE, LevelTable
from collabxp.modules.progression.listener import ProgressionListener
from collabxp.modules.progression.locks import (
    LocalUserLocks,
    RedisUserLocks,
    UserLockProvider,
)
from collabxp.modules.progression.repository import SqlProgressionStore
from collabxp.modules.progression.service import (
    ActionOutcome,
    ProgressionService,
    XPAwardResult,
)
from collabxp.modules.progression.store import InMemoryProgressionStore, ProgressionStore

__all__ = [
    "Achievement",
    "AchievementRegistry",
    "Action",
    "ActionOutcome",
    "ActionType",
    "CodeReview",
    "CommentAdded",
    "DEFAULT_ACHIEVEMENTS",
    "DEFAULT_LEVEL_TABLE",
    "DEFAULT_REGISTRY",
    "HelpedTeammate",
    "InMemoryProgressionStore",
    "LevelReached",
    "LevelTable",
    "LocalUserLocks",
    "MessageSent",
    "MilestoneReached",
    "ProgressionListener",
    "ProgressionService",
    "ProgressionStore",
    "ProjectCompleted",
    "ProjectCreated",
    "Rarity",
    "RedisUserLocks",
    "SqlProgressionStore",
    "StreakUpdate",
    "TaskCompleted",
    "TaskCreated",
    "UserLockProvider",
    "XPAwardResult",
    "XP_VALUES",
    "build_action",
]
