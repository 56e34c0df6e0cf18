"""
Typed action events.

Every action a user performs in the marketplace that the progression engine
reacts to is one of the dataclasses below. Each variant knows

- its `ActionType`, which scopes achievement evaluation
- the stat counter it increments (``stat``), if any
- the XP value table key it earns (``xp_key``), if any

`build_action` turns a loose ``(action_type, payload)`` pair coming off the
event bus into a variant; unknown action types yield None.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Type, Union

from collabxp.modules.shared.exceptions import ValidationError


class ActionType(str, Enum):
    TASK_CREATED = "TASK_CREATED"
    TASK_COMPLETED = "TASK_COMPLETED"
    PROJECT_CREATED = "PROJECT_CREATED"
    PROJECT_COMPLETED = "PROJECT_COMPLETED"
    COMMENT_ADDED = "COMMENT_ADDED"
    MILESTONE_REACHED = "MILESTONE_REACHED"
    CODE_REVIEW = "CODE_REVIEW"
    HELPED_TEAMMATE = "HELPED_TEAMMATE"
    MESSAGE_SENT = "MESSAGE_SENT"
    STREAK_UPDATE = "STREAK_UPDATE"
    LEVEL_REACHED = "LEVEL_REACHED"

    @classmethod
    def parse(cls, value: Union["ActionType", str, None]) -> Optional["ActionType"]:
        """
        Case-insensitive lookup; returns None for unknown values.

        >>> ActionType.parse("task_completed") is ActionType.TASK_COMPLETED
        True
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class Action:
    """Base class for action variants."""

    action_type: ClassVar[ActionType]
    stat: ClassVar[Optional[str]] = None
    xp_source: ClassVar[Optional[str]] = None

    @property
    def xp_key(self) -> Optional[str]:
        return self.xp_source


@dataclass(frozen=True)
class TaskCreated(Action):
    action_type: ClassVar[ActionType] = ActionType.TASK_CREATED
    stat: ClassVar[Optional[str]] = "tasks_created"
    xp_source: ClassVar[Optional[str]] = "TASK_CREATED"


@dataclass(frozen=True)
class TaskCompleted(Action):
    """
    A task moved to done.

    ``completed_today`` is the number of tasks the user has completed today,
    this one included, as counted by the caller.
    """

    action_type: ClassVar[ActionType] = ActionType.TASK_COMPLETED
    stat: ClassVar[Optional[str]] = "tasks_completed"
    xp_source: ClassVar[Optional[str]] = "TASK_COMPLETED"

    before_deadline: bool = False
    completed_today: int = 0
    without_revisions: bool = False

    @property
    def xp_key(self) -> Optional[str]:
        return "TASK_COMPLETED_EARLY" if self.before_deadline else "TASK_COMPLETED"


@dataclass(frozen=True)
class ProjectCreated(Action):
    action_type: ClassVar[ActionType] = ActionType.PROJECT_CREATED
    stat: ClassVar[Optional[str]] = "projects_created"
    xp_source: ClassVar[Optional[str]] = "PROJECT_CREATED"


@dataclass(frozen=True)
class ProjectCompleted(Action):
    action_type: ClassVar[ActionType] = ActionType.PROJECT_COMPLETED
    stat: ClassVar[Optional[str]] = "projects_completed"
    xp_source: ClassVar[Optional[str]] = "PROJECT_COMPLETED"


@dataclass(frozen=True)
class CommentAdded(Action):
    action_type: ClassVar[ActionType] = ActionType.COMMENT_ADDED
    stat: ClassVar[Optional[str]] = "comments_added"
    xp_source: ClassVar[Optional[str]] = "COMMENT_ADDED"


@dataclass(frozen=True)
class MilestoneReached(Action):
    action_type: ClassVar[ActionType] = ActionType.MILESTONE_REACHED
    stat: ClassVar[Optional[str]] = "milestones_reached"
    xp_source: ClassVar[Optional[str]] = "MILESTONE_REACHED"


@dataclass(frozen=True)
class CodeReview(Action):
    action_type: ClassVar[ActionType] = ActionType.CODE_REVIEW
    stat: ClassVar[Optional[str]] = "code_reviews"
    xp_source: ClassVar[Optional[str]] = "CODE_REVIEW"


@dataclass(frozen=True)
class HelpedTeammate(Action):
    action_type: ClassVar[ActionType] = ActionType.HELPED_TEAMMATE
    stat: ClassVar[Optional[str]] = "helped_teammates"
    xp_source: ClassVar[Optional[str]] = "HELPED_TEAMMATE"


@dataclass(frozen=True)
class MessageSent(Action):
    # Counted, but earns no XP of its own
    action_type: ClassVar[ActionType] = ActionType.MESSAGE_SENT
    stat: ClassVar[Optional[str]] = "messages_sent"


@dataclass(frozen=True)
class StreakUpdate(Action):
    action_type: ClassVar[ActionType] = ActionType.STREAK_UPDATE

    streak: int = 0


@dataclass(frozen=True)
class LevelReached(Action):
    action_type: ClassVar[ActionType] = ActionType.LEVEL_REACHED

    level: int = 1


ACTION_CLASSES: Dict[ActionType, Type[Action]] = {
    cls.action_type: cls
    for cls in (
        TaskCreated,
        TaskCompleted,
        ProjectCreated,
        ProjectCompleted,
        CommentAdded,
        MilestoneReached,
        CodeReview,
        HelpedTeammate,
        MessageSent,
        StreakUpdate,
        LevelReached,
    )
}

# camelCase keys sent by web clients
_PAYLOAD_ALIASES: Dict[str, str] = {
    "beforeDeadline": "before_deadline",
    "completedToday": "completed_today",
    "withoutRevisions": "without_revisions",
}


def build_action(
    action_type: Union[ActionType, str, None],
    payload: Optional[Mapping[str, Any]] = None,
) -> Optional[Action]:
    """
    Build a typed action from an action type and a loose payload.

    Payload keys that the variant does not declare are ignored. Returns None
    for unknown action types; raises ValidationError for a numeric payload
    value that is not an integer.

    >>> build_action("TASK_COMPLETED", {"before_deadline": True})
    TaskCompleted(before_deadline=True, completed_today=0, without_revisions=False)
    """
    parsed = ActionType.parse(action_type)
    if parsed is None:
        return None

    cls = ACTION_CLASSES[parsed]
    payload = payload or {}
    normalized = {_PAYLOAD_ALIASES.get(key, key): value for key, value in payload.items()}

    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in normalized:
            continue
        value = normalized[f.name]
        if isinstance(f.default, bool):
            kwargs[f.name] = bool(value)
        elif isinstance(f.default, int):
            try:
                kwargs[f.name] = int(value)
            except (TypeError, ValueError) as exc:
                raise ValidationError(
                    f.name, f"must be an integer, got {value!r}"
                ) from exc
        else:
            kwargs[f.name] = value

    return cls(**kwargs)
