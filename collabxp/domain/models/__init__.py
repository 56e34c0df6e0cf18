"""Rich domain models."""

from collabxp.domain.models.base import (
    AggregateRoot,
    DomainEvent,
    DomainValidationError,
    Entity,
)
from collabxp.domain.models.progression import (
    EVENT_ACHIEVEMENT_UNLOCKED,
    EVENT_LEVELED_UP,
    EVENT_STATS_UPDATED,
    EVENT_STREAK_UPDATED,
    EVENT_XP_AWARDED,
    STAT_FIELDS,
    LastXPGain,
    ProgressionState,
    ProgressionStats,
    UserProgression,
)

__all__ = [
    "AggregateRoot",
    "DomainEvent",
    "DomainValidationError",
    "Entity",
    "EVENT_ACHIEVEMENT_UNLOCKED",
    "EVENT_LEVELED_UP",
    "EVENT_STATS_UPDATED",
    "EVENT_STREAK_UPDATED",
    "EVENT_XP_AWARDED",
    "STAT_FIELDS",
    "LastXPGain",
    "ProgressionState",
    "ProgressionStats",
    "UserProgression",
]
