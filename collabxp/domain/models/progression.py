"""
Progression domain model.

Purpose
-------
Hold one user's progression (XP, derived level, achievements, login streak
and lifetime activity counters) and enforce its invariants:

- ``level`` is always ``level_table.level_from_xp(xp)``; there is no setter
- XP and stat counters never decrease
- achievement ids are never removed or duplicated
- the streak only changes through ``record_login``

Value objects (`ProgressionStats`, `LastXPGain`, `ProgressionState`) are
frozen dataclasses. `ProgressionState` is the persistence snapshot handed to
and from progression stores; `UserProgression` is the aggregate services
mutate. Every state change records a domain event on the aggregate.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Tuple

from collabxp.domain.models.base import (
    AggregateRoot,
    DomainValidationError,
    validate_non_negative,
    validate_positive,
)

if TYPE_CHECKING:
    from collabxp.modules.progression.levels import LevelTable


EVENT_XP_AWARDED = "progression.xp_awarded"
EVENT_LEVELED_UP = "progression.leveled_up"
EVENT_ACHIEVEMENT_UNLOCKED = "progression.achievement_unlocked"
EVENT_STREAK_UPDATED = "progression.streak_updated"
EVENT_STATS_UPDATED = "progression.stats_updated"


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value)))


# ============================================================================
# VALUE OBJECTS
# ============================================================================


@dataclass(frozen=True)
class ProgressionStats:
    """Lifetime activity counters. Every counter is >= 0 and non-decreasing."""

    tasks_completed: int = 0
    tasks_created: int = 0
    projects_created: int = 0
    projects_completed: int = 0
    comments_added: int = 0
    milestones_reached: int = 0
    code_reviews: int = 0
    messages_sent: int = 0
    helped_teammates: int = 0

    def __post_init__(self) -> None:
        for stat in STAT_FIELDS:
            validate_non_negative(getattr(self, stat), stat)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ProgressionStats":
        """Build from a persisted mapping; unknown keys are ignored, missing ones are 0."""
        data = data or {}
        return cls(**{stat: int(data.get(stat, 0) or 0) for stat in STAT_FIELDS})

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    def get(self, stat: str) -> Optional[int]:
        """Counter value, or None for a name that is not a counter."""
        if stat not in STAT_FIELDS:
            return None
        return getattr(self, stat)

    def incremented(self, stat: str, by: int = 1) -> "ProgressionStats":
        if stat not in STAT_FIELDS:
            raise DomainValidationError(f"unknown stat '{stat}'", field="stat")
        validate_positive(by, "increment_by")
        return replace(self, **{stat: getattr(self, stat) + by})


STAT_FIELDS: Tuple[str, ...] = tuple(f.name for f in fields(ProgressionStats))


@dataclass(frozen=True)
class LastXPGain:
    amount: int
    reason: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["LastXPGain"]:
        if not data:
            return None
        return cls(
            amount=int(data["amount"]),
            reason=str(data.get("reason", "")),
            timestamp=_parse_datetime(data["timestamp"]),
        )


@dataclass(frozen=True)
class ProgressionState:
    """
    Immutable persistence snapshot of one user's progression.

    ``level`` is stored for querying only; loading an aggregate recomputes it
    from ``xp``.
    """

    user_id: str
    xp: int = 0
    level: int = 1
    achievements: Tuple[str, ...] = ()
    badges: Tuple[str, ...] = ()
    streak: int = 0
    last_login: Optional[datetime] = None
    stats: ProgressionStats = field(default_factory=ProgressionStats)
    last_xp_gain: Optional[LastXPGain] = None

    @classmethod
    def default(cls, user_id: str) -> "ProgressionState":
        return cls(user_id=user_id)


# ============================================================================
# AGGREGATE ROOT
# ============================================================================


class UserProgression(AggregateRoot):
    """
    One user's progression record.

    Business operations (`gain_xp`, `unlock_achievements`, `increment_stat`,
    `record_login`) validate their input, mutate state and record domain
    events. Services publish the events after persisting `to_state()`.
    """

    def __init__(
        self,
        user_id: str,
        level_table: "LevelTable",
        *,
        xp: int = 0,
        achievements: Iterable[str] = (),
        badges: Iterable[str] = (),
        streak: int = 0,
        last_login: Optional[datetime] = None,
        stats: Optional[ProgressionStats] = None,
        last_xp_gain: Optional[LastXPGain] = None,
    ) -> None:
        super().__init__(user_id)
        validate_non_negative(xp, "xp")
        validate_non_negative(streak, "streak")

        self._levels = level_table
        self._xp = xp
        self._achievements: List[str] = list(dict.fromkeys(achievements))
        self._badges: List[str] = list(badges)
        self._streak = streak
        self._last_login = ensure_utc(last_login) if last_login else None
        self._stats = stats or ProgressionStats()
        self._last_xp_gain = last_xp_gain

    # ========================================================================
    # FACTORIES & SNAPSHOTS
    # ========================================================================

    @classmethod
    def from_state(
        cls, state: ProgressionState, level_table: "LevelTable"
    ) -> "UserProgression":
        return cls(
            state.user_id,
            level_table,
            xp=state.xp,
            achievements=state.achievements,
            badges=state.badges,
            streak=state.streak,
            last_login=state.last_login,
            stats=state.stats,
            last_xp_gain=state.last_xp_gain,
        )

    def to_state(self) -> ProgressionState:
        return ProgressionState(
            user_id=self.id,
            xp=self._xp,
            level=self.level,
            achievements=tuple(self._achievements),
            badges=tuple(self._badges),
            streak=self._streak,
            last_login=self._last_login,
            stats=self._stats,
            last_xp_gain=self._last_xp_gain,
        )

    # ========================================================================
    # READ ACCESS
    # ========================================================================

    @property
    def xp(self) -> int:
        return self._xp

    @property
    def level(self) -> int:
        return self._levels.level_from_xp(self._xp)

    @property
    def next_level_xp(self) -> int:
        return self._levels.next_level_xp(self.level)

    @property
    def achievements(self) -> Tuple[str, ...]:
        return tuple(self._achievements)

    @property
    def badges(self) -> Tuple[str, ...]:
        return tuple(self._badges)

    @property
    def streak(self) -> int:
        return self._streak

    @property
    def last_login(self) -> Optional[datetime]:
        return self._last_login

    @property
    def stats(self) -> ProgressionStats:
        return self._stats

    @property
    def last_xp_gain(self) -> Optional[LastXPGain]:
        return self._last_xp_gain

    def has_achievement(self, achievement_id: str) -> bool:
        return achievement_id in self._achievements

    # ========================================================================
    # BUSINESS OPERATIONS
    # ========================================================================

    def gain_xp(self, amount: int, reason: str, now: datetime) -> bool:
        """
        Add XP, recompute the level and remember the gain.

        Returns True when the level went up.
        """
        validate_positive(amount, "amount")

        old_level = self.level
        self._xp += amount
        self._last_xp_gain = LastXPGain(
            amount=amount, reason=reason, timestamp=ensure_utc(now)
        )
        new_level = self.level

        self.add_domain_event(
            EVENT_XP_AWARDED,
            {
                "user_id": self.id,
                "amount": amount,
                "reason": reason,
                "xp": self._xp,
                "level": new_level,
            },
        )

        if new_level > old_level:
            self.add_domain_event(
                EVENT_LEVELED_UP,
                {
                    "user_id": self.id,
                    "old_level": old_level,
                    "new_level": new_level,
                    "xp": self._xp,
                },
            )
            return True
        return False

    def unlock_achievements(self, achievement_ids: Iterable[str]) -> List[str]:
        """Append ids not already held, in order; returns the newly added ids."""
        added: List[str] = []
        for achievement_id in achievement_ids:
            if achievement_id in self._achievements or achievement_id in added:
                continue
            added.append(achievement_id)

        self._achievements.extend(added)
        for achievement_id in added:
            self.add_domain_event(
                EVENT_ACHIEVEMENT_UNLOCKED,
                {"user_id": self.id, "achievement_id": achievement_id},
            )
        return added

    def increment_stat(self, stat: str, by: int = 1) -> ProgressionStats:
        self._stats = self._stats.incremented(stat, by)
        self.add_domain_event(
            EVENT_STATS_UPDATED,
            {
                "user_id": self.id,
                "stat": stat,
                "increment": by,
                "value": getattr(self._stats, stat),
            },
        )
        return self._stats

    def record_login(self, streak: int, now: datetime) -> None:
        validate_positive(streak, "streak")

        previous = self._streak
        self._streak = streak
        self._last_login = ensure_utc(now)
        self.add_domain_event(
            EVENT_STREAK_UPDATED,
            {
                "user_id": self.id,
                "previous_streak": previous,
                "streak": streak,
            },
        )

    # ========================================================================
    # READ MODEL
    # ========================================================================

    def to_game_data(self) -> Dict[str, Any]:
        return {
            "xp": self._xp,
            "level": self.level,
            "achievements": list(self._achievements),
            "badges": list(self._badges),
            "streak": self._streak,
            "last_login": self._last_login.isoformat() if self._last_login else None,
            "stats": self._stats.to_dict(),
            "next_level_xp": self.next_level_xp,
        }
