"""
Progression service: the only writer of progression records.

Features:
- XP awards with derived levels and level-reached achievement cascade
- Action processing (stat counter, action XP, achievement unlocks) in one write
- Calendar-day login streaks with daily and streak bonus XP
- Read model for UI rendering (game data, achievement progress)

Every mutating operation:
1. validates its input before touching storage
2. holds the per-user lock from the configured `UserLockProvider`
3. runs one synchronous mutation through ``store.apply_update``
4. publishes the aggregate's domain events once the write succeeded

Storage errors propagate unchanged; nothing is retried here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from collabxp.core.logging.logger import LogContext, get_logger
from collabxp.core.validation.input_validator import InputValidator
from collabxp.domain.models.base import DomainEvent
from collabxp.domain.models.progression import (
    STAT_FIELDS,
    ProgressionState,
    ProgressionStats,
    UserProgression,
)
from collabxp.modules.progression.achievements import (
    DEFAULT_REGISTRY,
    Achievement,
    AchievementRegistry,
)
from collabxp.modules.progression.actions import (
    Action,
    ActionType,
    LevelReached,
    StreakUpdate,
    build_action,
)
from collabxp.modules.progression.constants import (
    ACHIEVEMENTS_REASON,
    CONFIG_LOCK_WAIT_SECONDS,
    resolve_xp_values,
)
from collabxp.modules.progression.levels import LevelTable
from collabxp.modules.progression.locks import LocalUserLocks, UserLockProvider
from collabxp.modules.progression.store import ProgressionStore
from collabxp.modules.progression.streak import LoginKind, load_timezone, resolve_streak
from collabxp.modules.shared.base_service import BaseService
from collabxp.modules.shared.exceptions import ValidationError

ActionInput = Union[Action, ActionType, str]
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class XPAwardResult:
    xp: int
    level: int
    leveled_up: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"xp": self.xp, "level": self.level, "leveled_up": self.leveled_up}


@dataclass(frozen=True)
class ActionOutcome:
    """Result of processing one action event."""

    xp: int
    level: int
    leveled_up: bool
    xp_awarded: int
    unlocked: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "xp": self.xp,
            "level": self.level,
            "leveled_up": self.leveled_up,
            "xp_awarded": self.xp_awarded,
            "unlocked": list(self.unlocked),
        }


class ProgressionService(BaseService):
    """
    Orchestrates XP, levels, streaks, achievements and stats for users.

    Args:
        store: Progression persistence port
        config_manager: ConfigManager (class or instance)
        event_bus: EventBus for domain events, or None to publish nothing
        logger: Logger, defaults to this module's logger
        level_table: Level thresholds, defaults to ``progression.level_thresholds``
        registry: Achievement catalog
        locks: Per-user lock provider, defaults to in-process asyncio locks
        clock: Returns the current UTC instant
    """

    def __init__(
        self,
        store: ProgressionStore,
        config_manager: Any,
        event_bus: Any = None,
        logger: Optional[Logger] = None,
        *,
        level_table: Optional[LevelTable] = None,
        registry: AchievementRegistry = DEFAULT_REGISTRY,
        locks: Optional[UserLockProvider] = None,
        clock: Clock = _utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._store = store
        self._levels = level_table or LevelTable.from_config(config_manager)
        self._registry = registry
        self._xp_values = resolve_xp_values(config_manager)
        self._timezone = load_timezone(config_manager)
        self._locks = locks or LocalUserLocks(
            wait_timeout=self.get_config(CONFIG_LOCK_WAIT_SECONDS, None)
        )
        self._clock = clock

        self._metrics: Dict[str, int] = {
            "xp_awards": 0,
            "actions_processed": 0,
            "achievements_unlocked": 0,
            "logins": 0,
            "stat_updates": 0,
            "unknown_actions": 0,
            "errors": 0,
        }

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    @property
    def level_table(self) -> LevelTable:
        return self._levels

    @property
    def registry(self) -> AchievementRegistry:
        return self._registry

    @property
    def xp_values(self) -> Mapping[str, int]:
        return self._xp_values

    # ========================================================================
    # XP
    # ========================================================================

    async def award_xp(self, user_id: Any, amount: Any, reason: str) -> XPAwardResult:
        """
        Add ``amount`` XP to the user and recompute their level.

        Reaching a new level evaluates level-scoped achievements once; XP from
        those achievements does not trigger a further evaluation.

        Raises:
            InvalidAmountError: ``amount`` is not a positive int (nothing written)
            ValidationError: ``user_id`` is blank
        """
        amount = InputValidator.validate_xp_amount(amount)
        user_id = InputValidator.validate_user_id(user_id)
        now = self._clock()

        def mutation(
            state: Optional[ProgressionState],
        ) -> Tuple[ProgressionState, Tuple[XPAwardResult, List[DomainEvent]]]:
            progression = self._load(user_id, state)
            start_level = progression.level

            if progression.gain_xp(amount, reason, now):
                self._cascade_level_achievements(progression, now)

            result = XPAwardResult(
                xp=progression.xp,
                level=progression.level,
                leveled_up=progression.level > start_level,
            )
            return progression.to_state(), (result, progression.clear_domain_events())

        result, events = await self._mutate(user_id, "award_xp", mutation)
        self._metrics["xp_awards"] += 1
        self.log_operation(
            "award_xp",
            user_id=user_id,
            amount=amount,
            reason=reason,
            xp=result.xp,
            level=result.level,
            leveled_up=result.leveled_up,
        )
        await self._publish(events)
        return result

    # ========================================================================
    # ACHIEVEMENTS
    # ========================================================================

    async def check_achievements(
        self,
        user_id: Any,
        action: ActionInput,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> List[Achievement]:
        """
        Unlock every achievement newly satisfied by ``action``.

        Evaluates against the user's current stats; rewards of all unlocked
        achievements are summed into a single award. Unknown action types
        return an empty list.
        """
        user_id = InputValidator.validate_user_id(user_id)
        typed = self._resolve_action(action, payload)
        if typed is None:
            return []

        now = self._clock()
        cascade = typed.action_type is not ActionType.LEVEL_REACHED

        def mutation(
            state: Optional[ProgressionState],
        ) -> Tuple[Optional[ProgressionState], Tuple[List[Achievement], List[DomainEvent]]]:
            progression = self._load(user_id, state)
            satisfied = self._registry.evaluate(
                typed, progression.stats, progression.achievements
            )
            if not satisfied:
                return None, ([], [])

            unlocked = self._grant_achievements(progression, satisfied, now, cascade=cascade)
            return progression.to_state(), (unlocked, progression.clear_domain_events())

        unlocked, events = await self._mutate(user_id, "check_achievements", mutation)
        if unlocked:
            self.log_operation(
                "check_achievements",
                user_id=user_id,
                action_type=typed.action_type.value,
                unlocked=[a.id for a in unlocked],
            )
        await self._publish(events)
        return unlocked

    async def get_achievement_progress(self, user_id: Any) -> Dict[str, float]:
        """
        Percent progress toward each counter-based achievement.

        Unlocked achievements report 100.0; values are capped at 100.
        """
        progression = await self._read(user_id)

        progress: Dict[str, float] = {}
        for achievement in self._registry:
            value = achievement.progress(progression.stats)
            if value is None:
                continue
            if progression.has_achievement(achievement.id):
                value = 100.0
            progress[achievement.id] = value
        return progress

    # ========================================================================
    # STREAKS
    # ========================================================================

    async def update_login_streak(self, user_id: Any) -> int:
        """
        Register a login and return the resulting streak.

        A second login on the same calendar day changes nothing and writes
        nothing.
        """
        user_id = InputValidator.validate_user_id(user_id)
        now = self._clock()

        def mutation(
            state: Optional[ProgressionState],
        ) -> Tuple[Optional[ProgressionState], Tuple[int, LoginKind, List[DomainEvent]]]:
            progression = self._load(user_id, state)
            decision = resolve_streak(
                progression.streak, progression.last_login, now, self._timezone
            )
            if not decision.changes_state:
                return None, (progression.streak, decision.kind, [])

            progression.record_login(decision.streak, now)

            amount = sum(self._xp_values[key] for key in decision.xp_keys)
            reason = " + ".join(key.lower() for key in decision.xp_keys)
            if progression.gain_xp(amount, reason, now):
                self._cascade_level_achievements(progression, now)

            if decision.kind is LoginKind.CONSECUTIVE:
                streak_action = StreakUpdate(streak=decision.streak)
                satisfied = self._registry.evaluate(
                    streak_action, progression.stats, progression.achievements
                )
                if satisfied:
                    self._grant_achievements(progression, satisfied, now, cascade=True)

            return progression.to_state(), (
                progression.streak,
                decision.kind,
                progression.clear_domain_events(),
            )

        streak, kind, events = await self._mutate(user_id, "update_login_streak", mutation)
        if kind is LoginKind.SAME_DAY:
            self.log.debug(
                "Login on the same day, streak unchanged",
                extra={"user_id": user_id, "streak": streak},
            )
        else:
            self._metrics["logins"] += 1
            self.log_operation(
                "update_login_streak", user_id=user_id, streak=streak, kind=kind.value
            )
        await self._publish(events)
        return streak

    # ========================================================================
    # ACTIONS & STATS
    # ========================================================================

    async def record_action(
        self,
        user_id: Any,
        action: ActionInput,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> Optional[ActionOutcome]:
        """
        Process one user action in a single write.

        Increments the action's stat counter, awards its XP, then unlocks any
        achievements the updated stats satisfy. Returns None for an unknown
        action type.
        """
        user_id = InputValidator.validate_user_id(user_id)
        typed = self._resolve_action(action, payload)
        if typed is None:
            return None

        now = self._clock()

        def mutation(
            state: Optional[ProgressionState],
        ) -> Tuple[Optional[ProgressionState], Tuple[ActionOutcome, List[DomainEvent]]]:
            progression = self._load(user_id, state)
            start_xp = progression.xp
            start_level = progression.level

            if typed.stat is not None:
                progression.increment_stat(typed.stat)

            xp_key = typed.xp_key
            amount = self._xp_values.get(xp_key, 0) if xp_key else 0
            if amount > 0 and progression.gain_xp(amount, xp_key, now):
                self._cascade_level_achievements(progression, now)

            satisfied = self._registry.evaluate(
                typed, progression.stats, progression.achievements
            )
            unlocked = self._grant_achievements(
                progression,
                satisfied,
                now,
                cascade=typed.action_type is not ActionType.LEVEL_REACHED,
            )

            outcome = ActionOutcome(
                xp=progression.xp,
                level=progression.level,
                leveled_up=progression.level > start_level,
                xp_awarded=progression.xp - start_xp,
                unlocked=tuple(a.id for a in unlocked),
            )
            if not progression.get_pending_events():
                return None, (outcome, [])
            return progression.to_state(), (outcome, progression.clear_domain_events())

        outcome, events = await self._mutate(user_id, "record_action", mutation)
        self._metrics["actions_processed"] += 1
        self.log_operation(
            "record_action",
            user_id=user_id,
            action_type=typed.action_type.value,
            xp_awarded=outcome.xp_awarded,
            unlocked=list(outcome.unlocked),
        )
        await self._publish(events)
        return outcome

    async def update_user_stats(
        self, user_id: Any, stat_name: str, increment_by: Any = 1
    ) -> ProgressionStats:
        """
        Increment one lifetime counter.

        Raises:
            ValidationError: Unknown stat name or non-positive increment
        """
        user_id = InputValidator.validate_user_id(user_id)
        if stat_name not in STAT_FIELDS:
            raise ValidationError(
                "stat_name",
                f"Unknown stat '{stat_name}'. Must be one of: {', '.join(STAT_FIELDS)}",
            )
        increment_by = InputValidator.validate_positive_integer(increment_by, "increment_by")

        def mutation(
            state: Optional[ProgressionState],
        ) -> Tuple[ProgressionState, Tuple[ProgressionStats, List[DomainEvent]]]:
            progression = self._load(user_id, state)
            stats = progression.increment_stat(stat_name, increment_by)
            return progression.to_state(), (stats, progression.clear_domain_events())

        stats, events = await self._mutate(user_id, "update_user_stats", mutation)
        self._metrics["stat_updates"] += 1
        self.log_operation(
            "update_user_stats",
            user_id=user_id,
            stat=stat_name,
            increment_by=increment_by,
        )
        await self._publish(events)
        return stats

    # ========================================================================
    # READ MODEL
    # ========================================================================

    async def get_user_game_data(self, user_id: Any) -> Dict[str, Any]:
        """Snapshot for the UI; the default shape when the user has no record."""
        progression = await self._read(user_id)
        return progression.to_game_data()

    def get_metrics(self) -> Dict[str, int]:
        return dict(self._metrics)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _load(self, user_id: str, state: Optional[ProgressionState]) -> UserProgression:
        return UserProgression.from_state(
            state or ProgressionState.default(user_id), self._levels
        )

    async def _read(self, user_id: Any) -> UserProgression:
        user_id = InputValidator.validate_user_id(user_id)
        state = await self._store.get_record(user_id)
        return self._load(user_id, state)

    def _resolve_action(
        self, action: ActionInput, payload: Optional[Mapping[str, Any]]
    ) -> Optional[Action]:
        if isinstance(action, Action):
            return action

        typed = build_action(action, payload)
        if typed is None:
            self._metrics["unknown_actions"] += 1
            self.log.debug("Ignoring unknown action type", extra={"action_type": str(action)})
        return typed

    def _grant_achievements(
        self,
        progression: UserProgression,
        achievements: Sequence[Achievement],
        now: datetime,
        *,
        cascade: bool,
    ) -> List[Achievement]:
        """
        Unlock ``achievements`` and award their summed XP as one gain.

        With ``cascade`` a resulting level-up evaluates level-scoped
        achievements once more, without cascading again.
        """
        added = set(progression.unlock_achievements(a.id for a in achievements))
        unlocked = [a for a in achievements if a.id in added]
        if not unlocked:
            return []

        self._metrics["achievements_unlocked"] += len(unlocked)
        total = sum(a.xp_reward for a in unlocked)
        if progression.gain_xp(total, ACHIEVEMENTS_REASON, now) and cascade:
            unlocked.extend(self._cascade_level_achievements(progression, now))
        return unlocked

    def _cascade_level_achievements(
        self, progression: UserProgression, now: datetime
    ) -> List[Achievement]:
        satisfied = self._registry.evaluate(
            LevelReached(level=progression.level),
            progression.stats,
            progression.achievements,
        )
        if not satisfied:
            return []
        return self._grant_achievements(progression, satisfied, now, cascade=False)

    async def _mutate(self, user_id: str, operation: str, mutation: Callable[..., Any]) -> Any:
        async with LogContext(user_id=user_id, component="progression", operation=operation):
            try:
                async with self._locks.hold(user_id):
                    return await self._store.apply_update(user_id, mutation)
            except Exception as exc:
                self._metrics["errors"] += 1
                self.log_error(operation, exc, user_id=user_id)
                raise

    async def _publish(self, events: Sequence[DomainEvent]) -> None:
        for event in events:
            await self.emit_event(event.event_name, event.payload)
