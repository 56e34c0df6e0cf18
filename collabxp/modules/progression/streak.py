"""
Login streak policy.

Days are calendar dates in a configured timezone (``progression.streak.timezone``,
default UTC). Given the previous login and the current instant:

- no previous login: the streak starts at 1
- same day (or a clock that went backwards): nothing changes
- the next calendar day: the streak grows by one and earns the streak bonus
- any later day: the streak restarts at 1
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from collabxp.core.exceptions import ConfigurationError
from collabxp.domain.models.progression import ensure_utc
from collabxp.modules.progression.constants import (
    CONFIG_STREAK_TIMEZONE,
    DEFAULT_STREAK_TIMEZONE,
)


class LoginKind(str, Enum):
    FIRST = "first"
    SAME_DAY = "same_day"
    CONSECUTIVE = "consecutive"
    BROKEN = "broken"


@dataclass(frozen=True)
class StreakDecision:
    kind: LoginKind
    streak: int
    xp_keys: Tuple[str, ...] = ()

    @property
    def changes_state(self) -> bool:
        return self.kind is not LoginKind.SAME_DAY


def load_timezone(config_manager: Any = None) -> tzinfo:
    name = DEFAULT_STREAK_TIMEZONE
    if config_manager is not None:
        name = config_manager.get(CONFIG_STREAK_TIMEZONE, DEFAULT_STREAK_TIMEZONE)
    try:
        return ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(
            CONFIG_STREAK_TIMEZONE, f"unknown timezone '{name}'"
        ) from exc


def day_delta(last_login: datetime, now: datetime, tz: tzinfo) -> int:
    """Calendar days between ``last_login`` and ``now`` as seen in ``tz``."""
    last_day = ensure_utc(last_login).astimezone(tz).date()
    today = ensure_utc(now).astimezone(tz).date()
    return (today - last_day).days


def resolve_streak(
    current_streak: int,
    last_login: Optional[datetime],
    now: datetime,
    tz: tzinfo,
) -> StreakDecision:
    if last_login is None:
        return StreakDecision(LoginKind.FIRST, 1, ("DAILY_LOGIN",))

    delta = day_delta(last_login, now, tz)
    if delta <= 0:
        return StreakDecision(LoginKind.SAME_DAY, current_streak)
    if delta == 1:
        return StreakDecision(
            LoginKind.CONSECUTIVE,
            current_streak + 1,
            ("DAILY_LOGIN", "STREAK_BONUS"),
        )
    return StreakDecision(LoginKind.BROKEN, 1, ("DAILY_LOGIN",))
