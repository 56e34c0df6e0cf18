"""
Progression constants: XP value table, default level thresholds, event names.

These are the built-in defaults. ``config/progression.yaml`` may rebalance
the XP values and thresholds; services read them through ConfigManager and
fall back to the values below.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, Tuple

# ============================================================================
# XP VALUE TABLE
# ============================================================================

XP_VALUES: Mapping[str, int] = MappingProxyType(
    {
        "TASK_CREATED": 10,
        "TASK_COMPLETED": 25,
        "TASK_COMPLETED_EARLY": 35,
        "PROJECT_CREATED": 50,
        "PROJECT_COMPLETED": 100,
        "COMMENT_ADDED": 5,
        "MILESTONE_REACHED": 75,
        "HELPED_TEAMMATE": 20,
        "CODE_REVIEW": 15,
        "DAILY_LOGIN": 5,
        "STREAK_BONUS": 10,
        "FIRST_CONTRIBUTION": 30,
    }
)

# ============================================================================
# LEVEL THRESHOLDS (cumulative XP needed to reach level i + 1)
# ============================================================================

DEFAULT_LEVEL_THRESHOLDS: Tuple[int, ...] = (
    0,
    100,
    250,
    500,
    1000,
    2000,
    3500,
    5500,
    8000,
    11000,
    15000,
    20000,
    26000,
    33000,
    41000,
    50000,
)

ACHIEVEMENTS_REASON = "Achievements unlocked"
DEFAULT_STREAK_TIMEZONE = "UTC"

# ============================================================================
# CONFIG KEYS
# ============================================================================

CONFIG_LEVEL_THRESHOLDS = "progression.level_thresholds"
CONFIG_XP_VALUES = "progression.xp_values"
CONFIG_STREAK_TIMEZONE = "progression.streak.timezone"
CONFIG_LOCK_WAIT_SECONDS = "progression.locks.wait_timeout_seconds"

# ============================================================================
# EVENTS
# ============================================================================

EVENT_ACTION = "progression.action"
EVENT_SESSION_STARTED = "session.started"


def resolve_xp_values(config_manager: Any = None) -> Mapping[str, int]:
    """
    Return the XP value table with config overrides applied.

    Unknown keys in config are ignored; non-integer values keep the default.
    """
    if config_manager is None:
        return XP_VALUES

    overrides = config_manager.get(CONFIG_XP_VALUES, {}) or {}
    merged = dict(XP_VALUES)
    for key, value in overrides.items():
        if key in merged and isinstance(value, int) and not isinstance(value, bool) and value > 0:
            merged[key] = value
    return MappingProxyType(merged)
