"""
Level table: maps cumulative XP to a level.

``thresholds[i]`` is the XP needed to reach level ``i + 1``; the table starts
at 0 and ascends strictly. Past the last tabulated level the "next level"
target is twice the last threshold.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Any, Iterable, Tuple

from collabxp.core.exceptions import ConfigurationError
from collabxp.domain.models.base import DomainValidationError
from collabxp.modules.progression.constants import (
    CONFIG_LEVEL_THRESHOLDS,
    DEFAULT_LEVEL_THRESHOLDS,
)


@dataclass(frozen=True)
class LevelTable:
    thresholds: Tuple[int, ...] = DEFAULT_LEVEL_THRESHOLDS

    def __post_init__(self) -> None:
        values = tuple(self.thresholds)
        if not values or values[0] != 0:
            raise DomainValidationError(
                "level thresholds must start at 0", field="thresholds"
            )
        for previous, current in zip(values, values[1:]):
            if current <= previous:
                raise DomainValidationError(
                    f"level thresholds must ascend strictly ({previous} >= {current})",
                    field="thresholds",
                )
        object.__setattr__(self, "thresholds", values)

    @classmethod
    def from_values(cls, values: Iterable[int]) -> "LevelTable":
        return cls(tuple(values))

    @classmethod
    def from_config(cls, config_manager: Any) -> "LevelTable":
        """
        Build the table from ``progression.level_thresholds``.

        Raises ConfigurationError when the configured table is malformed.
        """
        raw = config_manager.get(CONFIG_LEVEL_THRESHOLDS, None)
        if raw is None:
            return cls()

        try:
            return cls(tuple(int(v) for v in raw))
        except (TypeError, ValueError, DomainValidationError) as exc:
            raise ConfigurationError(CONFIG_LEVEL_THRESHOLDS, str(exc)) from exc

    @property
    def max_level(self) -> int:
        return len(self.thresholds)

    def level_from_xp(self, xp: int) -> int:
        """
        ``1 + max{i : thresholds[i] <= xp}``; negative xp maps to level 1.

        >>> LevelTable().level_from_xp(250)
        3
        """
        return max(1, bisect_right(self.thresholds, xp))

    def next_level_xp(self, level: int) -> int:
        """
        Cumulative XP needed to reach ``level + 1``.

        >>> LevelTable().next_level_xp(16)
        100000
        """
        level = max(1, level)
        if level < len(self.thresholds):
            return self.thresholds[level]
        return self.thresholds[-1] * 2


DEFAULT_LEVEL_TABLE = LevelTable()
