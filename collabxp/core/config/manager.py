"""
ConfigManager: tunable engine configuration for collabxp.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable configuration values
  (level thresholds, XP value table, streak timezone, lock timeouts).
- Back configuration with YAML defaults plus in-process overrides.
- Let operators rebalance progression without code changes.

Responsibilities
----------------
- Load and deep-merge every ``*.yaml`` file from ``Config.CONFIG_DIR``.
- Overlay runtime overrides (``set``) on top of the YAML defaults.
- Serve reads from an in-memory cache with simple hit/miss metrics.
- Run registered validators on writes.

Key Design Decisions
--------------------
- YAML is the single source for **defaults**; overrides live in memory and
  are lost on restart.
- Lookups fall back to the caller supplied default when a path is missing,
  never raise.
- Class-level state: the class itself is passed to services as the
  ``config_manager`` dependency, tests call ``reset()`` between cases.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, MutableMapping, Optional

import yaml

from collabxp.core.config.config import Config
from collabxp.core.logging.logger import get_logger

logger = get_logger(__name__)


class ConfigManagerError(RuntimeError):
    """Base error type for ConfigManager-related failures."""


class ConfigWriteError(ConfigManagerError):
    """Raised when a configuration write or validation fails."""


__all__ = ["ConfigManager", "ConfigManagerError", "ConfigWriteError", "ConfigMetrics"]


@dataclass
class ConfigMetrics:
    gets: int = 0
    sets: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    errors: int = 0


class ConfigManager:
    """
    Dot-notation configuration access over YAML defaults and overrides.

    Examples
    --------
    >>> ConfigManager.get("progression.level_thresholds")
    [0, 100, 250, ...]
    >>> ConfigManager.set("progression.xp_values.DAILY_LOGIN", 10)
    """

    _defaults: Dict[str, Any] = {}
    _overrides: Dict[str, Any] = {}
    _cache: Dict[str, Any] = {}
    _initialized: bool = False
    _config_dir: Optional[Path] = None
    _validators: Dict[str, Callable[[Any], Any]] = {}
    _metrics: ConfigMetrics = ConfigMetrics()

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> Dict[str, Any]:
        """Load and deep-merge all YAML files under `config_dir`."""
        merged: Dict[str, Any] = {}

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return merged

        for path in sorted(config_dir.rglob("*.yaml")):
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}

            if not isinstance(data, dict):
                logger.warning(
                    "Ignoring YAML config file without a top-level mapping",
                    extra={"path": str(path)},
                )
                continue

            cls._deep_merge_dict(merged, data)
            logger.debug("Loaded YAML config", extra={"path": str(path)})

        return merged

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load YAML defaults and rebuild the cache.

        Idempotent for the same directory; passing a different directory
        reloads from it (tests point this at a temporary directory).
        """
        target = Path(config_dir) if config_dir is not None else Config.CONFIG_DIR

        if cls._initialized and cls._config_dir == target:
            return

        cls._config_dir = target
        cls._defaults = cls._load_yaml_configs(target)
        cls._rebuild_cache()
        cls._initialized = True

        logger.info(
            "ConfigManager initialized",
            extra={
                "config_dir": str(target),
                "top_level_keys": sorted(cls._defaults.keys()),
            },
        )

    @classmethod
    def reset(cls) -> None:
        """Drop overrides, defaults and metrics."""
        cls._defaults = {}
        cls._overrides = {}
        cls._cache = {}
        cls._validators = {}
        cls._initialized = False
        cls._config_dir = None
        cls._metrics = ConfigMetrics()

    @classmethod
    def _rebuild_cache(cls) -> None:
        cache = copy.deepcopy(cls._defaults)
        cls._deep_merge_dict(cache, cls._overrides)
        cls._cache = cache

    # =========================================================================
    # VALIDATORS
    # =========================================================================

    @classmethod
    def register_validator(cls, key: str, validator: Callable[[Any], Any]) -> None:
        """
        Register a validator for a full dot-notation key.

        The validator receives the candidate value and returns the (possibly
        normalized) value or raises to reject it.
        """
        cls._validators[key] = validator

    # =========================================================================
    # READS
    # =========================================================================

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        >>> ConfigManager.get("progression.streak.timezone", "UTC")
        'UTC'
        """
        if not cls._initialized:
            cls.initialize()

        cls._metrics.gets += 1
        value: Any = cls._cache

        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                cls._metrics.cache_misses += 1
                return default
            value = value[part]

        cls._metrics.cache_hits += 1
        if value is None:
            return default
        return copy.deepcopy(value)

    @classmethod
    def get_int(cls, key: str, default: int) -> int:
        value = cls.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            cls._metrics.errors += 1
            logger.warning(
                "Configuration value is not an integer, using default",
                extra={"config_key": key, "value": repr(value), "default": default},
            )
            return default

    # =========================================================================
    # WRITES
    # =========================================================================

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """
        Override a configuration value at runtime.

        Raises
        ------
        ConfigWriteError
            If a registered validator rejects the value.
        """
        if not cls._initialized:
            cls.initialize()

        validator = cls._validators.get(key)
        if validator is not None:
            try:
                value = validator(value)
            except Exception as exc:
                cls._metrics.errors += 1
                raise ConfigWriteError(
                    f"Validation failed for config key '{key}': {exc}"
                ) from exc

        node: Dict[str, Any] = cls._overrides
        parts = key.split(".")
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)

        cls._rebuild_cache()
        cls._metrics.sets += 1

        logger.info(
            "Configuration override applied",
            extra={"config_key": key},
        )

    # =========================================================================
    # METRICS
    # =========================================================================

    @classmethod
    def get_metrics(cls) -> Dict[str, Any]:
        snapshot = asdict(cls._metrics)
        total = snapshot["cache_hits"] + snapshot["cache_misses"]
        snapshot["cache_hit_rate"] = (
            round(snapshot["cache_hits"] / total * 100, 2) if total else 0.0
        )
        return snapshot
