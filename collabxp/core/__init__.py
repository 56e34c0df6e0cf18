"""
Core infrastructure layer for collabxp.

Purpose
-------
Provide a single import surface for the infrastructure subsystems the
progression engine runs on:

- Configuration management (Config, ConfigManager)
- Database subsystem (DatabaseService, declarative base)
- Event bus (EventBus, ListenerPriority)
- Redis distributed locks (RedisLockService)
- Logging (structured logging, LogContext)
- Input validation (InputValidator)
- Infrastructure exceptions

Non-Responsibilities
--------------------
- Business logic (lives in collabxp.modules)
- Any side effects beyond re-exports and logging setup
"""

from collabxp.core.config import Config, ConfigManager
from collabxp.core.database import Base, DatabaseService
from collabxp.core.event import EventBus, ListenerPriority
from collabxp.core.exceptions import (
    CollabInfrastructureException,
    ConfigurationError,
    DatabaseError,
    ErrorSeverity,
    LockAcquisitionError,
)
from collabxp.core.logging import LogContext, get_logger
from collabxp.core.redis import RedisLockService
from collabxp.core.validation import InputValidator

__all__ = [
    "Config",
    "ConfigManager",
    "Base",
    "DatabaseService",
    "EventBus",
    "ListenerPriority",
    "CollabInfrastructureException",
    "ConfigurationError",
    "DatabaseError",
    "ErrorSeverity",
    "LockAcquisitionError",
    "LogContext",
    "get_logger",
    "RedisLockService",
    "InputValidator",
]
