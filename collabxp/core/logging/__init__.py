"""
collabxp logging infrastructure.

Exports the structured logging subsystem, log context helpers and the
configuration interface:

- JSON logs in production, plain text otherwise, optional daily JSON file
- ContextVar-based contextual logging (`LogContext`)
- Setup and teardown helpers for the global logging system
"""

from collabxp.core.logging.logger import (
    LogContext,
    LoggingHealth,
    LoggingSettings,
    clear_log_context,
    get_log_context,
    get_logger,
    get_logging_health,
    set_log_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "get_logging_health",
    "LogContext",
    "get_log_context",
    "set_log_context",
    "clear_log_context",
    "LoggingHealth",
    "LoggingSettings",
]
