"""
Base service foundation.

Services implement business logic, enforce business rules and emit domain
events. They never manage SQLAlchemy sessions directly; persistence goes
through a store or repository.

This base class provides:
- Structured logging with operation context
- Safe config access
- Event emission helpers

Usage
-----
    class ProgressionService(BaseService):
        def __init__(self, store, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self._store = store
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from collabxp.core.exceptions import (
    ConfigurationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

if TYPE_CHECKING:
    from logging import Logger

    from collabxp.core.config.manager import ConfigManager
    from collabxp.core.event.bus import EventBus


class BaseService:
    """
    Base class for domain services.

    Args:
        config_manager: Configuration manager (class or instance exposing ``get``)
        event_bus: Event bus for cross-module communication, or None
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: "ConfigManager",
        event_bus: Optional["EventBus"],
        logger: "Logger",
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Retrieve a configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish a domain event; no-op when the service has no event bus."""
        if self._events is None:
            return
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any,
    ) -> None:
        """
        Log a service error with full context; the caller re-raises.

        Errors that should alert are logged at ERROR, everything else
        (validation, lock timeouts) at WARNING.
        """
        alert = should_alert(error)
        self.log.log(
            logging.ERROR if alert else logging.WARNING,
            f"Service error during {operation}: {str(error)}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                "severity": get_error_severity(error).value,
                "transient": is_transient_error(error),
                "alert": alert,
                **context,
            },
        )
