"""
collabxp EventBus: async pub/sub with tiered concurrency.

Purpose
-------
Decouple the progression engine from the rest of the marketplace. Producers
publish action events (``progression.action``, ``session.started``); the
progression listener consumes them, and the progression service publishes
domain events (``progression.xp_awarded``, ``progression.leveled_up`` ...)
after each successful write.

Responsibilities
----------------
- Register/unregister listeners with priorities
- Publish events to all matching listeners (exact + wildcard)
- Execute listeners per tier:
  * CRITICAL / HIGH: sequential, ordered, awaited with timeout
  * NORMAL: concurrent (gather), awaited
  * LOW: fire-and-forget background tasks
- Error isolation: one failing listener never blocks others and never
  propagates to the publisher
- Publish and error counters

Design Decisions
----------------
- Instance-based so tests can build a fresh bus per case.
- Listener timeouts come from ConfigManager
  (``core.event.listener_timeout.*``) with safe defaults.
"""

from __future__ import annotations

import asyncio
import fnmatch
import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Optional

from collabxp.core.logging.logger import LogContext, get_logger
from collabxp.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

logger = get_logger(__name__)


@dataclass
class EventMetrics:
    events_published: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    errors_by_event: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def get_summary(self, total_listeners: int) -> dict[str, Any]:
        total_events = sum(self.events_published.values())
        total_errors = sum(self.errors_by_event.values())
        return {
            "total_events_published": total_events,
            "events_by_type": dict(self.events_published),
            "total_errors": total_errors,
            "errors_by_event": dict(self.errors_by_event),
            "total_listeners": total_listeners,
            "error_rate": (
                round(total_errors / total_events * 100, 2) if total_events else 0.0
            ),
        }


class EventBus:
    """
    Async EventBus with tiered listener execution.

    Designed for single-threaded asyncio usage: all methods are called from
    the same event loop.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("progression.leveled_up", on_level_up)
    >>> await bus.publish("progression.leveled_up", {"user_id": "u-1", "level": 3})
    """

    def __init__(
        self,
        config_manager: Any = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._listeners: dict[str, list[EventListener]] = defaultdict(list)
        self._background_tasks: set[asyncio.Task] = set()
        self._metrics = EventMetrics()

        self._critical_timeout = self._load_timeout(
            "core.event.listener_timeout.critical_seconds",
            critical_timeout_seconds,
            5.0,
        )
        self._high_timeout = self._load_timeout(
            "core.event.listener_timeout.high_seconds",
            high_timeout_seconds,
            5.0,
        )

        logger.debug(
            "EventBus initialized",
            extra={
                "critical_timeout_seconds": self._critical_timeout,
                "high_timeout_seconds": self._high_timeout,
            },
        )

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """Resolve a timeout: explicit override, then config, then default."""
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)

        value = self._config_manager.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid listener timeout in config, using default",
                extra={"config_key": key, "value": repr(value), "default": default},
            )
            return float(default)

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            # Built-ins may not expose a signature
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or repr(callback)
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event name or wildcard pattern.

        Registering the same identifier twice for one event is ignored.

        Returns
        -------
        str:
            The listener identifier, for ``unsubscribe``.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        existing = self._listeners[event_name]
        if any(lst.identifier == listener.identifier for lst in existing):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        existing.append(listener)
        existing.sort(key=lambda lst: lst.priority.value)

        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        listeners = self._listeners.get(event_name, [])
        remaining = [lst for lst in listeners if lst.identifier != identifier]
        removed = len(remaining) != len(listeners)

        if remaining:
            self._listeners[event_name] = remaining
        else:
            self._listeners.pop(event_name, None)

        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        """Remove all listeners from all events."""
        total = self.get_listener_count()
        self._listeners.clear()
        logger.info(
            "EventBus: cleared all listeners",
            extra={"previous_listener_count": total},
        )

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    def _extract_listeners(self, event_name: str) -> list[EventListener]:
        matched: list[EventListener] = []
        for pattern in list(self._listeners):
            if pattern != event_name and not fnmatch.fnmatchcase(event_name, pattern):
                continue
            listeners = self._listeners[pattern]
            matched.extend(listeners)

            # once=True listeners are pruned before they run
            kept = [lst for lst in listeners if not lst.once]
            if kept:
                self._listeners[pattern] = kept
            else:
                self._listeners.pop(pattern, None)

        matched.sort(key=lambda lst: lst.priority.value)
        return matched

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to all subscribed listeners.

        Returns
        -------
        list[Any]:
            Results from CRITICAL/HIGH/NORMAL listeners (None for a listener
            that failed). LOW listeners are not included.
        """
        self._metrics.events_published[event_name] += 1

        listeners = self._extract_listeners(event_name)
        if not listeners:
            logger.debug(
                "EventBus: no listeners for event",
                extra={"event_name": event_name},
            )
            return []

        async with LogContext(
            user_id=data.get("user_id") or data.get("actor_id"),
            operation=event_name,
        ):
            return await self._execute(event_name, data, listeners)

    async def _execute(
        self,
        event_name: str,
        payload: EventPayload,
        listeners: list[EventListener],
    ) -> list[Any]:
        results: list[Any] = []

        for listener in listeners:
            if listener.priority is ListenerPriority.CRITICAL:
                results.append(
                    await self._run_with_timeout(
                        listener, event_name, payload, self._critical_timeout
                    )
                )
        for listener in listeners:
            if listener.priority is ListenerPriority.HIGH:
                results.append(
                    await self._run_with_timeout(
                        listener, event_name, payload, self._high_timeout
                    )
                )

        normal = [lst for lst in listeners if lst.priority is ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(
                    *[self._run_listener(lst, event_name, payload) for lst in normal]
                )
            )

        loop = asyncio.get_running_loop()
        for listener in listeners:
            if listener.priority is ListenerPriority.LOW:
                task = loop.create_task(
                    self._run_listener(listener, event_name, payload),
                    name=f"eventbus-low-{event_name}-{listener.identifier}",
                )
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        timeout: float,
    ) -> Any:
        if timeout <= 0:
            return await self._run_listener(listener, event_name, payload)

        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            self._handle_listener_error(event_name, listener, exc)
            return None

    async def _run_listener(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
    ) -> Any:
        try:
            if inspect.iscoroutinefunction(listener.callback):
                return await listener.callback(payload)

            result = listener.callback(payload)
            if inspect.isawaitable(result):
                return await result
            return result

        except Exception as exc:
            self._handle_listener_error(event_name, listener, exc)
            return None

    def _handle_listener_error(
        self,
        event_name: str,
        listener: EventListener,
        exc: BaseException,
    ) -> None:
        self._metrics.errors_by_event[event_name] += 1
        logger.error(
            "EventBus listener error",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
            exc_info=exc,
        )

    async def drain(self) -> None:
        """Wait for outstanding LOW-priority background tasks."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    # ------------------------------------------------------------------ #
    # Metrics & Introspection
    # ------------------------------------------------------------------ #

    def get_metrics_summary(self) -> dict[str, Any]:
        return self._metrics.get_summary(self.get_listener_count())

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        """
        Count listeners; with ``event_name``, count those that would receive it.
        """
        if event_name is None:
            return sum(len(listeners) for listeners in self._listeners.values())

        return sum(
            len(listeners)
            for pattern, listeners in self._listeners.items()
            if pattern == event_name or fnmatch.fnmatchcase(event_name, pattern)
        )

    def get_all_events(self) -> list[str]:
        return sorted(self._listeners)
