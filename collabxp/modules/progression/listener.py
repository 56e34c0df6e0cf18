"""
Binds marketplace events on the EventBus to the progression service.

Subscribed events:
- ``progression.action`` ``{"actor_id", "action_type", "payload"}``
- ``session.started`` ``{"actor_id"}``

Listeners run at HIGH priority so XP is recorded before NORMAL listeners
(notifications) fan out. Failures propagate to the bus, which isolates and
counts them; the action that triggered the event is never rolled back.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from collabxp.core.event.bus import EventBus
from collabxp.core.event.types import EventPayload, ListenerPriority
from collabxp.core.logging.logger import get_logger
from collabxp.modules.progression.constants import EVENT_ACTION, EVENT_SESSION_STARTED
from collabxp.modules.progression.service import ActionOutcome, ProgressionService

logger = get_logger(__name__)


class ProgressionListener:
    def __init__(self, service: ProgressionService, event_bus: EventBus) -> None:
        self._service = service
        self._bus = event_bus
        self._subscriptions: List[Tuple[str, str]] = []

    @property
    def registered(self) -> bool:
        return bool(self._subscriptions)

    def register(self) -> None:
        if self._subscriptions:
            return

        for event_name, callback in (
            (EVENT_ACTION, self.on_action),
            (EVENT_SESSION_STARTED, self.on_session_started),
        ):
            identifier = self._bus.subscribe(
                event_name,
                callback,
                priority=ListenerPriority.HIGH,
                identifier=f"progression.listener@{event_name}",
            )
            self._subscriptions.append((event_name, identifier))

        logger.info(
            "Progression listeners registered",
            extra={"events": [name for name, _ in self._subscriptions]},
        )

    def unregister(self) -> None:
        for event_name, identifier in self._subscriptions:
            self._bus.unsubscribe(event_name, identifier)
        self._subscriptions.clear()

    async def on_action(self, data: EventPayload) -> Optional[ActionOutcome]:
        actor_id = data.get("actor_id")
        action_type = data.get("action_type")
        if actor_id is None or not action_type:
            logger.warning(
                "Action event missing actor_id or action_type",
                extra={"event_keys": sorted(data)},
            )
            return None

        payload: Dict[str, Any] = data.get("payload") or {}
        return await self._service.record_action(actor_id, action_type, payload)

    async def on_session_started(self, data: EventPayload) -> Optional[int]:
        actor_id = data.get("actor_id")
        if actor_id is None:
            logger.warning(
                "Session event missing actor_id", extra={"event_keys": sorted(data)}
            )
            return None

        return await self._service.update_login_streak(actor_id)
