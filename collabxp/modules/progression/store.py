"""
Progression persistence port and in-memory implementation.

A store keeps one `ProgressionState` per user id. Writers go through
``apply_update``: the store loads the current state (or None) inside an
atomic scope, runs the synchronous mutation, and persists the state the
mutation returns. A mutation that returns ``None`` as its state leaves the
record untouched.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, Protocol, Tuple, TypeVar

from collabxp.core.logging.logger import get_logger
from collabxp.domain.models.progression import ProgressionState
from collabxp.modules.progression.locks import LocalUserLocks

logger = get_logger(__name__)

T = TypeVar("T")

ProgressionMutation = Callable[
    [Optional[ProgressionState]], Tuple[Optional[ProgressionState], T]
]


class ProgressionStore(Protocol):
    async def get_record(self, user_id: str) -> Optional[ProgressionState]:
        """Current state, or None if the user has no record yet."""
        ...

    async def create_default(self, user_id: str) -> ProgressionState:
        """Insert an all-defaults record if absent; return the stored state."""
        ...

    async def apply_update(self, user_id: str, mutation: ProgressionMutation[T]) -> T:
        """Run ``mutation`` atomically against the user's record."""
        ...


class InMemoryProgressionStore:
    """
    Dict-backed store for tests and single-process deployments.

    States are immutable, so handing them out never aliases stored data.
    Updates for one user are serialized through `LocalUserLocks`, which
    drops idle locks.
    """

    def __init__(self) -> None:
        self._records: Dict[str, ProgressionState] = {}
        self._locks = LocalUserLocks()

    async def get_record(self, user_id: str) -> Optional[ProgressionState]:
        return self._records.get(user_id)

    async def create_default(self, user_id: str) -> ProgressionState:
        async with self._locks.hold(user_id):
            state = self._records.get(user_id)
            if state is None:
                state = self._records[user_id] = ProgressionState.default(user_id)
                logger.debug("Created default progression record", extra={"user_id": user_id})
            return state

    async def apply_update(self, user_id: str, mutation: ProgressionMutation[T]) -> T:
        async with self._locks.hold(user_id):
            new_state, result = mutation(self._records.get(user_id))
            if new_state is not None:
                self._records[user_id] = new_state
            return result

    def __len__(self) -> int:
        return len(self._records)
