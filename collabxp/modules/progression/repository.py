"""
SQL progression store.

`SqlProgressionStore` implements the progression store port on top of
`DatabaseService`. ``apply_update`` runs the mutation inside one
``get_transaction()`` with the user's row locked by ``SELECT ... FOR UPDATE``,
so concurrent writers for the same user queue on the row lock. On SQLite
`DatabaseService` opens the transaction with ``BEGIN IMMEDIATE`` instead,
which serializes writers on the database lock. Missing rows
are inserted with defaults first; a concurrent insert that wins the race is
detected through the unique index on ``user_id``.
"""

from __future__ import annotations

from typing import Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from collabxp.core.database.service import DatabaseService
from collabxp.core.exceptions import DatabaseError
from collabxp.core.logging.logger import get_logger
from collabxp.database.models import UserProgressionRecord
from collabxp.domain.models.progression import (
    LastXPGain,
    ProgressionState,
    ProgressionStats,
    ensure_utc,
)
from collabxp.modules.progression.store import ProgressionMutation
from collabxp.modules.shared.base_repository import BaseRepository

logger = get_logger(__name__)

T = TypeVar("T")

_MISSING = object()


class ProgressionRepository(BaseRepository[UserProgressionRecord]):
    def __init__(self) -> None:
        super().__init__(UserProgressionRecord, logger)

    async def find_by_user(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        for_update: bool = False,
    ) -> Optional[UserProgressionRecord]:
        return await self.find_one_where(
            session,
            UserProgressionRecord.user_id == user_id,
            for_update=for_update,
        )

    async def count_records(self, session: AsyncSession) -> int:
        return await self.count(session)


def record_to_state(row: UserProgressionRecord) -> ProgressionState:
    return ProgressionState(
        user_id=row.user_id,
        xp=row.xp or 0,
        level=row.level or 1,
        achievements=tuple(row.achievements or ()),
        badges=tuple(row.badges or ()),
        streak=row.streak or 0,
        last_login=ensure_utc(row.last_login) if row.last_login else None,
        stats=ProgressionStats.from_dict(row.stats),
        last_xp_gain=LastXPGain.from_dict(row.last_xp_gain),
    )


def write_state(row: UserProgressionRecord, state: ProgressionState) -> None:
    """Copy ``state`` onto ``row``; JSON columns get fresh containers so changes are detected."""
    row.xp = state.xp
    row.level = state.level
    row.achievements = list(state.achievements)
    row.badges = list(state.badges)
    row.streak = state.streak
    row.last_login = state.last_login
    row.stats = state.stats.to_dict()
    row.last_xp_gain = state.last_xp_gain.to_dict() if state.last_xp_gain else None


class SqlProgressionStore:
    """Progression store backed by the ``user_progression`` table."""

    def __init__(self, repository: Optional[ProgressionRepository] = None) -> None:
        self._repository = repository or ProgressionRepository()

    async def get_record(self, user_id: str) -> Optional[ProgressionState]:
        async with DatabaseService.get_session() as session:
            row = await self._repository.find_by_user(session, user_id)
            return record_to_state(row) if row is not None else None

    async def create_default(self, user_id: str) -> ProgressionState:
        try:
            async with DatabaseService.get_transaction() as session:
                row = await self._repository.find_by_user(session, user_id)
                if row is None:
                    row = UserProgressionRecord(user_id=user_id)
                    write_state(row, ProgressionState.default(user_id))
                    self._repository.add(session, row)
                    await self._repository.flush(session)
                    logger.debug(
                        "Created default progression record",
                        extra={"user_id": user_id},
                    )
                return record_to_state(row)

        except IntegrityError:
            # A concurrent writer inserted the row first
            state = await self.get_record(user_id)
            if state is None:
                raise
            return state

    async def _try_apply(self, user_id: str, mutation: ProgressionMutation[T]) -> object:
        async with DatabaseService.get_transaction() as session:
            row = await self._repository.find_by_user(session, user_id, for_update=True)
            if row is None:
                return _MISSING

            new_state, result = mutation(record_to_state(row))
            if new_state is not None:
                write_state(row, new_state)
            return result

    async def apply_update(self, user_id: str, mutation: ProgressionMutation[T]) -> T:
        outcome = await self._try_apply(user_id, mutation)
        if outcome is _MISSING:
            await self.create_default(user_id)
            outcome = await self._try_apply(user_id, mutation)

        if outcome is _MISSING:
            raise DatabaseError(
                "apply_update",
                LookupError(f"progression record for '{user_id}' vanished"),
            )
        return outcome  # type: ignore[return-value]

    async def count_records(self) -> int:
        async with DatabaseService.get_session() as session:
            return await self._repository.count_records(session)
