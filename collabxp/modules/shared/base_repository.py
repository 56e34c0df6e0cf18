"""
Base repository pattern.

Type-safe, generic data access following SQLAlchemy 2.0 async conventions.
Repositories never manage transactions (DatabaseService does) and contain no
business logic.

Usage
-----
    class ProgressionRepository(BaseRepository[UserProgressionRecord]):
        async def find_by_user(self, session, user_id):
            return await self.find_one_where(
                session, UserProgressionRecord.user_id == user_id
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic, Optional, Type, TypeVar

from sqlalchemy import func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: "Logger") -> None:
        self.model_class = model_class
        self.log = logger

    async def find_one_where(
        self,
        session: "AsyncSession",
        *conditions: "ColumnElement[bool]",
        for_update: bool = False,
    ) -> Optional[T]:
        """
        Find a single record matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            for_update: If True, use SELECT FOR UPDATE

        Returns:
            Model instance or None if not found
        """
        stmt = select(self.model_class).where(*conditions)

        if for_update:
            stmt = stmt.with_for_update()

        result = await session.execute(stmt)
        instance = result.scalar_one_or_none()

        self.log.debug(
            f"Repository.find_one_where: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "found": instance is not None,
                "locked": for_update,
            },
        )

        return instance

    async def count(
        self,
        session: "AsyncSession",
        *conditions: "ColumnElement[bool]",
    ) -> int:
        stmt = select(func.count()).select_from(self.model_class)
        if conditions:
            stmt = stmt.where(*conditions)
        result = await session.execute(stmt)
        return int(result.scalar_one())

    def add(self, session: "AsyncSession", instance: T) -> T:
        session.add(instance)

        self.log.debug(
            f"Repository.add: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__},
        )

        return instance

    async def flush(self, session: "AsyncSession") -> None:
        await session.flush()
