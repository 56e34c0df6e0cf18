"""
Database Service - core infrastructure layer.

Purpose
-------
Centralized async database engine and session management for collabxp.
Provides atomic transactions, pessimistic locking and a health check for the
progression store.

Responsibilities
----------------
- Initialize and manage a single AsyncEngine instance with connection pooling
- Provide async context managers for read-only sessions and atomic transactions
- Enforce transaction discipline: commit on success, rollback on exception
- Support pessimistic row locking via ``select(...).with_for_update()``
- Create the schema for local development and tests (``create_tables``)
- Record simple transaction counters for observability

Non-Responsibilities
--------------------
- Retry policies for transient failures (callers decide, see
  ``collabxp.core.exceptions.is_transient_error``)
- Migrations in production deployments
- Domain logic

Architecture Notes
------------------
**Transaction Model**:
- ``get_transaction()`` is the primary interface for all state mutations
- Never call ``session.commit()`` inside service code
- Use pessimistic locks: ``select(...).with_for_update()``
- SQLite ignores FOR UPDATE, so SQLite transactions open with
  ``BEGIN IMMEDIATE`` and hold the database write lock from the first read

**Connection Pooling**:
- QueuePool for PostgreSQL outside of tests
- NullPool for SQLite URLs and the testing environment

Usage Example
-------------
>>> async with DatabaseService.get_transaction() as session:
>>>     record = await session.get(
>>>         UserProgressionRecord, record_id, with_for_update=True
>>>     )
>>>     record.xp += 25
>>>     # Automatic commit on exit
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, Pool

from collabxp.core.config.config import Config
from collabxp.core.database.base import Base
from collabxp.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    """Immutable snapshot of database configuration for the engine lifetime."""

    url: str
    echo: bool
    use_null_pool: bool
    pool_size: int
    max_overflow: int
    pool_recycle: int

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


@dataclass
class DatabaseMetrics:
    transactions_started: int = 0
    transactions_committed: int = 0
    transactions_rolled_back: int = 0
    health_checks_failed: int = 0


class DatabaseService:
    """
    Centralized async database engine and session management.

    Public API
    ----------
    - initialize(url=None) / shutdown()
    - get_session() -> read-only session
    - get_transaction() -> atomic write transaction (preferred)
    - health_check(), create_tables(), drop_tables()
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _config_snapshot: Optional[_DatabaseConfigSnapshot] = None
    _init_lock: Optional[asyncio.Lock] = None
    _metrics: DatabaseMetrics = DatabaseMetrics()

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    @classmethod
    def _lock(cls) -> asyncio.Lock:
        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()
        return cls._init_lock

    @classmethod
    def _build_config_snapshot(cls, url: Optional[str]) -> _DatabaseConfigSnapshot:
        database_url = url or getattr(Config, "DATABASE_URL", None)
        if not database_url or not isinstance(database_url, str):
            logger.error("DATABASE_URL is not configured or invalid")
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )

        use_null_pool = Config.is_testing() or database_url.startswith("sqlite")

        snapshot = _DatabaseConfigSnapshot(
            url=database_url,
            echo=bool(Config.DATABASE_ECHO),
            use_null_pool=use_null_pool,
            pool_size=int(Config.DATABASE_POOL_SIZE),
            max_overflow=int(Config.DATABASE_MAX_OVERFLOW),
            pool_recycle=int(Config.DATABASE_POOL_RECYCLE),
        )

        logger.debug(
            "Database configuration snapshot created",
            extra={
                "url_scheme": snapshot.url_scheme,
                "null_pool": use_null_pool,
                "pool_size": snapshot.pool_size,
                "max_overflow": snapshot.max_overflow,
            },
        )
        return snapshot

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Initialize the database engine and session factory.

        Idempotent: returns immediately if already initialized. ``url``
        overrides ``Config.DATABASE_URL`` (tests pass an aiosqlite URL).

        Raises
        ------
        DatabaseInitializationError
            If configuration is invalid or engine creation fails.
        """
        async with cls._lock():
            if cls._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            try:
                config = cls._build_config_snapshot(url)

                engine_kwargs: Dict[str, Any] = {"echo": config.echo}
                if config.use_null_pool:
                    engine_kwargs["poolclass"] = NullPool
                else:
                    engine_kwargs.update(
                        {
                            "pool_size": config.pool_size,
                            "max_overflow": config.max_overflow,
                            "pool_recycle": config.pool_recycle,
                            "pool_pre_ping": True,
                        }
                    )

                cls._engine = create_async_engine(config.url, **engine_kwargs)
                if config.is_sqlite:
                    cls._install_sqlite_write_lock(cls._engine)
                cls._session_factory = async_sessionmaker(
                    bind=cls._engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )
                cls._config_snapshot = config
                cls._metrics = DatabaseMetrics()

                logger.info(
                    "DatabaseService initialized successfully",
                    extra={"url_scheme": config.url_scheme},
                )

            except DatabaseInitializationError:
                raise
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

    @staticmethod
    def _install_sqlite_write_lock(engine: AsyncEngine) -> None:
        """
        Make every SQLite transaction take the write lock at BEGIN.

        The driver's own deferred BEGIN is disabled so the SELECT of a
        read-modify-write already runs under the lock; concurrent writers
        wait on the busy timeout instead of reading a stale row.
        """

        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_begin(dbapi_connection: Any, connection_record: Any) -> None:
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine and reset internal state. Safe to call twice."""
        async with cls._lock():
            if cls._engine is None:
                logger.debug("DatabaseService not initialized; nothing to shutdown")
                return

            try:
                await cls._engine.dispose()
                logger.info("DatabaseService shutdown complete")
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._config_snapshot = None

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    # ========================================================================
    # Schema helpers
    # ========================================================================

    @classmethod
    async def create_tables(cls) -> None:
        """Create all tables registered on ``Base.metadata``. Idempotent."""
        import collabxp.database.models  # noqa: F401  (registers tables)

        engine = cls._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    @classmethod
    async def drop_tables(cls) -> None:
        """Drop all tables. Refused in production."""
        if Config.is_production():
            raise RuntimeError("Cannot drop tables in production environment")

        engine = cls._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("Database tables dropped")

    # ========================================================================
    # Health Check
    # ========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """
        Run ``SELECT 1``; returns False instead of raising on failure.
        """
        if cls._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True

        except (OperationalError, DBAPIError) as exc:
            cls._metrics.health_checks_failed += 1
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        finally:
            logger.debug(
                "Database health check completed",
                extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
            )

    # ========================================================================
    # Session & Transaction Context Managers
    # ========================================================================

    @classmethod
    def _require_engine(cls) -> AsyncEngine:
        if cls._engine is None:
            raise DatabaseNotInitializedError("DatabaseService is not initialized")
        return cls._engine

    @classmethod
    def _ensure_initialized(cls) -> async_sessionmaker[AsyncSession]:
        if cls._session_factory is None or cls._engine is None:
            logger.error("DatabaseService operation attempted before initialization")
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. "
                "Call DatabaseService.initialize() during startup."
            )
        return cls._session_factory

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a database session without automatic commit.

        For write operations prefer ``get_transaction()``.
        """
        factory = cls._ensure_initialized()

        async with factory() as session:
            try:
                yield session
            finally:
                await session.close()

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a session wrapped in an atomic transaction.

        Commits when the block exits normally, rolls back and re-raises on
        any exception.
        """
        factory = cls._ensure_initialized()

        start = time.perf_counter()
        async with factory() as session:
            cls._metrics.transactions_started += 1
            try:
                yield session
                await session.commit()
                cls._metrics.transactions_committed += 1
                logger.debug(
                    "Database transaction committed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )

            except Exception as exc:
                await session.rollback()
                cls._metrics.transactions_rolled_back += 1
                logger.error(
                    "Error in transaction; rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                    exc_info=True,
                )
                raise

            finally:
                await session.close()

    @classmethod
    def get_metrics(cls) -> Dict[str, int]:
        return asdict(cls._metrics)
