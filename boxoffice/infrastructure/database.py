"""Database Session Manager — settlement transactions, pooling and health checks.

Invariants:
    - Every session rolls back on exception; no partial settlement leaks
    - BoxOfficeError raised inside a session rolls back, then propagates unchanged
    - Other SQLAlchemy exceptions escaping a service become DatabaseError (core/errors.py)
    - Unique-constraint losers of a commit race become the caller's ConflictError
      (commit_or_conflict): duplicate refund request, duplicate discount code
    - On SQLite every transaction opens with BEGIN IMMEDIATE, so racing writers queue
      on the busy timeout and the conditional UPDATEs see committed counters

Design Decisions:
    - Pool sizing and pre-ping only for server databases; SQLite keeps its default pool
    - The BEGIN IMMEDIATE listener replaces the driver's deferred BEGIN, which would
      fail a concurrent read-to-write lock upgrade with "database is locked"
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.exc import (
    DBAPIError, IntegrityError, OperationalError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from boxoffice.core.errors import BoxOfficeError, DatabaseError

logger = logging.getLogger(__name__)


# ─── Engine ─────────────────────────────────────────────────────

def build_engine(
    database_url: str, pool_size: int = 20, max_overflow: int = 10,
) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        engine = create_async_engine(database_url)
        _serialize_sqlite_writers(engine)
        return engine
    return create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# ─── Sessions ───────────────────────────────────────────────────

class DatabaseSessionManager:
    """Hands out settlement sessions; maps driver failures to DatabaseError."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        self.engine = build_engine(database_url, pool_size, max_overflow)
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        session = self._session_factory()
        try:
            yield session
        except BoxOfficeError:
            await session.rollback()
            raise
        except IntegrityError as e:
            await session.rollback()
            logger.error(f"Settlement write violated a constraint: {e.orig}")
            raise DatabaseError("Integrity constraint violated", "commit")
        except OperationalError as e:
            await session.rollback()
            logger.error(f"DB operational error: {e}")
            raise DatabaseError("Connection or operational error", "execute")
        except DBAPIError as e:
            await session.rollback()
            logger.error(f"DB driver error: {e}")
            raise DatabaseError("Database driver error", "query")
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"SQLAlchemy error: {e}")
            raise DatabaseError("Database operation failed", "unknown")
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """SELECT 1 through a managed session (readiness)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


async def commit_or_conflict(session: AsyncSession, conflict: BoxOfficeError) -> None:
    """Commit; a unique-constraint refusal rolls back and raises `conflict` instead.

    Settlement uniqueness (one refund request per order, one discount per code)
    lives in the schema, so the losing side of a race surfaces here.
    """
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.warning(
            f"Commit refused by constraint: {e.orig}",
            extra={"error_code": conflict.code},
        )
        raise conflict


# Initialized on startup
db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    async with db_manager.session() as session:
        yield session
