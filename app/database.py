import logging
from typing import Any, Awaitable, Callable, TypeVar

from fastapi import Depends
from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import settings
from app.errors import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# lock timeouts, serialization failures and deadlocks
_CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
_CONFLICT_MARKERS = ("database is locked", "could not serialize", "deadlock detected")


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock up front.

    Two atomic units that both read stock and then write it are serialized by
    the database instead of failing late with a lock upgrade deadlock.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    connect_args = {}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args["timeout"] = settings.SQLITE_BUSY_TIMEOUT_SECONDS

    engine = create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,      # checks dead connections
        connect_args=connect_args,
    )
    if is_sqlite:
        _use_immediate_transactions(engine)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
async_session_maker = build_session_factory(engine)


async def create_db_and_tables(bind: AsyncEngine = None):
    from app import models  # noqa: F401  registers the tables

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


def get_session_factory() -> async_sessionmaker:
    return async_session_maker


async def get_session(
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    async with session_factory() as session:
        yield session


def is_conflict_error(exc: Exception) -> bool:
    """True when the storage layer rejected a write because of a concurrent writer."""
    if isinstance(exc, IntegrityError):
        # the only unique value the engine generates itself
        return "order_number" in str(exc.orig)
    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        if sqlstate in _CONFLICT_SQLSTATES:
            return True
        message = str(exc.orig).lower()
        return any(marker in message for marker in _CONFLICT_MARKERS)
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        f"Storage conflict, retrying atomic unit "
        f"(attempt {retry_state.attempt_number}): {retry_state.outcome.exception()}"
    )


async def run_in_transaction(
    session_factory: async_sessionmaker,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_attempts: int = None,
) -> T:
    """Run ``work`` as one atomic unit, retrying it on storage conflicts.

    ``work`` receives a session with an open transaction. Everything it reads
    and writes commits together when it returns, or rolls back when it
    raises. Storage conflicts become ConcurrencyConflictError and the whole
    unit is re-run on a fresh session; domain errors propagate immediately.
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception_type(ConcurrencyConflictError),
        stop=stop_after_attempt(max_attempts or settings.TX_MAX_RETRIES),
        wait=wait_exponential(multiplier=settings.TX_RETRY_WAIT_SECONDS, max=1),
        before_sleep=_log_retry,
        reraise=True,
    )
    try:
        async for attempt in retrying:
            with attempt:
                result = await _run_once(session_factory, work)
    except ConcurrencyConflictError:
        logger.error("Atomic unit gave up after repeated storage conflicts")
        raise
    return result


async def _run_once(session_factory: async_sessionmaker, work: Callable[[AsyncSession], Awaitable[Any]]):
    async with session_factory() as session:
        try:
            async with session.begin():
                return await work(session)
        except DBAPIError as exc:
            if is_conflict_error(exc):
                raise ConcurrencyConflictError(
                    "The order was modified concurrently. Please retry."
                ) from exc
            raise
