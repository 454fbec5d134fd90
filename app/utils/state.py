import logging
from typing import TypedDict

import redis
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.utils.config import Settings
from app.types.scheduler import OfflineScheduler, Scheduler
from app.types.sqlalchemy import SessionLocalType


class LifespanState(TypedDict):
    """
    Objects created when the application starts, shared by every request
    """

    engine: AsyncEngine
    SessionLocal: SessionLocalType
    # None when Redis is not configured or not reachable
    redis_client: redis.Redis | None
    scheduler: Scheduler


class RuntimeLifespanState(LifespanState):
    """
    The state seen by a request: the lifespan state and the request id set by the logging middleware
    """

    request_id: str


def get_async_database_url(settings: Settings) -> str:
    if settings.SQLITE_DB:
        return f"sqlite+aiosqlite:///./{settings.SQLITE_DB}"
    return f"postgresql+asyncpg://{settings.POSTGRES_USER}:{settings.POSTGRES_PASSWORD}@{settings.POSTGRES_HOST}/{settings.POSTGRES_DB}"


def init_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        get_async_database_url(settings),
        echo=settings.DATABASE_DEBUG,
    )


def init_SessionLocal(engine: AsyncEngine) -> SessionLocalType:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def init_redis_client(
    settings: Settings,
    studio_error_logger: logging.Logger,
) -> redis.Redis | None:
    """
    Connect to Redis when REDIS_HOST is set.

    An unreachable server is logged and the application runs without the rate limiter and the scheduler.
    """
    if not settings.REDIS_HOST:
        return None

    redis_client = redis.Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        password=settings.REDIS_PASSWORD,
        socket_keepalive=True,
    )
    try:
        redis_client.ping()
    except redis.exceptions.ConnectionError:
        studio_error_logger.exception(
            f"Startup: Could not connect to Redis at {settings.REDIS_HOST}:{settings.REDIS_PORT}",
        )
        redis_client.close()
        return None
    return redis_client


async def init_scheduler(
    settings: Settings,
    SessionLocal: SessionLocalType,
) -> Scheduler:
    """
    Start the arq worker running the periodic jobs, or an OfflineScheduler when Redis is not configured
    """
    if not settings.REDIS_HOST:
        return OfflineScheduler()

    scheduler = Scheduler()
    await scheduler.start(
        redis_host=settings.REDIS_HOST,
        redis_port=settings.REDIS_PORT,
        redis_password=settings.REDIS_PASSWORD,
        SessionLocal=SessionLocal,
    )
    return scheduler


async def close_state(state: LifespanState) -> None:
    if state["redis_client"] is not None:
        state["redis_client"].close()
    await state["scheduler"].close()
    await state["engine"].dispose()
