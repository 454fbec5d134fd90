"""
FastAPI [dependencies](https://fastapi.tiangolo.com/tutorial/dependencies/) shared by the endpoints:
application state, settings, database session, session context and the authenticated user.

```python
async def read_clients(db: AsyncSession = Depends(get_db)):
```
"""

import logging
from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated, cast

import redis
import starlette
import starlette.datastructures
from fastapi import Depends, FastAPI, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.users import cruds_users, models_users
from app.core.utils.config import Settings, construct_prod_settings
from app.types.exceptions import InvalidAppStateTypeError
from app.types.session import SessionContext
from app.utils.auth.providers import BaseIdentityProvider, GitHubIdentityProvider
from app.utils.state import (
    LifespanState,
    RuntimeLifespanState,
    close_state,
    init_engine,
    init_redis_client,
    init_scheduler,
    init_SessionLocal,
)

studio_error_logger = logging.getLogger("studio.error")


async def init_app_state(
    app: FastAPI,
    settings: Settings,
    studio_error_logger: logging.Logger,
) -> LifespanState:
    """
    Create the engine, the Redis client and the scheduler when the application starts.

    The lifespan calls it through `app.dependency_overrides` so that tests can use their own database.
    """
    engine = init_engine(settings=settings)
    SessionLocal = init_SessionLocal(engine)

    return LifespanState(
        engine=engine,
        SessionLocal=SessionLocal,
        redis_client=init_redis_client(
            settings=settings,
            studio_error_logger=studio_error_logger,
        ),
        scheduler=await init_scheduler(
            settings=settings,
            SessionLocal=SessionLocal,
        ),
    )


async def disconnect_state(
    state: LifespanState,
    studio_error_logger: logging.Logger,
) -> None:
    await close_state(state)

    studio_error_logger.info("Application state disconnected")


def get_app_state(request: Request) -> RuntimeLifespanState:
    # Depending on where it is read, `request.state` is a dict or a starlette State wrapping the dict
    if isinstance(request.state, dict):
        return cast("RuntimeLifespanState", request.state)
    if isinstance(request.state, starlette.datastructures.State):
        return cast("RuntimeLifespanState", request.state.__dict__["_state"])
    raise InvalidAppStateTypeError


AppState = Annotated[RuntimeLifespanState, Depends(get_app_state)]


async def get_request_id(state: AppState) -> str:
    """
    Id of the current request, appended to log lines as `(<request_id>)`
    """
    return state["request_id"]


@lru_cache
def get_settings() -> Settings:
    # See https://fastapi.tiangolo.com/advanced/settings/#lru_cache-technical-details
    return construct_prod_settings()


async def get_db(state: AppState) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a database session committed at the end of the request.

    An HTTPException is an answer chosen by the endpoint: the session is committed,
    so that an authorization code consumed by a failing token request stays deleted.
    Any other exception rolls the session back.

    Cruds call `await db.flush()`, never `commit()` or `rollback()`.
    """
    async with state["SessionLocal"]() as db:
        try:
            yield db
        except HTTPException:
            await db.commit()
            raise
        except Exception:
            await db.rollback()
            raise
        else:
            await db.commit()


def get_redis_client(state: AppState) -> redis.Redis | None:
    return state["redis_client"]


def get_session_context(request: Request) -> SessionContext:
    """
    Dependency that returns the session of the request, stored in a signed cookie by the session middleware
    """
    return SessionContext(request.session)


def get_identity_provider(
    settings: Settings = Depends(get_settings),
) -> BaseIdentityProvider:
    """
    Dependency that returns the identity provider used to authenticate users.

    Tests override this dependency to avoid calling GitHub.
    """
    if settings.GITHUB_CLIENT_ID is None or settings.GITHUB_CLIENT_SECRET is None:
        studio_error_logger.error(
            "GitHub OAuth application is not configured, users won't be able to log in",
        )
        raise HTTPException(
            status_code=503,
            detail="GitHub authentication is not configured",
        )
    return GitHubIdentityProvider(
        client_id=settings.GITHUB_CLIENT_ID,
        client_secret=settings.GITHUB_CLIENT_SECRET,
    )


async def get_session_user(
    db: AsyncSession = Depends(get_db),
    session: SessionContext = Depends(get_session_context),
) -> models_users.CoreUser:
    """
    A dependency that will:
        * check if the session contains an authenticated user
        * make sure the user still exists
        * return the corresponding user `models_users.CoreUser` object
    """
    session_user = session.user
    if session_user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    user = await cruds_users.get_user_by_id(db=db, user_id=session_user.id)
    if user is None:
        # The user was deleted since they logged in
        session.clear()
        raise HTTPException(status_code=401, detail="Unauthorized")

    return user


def is_user_admin(
    user: models_users.CoreUser = Depends(get_session_user),
) -> models_users.CoreUser:
    """
    A dependency that will:
        * check if the session contains an authenticated user
        * make sure the user is an administrator
    """
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user

