"""Application factory: database initialization, middlewares and exception handlers"""

import logging
import os
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import cast

import alembic.command as alembic_command
import alembic.config as alembic_config
import alembic.migration as alembic_migration
from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from sqlalchemy.engine import Connection, Engine
from starlette.middleware.sessions import SessionMiddleware

from app import api
from app.core.utils.config import Settings
from app.core.utils.log import LogConfig
from app.dependencies import (
    disconnect_state,
    get_app_state,
    get_redis_client,
    init_app_state,
)
from app.types.exceptions import ContentHTTPException
from app.types.sqlalchemy import Base
from app.utils import initialization
from app.utils.redis import limiter
from app.utils.state import LifespanState

# Loggers are configured by `get_application`, they can not be retrieved at import time

SESSION_COOKIE_NAME = "studio_auth_session"


def get_alembic_config(connection: Connection) -> alembic_config.Config:
    alembic_cfg = alembic_config.Config("alembic.ini")
    # migrations/env.py reuses this connection instead of opening its own
    alembic_cfg.attributes["connection"] = connection

    return alembic_cfg


def update_db_tables(
    sync_engine: Engine,
    studio_error_logger: logging.Logger,
    drop_db: bool = False,
) -> None:
    """
    Bring the database schema to the latest alembic revision.

    An empty database is created from the models then stamped with `head`,
    instead of replaying every migration.
    See https://alembic.sqlalchemy.org/en/latest/cookbook.html#building-an-up-to-date-database-from-scratch
    A database which already has a revision is upgraded to `head`.

    Alembic needs a synchronous connection.
    """
    try:
        with sync_engine.begin() as conn:
            if drop_db:
                initialization.drop_db_sync(conn)

            current_revision = alembic_migration.MigrationContext.configure(
                conn,
            ).get_current_revision()
            alembic_cfg = get_alembic_config(conn)

            if current_revision is None:
                studio_error_logger.info(
                    "Startup: Empty database, creating the tables",
                )
                Base.metadata.create_all(conn)
                alembic_command.stamp(alembic_cfg, "head")
            else:
                studio_error_logger.info(
                    f"Startup: Database at revision {current_revision}, running migrations",
                )
                alembic_command.upgrade(alembic_cfg, "head")

            studio_error_logger.info("Startup: Database tables updated")
    except Exception as error:
        studio_error_logger.fatal(
            f"Startup: Could not create tables in the database: {error}",
        )
        raise


def init_db(
    settings: Settings,
    studio_error_logger: logging.Logger,
    drop_db: bool = False,
) -> None:
    """
    Create or migrate the database tables, using a temporary synchronous engine
    """
    sync_engine = initialization.get_sync_db_engine(settings=settings)
    try:
        update_db_tables(
            sync_engine=sync_engine,
            studio_error_logger=studio_error_logger,
            drop_db=drop_db,
        )
    finally:
        sync_engine.dispose()


def use_route_path_as_operation_ids(app: FastAPI) -> None:
    """
    Name operations `<method>_<path>`, for instance `post_oauth_token`.

    See https://fastapi.tiangolo.com/advanced/path-operation-advanced-configuration/
    """
    for route in app.routes:
        if isinstance(route, APIRoute):
            method = "_".join(sorted(route.methods))
            route.operation_id = method.lower() + route.path.replace("/", "_")


def get_application(settings: Settings, drop_db: bool = False) -> FastAPI:
    """
    Build the application. Tests call it with their own settings and `drop_db=True`.
    """
    LogConfig().initialize_loggers(settings=settings)

    studio_access_logger = logging.getLogger("studio.access")
    studio_security_logger = logging.getLogger("studio.security")
    studio_error_logger = logging.getLogger("studio.error")

    # https://fastapi.tiangolo.com/advanced/events/
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[LifespanState, None]:
        studio_error_logger.info("Startup: Initializing application")

        # Gunicorn initializes the database once in its arbiter and sets STUDIO_INIT_DB=False for the workers
        if os.getenv("STUDIO_INIT_DB", "True") != "False":
            init_db(
                settings=settings,
                studio_error_logger=studio_error_logger,
                drop_db=drop_db,
            )

        state = await app.dependency_overrides.get(
            init_app_state,
            init_app_state,
        )(
            app=app,
            settings=settings,
            studio_error_logger=studio_error_logger,
        )
        state = cast("LifespanState", state)

        # Starlette gives a copy of the state to every request
        # See https://www.starlette.io/lifespan/#lifespan-state
        yield state

        studio_error_logger.info("Shutting down")
        await app.dependency_overrides.get(
            disconnect_state,
            disconnect_state,
        )(
            state=state,
            studio_error_logger=studio_error_logger,
        )

    app = FastAPI(
        title="Studio Auth",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    app.include_router(api.api_router)
    use_route_path_as_operation_ids(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # The signed session cookie holds the logged in user and the pending authorization request.
    # It must be sent on the top level navigation from a website to `/oauth/authorize`: `lax`
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET_KEY,
        session_cookie=SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        same_site="lax",
        https_only=settings.CLIENT_URL.startswith("https://"),
    )

    def is_rate_limited(request: Request, ip_address: str) -> bool:
        if not settings.ENABLE_RATE_LIMITER:
            return False

        redis_client = app.dependency_overrides.get(
            get_redis_client,
            get_redis_client,
        )(state=get_app_state(request))
        if not redis_client:
            return False

        allowed, first_refusal = limiter(
            redis_client,
            ip_address,
            settings.REDIS_LIMIT,
            settings.REDIS_WINDOW,
        )
        if first_refusal:
            studio_security_logger.warning(
                f"Rate limit reached for {ip_address} (limit: {settings.REDIS_LIMIT}, window: {settings.REDIS_WINDOW})",
            )
        return not allowed

    @app.middleware("http")
    async def logging_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """
        Give each request an id, stored in `request.state.request_id` and appended to the log lines of the request,
        apply the rate limiter, then log the request.
        """
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        if request.client is None:
            studio_security_logger.warning(
                f"Client information not available for {request.url.path}",
            )
            raise HTTPException(status_code=400, detail="No client information")

        ip_address = request.client.host
        client_address = f"{ip_address}:{request.client.port}"

        if is_rate_limited(request, ip_address):
            return Response(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content="Too Many Requests",
            )

        response = await call_next(request)
        studio_access_logger.info(
            f'{client_address} - "{request.method} {request.url.path}" {response.status_code} ({request_id})',
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ):
        # Debug level: the body may contain credentials
        studio_error_logger.debug(
            f"Validation error: {exc.errors()} ({request.state.request_id})",
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=jsonable_encoder({"detail": exc.errors()}),
        )

    @app.exception_handler(ContentHTTPException)
    async def content_exception_handler(
        request: Request,
        exc: ContentHTTPException,
    ):
        # OAuth errors are returned as `{error, error_description}` instead of `{detail}`
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(exc.content),
            headers=exc.headers,
        )

    return app
