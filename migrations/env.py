import asyncio
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncConnection

from app.dependencies import get_settings
from app.types.sqlalchemy import Base
from app.utils.state import get_async_database_url, init_engine

config = context.config

if config.config_file_name is not None:
    # Keep the studio loggers when migrations run at startup
    # See https://stackoverflow.com/questions/42427487/using-alembic-config-main-redirects-log-output
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata

# Every model must be imported for autogenerate to see its table
for models_file in sorted(Path().glob("app/**/models_*.py")):
    __import__(".".join(models_file.with_suffix("").parts))


def run_migrations_offline() -> None:
    """
    Emit the migrations as SQL for the database configured in the production settings
    """
    context.configure(
        url=get_async_database_url(get_settings()),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        # Migrations refer to `TZDateTime` without the `app.types.sqlalchemy.` prefix
        # See https://alembic.sqlalchemy.org/en/latest/autogenerate.html#controlling-the-module-prefix
        user_module_prefix="",
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations(connection: AsyncConnection) -> None:
    # Alembic inspects the database, which requires a synchronous connection
    # See https://alembic.sqlalchemy.org/en/latest/cookbook.html#programmatic-api-use-connection-sharing-with-asyncio
    await connection.run_sync(do_run_migrations)


async def run_cli_migrations() -> None:
    engine = init_engine(get_settings())

    async with engine.connect() as connection:
        await run_async_migrations(connection)
    await engine.dispose()


def run_migrations_online() -> None:
    """
    Run the migrations on the connection stored in `config.attributes["connection"]`.

    The application passes a synchronous connection at startup.
    See https://alembic.sqlalchemy.org/en/latest/cookbook.html#connection-sharing

    Without a connection, alembic was started from the command line:
    the database of the production settings is migrated in a new event loop.
    """
    connection: None | Connection | AsyncConnection = config.attributes.get(
        "connection",
        None,
    )

    if connection is None:
        asyncio.run(run_cli_migrations())
    elif isinstance(connection, AsyncConnection):
        asyncio.run(run_async_migrations(connection))
    elif isinstance(connection, Connection):
        do_run_migrations(connection)
    else:
        raise TypeError(  # noqa: TRY003
            f"A Connection or an AsyncConnection is required, got a {type(connection)}",
        )


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
