from sqlalchemy import Connection, MetaData
from sqlalchemy.engine import Engine, create_engine

from app.core.utils.config import Settings
from app.types.sqlalchemy import Base

# Synchronous database helpers, used before the event loop starts


def get_sync_database_url(settings: Settings) -> str:
    if settings.SQLITE_DB:
        return f"sqlite:///./{settings.SQLITE_DB}"
    return f"postgresql+psycopg://{settings.POSTGRES_USER}:{settings.POSTGRES_PASSWORD}@{settings.POSTGRES_HOST}/{settings.POSTGRES_DB}"


def get_sync_db_engine(settings: Settings) -> Engine:
    return create_engine(
        get_sync_database_url(settings),
        echo=settings.DATABASE_DEBUG,
    )


def drop_db_sync(conn: Connection) -> None:
    """
    Drop every table of the database, the ones reflected from the database and not only the ones of the models.

    This includes `alembic_version`: a stale revision would make the next start skip the table creation.
    """
    reflected_metadata = MetaData(schema=Base.metadata.schema)
    reflected_metadata.reflect(bind=conn, resolve_fks=False)
    reflected_metadata.drop_all(bind=conn)
