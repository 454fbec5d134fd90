"""File defining the functions called by the endpoints, making queries to the table using the models"""

from collections.abc import Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import models_auth
from app.core.clients import models_clients


async def get_clients(
    db: AsyncSession,
    only_active: bool = False,
) -> Sequence[models_clients.OAuthClient]:
    query = select(models_clients.OAuthClient).order_by(
        models_clients.OAuthClient.created_on,
    )
    if only_active:
        query = query.where(models_clients.OAuthClient.is_active)
    result = await db.execute(query)
    return result.scalars().all()


async def get_client_by_id(
    db: AsyncSession,
    client_id: str,
) -> models_clients.OAuthClient | None:
    """Return the client with the given id, including inactive clients"""
    result = await db.execute(
        select(models_clients.OAuthClient).where(
            models_clients.OAuthClient.id == client_id,
        ),
    )
    return result.scalars().first()


async def get_active_client_by_id(
    db: AsyncSession,
    client_id: str,
) -> models_clients.OAuthClient | None:
    result = await db.execute(
        select(models_clients.OAuthClient).where(
            models_clients.OAuthClient.id == client_id,
            models_clients.OAuthClient.is_active,
        ),
    )
    return result.scalars().first()


async def create_client(
    db: AsyncSession,
    client: models_clients.OAuthClient,
) -> models_clients.OAuthClient:
    db.add(client)
    await db.flush()
    return client


async def update_client(
    db: AsyncSession,
    client_id: str,
    **values,
) -> None:
    await db.execute(
        update(models_clients.OAuthClient)
        .where(models_clients.OAuthClient.id == client_id)
        .values(**values),
    )
    await db.flush()


async def delete_client(
    db: AsyncSession,
    client_id: str,
) -> None:
    """
    Delete a client and all the authorization codes and refresh tokens issued to it.

    SQLite does not enforce foreign keys by default, related rows are thus deleted explicitly.
    """
    await db.execute(
        delete(models_auth.RefreshToken).where(
            models_auth.RefreshToken.client_id == client_id,
        ),
    )
    await db.execute(
        delete(models_auth.AuthorizationCode).where(
            models_auth.AuthorizationCode.client_id == client_id,
        ),
    )
    await db.execute(
        delete(models_clients.OAuthClient).where(
            models_clients.OAuthClient.id == client_id,
        ),
    )
    await db.flush()
