"""File defining the functions called by the endpoints, making queries to the table using the models"""

from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import models_auth


async def create_authorization_code(
    db: AsyncSession,
    db_authorization_code: models_auth.AuthorizationCode,
) -> models_auth.AuthorizationCode:
    db.add(db_authorization_code)
    await db.flush()
    return db_authorization_code


async def pop_authorization_code(
    db: AsyncSession,
    code: str,
) -> models_auth.AuthorizationCode | None:
    """
    Delete the authorization code and return the deleted row.

    The row is fetched and deleted in a single `DELETE ... RETURNING` statement:
    if two requests try to use the same code concurrently, only one of them will get the row.
    """
    result = await db.execute(
        delete(models_auth.AuthorizationCode)
        .where(models_auth.AuthorizationCode.code == code)
        .returning(models_auth.AuthorizationCode),
    )
    db_authorization_code = result.scalars().first()
    await db.flush()
    return db_authorization_code


async def delete_authorization_codes_expired_before(
    db: AsyncSession,
    date: datetime,
) -> int:
    result = await db.execute(
        delete(models_auth.AuthorizationCode).where(
            models_auth.AuthorizationCode.expire_on < date,
        ),
    )
    await db.flush()
    return result.rowcount


async def create_refresh_token(
    db: AsyncSession,
    db_refresh_token: models_auth.RefreshToken,
) -> models_auth.RefreshToken:
    db.add(db_refresh_token)
    await db.flush()
    return db_refresh_token


async def get_refresh_token_by_hash(
    db: AsyncSession,
    token_hash: str,
) -> models_auth.RefreshToken | None:
    result = await db.execute(
        select(models_auth.RefreshToken).where(
            models_auth.RefreshToken.token_hash == token_hash,
        ),
    )
    return result.scalars().first()


async def get_unrevoked_refresh_token_by_hash_and_client_id(
    db: AsyncSession,
    token_hash: str,
    client_id: str,
) -> models_auth.RefreshToken | None:
    result = await db.execute(
        select(models_auth.RefreshToken).where(
            models_auth.RefreshToken.token_hash == token_hash,
            models_auth.RefreshToken.client_id == client_id,
            models_auth.RefreshToken.revoked_on.is_(None),
        ),
    )
    return result.scalars().first()


async def revoke_refresh_token_by_hash(
    db: AsyncSession,
    token_hash: str,
    revoked_on: datetime,
    client_id: str | None = None,
) -> int:
    """
    Revoke the refresh token if it was not already revoked. Return the number of revoked tokens.
    """
    query = update(models_auth.RefreshToken).where(
        models_auth.RefreshToken.token_hash == token_hash,
        models_auth.RefreshToken.revoked_on.is_(None),
    )
    if client_id is not None:
        query = query.where(models_auth.RefreshToken.client_id == client_id)

    result = await db.execute(query.values(revoked_on=revoked_on))
    await db.flush()
    return result.rowcount


async def revoke_refresh_tokens_by_user_id(
    db: AsyncSession,
    user_id: str,
    revoked_on: datetime,
    client_id: str | None = None,
) -> int:
    """
    Revoke all the refresh tokens of the user, optionally only the ones issued to `client_id`
    """
    query = update(models_auth.RefreshToken).where(
        models_auth.RefreshToken.user_id == user_id,
        models_auth.RefreshToken.revoked_on.is_(None),
    )
    if client_id is not None:
        query = query.where(models_auth.RefreshToken.client_id == client_id)

    result = await db.execute(query.values(revoked_on=revoked_on))
    await db.flush()
    return result.rowcount
