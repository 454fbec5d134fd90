import logging
import uuid
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import cruds_auth, models_auth
from app.core.utils import security
from app.core.utils.config import Settings

studio_security_logger = logging.getLogger("studio.security")


class ExchangedRefreshToken(BaseModel):
    token_id: str
    user_id: str
    scope: str


async def issue_refresh_token(
    db: AsyncSession,
    settings: Settings,
    client_id: str,
    user_id: str,
    scope: str,
) -> str:
    """
    Create a refresh token and return it. Only the digest of the token is stored:
    the returned value is the only time the plaintext token is available.
    """
    refresh_token = security.generate_token(64)
    now = datetime.now(UTC)

    await cruds_auth.create_refresh_token(
        db=db,
        db_refresh_token=models_auth.RefreshToken(
            id=str(uuid.uuid4()),
            token_hash=security.hash_token(refresh_token),
            client_id=client_id,
            user_id=user_id,
            scope=scope,
            created_on=now,
            expire_on=now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        ),
    )

    return refresh_token


async def exchange_refresh_token(
    db: AsyncSession,
    token: str,
    client_id: str,
) -> ExchangedRefreshToken | None:
    """
    Validate a refresh token presented by `client_id`.

    The token must have been issued to this client, must not be revoked nor expired.
    The token is not consumed and can be used again until it expires or is revoked.
    """
    db_refresh_token = await cruds_auth.get_unrevoked_refresh_token_by_hash_and_client_id(
        db=db,
        token_hash=security.hash_token(token),
        client_id=client_id,
    )
    if db_refresh_token is None:
        return None

    if db_refresh_token.expire_on < datetime.now(UTC):
        return None

    return ExchangedRefreshToken(
        token_id=db_refresh_token.id,
        user_id=db_refresh_token.user_id,
        scope=db_refresh_token.scope,
    )


async def revoke_refresh_token(
    db: AsyncSession,
    token: str,
    client_id: str | None = None,
) -> bool:
    """
    Revoke a refresh token. Return True if a token was revoked.

    Revoking an unknown or an already revoked token is not an error.
    If `client_id` is provided, only a token issued to this client can be revoked.
    """
    revoked_count = await cruds_auth.revoke_refresh_token_by_hash(
        db=db,
        token_hash=security.hash_token(token),
        revoked_on=datetime.now(UTC),
        client_id=client_id,
    )
    return revoked_count > 0


async def revoke_all_refresh_tokens(
    db: AsyncSession,
    user_id: str,
    client_id: str | None = None,
) -> None:
    """
    Revoke all the refresh tokens of a user, optionally only the ones issued to `client_id`
    """
    revoked_count = await cruds_auth.revoke_refresh_tokens_by_user_id(
        db=db,
        user_id=user_id,
        revoked_on=datetime.now(UTC),
        client_id=client_id,
    )
    studio_security_logger.info(
        f"Revoked {revoked_count} refresh tokens of user {user_id}"
        + (f" for client {client_id}" if client_id else ""),
    )


async def get_revoked_refresh_token(
    db: AsyncSession,
    token: str,
    client_id: str,
) -> models_auth.RefreshToken | None:
    """
    Return the refresh token if it was issued to `client_id` and has been revoked.
    Used to detect the replay of a rotated refresh token.
    """
    db_refresh_token = await cruds_auth.get_refresh_token_by_hash(
        db=db,
        token_hash=security.hash_token(token),
    )
    if (
        db_refresh_token is None
        or db_refresh_token.client_id != client_id
        or db_refresh_token.revoked_on is None
    ):
        return None
    return db_refresh_token
