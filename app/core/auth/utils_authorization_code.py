import logging
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import cruds_auth, models_auth
from app.core.users import cruds_users, models_users
from app.core.utils import security
from app.core.utils.config import Settings
from app.utils.auth import pkce

studio_security_logger = logging.getLogger("studio.security")


class ConsumedAuthorizationCode(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user: models_users.CoreUser
    scope: str


async def issue_authorization_code(
    db: AsyncSession,
    settings: Settings,
    client_id: str,
    user_id: str,
    redirect_uri: str,
    scope: str,
    code_challenge: str | None,
    code_challenge_method: str | None,
) -> str:
    """
    Create a single use authorization code, bound to the client, the redirect_uri and the PKCE challenge.
    The code expires after `AUTHORIZATION_CODE_EXPIRE_MINUTES`.
    """
    code = security.generate_token(32)

    await cruds_auth.create_authorization_code(
        db=db,
        db_authorization_code=models_auth.AuthorizationCode(
            code=code,
            client_id=client_id,
            user_id=user_id,
            redirect_uri=redirect_uri,
            scope=scope,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            expire_on=datetime.now(UTC)
            + timedelta(minutes=settings.AUTHORIZATION_CODE_EXPIRE_MINUTES),
        ),
    )

    return code


async def consume_authorization_code(
    db: AsyncSession,
    code: str,
    client_id: str,
    redirect_uri: str,
    code_verifier: str | None,
) -> ConsumedAuthorizationCode | None:
    """
    Exchange an authorization code for the user and the scope it was issued for.

    The code is deleted before being validated: whatever the outcome, it can only be used once.
    Return None if the code is unknown, was issued to another client or redirect_uri, is expired or if the PKCE verification fails.
    """
    db_authorization_code = await cruds_auth.pop_authorization_code(db=db, code=code)
    if db_authorization_code is None:
        studio_security_logger.warning(
            f"Authorization code: unknown or already used code for client {client_id}",
        )
        return None

    # The code is bound to the exact client and redirect_uri used at /authorize
    if (
        db_authorization_code.client_id != client_id
        or db_authorization_code.redirect_uri != redirect_uri
    ):
        studio_security_logger.warning(
            f"Authorization code: code issued to client {db_authorization_code.client_id} was used by client {client_id} or with another redirect_uri",
        )
        return None

    if db_authorization_code.expire_on < datetime.now(UTC):
        return None

    if db_authorization_code.code_challenge is not None:
        if code_verifier is None:
            return None
        if not pkce.verify_code_challenge(
            code_verifier=code_verifier,
            code_challenge=db_authorization_code.code_challenge,
            method=db_authorization_code.code_challenge_method,
        ):
            studio_security_logger.warning(
                f"Authorization code: invalid code_verifier for client {client_id}",
            )
            return None

    user = await cruds_users.get_user_by_id(db=db, user_id=db_authorization_code.user_id)
    if user is None:
        return None

    return ConsumedAuthorizationCode(user=user, scope=db_authorization_code.scope)


async def cleanup_expired_authorization_codes(db: AsyncSession) -> int:
    """
    Delete all expired authorization codes. Return the number of deleted codes.

    Expired codes are already refused when consumed, this only limits the size of the table.
    """
    return await cruds_auth.delete_authorization_codes_expired_before(
        db=db,
        date=datetime.now(UTC),
    )
