import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.users import cruds_users, models_users
from app.core.utils import encryption
from app.core.utils.config import Settings
from app.utils.auth.providers import ExternalIdentity

studio_security_logger = logging.getLogger("studio.security")


async def sign_in_user(
    db: AsyncSession,
    settings: Settings,
    identity: ExternalIdentity,
) -> models_users.CoreUser:
    """
    Create or update the user corresponding to an identity returned by GitHub.

    The user is found using their GitHub id, then using their email, which allows to link an account created before its GitHub id was known.
    The GitHub token is encrypted before being stored. The first user to ever sign in becomes an administrator.
    """
    encrypted_github_token = None
    if identity.provider_token is not None:
        encrypted_github_token = encryption.encrypt_provider_token(
            identity.provider_token,
            settings.PROVIDER_TOKEN_ENCRYPTION_KEY,
        )

    user = await cruds_users.get_user_by_github_id(db=db, github_id=identity.id)
    if user is None:
        user = await cruds_users.get_user_by_email(db=db, email=identity.email)

    now = datetime.now(UTC)

    if user is not None:
        await cruds_users.update_user(
            db=db,
            user_id=user.id,
            name=identity.name,
            avatar=identity.avatar,
            github_id=identity.id,
            github_token=encrypted_github_token,
            updated_on=now,
        )
        await db.refresh(user)
        return user

    is_first_user = await cruds_users.count_users(db=db) == 0

    user = await cruds_users.create_user(
        db=db,
        user=models_users.CoreUser(
            id=str(uuid.uuid4()),
            email=identity.email,
            name=identity.name,
            avatar=identity.avatar,
            github_id=identity.id,
            github_token=encrypted_github_token,
            created_on=now,
            updated_on=now,
            is_admin=is_first_user,
        ),
    )
    if is_first_user:
        studio_security_logger.info(
            f"User {user.id} is the first user and was made administrator",
        )
    return user
