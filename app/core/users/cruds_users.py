"""File defining the functions called by the endpoints, making queries to the table using the models"""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.users import models_users


async def count_users(db: AsyncSession) -> int:
    """Return the number of users in the database"""

    result = await db.execute(select(func.count()).select_from(models_users.CoreUser))
    return result.scalar_one()


async def get_user_by_id(
    db: AsyncSession,
    user_id: str,
) -> models_users.CoreUser | None:
    result = await db.execute(
        select(models_users.CoreUser).where(models_users.CoreUser.id == user_id),
    )
    return result.scalars().first()


async def get_user_by_email(
    db: AsyncSession,
    email: str,
) -> models_users.CoreUser | None:
    result = await db.execute(
        select(models_users.CoreUser).where(models_users.CoreUser.email == email),
    )
    return result.scalars().first()


async def get_user_by_github_id(
    db: AsyncSession,
    github_id: str,
) -> models_users.CoreUser | None:
    result = await db.execute(
        select(models_users.CoreUser).where(
            models_users.CoreUser.github_id == github_id,
        ),
    )
    return result.scalars().first()


async def create_user(
    db: AsyncSession,
    user: models_users.CoreUser,
) -> models_users.CoreUser:
    db.add(user)
    await db.flush()
    return user


async def update_user(
    db: AsyncSession,
    user_id: str,
    **values,
) -> None:
    await db.execute(
        update(models_users.CoreUser)
        .where(models_users.CoreUser.id == user_id)
        .values(**values),
    )
    await db.flush()
