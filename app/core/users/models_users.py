from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from app.types.sqlalchemy import Base


class CoreUser(Base):
    __tablename__ = "core_user"

    id: Mapped[str] = mapped_column(
        primary_key=True,
        index=True,
    )
    email: Mapped[str] = mapped_column(unique=True, index=True)
    name: Mapped[str]
    avatar: Mapped[str | None]
    # Identifier of the user on GitHub, used to find the user when they log in again
    github_id: Mapped[str | None] = mapped_column(unique=True, index=True)
    # GitHub access token of the user, encrypted using `app.core.utils.encryption`
    # Clients receive it from the userinfo endpoint to commit on behalf of the user
    github_token: Mapped[str | None]
    created_on: Mapped[datetime]
    updated_on: Mapped[datetime]
    is_admin: Mapped[bool] = mapped_column(default=False)
