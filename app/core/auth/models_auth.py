from datetime import datetime

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.types.sqlalchemy import Base


class AuthorizationCode(Base):
    __tablename__ = "core_authorization_code"

    # Codes are short lived and single use, they are stored in plaintext
    code: Mapped[str] = mapped_column(primary_key=True, index=True)
    client_id: Mapped[str] = mapped_column(
        ForeignKey("core_oauth_client.id", ondelete="CASCADE"),
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("core_user.id", ondelete="CASCADE"),
    )
    redirect_uri: Mapped[str]
    scope: Mapped[str]
    code_challenge: Mapped[str | None]
    code_challenge_method: Mapped[str | None]
    expire_on: Mapped[datetime] = mapped_column(index=True)


class RefreshToken(Base):
    __tablename__ = "core_refresh_token"

    id: Mapped[str] = mapped_column(primary_key=True)
    # SHA-256 digest of the token, the plaintext token is only returned to the client
    token_hash: Mapped[str] = mapped_column(unique=True, index=True)
    client_id: Mapped[str] = mapped_column(
        ForeignKey("core_oauth_client.id", ondelete="CASCADE"),
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("core_user.id", ondelete="CASCADE"),
        index=True,
    )
    scope: Mapped[str]
    created_on: Mapped[datetime]
    expire_on: Mapped[datetime]
    # Revoked tokens are kept in the database
    revoked_on: Mapped[datetime | None] = mapped_column(default=None)
