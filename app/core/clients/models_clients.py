from datetime import datetime

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.types.sqlalchemy import Base


class OAuthClient(Base):
    """
    A website allowed to authenticate users for its Studio editor.

    Redirect URIs are not stored: they are derived from `website_url` and `preview_url_pattern`.
    """

    __tablename__ = "core_oauth_client"

    id: Mapped[str] = mapped_column(primary_key=True, index=True)
    # SHA-256 digest of the client secret. The secret itself is only shown once, at creation or rotation
    secret_hash: Mapped[str]
    name: Mapped[str]
    # Origin of the website, without trailing slash
    website_url: Mapped[str]
    # Optional origin template for preview deployments, ex: `https://*.vercel.app`
    preview_url_pattern: Mapped[str | None]
    owner_id: Mapped[str | None] = mapped_column(
        ForeignKey("core_user.id", ondelete="SET NULL"),
    )
    created_on: Mapped[datetime]
    is_active: Mapped[bool] = mapped_column(default=True)
