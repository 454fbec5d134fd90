from datetime import datetime

from pydantic import BaseModel, ConfigDict, computed_field, field_validator

from app.utils import validators
from app.utils.auth.redirect_uri import build_callback_url


class OAuthClientBase(BaseModel):
    name: str
    website_url: str
    preview_url_pattern: str | None = None

    _normalize_name = field_validator("name")(validators.trailing_spaces_remover)
    _check_name = field_validator("name")(validators.not_empty_string)


class OAuthClient(OAuthClientBase):
    """Schema for a client, the secret and its digest are never returned"""

    id: str
    owner_id: str | None = None
    created_on: datetime
    is_active: bool

    model_config = ConfigDict(from_attributes=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def callback_url(self) -> str:
        return build_callback_url(self.website_url)


class OAuthClientWithSecret(OAuthClient):
    """Returned when a client is created or when its secret is rotated. The secret is only shown once."""

    client_secret: str


class OAuthClientCreation(OAuthClientBase):
    pass


class OAuthClientUpdate(BaseModel):
    name: str | None = None
    website_url: str | None = None
    # An empty string removes the preview url pattern
    preview_url_pattern: str | None = None
    is_active: bool | None = None

    _normalize_name = field_validator("name")(validators.trailing_spaces_remover)
    _check_name = field_validator("name")(validators.not_empty_string)


class Website(BaseModel):
    """Public information about a client"""

    name: str
    website_url: str

    model_config = ConfigDict(from_attributes=True)
