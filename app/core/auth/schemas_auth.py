"""Schemas file for endpoint /oauth"""

from typing import Literal

from fastapi import Form
from pydantic import BaseModel, ConfigDict, Field


class TokenData(BaseModel):
    """
    Claims of an access token
    """

    sub: str  # Subject: the user id
    iss: str
    aud: str  # The client_id of the service which receives the token
    exp: int
    scope: str = ""
    # iat is added by the token signing function


class IdTokenData(BaseModel):
    """
    Claims of an Openid connect identity token
    """

    sub: str
    iss: str
    aud: str
    exp: int
    name: str
    email: str
    picture: str | None = None


class AuthorizeDecision(BaseModel):
    approved: bool


class AuthorizeDecisionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    redirect_url: str = Field(alias="redirectUrl")


class TokenReq(BaseModel):
    refresh_token: str | None = None
    grant_type: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    # PKCE parameters
    code_verifier: str | None = None

    @classmethod
    def as_form(
        cls,
        refresh_token: str | None = Form(None),
        grant_type: str | None = Form(None),
        code: str | None = Form(None),
        redirect_uri: str | None = Form(None),
        client_id: str | None = Form(None),
        client_secret: str | None = Form(None),
        # PKCE parameters
        code_verifier: str | None = Form(None),
    ):
        return cls(
            refresh_token=refresh_token,
            grant_type=grant_type,
            code=code,
            redirect_uri=redirect_uri,
            client_id=client_id,
            client_secret=client_secret,
            code_verifier=code_verifier,
        )


class TokenResponse(BaseModel):
    access_token: str
    token_type: Literal["Bearer"] = "Bearer"  # noqa: S105
    expires_in: int
    scope: str
    refresh_token: str | None = None
    id_token: str | None = None


class RevokeTokenReq(BaseModel):
    # https://datatracker.ietf.org/doc/html/rfc7009
    token: str | None = None
    token_type_hint: str | None = None
    client_id: str | None = None
    client_secret: str | None = None

    @classmethod
    def as_form(
        cls,
        token: str | None = Form(None),
        token_type_hint: str | None = Form(None),
        client_id: str | None = Form(None),
        client_secret: str | None = Form(None),
    ):
        return cls(
            token=token,
            token_type_hint=token_type_hint,
            client_id=client_id,
            client_secret=client_secret,
        )


class PendingAuthorizationRequest(BaseModel):
    """
    The authorization request displayed by the consent page
    """

    client_id: str
    client_name: str | None
    redirect_uri: str
    scope: str
