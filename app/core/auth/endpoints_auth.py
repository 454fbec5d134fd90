import logging

from fastapi import (
    APIRouter,
    Depends,
    Header,
    HTTPException,
    Response,
    status,
)
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    schemas_auth,
    utils_authorization_code,
    utils_refresh_token,
)
from app.core.clients import models_clients, utils_clients
from app.core.users import cruds_users, models_users
from app.core.utils import encryption, security
from app.core.utils.config import Settings
from app.dependencies import (
    get_db,
    get_request_id,
    get_session_context,
    get_session_user,
    get_settings,
)
from app.types.exceptions import AuthHTTPException
from app.types.module import CoreModule
from app.types.session import PendingOAuthRequest, SessionContext
from app.utils.auth import auth_utils, pkce
from app.utils.auth.redirect_uri import validate_redirect_uri

router = APIRouter(tags=["OAuth"])

core_module = CoreModule(
    root="oauth",
    tag="OAuth",
    router=router,
)

studio_access_logger = logging.getLogger("studio.access")
studio_security_logger = logging.getLogger("studio.security")

# Every client receives the whole profile of the user and their GitHub token
DEFAULT_SCOPE = "openid profile email git:github"


# WARNING: if new flow are added, get_oidc_provider_metadata should be updated accordingly


@router.get(
    "/oauth/authorize",
    status_code=302,
)
async def authorize(
    client_id: str | None = None,
    redirect_uri: str | None = None,
    response_type: str | None = None,
    state: str | None = None,
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
    db: AsyncSession = Depends(get_db),
    session: SessionContext = Depends(get_session_context),
    settings: Settings = Depends(get_settings),
    request_id: str = Depends(get_request_id),
):
    """
    Part 1 of the authorization code grant.

    The client redirects the user to this endpoint. After validating the request, the user is redirected to the login page,
    or to the consent page if they are already logged in. The request is kept in the session until the user makes a decision.

    Query parameters:
    * `client_id`, `redirect_uri`, `response_type` (must be `code`) and `state` are required
    * PKCE is required: `code_challenge` must be provided and `code_challenge_method` must be `S256` (the default)

    https://datatracker.ietf.org/doc/html/draft-ietf-oauth-v2-1#section-4.1.1
    """
    studio_access_logger.info(
        f"Authorize: Starting authorization for client {client_id} ({request_id})",
    )

    if not client_id or not redirect_uri or not response_type or not state:
        raise AuthHTTPException(
            status_code=400,
            error="invalid_request",
            error_description="Missing required parameters: client_id, redirect_uri, response_type, state",
        )

    if not code_challenge:
        raise AuthHTTPException(
            status_code=400,
            error="invalid_request",
            error_description="Missing required parameter: code_challenge. PKCE is required",
        )

    method = code_challenge_method or pkce.CodeChallengeMethod.S256.value
    if method != pkce.CodeChallengeMethod.S256.value:
        raise AuthHTTPException(
            status_code=400,
            error="invalid_request",
            error_description='Unsupported code_challenge_method. Only "S256" is supported',
        )

    if response_type != "code":
        raise AuthHTTPException(
            status_code=400,
            error="unsupported_response_type",
            error_description='Unsupported response_type. Only "code" is supported',
        )

    client = await utils_clients.get_client(db=db, client_id=client_id)
    if client is None:
        studio_access_logger.warning(
            f"Authorize: Invalid client_id {client_id} ({request_id})",
        )
        raise AuthHTTPException(
            status_code=400,
            error="invalid_client",
            error_description="Invalid client_id",
        )

    if not validate_redirect_uri(
        redirect_uri=redirect_uri,
        website_url=client.website_url,
        preview_url_pattern=client.preview_url_pattern,
    ):
        studio_security_logger.warning(
            f"Authorize: Invalid redirect_uri {redirect_uri} for client {client_id} ({request_id})",
        )
        raise AuthHTTPException(
            status_code=400,
            error="invalid_request",
            error_description="Invalid redirect_uri for the specified client",
        )

    # A new request replaces any previous pending one
    session.set_pending_oauth_request(
        PendingOAuthRequest(
            client_id=client.id,
            redirect_uri=redirect_uri,
            scope=DEFAULT_SCOPE,
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=method,
            client_name=client.name,
        ),
    )

    if session.user is None:
        url = settings.LOGIN_PAGE_URL
    else:
        url = settings.CONSENT_PAGE_URL

    # By default, RedirectResponse send a 307 code. We want the browser to follow the redirection using a GET request
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get(
    "/oauth/authorize/request",
    response_model=schemas_auth.PendingAuthorizationRequest,
    status_code=200,
)
async def get_pending_authorization_request(
    user: models_users.CoreUser = Depends(get_session_user),
    session: SessionContext = Depends(get_session_context),
):
    """
    Return the authorization request waiting for the consent of the user, to be displayed by the consent page.
    """
    oauth_request = session.pending_oauth_request
    if oauth_request is None:
        raise HTTPException(
            status_code=404,
            detail="No pending authorization request",
        )

    return schemas_auth.PendingAuthorizationRequest(
        client_id=oauth_request.client_id,
        client_name=oauth_request.client_name,
        redirect_uri=oauth_request.redirect_uri,
        scope=oauth_request.scope,
    )


@router.post(
    "/oauth/authorize",
    response_model=schemas_auth.AuthorizeDecisionResponse,
    status_code=200,
)
async def post_authorize_decision(
    decision: schemas_auth.AuthorizeDecision,
    user: models_users.CoreUser = Depends(get_session_user),
    session: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    request_id: str = Depends(get_request_id),
):
    """
    Part 2 of the authorization code grant, called by the consent page.

    If the user approved the request, an authorization code is issued. The returned `redirectUrl` should be opened by the frontend:
    it contains either `code` and `state`, or an `access_denied` error.

    The pending request is removed from the session in both cases.
    """
    oauth_request = session.pending_oauth_request
    if oauth_request is None:
        raise HTTPException(
            status_code=400,
            detail="No OAuth request in session",
        )

    session.clear_pending_oauth_request()

    if not decision.approved:
        studio_access_logger.info(
            f"Authorize: User {user.id} denied the request of client {oauth_request.client_id} ({request_id})",
        )
        return schemas_auth.AuthorizeDecisionResponse(
            redirect_url=auth_utils.add_query_parameters(
                oauth_request.redirect_uri,
                {
                    "error": "access_denied",
                    "error_description": "User denied the authorization request",
                    "state": oauth_request.state,
                },
            ),
        )

    code = await utils_authorization_code.issue_authorization_code(
        db=db,
        settings=settings,
        client_id=oauth_request.client_id,
        user_id=user.id,
        redirect_uri=oauth_request.redirect_uri,
        scope=oauth_request.scope,
        code_challenge=oauth_request.code_challenge,
        code_challenge_method=oauth_request.code_challenge_method,
    )

    studio_access_logger.info(
        f"Authorize: Issued an authorization code to client {oauth_request.client_id} for user {user.id} ({request_id})",
    )

    return schemas_auth.AuthorizeDecisionResponse(
        redirect_url=auth_utils.add_query_parameters(
            oauth_request.redirect_uri,
            {
                "code": code,
                "state": oauth_request.state,
            },
        ),
    )


async def authenticate_client(
    db: AsyncSession,
    authorization: str | None,
    client_id: str | None,
    client_secret: str | None,
    request_id: str,
) -> models_clients.OAuthClient:
    """
    Authenticate the client using the `Basic` authorization header, or the `client_id` and `client_secret` form parameters.

    See https://datatracker.ietf.org/doc/html/rfc6749#section-2.3.1
    """
    if authorization is not None and authorization.startswith("Basic "):
        credentials = auth_utils.get_client_credentials_from_header(authorization)
        if credentials is None:
            raise AuthHTTPException(
                status_code=401,
                error="invalid_client",
                error_description="Malformed client credentials",
            )
        client_id, client_secret = credentials

    if not client_id or not client_secret:
        raise AuthHTTPException(
            status_code=401,
            error="invalid_client",
            error_description="Client credentials required",
        )

    client = await utils_clients.verify_client_credentials(
        db=db,
        client_id=client_id,
        client_secret=client_secret,
    )
    if client is None:
        studio_security_logger.warning(
            f"Client authentication: Invalid credentials for client {client_id} ({request_id})",
        )
        raise AuthHTTPException(
            status_code=401,
            error="invalid_client",
            error_description="Invalid client credentials",
        )

    return client


@router.post(
    "/oauth/token",
    response_model=schemas_auth.TokenResponse,
    response_model_exclude_none=True,
)
async def token(
    response: Response,
    # The client id and secret must be passed either in the authorization header or with client_id and client_secret parameters
    tokenreq: schemas_auth.TokenReq = Depends(schemas_auth.TokenReq.as_form),
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    request_id: str = Depends(get_request_id),
):
    """
    Part 3 of the authorization code grant.
    The client exchanges its authorization code, or a refresh token, for an access token.

    Parameters must be `application/x-www-form-urlencoded` and include:
    * `grant_type`: must be `authorization_code` or `refresh_token`
    * for `authorization_code`: `code`, `redirect_uri` (the same as the one used at the authorization endpoint) and `code_verifier`
    * for `refresh_token`: `refresh_token`

    https://datatracker.ietf.org/doc/html/rfc6749#section-4.1.3
    https://openid.net/specs/openid-connect-core-1_0.html#TokenRequestValidation
    """
    client = await authenticate_client(
        db=db,
        authorization=authorization,
        client_id=tokenreq.client_id,
        client_secret=tokenreq.client_secret,
        request_id=request_id,
    )

    studio_access_logger.info(
        f"Token: Starting {tokenreq.grant_type} grant for client {client.id} ({request_id})",
    )

    # See https://datatracker.ietf.org/doc/html/rfc6749#section-5.1
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"

    if tokenreq.grant_type == "authorization_code":
        return await authorization_code_grant(
            db=db,
            settings=settings,
            tokenreq=tokenreq,
            client=client,
            request_id=request_id,
        )

    if tokenreq.grant_type == "refresh_token":
        return await refresh_token_grant(
            db=db,
            settings=settings,
            tokenreq=tokenreq,
            client=client,
            request_id=request_id,
        )

    studio_access_logger.warning(
        f"Token: Unsupported grant_type, received {tokenreq.grant_type} ({request_id})",
    )
    raise AuthHTTPException(
        status_code=400,
        error="unsupported_grant_type",
        error_description="Only authorization_code and refresh_token grant types are supported",
    )


async def authorization_code_grant(
    db: AsyncSession,
    settings: Settings,
    tokenreq: schemas_auth.TokenReq,
    client: models_clients.OAuthClient,
    request_id: str,
) -> schemas_auth.TokenResponse:
    if not tokenreq.code or not tokenreq.redirect_uri:
        raise AuthHTTPException(
            status_code=400,
            error="invalid_request",
            error_description="Missing code or redirect_uri",
        )

    consumed_code = await utils_authorization_code.consume_authorization_code(
        db=db,
        code=tokenreq.code,
        client_id=client.id,
        redirect_uri=tokenreq.redirect_uri,
        code_verifier=tokenreq.code_verifier,
    )
    if consumed_code is None:
        studio_access_logger.warning(
            f"Token: Invalid authorization code for client {client.id} ({request_id})",
        )
        raise AuthHTTPException(
            status_code=400,
            error="invalid_grant",
            error_description="Invalid or expired authorization code",
        )

    refresh_token = await utils_refresh_token.issue_refresh_token(
        db=db,
        settings=settings,
        client_id=client.id,
        user_id=consumed_code.user.id,
        scope=consumed_code.scope,
    )

    return create_token_response(
        settings=settings,
        user=consumed_code.user,
        client_id=client.id,
        scope=consumed_code.scope,
        refresh_token=refresh_token,
    )


async def refresh_token_grant(
    db: AsyncSession,
    settings: Settings,
    tokenreq: schemas_auth.TokenReq,
    client: models_clients.OAuthClient,
    request_id: str,
) -> schemas_auth.TokenResponse:
    if not tokenreq.refresh_token:
        raise AuthHTTPException(
            status_code=400,
            error="invalid_request",
            error_description="Missing refresh_token",
        )

    exchanged_token = await utils_refresh_token.exchange_refresh_token(
        db=db,
        token=tokenreq.refresh_token,
        client_id=client.id,
    )
    if exchanged_token is None:
        if settings.ROTATE_REFRESH_TOKENS:
            await revoke_tokens_on_refresh_token_replay(
                db=db,
                token=tokenreq.refresh_token,
                client_id=client.id,
                request_id=request_id,
            )
        studio_access_logger.warning(
            f"Token: Invalid refresh token for client {client.id} ({request_id})",
        )
        raise AuthHTTPException(
            status_code=400,
            error="invalid_grant",
            error_description="Invalid or expired refresh token",
        )

    user = await cruds_users.get_user_by_id(db=db, user_id=exchanged_token.user_id)
    if user is None:
        raise AuthHTTPException(
            status_code=400,
            error="invalid_grant",
            error_description="Invalid or expired refresh token",
        )

    new_refresh_token: str | None = None
    if settings.ROTATE_REFRESH_TOKENS:
        # Only one of two concurrent requests using the same token can revoke it
        if not await utils_refresh_token.revoke_refresh_token(
            db=db,
            token=tokenreq.refresh_token,
            client_id=client.id,
        ):
            raise AuthHTTPException(
                status_code=400,
                error="invalid_grant",
                error_description="Invalid or expired refresh token",
            )
        new_refresh_token = await utils_refresh_token.issue_refresh_token(
            db=db,
            settings=settings,
            client_id=client.id,
            user_id=user.id,
            scope=exchanged_token.scope,
        )

    return create_token_response(
        settings=settings,
        user=user,
        client_id=client.id,
        scope=exchanged_token.scope,
        refresh_token=new_refresh_token,
    )


async def revoke_tokens_on_refresh_token_replay(
    db: AsyncSession,
    token: str,
    client_id: str,
    request_id: str,
) -> None:
    """
    When refresh tokens are rotated, a revoked token should never be used again.
    If it is, the token may have been stolen: we revoke all the tokens of the user for this client.
    """
    revoked_token = await utils_refresh_token.get_revoked_refresh_token(
        db=db,
        token=token,
        client_id=client_id,
    )
    if revoked_token is None:
        return

    studio_security_logger.warning(
        f"Token: Reuse of a revoked refresh token of user {revoked_token.user_id} for client {client_id}, revoking all their tokens ({request_id})",
    )
    await utils_refresh_token.revoke_all_refresh_tokens(
        db=db,
        user_id=revoked_token.user_id,
        client_id=client_id,
    )


def create_token_response(
    settings: Settings,
    user: models_users.CoreUser,
    client_id: str,
    scope: str,
    refresh_token: str | None,
) -> schemas_auth.TokenResponse:
    access_token = security.create_access_token(
        settings=settings,
        user_id=user.id,
        client_id=client_id,
        scope=scope,
    )

    # An identity token is only issued for Openid connect requests
    id_token: str | None = None
    if "openid" in scope.split():
        id_token = security.create_id_token(
            settings=settings,
            user=user,
            client_id=client_id,
        )

    return schemas_auth.TokenResponse(
        access_token=access_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        scope=scope,
        refresh_token=refresh_token,
        id_token=id_token,
    )


@router.post(
    "/oauth/revoke",
    status_code=200,
)
async def revoke_token(
    revokereq: schemas_auth.RevokeTokenReq = Depends(
        schemas_auth.RevokeTokenReq.as_form,
    ),
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
    request_id: str = Depends(get_request_id),
):
    """
    Revoke a refresh token. The client must authenticate as for the token endpoint.

    Access tokens are stateless JWT: they can not be revoked and expire by themselves.
    As required by the RFC, an unknown or an already revoked token does not produce an error.

    https://datatracker.ietf.org/doc/html/rfc7009
    """
    client = await authenticate_client(
        db=db,
        authorization=authorization,
        client_id=revokereq.client_id,
        client_secret=revokereq.client_secret,
        request_id=request_id,
    )

    if not revokereq.token:
        raise AuthHTTPException(
            status_code=400,
            error="invalid_request",
            error_description="Missing token parameter",
        )

    is_access_token = (
        revokereq.token_type_hint == "access_token"
        and len(revokereq.token.split(".")) == 3
    )
    if not is_access_token:
        revoked = await utils_refresh_token.revoke_refresh_token(
            db=db,
            token=revokereq.token,
            client_id=client.id,
        )
        if revoked:
            studio_access_logger.info(
                f"Revoke: Revoked a refresh token of client {client.id} ({request_id})",
            )

    return {}


@router.get(
    "/oauth/userinfo",
    status_code=200,
)
async def get_userinfo(
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    request_id: str = Depends(get_request_id),
):
    """
    Openid connect specify an endpoint the client can use to get information about the user.
    The client provides the access_token it got previously in the `Authorization: Bearer` header.

    The claims are read from the current user record. If a GitHub token is stored for the user, it is returned with `git_provider`.

    Reference:
    https://openid.net/specs/openid-connect-core-1_0.html#UserInfo
    """
    access_token = auth_utils.get_bearer_token(authorization)
    if access_token is None:
        raise AuthHTTPException(
            status_code=401,
            error="invalid_token",
            error_description="Missing or invalid access token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = security.decode_jwt(
        token=access_token,
        public_key=settings.RSA_PUBLIC_KEY,
        issuer=settings.OIDC_ISSUER,
    )
    user = None
    if claims is not None and isinstance(claims.get("sub"), str):
        user = await cruds_users.get_user_by_id(db=db, user_id=claims["sub"])

    if user is None:
        studio_access_logger.warning(
            f"User info: Invalid or expired access token ({request_id})",
        )
        raise AuthHTTPException(
            status_code=401,
            error="invalid_token",
            error_description="Token is invalid or expired",
            headers={"WWW-Authenticate": 'Bearer error="invalid_token"'},
        )

    userinfo: dict[str, str | None] = {
        "sub": user.id,
        "name": user.name,
        "email": user.email,
        "picture": user.avatar,
    }

    if user.github_token is not None:
        github_token = encryption.decrypt_provider_token(
            user.github_token,
            settings.PROVIDER_TOKEN_ENCRYPTION_KEY,
        )
        if github_token is not None:
            userinfo["github_token"] = github_token
            userinfo["git_provider"] = "github"

    return userinfo


@router.get(
    "/.well-known/jwks.json",
)
def jwks_uri(
    settings: Settings = Depends(get_settings),
):
    return settings.RSA_PUBLIC_JWK


@router.get(
    "/.well-known/oauth-authorization-server",
)
async def oauth_configuration(
    settings: Settings = Depends(get_settings),
):
    # See https://datatracker.ietf.org/doc/html/rfc8414
    return get_oidc_provider_metadata(settings)


@router.get(
    "/.well-known/openid-configuration",
)
async def oidc_configuration(
    settings: Settings = Depends(get_settings),
):
    # See https://openid.net/specs/openid-connect-discovery-1_0.html#ProviderMetadata
    return get_oidc_provider_metadata(settings)


def get_oidc_provider_metadata(settings: Settings):
    return {
        "issuer": settings.OIDC_ISSUER,
        "authorization_endpoint": settings.CLIENT_URL + "oauth/authorize",
        "token_endpoint": settings.CLIENT_URL + "oauth/token",
        "userinfo_endpoint": settings.CLIENT_URL + "oauth/userinfo",
        "revocation_endpoint": settings.CLIENT_URL + "oauth/revoke",
        "jwks_uri": settings.CLIENT_URL + ".well-known/jwks.json",
        "scopes_supported": DEFAULT_SCOPE.split(),
        # We only support the authorization code grant
        "response_types_supported": [
            "code",
        ],
        "grant_types_supported": [
            "authorization_code",
            "refresh_token",
        ],
        # https://openid.net/specs/openid-connect-core-1_0.html#SubjectIDTypes
        "subject_types_supported": [
            "public",
        ],
        "id_token_signing_alg_values_supported": [
            security.jws_algorithm,
        ],
        "token_endpoint_auth_methods_supported": [
            "client_secret_basic",
            "client_secret_post",
        ],
        "revocation_endpoint_auth_methods_supported": [
            "client_secret_basic",
            "client_secret_post",
        ],
        # PKCE is required
        "code_challenge_methods_supported": [
            pkce.CodeChallengeMethod.S256.value,
        ],
        "claim_types_supported": ["normal"],
        "claims_supported": [
            "sub",
            "iss",
            "aud",
            "exp",
            "iat",
            "name",
            "email",
            "picture",
            "github_token",
            "git_provider",
        ],
        "claims_parameter_supported": False,
        "request_parameter_supported": False,
        "request_uri_parameter_supported": False,
    }
