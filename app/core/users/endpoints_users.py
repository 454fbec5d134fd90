import logging
import urllib.parse

from fastapi import (
    APIRouter,
    Depends,
    Response,
    status,
)
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.users import models_users, schemas_users
from app.core.users.tools_users import sign_in_user
from app.core.utils import security
from app.core.utils.config import Settings
from app.dependencies import (
    get_db,
    get_identity_provider,
    get_request_id,
    get_session_context,
    get_session_user,
    get_settings,
)
from app.types.exceptions import IdentityProviderError
from app.types.module import CoreModule
from app.types.session import SessionContext, SessionUser
from app.utils.auth.providers import BaseIdentityProvider

router = APIRouter(tags=["Users"])

core_module = CoreModule(
    root="users",
    tag="Users",
    router=router,
)

studio_access_logger = logging.getLogger("studio.access")
studio_security_logger = logging.getLogger("studio.security")


def get_github_callback_url(settings: Settings) -> str:
    return settings.CLIENT_URL + "auth/github/callback"


def get_login_error_url(settings: Settings, error: str) -> str:
    return settings.LOGIN_PAGE_URL + "?" + urllib.parse.urlencode({"error": error})


@router.get(
    "/auth/github",
    status_code=302,
)
async def login_with_github(
    session: SessionContext = Depends(get_session_context),
    identity_provider: BaseIdentityProvider = Depends(get_identity_provider),
    settings: Settings = Depends(get_settings),
):
    """
    Redirect the user to GitHub to log in.

    A random `state` is stored in the session and verified by the callback endpoint, to prevent login CSRF.
    """
    state = security.generate_token()
    session.set_login_state(state)

    return RedirectResponse(
        identity_provider.get_authorization_url(
            state=state,
            redirect_uri=get_github_callback_url(settings),
        ),
        status_code=status.HTTP_302_FOUND,
    )


@router.get(
    "/auth/github/callback",
    status_code=302,
)
async def github_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    session: SessionContext = Depends(get_session_context),
    identity_provider: BaseIdentityProvider = Depends(get_identity_provider),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    request_id: str = Depends(get_request_id),
):
    """
    GitHub redirects the user to this endpoint after they logged in.

    The user is created or updated, then logged in the session. If an authorization request is pending,
    the user is redirected to the consent page, otherwise to the dashboard.
    Any failure redirects the user to the login page with an `error` query parameter.
    """
    expected_state = session.pop_login_state()

    if error is not None or code is None:
        studio_access_logger.info(
            f"GitHub login: The user did not authorize the application: {error} ({request_id})",
        )
        return RedirectResponse(
            get_login_error_url(settings, "github_auth_failed"),
            status_code=status.HTTP_302_FOUND,
        )

    if expected_state is None or state != expected_state:
        studio_security_logger.warning(
            f"GitHub login: Invalid state ({request_id})",
        )
        return RedirectResponse(
            get_login_error_url(settings, "invalid_state"),
            status_code=status.HTTP_302_FOUND,
        )

    try:
        identity = await identity_provider.fetch_identity(
            code=code,
            redirect_uri=get_github_callback_url(settings),
        )
    except IdentityProviderError as provider_error:
        return RedirectResponse(
            get_login_error_url(settings, str(provider_error)),
            status_code=status.HTTP_302_FOUND,
        )

    user = await sign_in_user(db=db, settings=settings, identity=identity)

    # The pending authorization request is kept in the session
    session.set_user(
        SessionUser(
            id=user.id,
            email=user.email,
            name=user.name,
            avatar=user.avatar,
        ),
    )
    studio_security_logger.info(
        f"GitHub login: User {user.id} logged in ({request_id})",
    )

    if session.pending_oauth_request is not None:
        url = settings.CONSENT_PAGE_URL
    else:
        url = settings.DASHBOARD_PAGE_URL

    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.post(
    "/auth/logout",
    status_code=204,
)
async def logout(
    session: SessionContext = Depends(get_session_context),
):
    session.clear()
    return Response(status_code=204)


@router.get(
    "/users/me",
    response_model=schemas_users.CoreUser,
    status_code=200,
)
async def read_current_user(
    user: models_users.CoreUser = Depends(get_session_user),
):
    """
    Return the user logged in the session
    """
    return user
