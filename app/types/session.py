from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)


class SessionUser(BaseModel):
    """
    The user authenticated in the session
    """

    id: str
    email: str
    name: str
    avatar: str | None = None


class PendingOAuthRequest(BaseModel):
    """
    An authorization request waiting for the user to log in and give their consent
    """

    client_id: str
    redirect_uri: str
    scope: str
    state: str
    code_challenge: str
    code_challenge_method: str
    client_name: str | None = None


class SessionContext:
    """
    Explicit access to the session of the request.

    The session is stored in a signed cookie by Starlette `SessionMiddleware`. Values must be json serializable:
    pydantic models are stored as dictionaries and validated when read back.
    A session contains at most one pending OAuth request.
    """

    USER_KEY = "user"
    PENDING_OAUTH_REQUEST_KEY = "oauth_request"
    LOGIN_STATE_KEY = "login_state"

    def __init__(self, session: dict[str, Any]):
        self._session = session

    @property
    def user(self) -> SessionUser | None:
        return self._read(self.USER_KEY, SessionUser)

    def set_user(self, user: SessionUser) -> None:
        self._session[self.USER_KEY] = user.model_dump(mode="json")

    @property
    def pending_oauth_request(self) -> PendingOAuthRequest | None:
        return self._read(self.PENDING_OAUTH_REQUEST_KEY, PendingOAuthRequest)

    def set_pending_oauth_request(self, oauth_request: PendingOAuthRequest) -> None:
        self._session[self.PENDING_OAUTH_REQUEST_KEY] = oauth_request.model_dump(
            mode="json",
        )

    def clear_pending_oauth_request(self) -> None:
        self._session.pop(self.PENDING_OAUTH_REQUEST_KEY, None)

    def set_login_state(self, state: str) -> None:
        self._session[self.LOGIN_STATE_KEY] = state

    def pop_login_state(self) -> str | None:
        return self._session.pop(self.LOGIN_STATE_KEY, None)

    def clear(self) -> None:
        self._session.clear()

    def _read(self, key: str, model: type[T]) -> T | None:
        value = self._session.get(key)
        if value is None:
            return None
        try:
            return model.model_validate(value)
        except ValidationError:
            # The stored value does not match the current schema, we drop it
            self._session.pop(key, None)
            return None
