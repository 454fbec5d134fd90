import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from functools import lru_cache
from urllib.parse import parse_qs, urlencode, urlparse

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import NullPool
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.clients import models_clients
from app.core.clients.utils_clients import generate_client_secret, hash_client_secret
from app.core.users import cruds_users, models_users
from app.core.utils import encryption, security
from app.core.utils.config import Settings
from app.types.exceptions import IdentityProviderError
from app.types.scheduler import OfflineScheduler
from app.types.sqlalchemy import Base
from app.utils.auth import pkce
from app.utils.auth.providers import BaseIdentityProvider, ExternalIdentity
from app.utils.auth.redirect_uri import build_callback_url
from app.utils.state import (
    LifespanState,
    init_redis_client,
)


class FailedToAddObjectToDB(Exception):
    """Exception raised when an object cannot be added to the database."""


async def override_init_app_state(
    app: FastAPI,
    settings: Settings,
    studio_error_logger: logging.Logger,
) -> LifespanState:
    """
    Initialize the state of the application. This dependency should be used at the start of the application lifespan.
    """
    engine = init_test_engine()

    SessionLocal = init_test_SessionLocal()

    redis_client = init_redis_client(
        settings=settings,
        studio_error_logger=studio_error_logger,
    )

    # Even if we have a Redis client, we still want to use the OfflineScheduler for tests
    # as tests are not able to run tasks in the future. The event loop of the test may not be running long enough
    # to execute the tasks.
    scheduler = OfflineScheduler()

    return LifespanState(
        engine=engine,
        SessionLocal=SessionLocal,
        redis_client=redis_client,
        scheduler=scheduler,
    )


@lru_cache
def override_get_settings() -> Settings:
    """Override the get_settings function to use the testing session"""

    return Settings(
        _env_file="./tests/.env.test",
        _yaml_file="./tests/config.test.yaml",
    )


settings = override_get_settings()


# Connect to the test's database
if settings.SQLITE_DB:
    SQLALCHEMY_DATABASE_URL = f"sqlite+aiosqlite:///./{settings.SQLITE_DB}"
else:
    SQLALCHEMY_DATABASE_URL = f"postgresql+asyncpg://{settings.POSTGRES_USER}:{settings.POSTGRES_PASSWORD}@{settings.POSTGRES_HOST}/{settings.POSTGRES_DB}"


engine = create_async_engine(
    SQLALCHEMY_DATABASE_URL,
    echo=settings.DATABASE_DEBUG,
    # We need to use NullPool to run tests with Postgresql
    # See https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html#using-multiple-asyncio-event-loops
    poolclass=NullPool,
)

# Create a session for testing purposes
TestingSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def init_test_engine() -> AsyncEngine:
    """
    Return the (asynchronous) database engine used by tests
    """

    return engine


def init_test_SessionLocal() -> Callable[[], AsyncSession]:
    return TestingSessionLocal


def get_random_string(length: int = 8) -> str:
    return uuid.uuid4().hex[:length]


async def add_object_to_db(db_object: Base) -> None:
    """
    Add an object to the database
    """
    async with TestingSessionLocal() as db:
        try:
            db.add(db_object)
            await db.commit()
        except Exception as error:
            await db.rollback()
            raise FailedToAddObjectToDB from error
        finally:
            await db.close()


async def create_user(
    is_admin: bool = False,
    email: str | None = None,
    name: str | None = None,
    github_token: str | None = None,
) -> models_users.CoreUser:
    """
    Add a dummy user to the database
    User property will be randomly generated if not provided

    The user has a GitHub id and can thus log in using `login`
    """
    now = datetime.now(UTC)
    user = models_users.CoreUser(
        id=str(uuid.uuid4()),
        email=email or (get_random_string() + "@example.com"),
        name=name or get_random_string(),
        avatar=None,
        github_id=get_random_string(12),
        github_token=encryption.encrypt_provider_token(
            github_token,
            settings.PROVIDER_TOKEN_ENCRYPTION_KEY,
        )
        if github_token
        else None,
        created_on=now,
        updated_on=now,
        is_admin=is_admin,
    )
    await add_object_to_db(user)

    async with TestingSessionLocal() as db:
        user_db = await cruds_users.get_user_by_id(db, user.id)
        assert user_db is not None
        return user_db


async def create_client(
    website_url: str = "https://docs.example.com",
    preview_url_pattern: str | None = None,
    is_active: bool = True,
    owner_id: str | None = None,
) -> tuple[models_clients.OAuthClient, str]:
    """
    Add a client to the database. Return the client and its secret.
    """
    client_secret = generate_client_secret()
    oauth_client = models_clients.OAuthClient(
        id=str(uuid.uuid4()),
        secret_hash=hash_client_secret(client_secret),
        name=get_random_string(),
        website_url=website_url,
        preview_url_pattern=preview_url_pattern,
        owner_id=owner_id,
        created_on=datetime.now(UTC),
        is_active=is_active,
    )
    await add_object_to_db(oauth_client)
    return oauth_client, client_secret


def create_api_access_token(
    user: models_users.CoreUser,
    client_id: str,
    scope: str = "openid profile email git:github",
) -> str:
    return security.create_access_token(
        settings=settings,
        user_id=user.id,
        client_id=client_id,
        scope=scope,
    )


class FakeIdentityProvider(BaseIdentityProvider):
    """
    An identity provider which does not call GitHub.

    The authorization code returned to the callback is the GitHub id of an identity registered with `register_identity`.
    """

    name = "github"

    identities: dict[str, ExternalIdentity] = {}

    def get_authorization_url(self, state: str, redirect_uri: str) -> str:
        return "https://github.test/login/oauth/authorize?" + urlencode(
            {"state": state, "redirect_uri": redirect_uri},
        )

    async def fetch_identity(self, code: str, redirect_uri: str) -> ExternalIdentity:
        identity = self.identities.get(code)
        if identity is None:
            raise IdentityProviderError("github_auth_failed")
        return identity

    @classmethod
    def register_identity(cls, identity: ExternalIdentity) -> None:
        cls.identities[identity.id] = identity


def override_get_identity_provider() -> BaseIdentityProvider:
    return FakeIdentityProvider()


def get_identity(
    user: models_users.CoreUser,
    provider_token: str | None = None,
) -> ExternalIdentity:
    assert user.github_id is not None
    return ExternalIdentity(
        id=user.github_id,
        email=user.email,
        name=user.name,
        avatar=user.avatar,
        provider_token=provider_token,
    )


def login(client: TestClient, identity: ExternalIdentity) -> None:
    """
    Log in the TestClient session using the GitHub login flow
    """
    FakeIdentityProvider.register_identity(identity)

    response = client.get("/auth/github", follow_redirects=False)
    assert response.status_code == 302
    state = parse_qs(urlparse(response.headers["location"]).query)["state"][0]

    response = client.get(
        "/auth/github/callback",
        params={"code": identity.id, "state": state},
        follow_redirects=False,
    )
    assert response.status_code == 302
    assert "error=" not in response.headers["location"]


def logout(client: TestClient) -> None:
    client.cookies.clear()


def start_authorization(
    client: TestClient,
    oauth_client: models_clients.OAuthClient,
    code_verifier: str,
    state: str = "azerty",
    redirect_uri: str | None = None,
):
    """
    Start an authorization request. The session must contain a logged in user for the request to be approved.
    """
    return client.get(
        "/oauth/authorize",
        params={
            "client_id": oauth_client.id,
            "redirect_uri": redirect_uri
            or build_callback_url(oauth_client.website_url),
            "response_type": "code",
            "state": state,
            "code_challenge": pkce.derive_code_challenge(code_verifier),
            "code_challenge_method": "S256",
        },
        follow_redirects=False,
    )


def get_authorization_code(
    client: TestClient,
    oauth_client: models_clients.OAuthClient,
    code_verifier: str,
    redirect_uri: str | None = None,
) -> str:
    """
    Run the authorization request and the consent of the logged in user, and return the issued code
    """
    response = start_authorization(
        client=client,
        oauth_client=oauth_client,
        code_verifier=code_verifier,
        redirect_uri=redirect_uri,
    )
    assert response.status_code == 302

    response = client.post("/oauth/authorize", json={"approved": True})
    assert response.status_code == 200
    query = parse_qs(urlparse(response.json()["redirectUrl"]).query)
    assert query["state"][0] == "azerty"
    return query["code"][0]
