import uuid
from datetime import UTC, datetime, timedelta

import pytest_asyncio

from app.core.auth import cruds_auth, models_auth, utils_refresh_token
from app.core.clients import models_clients
from app.core.users import models_users
from app.core.utils import security
from tests.commons import (
    TestingSessionLocal,
    add_object_to_db,
    create_client,
    create_user,
    settings,
)

user: models_users.CoreUser
oauth_client: models_clients.OAuthClient
other_oauth_client: models_clients.OAuthClient

scope = "openid profile email git:github"

expired_refresh_token = "ExpiredRefreshToken"


@pytest_asyncio.fixture(scope="module", autouse=True)
async def init_objects() -> None:
    global user
    user = await create_user()

    global oauth_client
    oauth_client, _ = await create_client()

    global other_oauth_client
    other_oauth_client, _ = await create_client()

    await add_object_to_db(
        models_auth.RefreshToken(
            id=str(uuid.uuid4()),
            token_hash=security.hash_token(expired_refresh_token),
            client_id=oauth_client.id,
            user_id=user.id,
            scope=scope,
            created_on=datetime.now(UTC) - timedelta(days=31),
            expire_on=datetime.now(UTC) - timedelta(days=1),
        ),
    )


async def issue_token(client_id: str | None = None) -> str:
    async with TestingSessionLocal() as db:
        token = await utils_refresh_token.issue_refresh_token(
            db=db,
            settings=settings,
            client_id=client_id or oauth_client.id,
            user_id=user.id,
            scope=scope,
        )
        await db.commit()
    return token


async def exchange_token(
    token: str,
    client_id: str | None = None,
) -> utils_refresh_token.ExchangedRefreshToken | None:
    async with TestingSessionLocal() as db:
        return await utils_refresh_token.exchange_refresh_token(
            db=db,
            token=token,
            client_id=client_id or oauth_client.id,
        )


async def revoke_token(token: str, client_id: str | None = None) -> bool:
    async with TestingSessionLocal() as db:
        revoked = await utils_refresh_token.revoke_refresh_token(
            db=db,
            token=token,
            client_id=client_id,
        )
        await db.commit()
    return revoked


async def test_only_the_digest_of_the_refresh_token_is_stored() -> None:
    token = await issue_token()

    async with TestingSessionLocal() as db:
        db_token = await cruds_auth.get_refresh_token_by_hash(
            db=db,
            token_hash=security.hash_token(token),
        )

    assert db_token is not None
    assert db_token.token_hash != token
    assert db_token.revoked_on is None
    assert db_token.expire_on - db_token.created_on == timedelta(
        days=settings.REFRESH_TOKEN_EXPIRE_DAYS,
    )


async def test_exchange_refresh_token() -> None:
    token = await issue_token()

    exchanged_token = await exchange_token(token)

    assert exchanged_token is not None
    assert exchanged_token.user_id == user.id
    assert exchanged_token.scope == scope


async def test_refresh_token_can_be_used_multiple_times() -> None:
    token = await issue_token()

    assert await exchange_token(token) is not None
    assert await exchange_token(token) is not None


async def test_exchange_refresh_token_of_another_client() -> None:
    token = await issue_token()

    assert await exchange_token(token, client_id=other_oauth_client.id) is None


async def test_exchange_unknown_refresh_token() -> None:
    assert await exchange_token("UnknownRefreshToken") is None


async def test_exchange_expired_refresh_token() -> None:
    assert await exchange_token(expired_refresh_token) is None


async def test_revoke_refresh_token() -> None:
    token = await issue_token()

    assert await revoke_token(token)
    assert await exchange_token(token) is None
    # Revoking an already revoked token is not an error
    assert not await revoke_token(token)


async def test_revoke_refresh_token_of_another_client() -> None:
    token = await issue_token()

    assert not await revoke_token(token, client_id=other_oauth_client.id)
    assert await exchange_token(token) is not None


async def test_revoke_all_refresh_tokens_of_a_client() -> None:
    token = await issue_token()
    other_client_token = await issue_token(client_id=other_oauth_client.id)

    async with TestingSessionLocal() as db:
        await utils_refresh_token.revoke_all_refresh_tokens(
            db=db,
            user_id=user.id,
            client_id=oauth_client.id,
        )
        await db.commit()

    assert await exchange_token(token) is None
    assert (
        await exchange_token(other_client_token, client_id=other_oauth_client.id)
        is not None
    )


async def test_get_revoked_refresh_token() -> None:
    token = await issue_token()

    async with TestingSessionLocal() as db:
        assert (
            await utils_refresh_token.get_revoked_refresh_token(
                db=db,
                token=token,
                client_id=oauth_client.id,
            )
            is None
        )

    await revoke_token(token)

    async with TestingSessionLocal() as db:
        revoked_token = await utils_refresh_token.get_revoked_refresh_token(
            db=db,
            token=token,
            client_id=oauth_client.id,
        )
        assert revoked_token is not None
        assert revoked_token.user_id == user.id
        assert (
            await utils_refresh_token.get_revoked_refresh_token(
                db=db,
                token=token,
                client_id=other_oauth_client.id,
            )
            is None
        )
