from fastapi.testclient import TestClient
from pytest_mock import MockerFixture

from app.dependencies import get_redis_client
from app.utils.redis import limiter
from tests.commons import settings


def test_limiter(mocker: MockerFixture) -> None:
    redis_client = mocker.Mock()
    redis_client.incr.side_effect = [1, 2, 3, 4]

    assert limiter(redis_client, "127.0.0.1", 3, 60) == (True, False)
    redis_client.expire.assert_called_once_with("127.0.0.1", 60)
    assert limiter(redis_client, "127.0.0.1", 3, 60) == (True, False)
    # An alert is issued the first time the limit is reached
    assert limiter(redis_client, "127.0.0.1", 3, 60) == (False, True)
    assert limiter(redis_client, "127.0.0.1", 3, 60) == (False, False)


def test_rate_limited_requests(client: TestClient, mocker: MockerFixture) -> None:
    redis_client = mocker.Mock()
    redis_client.incr.side_effect = [1, settings.REDIS_LIMIT + 1]
    client.app.dependency_overrides[get_redis_client] = lambda state: redis_client
    settings.ENABLE_RATE_LIMITER = True
    try:
        response = client.get("/.well-known/jwks.json")
        assert response.status_code == 200

        response = client.get("/.well-known/jwks.json")
        assert response.status_code == 429
    finally:
        settings.ENABLE_RATE_LIMITER = False
        del client.app.dependency_overrides[get_redis_client]
