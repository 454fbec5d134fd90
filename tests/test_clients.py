import pytest_asyncio
from fastapi.testclient import TestClient

from app.core.clients import models_clients
from app.core.users import models_users
from tests.commons import (
    create_client,
    create_user,
    get_identity,
    login,
    logout,
)

admin_user: models_users.CoreUser
simple_user: models_users.CoreUser
oauth_client: models_clients.OAuthClient
oauth_client_secret: str
client_to_delete: models_clients.OAuthClient
inactive_oauth_client: models_clients.OAuthClient


@pytest_asyncio.fixture(scope="module", autouse=True)
async def init_objects() -> None:
    global admin_user
    admin_user = await create_user(is_admin=True)

    global simple_user
    simple_user = await create_user()

    global oauth_client, oauth_client_secret
    oauth_client, oauth_client_secret = await create_client(
        website_url="https://docs.example.com",
    )

    global client_to_delete
    client_to_delete, _ = await create_client(website_url="https://delete.example.com")

    global inactive_oauth_client
    inactive_oauth_client, _ = await create_client(
        website_url="https://old.example.com",
        is_active=False,
    )


def login_admin(client: TestClient) -> None:
    login(client, get_identity(admin_user))


def login_simple_user(client: TestClient) -> None:
    login(client, get_identity(simple_user))


def test_read_websites(client: TestClient) -> None:
    login_simple_user(client)

    response = client.get("/clients/websites")

    assert response.status_code == 200
    websites = response.json()
    assert {"name": oauth_client.name, "website_url": oauth_client.website_url} in (
        websites
    )
    # Inactive clients are not listed
    assert inactive_oauth_client.website_url not in [
        website["website_url"] for website in websites
    ]


def test_read_websites_without_session(client: TestClient) -> None:
    logout(client)

    response = client.get("/clients/websites")

    assert response.status_code == 401


def test_read_clients(client: TestClient) -> None:
    login_admin(client)

    response = client.get("/clients/")

    assert response.status_code == 200
    client_ids = [returned_client["id"] for returned_client in response.json()]
    assert oauth_client.id in client_ids
    assert inactive_oauth_client.id in client_ids
    for returned_client in response.json():
        assert "secret_hash" not in returned_client
        assert "client_secret" not in returned_client


def test_read_clients_as_simple_user(client: TestClient) -> None:
    login_simple_user(client)

    response = client.get("/clients/")

    assert response.status_code == 403
    assert response.json() == {"detail": "Admin access required"}


def test_read_client(client: TestClient) -> None:
    login_admin(client)

    response = client.get(f"/clients/{oauth_client.id}")

    assert response.status_code == 200
    json = response.json()
    assert json["website_url"] == "https://docs.example.com"
    assert json["callback_url"] == "https://docs.example.com/__nuxt_studio/auth/sso"


def test_read_unknown_client(client: TestClient) -> None:
    login_admin(client)

    response = client.get("/clients/unknown")

    assert response.status_code == 404


def test_create_client(client: TestClient) -> None:
    login_admin(client)

    response = client.post(
        "/clients/",
        json={
            "name": "  My docs  ",
            "website_url": "https://my-docs.example.com/",
            "preview_url_pattern": "https://*.vercel.app/",
        },
    )

    assert response.status_code == 201
    json = response.json()
    assert json["name"] == "My docs"
    assert json["website_url"] == "https://my-docs.example.com"
    assert json["preview_url_pattern"] == "https://*.vercel.app"
    assert json["owner_id"] == admin_user.id
    assert json["is_active"]
    assert json["client_secret"]

    # The secret is not returned afterwards
    response = client.get(f"/clients/{json['id']}")
    assert response.status_code == 200
    assert "client_secret" not in response.json()


def test_created_client_can_authenticate(client: TestClient) -> None:
    login_admin(client)
    response = client.post(
        "/clients/",
        json={"name": "Authenticating docs", "website_url": "http://localhost:3000"},
    )
    assert response.status_code == 201
    json = response.json()

    response = client.post(
        "/oauth/revoke",
        data={"token": "UnknownToken"},
        auth=(json["id"], json["client_secret"]),
    )

    assert response.status_code == 200


def test_create_client_with_invalid_website_url(client: TestClient) -> None:
    login_admin(client)

    response = client.post(
        "/clients/",
        json={"name": "Insecure docs", "website_url": "http://docs.example.com"},
    )

    assert response.status_code == 400
    assert response.json() == {
        "detail": "Website URL must use https, except for localhost",
    }


def test_create_client_with_path_in_website_url(client: TestClient) -> None:
    login_admin(client)

    response = client.post(
        "/clients/",
        json={"name": "Docs", "website_url": "https://example.com/docs"},
    )

    assert response.status_code == 400


def test_create_client_with_invalid_preview_url_pattern(client: TestClient) -> None:
    login_admin(client)

    response = client.post(
        "/clients/",
        json={
            "name": "Docs",
            "website_url": "https://preview.example.com",
            "preview_url_pattern": "*.vercel.app",
        },
    )

    assert response.status_code == 400


def test_create_client_with_http_preview_url_pattern(client: TestClient) -> None:
    login_admin(client)

    response = client.post(
        "/clients/",
        json={
            "name": "Docs",
            "website_url": "https://insecure-preview.example.com",
            "preview_url_pattern": "http://*.vercel.app",
        },
    )

    assert response.status_code == 400
    assert response.json() == {
        "detail": "Preview URL pattern must use https, except for localhost",
    }


def test_create_client_with_empty_name(client: TestClient) -> None:
    login_admin(client)

    response = client.post(
        "/clients/",
        json={"name": "   ", "website_url": "https://empty.example.com"},
    )

    assert response.status_code == 422
    # The request body is never sent back
    assert "body" not in response.json()


def test_create_client_as_simple_user(client: TestClient) -> None:
    login_simple_user(client)

    response = client.post(
        "/clients/",
        json={"name": "Docs", "website_url": "https://user.example.com"},
    )

    assert response.status_code == 403


def test_update_client(client: TestClient) -> None:
    login_admin(client)

    response = client.patch(
        f"/clients/{oauth_client.id}",
        json={"name": "Renamed docs", "preview_url_pattern": "https://*.netlify.app"},
    )

    assert response.status_code == 200
    json = response.json()
    assert json["name"] == "Renamed docs"
    assert json["preview_url_pattern"] == "https://*.netlify.app"
    assert json["website_url"] == "https://docs.example.com"

    # An empty pattern removes the preview url pattern
    response = client.patch(
        f"/clients/{oauth_client.id}",
        json={"preview_url_pattern": ""},
    )
    assert response.status_code == 200
    assert response.json()["preview_url_pattern"] is None


def test_update_client_without_fields(client: TestClient) -> None:
    login_admin(client)

    response = client.patch(f"/clients/{oauth_client.id}", json={})

    assert response.status_code == 400
    assert response.json() == {"detail": "No fields to update"}


def test_update_client_with_invalid_website_url(client: TestClient) -> None:
    login_admin(client)

    response = client.patch(
        f"/clients/{oauth_client.id}",
        json={"website_url": "not an url"},
    )

    assert response.status_code == 400


def test_update_unknown_client(client: TestClient) -> None:
    login_admin(client)

    response = client.patch("/clients/unknown", json={"name": "Docs"})

    assert response.status_code == 404


def test_deactivated_client_can_not_authenticate(client: TestClient) -> None:
    login_admin(client)
    response = client.post(
        "/clients/",
        json={"name": "Deactivated docs", "website_url": "https://deactivated.example.com"},
    )
    json = response.json()

    response = client.patch(f"/clients/{json['id']}", json={"is_active": False})
    assert response.status_code == 200
    assert not response.json()["is_active"]

    response = client.post(
        "/oauth/revoke",
        data={"token": "UnknownToken"},
        auth=(json["id"], json["client_secret"]),
    )
    assert response.status_code == 401


def test_rotate_client_secret(client: TestClient) -> None:
    login_admin(client)

    response = client.post(f"/clients/{oauth_client.id}/secret")

    assert response.status_code == 200
    new_client_secret = response.json()["client_secret"]
    assert new_client_secret != oauth_client_secret

    # The previous secret stops working immediately
    response = client.post(
        "/oauth/revoke",
        data={"token": "UnknownToken"},
        auth=(oauth_client.id, oauth_client_secret),
    )
    assert response.status_code == 401

    response = client.post(
        "/oauth/revoke",
        data={"token": "UnknownToken"},
        auth=(oauth_client.id, new_client_secret),
    )
    assert response.status_code == 200


def test_delete_client(client: TestClient) -> None:
    login_admin(client)

    response = client.delete(f"/clients/{client_to_delete.id}")
    assert response.status_code == 204

    response = client.get(f"/clients/{client_to_delete.id}")
    assert response.status_code == 404


def test_delete_unknown_client(client: TestClient) -> None:
    login_admin(client)

    response = client.delete("/clients/unknown")

    assert response.status_code == 404


def test_delete_client_as_simple_user(client: TestClient) -> None:
    login_simple_user(client)

    response = client.delete(f"/clients/{oauth_client.id}")

    assert response.status_code == 403
