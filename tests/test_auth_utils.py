import base64
from urllib.parse import parse_qs, urlparse

from app.utils.auth import auth_utils


def basic_header(value: str) -> str:
    return "Basic " + base64.b64encode(value.encode("utf-8")).decode("ascii")


def test_get_client_credentials_from_header() -> None:
    assert auth_utils.get_client_credentials_from_header(
        basic_header("client:secret"),
    ) == ("client", "secret")


def test_client_credentials_are_url_decoded() -> None:
    assert auth_utils.get_client_credentials_from_header(
        basic_header("client%3Aid:se%20cret:with:colons"),
    ) == ("client:id", "se cret:with:colons")


def test_malformed_client_credentials() -> None:
    assert auth_utils.get_client_credentials_from_header(None) is None
    assert auth_utils.get_client_credentials_from_header("Bearer token") is None
    assert auth_utils.get_client_credentials_from_header("Basic !!!") is None
    assert auth_utils.get_client_credentials_from_header(basic_header("client")) is None
    assert auth_utils.get_client_credentials_from_header(basic_header(":secret")) is None


def test_get_bearer_token() -> None:
    assert auth_utils.get_bearer_token("Bearer token") == "token"
    assert auth_utils.get_bearer_token("bearer token") == "token"
    assert auth_utils.get_bearer_token("Basic token") is None
    assert auth_utils.get_bearer_token("Bearer ") is None
    assert auth_utils.get_bearer_token(None) is None


def test_add_query_parameters() -> None:
    url = auth_utils.add_query_parameters(
        "https://docs.example.com/callback?keep=1&state=old",
        {"code": "abc", "state": "new", "error": None},
    )
    parsed_url = urlparse(url)
    assert parsed_url.path == "/callback"
    assert parse_qs(parsed_url.query) == {
        "keep": ["1"],
        "code": ["abc"],
        "state": ["new"],
    }
