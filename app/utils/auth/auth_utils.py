import base64
import binascii
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit


def get_client_credentials_from_header(
    authorization: str | None,
) -> tuple[str, str] | None:
    """
    Parse the client id and secret of a `Basic` authorization header.

    See https://datatracker.ietf.org/doc/html/rfc6749#section-2.3.1: the id and the secret are url encoded before being base64 encoded.
    Return None if the header is missing or malformed.
    """
    if authorization is None or not authorization.startswith("Basic "):
        return None

    try:
        decoded = base64.b64decode(
            authorization.removeprefix("Basic ").strip(),
            validate=True,
        ).decode("utf-8")
    except (binascii.Error, ValueError):
        return None

    client_id, separator, client_secret = decoded.partition(":")
    if not separator or not client_id:
        return None

    return unquote(client_id), unquote(client_secret)


def get_bearer_token(authorization: str | None) -> str | None:
    """
    Return the token of a `Bearer` authorization header, or None if the header is missing or uses another scheme
    """
    if authorization is None:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def add_query_parameters(url: str, parameters: dict[str, str | None]) -> str:
    """
    Add `parameters` to the query string of `url`, keeping its existing parameters.
    None values are skipped.
    """
    split_url = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(split_url.query, keep_blank_values=True)
        if key not in parameters
    ]
    query.extend(
        (key, value) for key, value in parameters.items() if value is not None
    )
    return urlunsplit(split_url._replace(query=urlencode(query)))
