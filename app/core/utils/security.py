import hashlib
import hmac
import secrets
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from app.core.auth import schemas_auth

if TYPE_CHECKING:
    from app.core.users import models_users
    from app.core.utils.config import Settings


"""
Authorization codes, refresh tokens and client secrets are random tokens generated with the *secrets* library.

Refresh tokens and client secrets are only persisted as their SHA-256 digest. As they are high entropy random strings,
a fast unsalted hash is enough: the digest can not be reversed nor brute forced.
"""

jws_algorithm = "RS256"
"""
The algorithme used to sign access tokens and identity tokens
"""

RSA_JWK_KID = "RSA-JWK-1"
"""
The kid allows to identify the key in the JWKS, it should match the kid in the token header
"""


def generate_token(nbytes=32) -> str:
    """
    Generate a `nbytes` bytes cryptographically strong random urlsafe token using the *secrets* library.

    By default, a 32 bytes token is generated.
    """
    # We use https://docs.python.org/3/library/secrets.html#secrets.token_urlsafe
    return secrets.token_urlsafe(nbytes)


def hash_token(token: str) -> str:
    """
    Return the hexadecimal SHA-256 digest of `token`
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def verify_token_hash(token: str, token_hash: str) -> bool:
    """
    Compare the digest of `token` with `token_hash` in constant time.

    Both digests have the same fixed length, the comparison does not leak the length of the token.
    """
    return hmac.compare_digest(
        hash_token(token).encode("utf-8"),
        token_hash.encode("utf-8"),
    )


def sign_jwt(
    claims: dict[str, Any],
    private_key: rsa.RSAPrivateKey,
) -> str:
    """
    Sign `claims` as a RS256 JWT. An `iat` claim is added.

    The header contains the kid of the key, which allows clients to find the key to use in the JWKS.
    """
    to_encode = dict(claims)
    to_encode["iat"] = int(datetime.now(UTC).timestamp())

    return jwt.encode(
        to_encode,
        private_key,
        algorithm=jws_algorithm,
        headers={
            "kid": RSA_JWK_KID,
        },
    )


def decode_jwt(
    token: str,
    public_key: rsa.RSAPublicKey,
    issuer: str | None = None,
    audience: str | list[str] | None = None,
) -> dict[str, Any] | None:
    """
    Verify a RS256 JWT and return its claims.

    The signature and the expiration are always verified. The issuer and the audience are only verified if they are provided.
    The audience claim of the token may be a string or a list, in which case one of its values should match.

    If the token is invalid for any reason, `None` is returned. The reason is never exposed to the caller.
    """
    if token.count(".") != 2:
        return None

    try:
        return jwt.decode(
            token,
            public_key,
            algorithms=[jws_algorithm],
            issuer=issuer,
            audience=audience,
            options={
                "verify_aud": audience is not None,
            },
        )
    except (jwt.PyJWTError, ValueError, TypeError):
        return None


def get_jwks(public_key: rsa.RSAPublicKey) -> dict[str, list[dict[str, Any]]]:
    """
    Export `public_key` as a JWK Set containing a single key
    """
    # See https://github.com/jpadilla/pyjwt/issues/880
    algo = jwt.get_algorithm_by_name(jws_algorithm)
    jwk = algo.to_jwk(public_key, as_dict=True)
    jwk.update(
        {
            "alg": jws_algorithm,
            "use": "sig",
            "kid": RSA_JWK_KID,
        },
    )
    return {"keys": [jwk]}


def create_access_token(
    settings: "Settings",
    user_id: str,
    client_id: str,
    scope: str,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a RS256 access token for `user_id`, with `client_id` as audience
    """
    if expires_delta is None:
        # We use the default value
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    data = schemas_auth.TokenData(
        sub=user_id,
        iss=settings.OIDC_ISSUER,
        aud=client_id,
        scope=scope,
        exp=int((datetime.now(UTC) + expires_delta).timestamp()),
    )

    return sign_jwt(
        claims=data.model_dump(exclude_none=True),
        private_key=settings.RSA_PRIVATE_KEY,
    )


def create_id_token(
    settings: "Settings",
    user: "models_users.CoreUser",
    client_id: str,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create an Openid connect identity token. The token contains the profile claims of the user.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    data = schemas_auth.IdTokenData(
        sub=user.id,
        iss=settings.OIDC_ISSUER,
        aud=client_id,
        exp=int((datetime.now(UTC) + expires_delta).timestamp()),
        name=user.name,
        email=user.email,
        picture=user.avatar,
    )

    return sign_jwt(
        claims=data.model_dump(exclude_none=True),
        private_key=settings.RSA_PRIVATE_KEY,
    )
