from datetime import timedelta

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from app.core.utils import security
from tests.commons import settings


def test_generate_token() -> None:
    token = security.generate_token()
    assert len(token) == 43
    assert token != security.generate_token()


def test_hash_token() -> None:
    token_hash = security.hash_token("token")
    assert len(token_hash) == 64
    assert token_hash != "token"
    assert security.verify_token_hash("token", token_hash)
    assert not security.verify_token_hash("other token", token_hash)


def test_sign_and_decode_jwt() -> None:
    token = security.sign_jwt(
        claims={"sub": "user", "iss": settings.OIDC_ISSUER, "exp": 9999999999},
        private_key=settings.RSA_PRIVATE_KEY,
    )

    header = jwt.get_unverified_header(token)
    assert header["alg"] == "RS256"
    assert header["kid"] == security.RSA_JWK_KID

    claims = security.decode_jwt(
        token=token,
        public_key=settings.RSA_PUBLIC_KEY,
        issuer=settings.OIDC_ISSUER,
    )
    assert claims is not None
    assert claims["sub"] == "user"
    assert "iat" in claims


def test_decode_jwt_checks_audience() -> None:
    token = security.create_access_token(
        settings=settings,
        user_id="user",
        client_id="client",
        scope="openid",
    )
    assert security.decode_jwt(token, settings.RSA_PUBLIC_KEY, audience="client")
    assert security.decode_jwt(token, settings.RSA_PUBLIC_KEY, audience="other") is None


def test_decode_expired_jwt() -> None:
    token = security.create_access_token(
        settings=settings,
        user_id="user",
        client_id="client",
        scope="openid",
        expires_delta=timedelta(minutes=-5),
    )
    assert security.decode_jwt(token, settings.RSA_PUBLIC_KEY) is None


def test_decode_jwt_with_wrong_issuer() -> None:
    token = security.create_access_token(
        settings=settings,
        user_id="user",
        client_id="client",
        scope="openid",
    )
    assert (
        security.decode_jwt(token, settings.RSA_PUBLIC_KEY, issuer="https://evil.com")
        is None
    )


def test_decode_jwt_signed_with_another_key() -> None:
    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    token = security.sign_jwt(
        claims={"sub": "user", "exp": 9999999999},
        private_key=other_key,
    )
    assert security.decode_jwt(token, settings.RSA_PUBLIC_KEY) is None


def test_decode_malformed_jwt() -> None:
    assert security.decode_jwt("not a jwt", settings.RSA_PUBLIC_KEY) is None
    assert security.decode_jwt("a.b.c", settings.RSA_PUBLIC_KEY) is None
    assert security.decode_jwt("", settings.RSA_PUBLIC_KEY) is None


def test_decode_unsigned_jwt() -> None:
    token = jwt.encode({"sub": "user", "exp": 9999999999}, key=None, algorithm="none")
    assert security.decode_jwt(token, settings.RSA_PUBLIC_KEY) is None


def test_access_token_claims() -> None:
    token = security.create_access_token(
        settings=settings,
        user_id="user",
        client_id="client",
        scope="openid profile",
    )
    claims = security.decode_jwt(token, settings.RSA_PUBLIC_KEY, audience="client")
    assert claims is not None
    assert claims["sub"] == "user"
    assert claims["iss"] == "http://127.0.0.1:8000"
    assert claims["aud"] == "client"
    assert claims["scope"] == "openid profile"
    # exp and iat are computed at slightly different times
    assert abs(claims["exp"] - claims["iat"] - settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60) <= 1


def test_jwks_contains_the_public_key() -> None:
    jwks = security.get_jwks(settings.RSA_PUBLIC_KEY)
    assert len(jwks["keys"]) == 1
    jwk = jwks["keys"][0]
    assert jwk["kty"] == "RSA"
    assert jwk["alg"] == "RS256"
    assert jwk["use"] == "sig"
    assert jwk["kid"] == security.RSA_JWK_KID
    assert "n" in jwk
    assert "e" in jwk
    assert "d" not in jwk

    token = security.sign_jwt(
        claims={"sub": "user", "exp": 9999999999},
        private_key=settings.RSA_PRIVATE_KEY,
    )
    public_key = jwt.PyJWK(jwk).key
    assert jwt.decode(token, public_key, algorithms=["RS256"])["sub"] == "user"
