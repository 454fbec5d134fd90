"""
Proof Key for Code Exchange, see https://datatracker.ietf.org/doc/html/rfc7636

The client generates a random `code_verifier` and sends its `code_challenge` when requesting an authorization code.
When exchanging the code, the client must provide the `code_verifier`: an attacker intercepting the code can not use it.
"""

import base64
import hashlib
import hmac
import secrets
from enum import Enum


class CodeChallengeMethod(str, Enum):
    S256 = "S256"
    plain = "plain"


def generate_code_verifier(nbytes: int = 32) -> str:
    """
    Generate a high entropy code verifier, base64url encoded without padding
    """
    return secrets.token_urlsafe(nbytes)


def derive_code_challenge(
    code_verifier: str,
    method: CodeChallengeMethod | str = CodeChallengeMethod.S256,
) -> str:
    """
    Compute the code challenge corresponding to `code_verifier`.

    For `S256` the challenge is `BASE64URL(SHA256(code_verifier))` without padding.
    For `plain`, the challenge is the verifier itself. It is only supported for completeness, the authorization endpoint only accepts `S256`.
    """
    if method == CodeChallengeMethod.S256:
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    if method == CodeChallengeMethod.plain:
        return code_verifier
    raise ValueError(f"Unsupported code challenge method {method}")


def verify_code_challenge(
    code_verifier: str,
    code_challenge: str,
    method: CodeChallengeMethod | str | None,
) -> bool:
    """
    Recompute the challenge of `code_verifier` and compare it to `code_challenge` in constant time.

    An unsupported method or a verifier which is not ascii never verifies.
    """
    try:
        expected_challenge = derive_code_challenge(
            code_verifier,
            method or CodeChallengeMethod.S256,
        )
    except ValueError:
        return False

    return hmac.compare_digest(
        expected_challenge.encode("utf-8"),
        code_challenge.encode("utf-8"),
    )
