"""
Symmetric encryption of the identity provider tokens stored in the database.

Tokens are encrypted with AES-256-GCM. The key is derived from `PROVIDER_TOKEN_ENCRYPTION_KEY` using PBKDF2.
The stored value is `base64(iv || ciphertext)`, the ciphertext including the GCM authentication tag.
"""

import base64
import binascii
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

KEY_DERIVATION_SALT = b"studio-auth-provider-token-encryption"
KEY_DERIVATION_ITERATIONS = 100_000
IV_LENGTH = 12


@lru_cache
def derive_encryption_key(secret: str) -> bytes:
    """
    Derive a 256 bits key from `secret`. The derived key is cached.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=KEY_DERIVATION_SALT,
        iterations=KEY_DERIVATION_ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


def encrypt_provider_token(plaintext: str, secret: str) -> str:
    iv = os.urandom(IV_LENGTH)
    ciphertext = AESGCM(derive_encryption_key(secret)).encrypt(
        iv,
        plaintext.encode("utf-8"),
        None,
    )
    return base64.b64encode(iv + ciphertext).decode("ascii")


def decrypt_provider_token(encrypted_token: str, secret: str) -> str | None:
    """
    Decrypt a token encrypted by `encrypt_provider_token`.

    Return None if the value can not be decoded or was not encrypted with this secret.
    """
    try:
        combined = base64.b64decode(encrypted_token, validate=True)
    except (binascii.Error, ValueError):
        return None

    if len(combined) <= IV_LENGTH:
        return None

    iv, ciphertext = combined[:IV_LENGTH], combined[IV_LENGTH:]
    try:
        plaintext = AESGCM(derive_encryption_key(secret)).decrypt(iv, ciphertext, None)
    except InvalidTag:
        return None

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError:
        return None
