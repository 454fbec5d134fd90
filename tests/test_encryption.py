import base64

from app.core.utils import encryption

SECRET = "test-provider-token-encryption-key"


def test_encrypt_and_decrypt_provider_token() -> None:
    encrypted_token = encryption.encrypt_provider_token("gho_token", SECRET)
    assert encrypted_token != "gho_token"
    assert encryption.decrypt_provider_token(encrypted_token, SECRET) == "gho_token"


def test_encryption_uses_a_random_iv() -> None:
    assert encryption.encrypt_provider_token(
        "gho_token",
        SECRET,
    ) != encryption.encrypt_provider_token("gho_token", SECRET)


def test_decrypt_with_another_secret() -> None:
    encrypted_token = encryption.encrypt_provider_token("gho_token", SECRET)
    assert encryption.decrypt_provider_token(encrypted_token, "other secret") is None


def test_decrypt_tampered_token() -> None:
    combined = bytearray(
        base64.b64decode(encryption.encrypt_provider_token("gho_token", SECRET)),
    )
    combined[-1] ^= 1
    tampered_token = base64.b64encode(bytes(combined)).decode("ascii")
    assert encryption.decrypt_provider_token(tampered_token, SECRET) is None


def test_decrypt_invalid_values() -> None:
    assert encryption.decrypt_provider_token("not base64 !", SECRET) is None
    assert encryption.decrypt_provider_token("", SECRET) is None
    assert (
        encryption.decrypt_provider_token(
            base64.b64encode(b"short").decode("ascii"),
            SECRET,
        )
        is None
    )
