from typing import Any

from fastapi import HTTPException


class ContentHTTPException(HTTPException):
    """
    An HTTPException whose response body is `content` itself instead of `{"detail": content}`.

    The application registers an exception handler rendering it.
    """

    def __init__(
        self,
        status_code: int,
        content: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=content, headers=headers)
        self.content = content


class AuthHTTPException(ContentHTTPException):
    """
    An OAuth 2.0 error response: `{"error": ..., "error_description": ...}`

    See https://www.rfc-editor.org/rfc/rfc6749#section-5.2
    """

    def __init__(
        self,
        status_code: int,
        error: str,
        error_description: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(
            status_code=status_code,
            content={
                "error": error,
                "error_description": error_description,
            },
            headers=headers,
        )


class InvalidAppStateTypeError(Exception):
    def __init__(self):
        super().__init__("The request state is not a valid application state")


class IdentityProviderError(Exception):
    """
    The identity provider refused the login or answered unexpectedly.

    The message is an error code, added to the login page url.
    """


class MissingTZInfoInDatetimeError(TypeError):
    def __init__(self):
        super().__init__("Datetimes stored in the database must be timezone aware")


class DotenvMissingVariableError(Exception):
    def __init__(self, variable_name: str):
        super().__init__(
            f"{variable_name} should be configured in the dotenv or in config.yaml",
        )


class DotenvInvalidVariableError(Exception):
    pass


class InvalidRSAKeyInDotenvError(TypeError):
    def __init__(self, actual_key_type: str):
        super().__init__(
            f"RSA_PRIVATE_PEM_STRING must be an RSA private key, not a {actual_key_type}",
        )
