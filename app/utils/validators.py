"""
A collection of Pydantic validators
See https://docs.pydantic.dev/latest/concepts/validators/#reuse-validators
"""


def trailing_spaces_remover(value: str | None) -> str | None:
    """
    Remove trailing spaces of a string.
    This function is intended to be used as a Pydantic validator.
    """
    if value is not None:
        return value.strip()
    return value


def not_empty_string(value: str | None) -> str | None:
    """
    Refuse an empty (or blank) string.
    This function is intended to be used as a Pydantic validator, after `trailing_spaces_remover`.
    """
    if value is not None and not value:
        raise ValueError("The value should not be empty")  # noqa: TRY003
    return value
