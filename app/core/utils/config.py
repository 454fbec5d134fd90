import tomllib
from functools import cached_property
from pathlib import Path
from typing import Any, ClassVar

from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import load_pem_private_key
from pydantic import computed_field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from app.core.utils import security
from app.types.exceptions import (
    DotenvInvalidVariableError,
    DotenvMissingVariableError,
    InvalidRSAKeyInDotenvError,
)


class Settings(BaseSettings):
    """
    Configuration of the authorization server.

    Values are read, by order of precedence, from:
    1. arguments passed to the constructor
    2. environment variables
    3. the yaml file, `config.yaml` by default
    4. the dotenv file, `.env` by default

    Both files can be replaced at instantiation: `Settings(_env_file=".env.dev", _yaml_file="config.dev.yaml")`.

    Endpoints should access the settings with the `get_settings` dependency, which tests override.
    See https://docs.pydantic.dev/latest/concepts/pydantic_settings/
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="config.yaml",
        case_sensitive=False,
        extra="ignore",
    )

    # pydantic-settings has no `_yaml_file` instantiation parameter,
    # the path is stored on the class before the sources are built
    # See https://github.com/pydantic/pydantic-settings/issues/259
    _yaml_file: ClassVar[str]

    def __init__(self, _yaml_file, _env_file, **kwargs):
        Settings._yaml_file = _yaml_file
        super().__init__(_env_file=_env_file, **kwargs)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Sources are ordered by precedence
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_file),
            dotenv_settings,
        )

    #################
    # Token signing #
    #################

    # PEM encoded RSA private key signing access tokens and ID tokens.
    # Newlines may be written as `\n`. The public key is published by /.well-known/jwks.json
    RSA_PRIVATE_PEM_STRING: bytes

    # Public url of the server, with a trailing slash.
    # Used as the token issuer, in the discovery documents and to build the frontend pages urls
    CLIENT_URL: str

    ############
    # Sessions #
    ############

    # Signs the session cookie, at least 32 random bytes
    SESSION_SECRET_KEY: str
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 7

    # GitHub tokens are stored encrypted with a key derived from this secret.
    # Changing it makes every stored GitHub token unreadable
    PROVIDER_TOKEN_ENCRYPTION_KEY: str

    #######################
    # GitHub OAuth client #
    #######################

    # The callback url of the GitHub OAuth application is `<CLIENT_URL>auth/github/callback`.
    # Without these settings, nobody can log in
    GITHUB_CLIENT_ID: str | None = None
    GITHUB_CLIENT_SECRET: str | None = None

    ##################
    # Frontend pages #
    ##################

    # Relative to CLIENT_URL, without a leading '/'
    LOGIN_PAGE_PATH: str = "login"
    CONSENT_PAGE_PATH: str = "authorize"
    DASHBOARD_PAGE_PATH: str = "dashboard"

    ##########
    # Server #
    ##########

    LOG_DEBUG_MESSAGES: bool = False

    # Origins allowed by the CORS middleware, without trailing '/'
    # See https://fastapi.tiangolo.com/tutorial/cors/
    CORS_ORIGINS: list[str] = []

    ############
    # Database #
    ############

    # A SQLite database is meant for development and tests, PostgreSQL is used otherwise
    SQLITE_DB: str | None = None
    POSTGRES_HOST: str = ""
    POSTGRES_USER: str = ""
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = ""
    # Log every query
    DATABASE_DEBUG: bool = False

    #########
    # Redis #
    #########

    # Redis backs the rate limiter and the expired authorization codes cleanup.
    # Both are disabled when REDIS_HOST is not set
    REDIS_HOST: str | None = None
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str | None = None
    # At most REDIS_LIMIT requests per client address every REDIS_WINDOW seconds
    REDIS_LIMIT: int = 1000
    REDIS_WINDOW: int = 60
    ENABLE_RATE_LIMITER: bool = True

    ###################
    # Tokens validity #
    ###################

    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    AUTHORIZATION_CODE_EXPIRE_MINUTES: int = 10

    # When enabled, a refresh_token grant revokes the presented token and returns a new one,
    # and presenting a revoked token revokes every token of the user for the client
    ROTATE_REFRESH_TOKENS: bool = False

    #####################
    # Computed settings #
    #####################

    # Computed from other fields once parsing is done. `@cached_property` computes them once.
    # `@computed_field` needs a `type: ignore`, see https://github.com/python/mypy/issues/1362

    @computed_field  # type: ignore[prop-decorator]
    @cached_property
    def APP_VERSION(cls) -> str:
        with Path("pyproject.toml").open("rb") as pyproject_binary:
            pyproject = tomllib.load(pyproject_binary)
        return str(pyproject["project"]["version"])

    @computed_field  # type: ignore[prop-decorator]
    @cached_property
    def RSA_PRIVATE_KEY(cls) -> rsa.RSAPrivateKey:
        private_key = load_pem_private_key(cls.RSA_PRIVATE_PEM_STRING, password=None)
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise InvalidRSAKeyInDotenvError(private_key.__class__.__name__)
        return private_key

    @computed_field  # type: ignore[prop-decorator]
    @cached_property
    def RSA_PUBLIC_KEY(cls) -> rsa.RSAPublicKey:
        return cls.RSA_PRIVATE_KEY.public_key()

    @computed_field  # type: ignore[prop-decorator]
    @cached_property
    def RSA_PUBLIC_JWK(cls) -> dict[str, list[dict[str, Any]]]:
        return security.get_jwks(cls.RSA_PUBLIC_KEY)

    @computed_field  # type: ignore[prop-decorator]
    @cached_property
    def OIDC_ISSUER(cls) -> str:
        # The issuer is compared as a string by clients: no trailing slash
        return cls.CLIENT_URL[:-1]

    @computed_field  # type: ignore[prop-decorator]
    @cached_property
    def LOGIN_PAGE_URL(cls) -> str:
        return cls.CLIENT_URL + cls.LOGIN_PAGE_PATH

    @computed_field  # type: ignore[prop-decorator]
    @cached_property
    def CONSENT_PAGE_URL(cls) -> str:
        return cls.CLIENT_URL + cls.CONSENT_PAGE_PATH

    @computed_field  # type: ignore[prop-decorator]
    @cached_property
    def DASHBOARD_PAGE_URL(cls) -> str:
        return cls.CLIENT_URL + cls.DASHBOARD_PAGE_PATH

    @computed_field  # type: ignore[prop-decorator]
    @cached_property
    def REDIS_URL(cls) -> str | None:
        if not cls.REDIS_HOST:
            return None
        # The password is preceded by an empty username
        return f"redis://:{cls.REDIS_PASSWORD or ''}@{cls.REDIS_HOST}:{cls.REDIS_PORT}"

    ##############
    # Validation #
    ##############

    @model_validator(mode="after")
    def check_client_urls(self) -> "Settings":
        if not self.CLIENT_URL.endswith("/"):
            raise DotenvInvalidVariableError(  # noqa: TRY003
                "CLIENT_URL must contains a trailing slash",
            )
        for page_path in (
            self.LOGIN_PAGE_PATH,
            self.CONSENT_PAGE_PATH,
            self.DASHBOARD_PAGE_PATH,
        ):
            if page_path.startswith("/"):
                raise DotenvInvalidVariableError(  # noqa: TRY003
                    f"Frontend page path {page_path} should not begin with a '/'",
                )

        return self

    @model_validator(mode="after")
    def check_database_settings(self) -> "Settings":
        """
        Either SQLITE_DB or the four PostgreSQL settings are required
        """
        postgres_settings = (
            self.POSTGRES_HOST,
            self.POSTGRES_USER,
            self.POSTGRES_PASSWORD,
            self.POSTGRES_DB,
        )
        if not self.SQLITE_DB and not all(postgres_settings):
            raise DotenvMissingVariableError(  # noqa: TRY003
                "Either SQLITE_DB or POSTGRES_HOST, POSTGRES_USER, POSTGRES_PASSWORD and POSTGRES_DB",
            )

        return self

    @model_validator(mode="after")
    def check_secrets(self) -> "Settings":
        for name in (
            "RSA_PRIVATE_PEM_STRING",
            "SESSION_SECRET_KEY",
            "PROVIDER_TOKEN_ENCRYPTION_KEY",
        ):
            if not getattr(self, name):
                raise DotenvMissingVariableError(name)

        return self

    @model_validator(mode="after")
    def load_signing_key(self) -> "Settings":
        """
        Compute the signing key and its JWKS now, so that a malformed key stops the server at startup
        instead of failing the first token request.
        """
        self.APP_VERSION  # noqa: B018
        self.RSA_PRIVATE_KEY  # noqa: B018
        self.RSA_PUBLIC_KEY  # noqa: B018
        self.RSA_PUBLIC_JWK  # noqa: B018

        return self


def construct_prod_settings() -> Settings:
    """
    Return the production settings
    """
    return Settings(_env_file=".env", _yaml_file="config.yaml")
