import secrets
import warnings
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self

from gatekeeper.utils import parse_duration
from gatekeeper.utils.errors import ConfigurationError

# Dialects with an ON CONFLICT upsert for token records
SUPPORTED_DATABASES = ("sqlite", "postgresql")


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    """
    Process-wide configuration.

    Built once at startup and never mutated afterwards. Invalid token
    lifetimes fail construction, so a bad deployment stops before serving.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )
    APP_NAME: str = "Gatekeeper API"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: Literal["local", "test", "production"]
    DATABASE: str
    # Token settings
    ACCESS_TOKEN_TTL: str = "15m"
    REFRESH_TOKEN_TTL: str = "168h"
    ALGORITHM: Literal["HS256", "RS256"] = "HS256"
    SECRET_KEY: str = secrets.token_urlsafe(32)
    PRIVATE_KEY_PATH: str | None = None  # Path to RSA private key for RS256
    PUBLIC_KEY_PATH: str | None = None  # Path to RSA public key for RS256
    ACCESS_COOKIE_PATH: str = "/"
    # Where token records live
    TOKEN_STORE: Literal["database", "redis"] = "database"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    # Audit entries are kept this long when set
    LOG_EXPIRATION: str | None = None
    # Seed user for the directory
    FIRST_USER: str
    FIRST_USER_PASS: str
    FIRST_USER_GROUP: str = "admin"
    BACKEND_CORS_ORIGINS: Annotated[list[AnyUrl] | str, BeforeValidator(parse_cors)] = []

    # Cached keys to avoid reading from disk on every request
    _private_key_bytes: bytes | None = None
    _public_key_bytes: bytes | None = None

    @field_validator("ACCESS_TOKEN_TTL", "REFRESH_TOKEN_TTL", "LOG_EXPIRATION")
    @classmethod
    def _validate_duration(cls, value: str | None) -> str | None:
        if value is not None:
            parse_duration(value)
        return value

    @field_validator("DATABASE")
    @classmethod
    def _validate_database(cls, value: str) -> str:
        if "://" in value:
            dialect = value.split("://", 1)[0].split("+", 1)[0]
            if dialect not in SUPPORTED_DATABASES:
                raise ConfigurationError(
                    f"Unsupported database {dialect!r}, expected one of {SUPPORTED_DATABASES}"
                )
        return value

    @property
    def database_url(self) -> str:
        # A bare name is a SQLite file in the working directory
        if "://" in self.DATABASE:
            return self.DATABASE
        return f"sqlite:///./{self.DATABASE}"

    @property
    def access_ttl(self) -> timedelta:
        return parse_duration(self.ACCESS_TOKEN_TTL)

    @property
    def refresh_ttl(self) -> timedelta:
        return parse_duration(self.REFRESH_TOKEN_TTL)

    @property
    def log_expiration(self) -> timedelta | None:
        if self.LOG_EXPIRATION is None:
            return None
        return parse_duration(self.LOG_EXPIRATION)

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        if value == "changethis":
            message = f'The value of {var_name} is "changethis"'
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            elif self.ENVIRONMENT == "test":
                print(f"WARNING: {message}")
            else:
                # In production, raise an error
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        # Only check SECRET_KEY if using HS256 (symmetric algorithm)
        if self.ALGORITHM != "RS256":
            self._check_default_secret("SECRET_KEY", self.SECRET_KEY)

        self._check_default_secret("FIRST_USER_PASS", self.FIRST_USER_PASS)

        if self.ALGORITHM == "RS256":
            if not self.PRIVATE_KEY_PATH or not self.PUBLIC_KEY_PATH:
                raise ConfigurationError(
                    "PRIVATE_KEY_PATH and PUBLIC_KEY_PATH must "
                    "be set when using RS256 algorithm."
                )
            self._load_rsa_keys()

        return self

    def _load_rsa_keys(self) -> None:
        """Load RSA keys from files and cache them in memory."""
        if self.PRIVATE_KEY_PATH:
            private_key_file = Path(self.PRIVATE_KEY_PATH)
            if not private_key_file.exists():
                raise FileNotFoundError(
                    f"Private key file not found: {self.PRIVATE_KEY_PATH}"
                )
            self._private_key_bytes = private_key_file.read_bytes()

        if self.PUBLIC_KEY_PATH:
            public_key_file = Path(self.PUBLIC_KEY_PATH)
            if not public_key_file.exists():
                raise FileNotFoundError(
                    f"Public key file not found: {self.PUBLIC_KEY_PATH}"
                )
            self._public_key_bytes = public_key_file.read_bytes()

    def get_signing_key(self) -> bytes:
        """Key used to sign tokens: the RSA private key or the shared secret."""
        if self.ALGORITHM == "RS256":
            if self._private_key_bytes is None:
                raise ValueError("Private key not loaded for RS256 algorithm")
            return self._private_key_bytes
        return self.SECRET_KEY.encode()

    def get_verification_key(self) -> bytes:
        """Key used to verify tokens: the RSA public key or the shared secret."""
        if self.ALGORITHM == "RS256":
            if self._public_key_bytes is None:
                raise ValueError("Public key not loaded for RS256 algorithm")
            return self._public_key_bytes
        return self.SECRET_KEY.encode()


@lru_cache
def get_settings() -> Settings:
    """
    Load the settings once per process.

    Pydantic wraps errors raised by validators, so a `ConfigurationError`
    found while loading is unwrapped and raised as itself.
    """
    try:
        return Settings()  # type: ignore
    except ValidationError as e:
        for error in e.errors():
            cause = error.get("ctx", {}).get("error")
            if isinstance(cause, ConfigurationError):
                raise cause from e
        raise
