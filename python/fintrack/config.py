"""Application settings loaded from environment variables.

Environment Configuration:
    FINTRACK_ENV: Deployment environment (development | staging | production)
        Read once at process start. Only development exposes the
        documentation endpoints.

Listener Configuration:
    HTTP_HOST: Bind address for all listeners (default 127.0.0.1)
    HTTP_PORT: Plain HTTP listener port (default 5000)
    HTTPS_PORT: Secure port. Also the target of HTTP -> HTTPS redirects.
    SSL_CERTFILE / SSL_KEYFILE: Enable the TLS listener on HTTPS_PORT
    FORWARDED_ALLOW_IPS: Proxies trusted for X-Forwarded-Proto / X-Forwarded-For

Transport Security:
    HTTPS_REDIRECT_STATUS: Redirect status code (301 | 302 | 307 | 308, default 308)

Documentation:
    API_TITLE / API_VERSION: Metadata for the generated API description

Logging:
    LOG_JSON: JSON logs when true (default), console-friendly logs when false

Note: If HTTPS_PORT is unset, the redirect stage stays installed but passes
requests through.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

ALLOWED_REDIRECT_STATUSES = frozenset({301, 302, 307, 308})


class Environment(str, Enum):
    """Valid deployment environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Application configuration.

    Settings are loaded from environment variables and frozen after validation.
    Validation rules:
    - SSL_CERTFILE and SSL_KEYFILE must be set together
    - A TLS listener requires HTTPS_PORT
    - HTTPS_REDIRECT_STATUS must be a redirect status
    """

    fintrack_env: Environment = Field(default=Environment.PRODUCTION, alias="FINTRACK_ENV")

    # Listener settings
    http_host: str = Field(default="127.0.0.1", alias="HTTP_HOST")
    http_port: int = Field(default=5000, alias="HTTP_PORT", ge=0, le=65535)
    https_port: int | None = Field(default=None, alias="HTTPS_PORT", ge=1, le=65535)
    ssl_certfile: str | None = Field(default=None, alias="SSL_CERTFILE")
    ssl_keyfile: str | None = Field(default=None, alias="SSL_KEYFILE")
    forwarded_allow_ips: str = Field(default="127.0.0.1", alias="FORWARDED_ALLOW_IPS")

    # Transport security
    https_redirect_status: int = Field(default=308, alias="HTTPS_REDIRECT_STATUS")

    # API description metadata
    api_title: str = Field(default="FinTrack API", alias="API_TITLE")
    api_version: str = Field(default="v1", alias="API_VERSION")

    log_json: bool = Field(default=True, alias="LOG_JSON")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "frozen": True,
    }

    @model_validator(mode="after")
    def validate_listener_settings(self) -> "Settings":
        """Ensure TLS and redirect settings are consistent."""
        if bool(self.ssl_certfile) != bool(self.ssl_keyfile):
            raise ValueError("SSL_CERTFILE and SSL_KEYFILE must be set together")

        if self.ssl_certfile and self.https_port is None:
            raise ValueError("HTTPS_PORT is required when SSL_CERTFILE is set")

        if self.https_port is not None and self.https_port == self.http_port:
            raise ValueError(f"HTTPS_PORT must differ from HTTP_PORT ({self.http_port})")

        if self.https_redirect_status not in ALLOWED_REDIRECT_STATUSES:
            raise ValueError(
                f"HTTPS_REDIRECT_STATUS must be one of {sorted(ALLOWED_REDIRECT_STATUSES)}, "
                f"got {self.https_redirect_status}"
            )

        return self

    @property
    def is_development(self) -> bool:
        """Whether documentation stages are installed."""
        return self.fintrack_env == Environment.DEVELOPMENT

    @property
    def serves_tls(self) -> bool:
        """Whether this process binds its own TLS listener."""
        return bool(self.ssl_certfile)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
