from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


DEFAULT_SESSION_SECRET = "dev_secret_change_me"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }

    # Runtime
    APP_ENV: str = Field(default="dev")
    DEBUG: bool = Field(default=False)
    PORT: int = Field(default=4001)
    API_PREFIX: str = Field(default="/api")
    LOG_LEVEL: str = Field(default="INFO")

    # Sessions
    SESSION_SECRET: str = Field(default=DEFAULT_SESSION_SECRET)
    SESSION_COOKIE_NAME: str = Field(default="sid")
    SESSION_TTL_HOURS: int = Field(default=24, description="Fixed session lifetime")
    REDIS_URL: str | None = Field(default=None, description="Redis URL for the session store")

    # Cookie Configuration
    COOKIE_SECURE: bool = Field(default=True)  # Only honoured in production
    COOKIE_SAMESITE: str = Field(default="lax")  # lax keeps the cookie on the provider's redirect back
    COOKIE_DOMAIN: str | None = Field(default=None)

    # OAuth handshake
    OAUTH_STATE_COOKIE_NAME: str = Field(default="oauth_state")
    OAUTH_STATE_TTL_SECONDS: int = Field(default=600)
    OAUTH_HTTP_TIMEOUT_SECONDS: float = Field(default=10.0, description="Timeout for provider HTTP calls")

    GOOGLE_CLIENT_ID: str = Field(default="")
    GOOGLE_CLIENT_SECRET: str = Field(default="")
    GOOGLE_REDIRECT_URI: str = Field(default="http://localhost:4001/api/auth/google/callback")

    GITHUB_CLIENT_ID: str = Field(default="")
    GITHUB_CLIENT_SECRET: str = Field(default="")
    GITHUB_REDIRECT_URI: str = Field(default="http://localhost:4001/api/auth/github/callback")

    # Front-end integration
    FRONTEND_URL: str = Field(default="http://localhost:5173")
    AUTH_SUCCESS_PATH: str = Field(default="/dashboard")
    AUTH_FAILURE_PATH: str = Field(default="/auth")
    CORS_ALLOW_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"]
    )

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def session_max_age(self) -> int:
        """Session lifetime in seconds."""
        return self.SESSION_TTL_HOURS * 60 * 60

    def validate_production_config(self) -> None:
        """Validate security configuration for production environments.

        Call this at startup to ensure critical security settings are configured.

        Raises:
            RuntimeError: If security configuration is invalid
        """
        if not self.is_production:
            return

        if self.SESSION_SECRET == DEFAULT_SESSION_SECRET or len(self.SESSION_SECRET) < 32:
            raise RuntimeError(
                "CRITICAL: SESSION_SECRET must be set and at least 32 characters in production. "
                "Generate with: openssl rand -hex 32"
            )

        if "*" in self.CORS_ALLOW_ORIGINS:
            raise RuntimeError(
                "CRITICAL: CORS_ALLOW_ORIGINS cannot be '*' in production. "
                "Specify exact origins."
            )

        if any("localhost" in origin for origin in self.CORS_ALLOW_ORIGINS):
            import logging
            logging.getLogger(__name__).warning(
                "WARNING: CORS_ALLOW_ORIGINS contains localhost - update for production"
            )


settings = Settings()
