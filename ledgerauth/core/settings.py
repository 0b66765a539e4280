"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict

ACCESS_TOKEN_TTL_DEFAULT = 3600
REFRESH_TOKEN_TTL_DEFAULT = 2_592_000
AUTH_CODE_TTL_DEFAULT = 300
DB_POOL_SIZE_DEFAULT = 5
DB_MAX_OVERFLOW_DEFAULT = 10
DB_PORT_DEFAULT = 5432
RATE_LIMIT_WINDOW_DEFAULT = 900
RATE_LIMIT_MAX_REQUESTS_DEFAULT = 20
EMAIL_TIMEOUT_DEFAULT = 10.0


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection settings."""

    model_config = SettingsConfigDict(env_prefix="OAUTH_DB_")

    host: str = "localhost"
    port: int = DB_PORT_DEFAULT
    user: str = "ledger"
    password: str = "ledger"
    database: str = "ledger"
    pool_size: int = DB_POOL_SIZE_DEFAULT
    max_overflow: int = DB_MAX_OVERFLOW_DEFAULT

    @property
    def async_url(self) -> str:
        """Build async PostgreSQL connection URL."""
        return (
            f"postgresql+asyncpg://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class OAuthSettings(BaseSettings):
    """Authorization server settings."""

    model_config = SettingsConfigDict(env_prefix="OAUTH_")

    cors_origins: str = ""
    session_jwt_secret: str = ""
    session_jwt_audience: str = "authenticated"
    access_token_ttl: int = ACCESS_TOKEN_TTL_DEFAULT
    refresh_token_ttl: int = REFRESH_TOKEN_TTL_DEFAULT
    auth_code_ttl: int = AUTH_CODE_TTL_DEFAULT
    log_level: str = "INFO"

    def get_cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        if not self.cors_origins:
            return []
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


class RateLimitSettings(BaseSettings):
    """Fixed-window limiter applied to every /oauth route."""

    model_config = SettingsConfigDict(env_prefix="OAUTH_RATE_LIMIT_")

    window_seconds: int = RATE_LIMIT_WINDOW_DEFAULT
    max_requests: int = RATE_LIMIT_MAX_REQUESTS_DEFAULT
    redis_url: str = ""
    trust_proxy_headers: bool = True


class EmailSettings(BaseSettings):
    """Transactional email API used for install notifications."""

    model_config = SettingsConfigDict(env_prefix="OAUTH_EMAIL_")

    api_url: str = "https://api.resend.com/emails"
    api_key: str = ""
    sender: str = "Ledger <notifications@ledger.example>"
    timeout_seconds: float = EMAIL_TIMEOUT_DEFAULT
