from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    port: int = 8080
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Auth endpoints (login/signup/reset): fixed window with an extended lockout.
    auth_rate_limit_max_attempts: int = Field(default=5, validation_alias="AUTH_RATE_LIMIT_MAX_ATTEMPTS")
    auth_rate_limit_window_seconds: float = Field(default=60.0, validation_alias="AUTH_RATE_LIMIT_WINDOW_SECONDS")
    auth_rate_limit_lockout_seconds: float = Field(
        default=900.0,
        validation_alias="AUTH_RATE_LIMIT_LOCKOUT_SECONDS",
    )

    # Donation + payment webhook throttling (per IP, per minute, no lockout).
    donation_rate_limit_per_minute: int = Field(default=10, validation_alias="DONATION_RATE_LIMIT_PER_MINUTE")
    webhook_rate_limit_per_minute: int = Field(default=50, validation_alias="WEBHOOK_RATE_LIMIT_PER_MINUTE")

    # In-memory only; counters reset on restart.
    # For multi-instance scaling, replace with Redis.
    rate_limit_max_entries: int = Field(default=10_000, validation_alias="RATE_LIMIT_MAX_ENTRIES")

    # Donation amount bounds, in cents.
    donation_min_cents: int = Field(default=100, validation_alias="DONATION_MIN_CENTS")
    donation_max_cents: int = Field(default=10_000_000, validation_alias="DONATION_MAX_CENTS")

    # Caller side of the auth rate-limit endpoint
    rate_limit_url: str = Field(default="", validation_alias="RATE_LIMIT_URL")
    rate_limit_api_key: str = Field(default="", validation_alias="RATE_LIMIT_API_KEY")
    rate_limit_timeout_seconds: float = Field(default=5.0, validation_alias="RATE_LIMIT_TIMEOUT_SECONDS")
    rate_limit_fail_open: bool = Field(default=True, validation_alias="RATE_LIMIT_FAIL_OPEN")


settings = Settings()  # type: ignore[call-arg]
