import logging

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings

from fansync.environment import EnvironmentName
from settings.log import LoggingSettings


class DatabaseSettings(BaseSettings):
    host: str = Field(alias="DATABASE_HOST", default="postgresql://localhost:5432")
    name: str = Field(alias="DATABASE_NAME", default="fansync")
    min_pool_size: int = Field(alias="DATABASE_MIN_POOL_SIZE", default=5)
    max_pool_size: int = Field(alias="DATABASE_MAX_POOL_SIZE", default=20)

    @property
    def async_host(self) -> str:
        """Return the host URL with async driver for SQLAlchemy async engine."""
        return self.host.replace("postgresql://", "postgresql+asyncpg://", 1)

    @property
    def url(self) -> str:
        return f"{self.async_host}/{self.name}"


class FanvueSettings(BaseSettings):
    api_base: str = Field(alias="FANVUE_API_BASE", default="https://api.fanvue.com")
    token_url: str = Field(alias="FANVUE_TOKEN_URL", default="https://auth.fanvue.com/oauth/token")
    api_version: str = Field(alias="FANVUE_API_VERSION", default="2025-06-26")
    client_id: str = Field(alias="FANVUE_CLIENT_ID", default="")
    client_secret: str = Field(alias="FANVUE_CLIENT_SECRET", default="")
    webhook_secret: str = Field(alias="FANVUE_WEBHOOK_SECRET", default="")
    request_timeout: int = Field(alias="FANVUE_REQUEST_TIMEOUT", default=30)


class RetrySettings(BaseSettings):
    max_retries: int = Field(alias="RETRY_MAX_RETRIES", default=3)
    base_delay_ms: int = Field(alias="RETRY_BASE_DELAY_MS", default=1000)


class PollerSettings(BaseSettings):
    interval: int = Field(alias="POLLER_INTERVAL", default=60)
    account_group_size: int = Field(alias="POLLER_ACCOUNT_GROUP_SIZE", default=5)
    chat_page_size: int = Field(alias="POLLER_CHAT_PAGE_SIZE", default=50)
    message_page_size: int = Field(alias="POLLER_MESSAGE_PAGE_SIZE", default=50)
    token_sweep_interval: int = Field(alias="POLLER_TOKEN_SWEEP_INTERVAL", default=3600)
    token_sweep_horizon: int = Field(alias="POLLER_TOKEN_SWEEP_HORIZON", default=7200)


class RangeFetchSettings(BaseSettings):
    max_span_days: int = Field(alias="RANGE_MAX_SPAN_DAYS", default=28)
    concurrency: int = Field(alias="RANGE_CONCURRENCY", default=3)
    max_pages: int = Field(alias="RANGE_MAX_PAGES", default=20)
    page_limit: int = Field(alias="RANGE_PAGE_LIMIT", default=100)


class WebhookSettings(BaseSettings):
    tolerance_seconds: int = Field(alias="WEBHOOK_TOLERANCE_SECONDS", default=300)


class SentrySettings(BaseSettings):
    dsn: str | None = Field(alias="SENTRY_DSN", default=None)

    @property
    def is_enabled(self) -> bool:
        return bool(self.dsn)


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "extra": "allow"}

    environment: EnvironmentName = Field(alias="ENVIRONMENT")
    token_encryption_key: str = Field(alias="TOKEN_ENCRYPTION_KEY")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    fanvue: FanvueSettings = Field(default_factory=FanvueSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    poller: PollerSettings = Field(default_factory=PollerSettings)
    range_fetch: RangeFetchSettings = Field(default_factory=RangeFetchSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @field_validator("environment", mode="before")
    def set_environment(cls, value: str, info: ValidationInfo) -> EnvironmentName:
        try:
            return EnvironmentName(value)
        except ValueError:
            logging.getLogger(__name__).warning(f"Invalid environment: {value}")
            return EnvironmentName.DEVELOPMENT
