"""
Configuration management using Pydantic Settings.
Process-wide settings come from the environment; per-queue options are
frozen models built once from the options bag handed to the adapter.
"""

from functools import lru_cache
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="jobqueue-rabbitmq", alias="APP_NAME")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # RabbitMQ Settings (used by the queue factory)
    rabbitmq_host: str = Field(default="localhost", alias="RABBITMQ_HOST")
    rabbitmq_port: int = Field(default=5672, alias="RABBITMQ_PORT")
    rabbitmq_user: str = Field(default="guest", alias="RABBITMQ_USER")
    rabbitmq_password: str = Field(default="guest", alias="RABBITMQ_PASSWORD")
    rabbitmq_vhost: str = Field(default="/", alias="RABBITMQ_VHOST")
    rabbitmq_default_timeout: Optional[int] = Field(
        default=None, alias="RABBITMQ_DEFAULT_TIMEOUT"
    )
    rabbitmq_durable: bool = Field(default=False, alias="RABBITMQ_DURABLE")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: Optional[str] = Field(default=None, alias="LOG_DIR")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Using lru_cache to ensure single instance (Singleton pattern).
    """
    return Settings()


class _FrozenOptions(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class ClientOptions(_FrozenOptions):
    """Broker connection parameters (the ``client`` section of the options)."""

    host: str = "localhost"
    port: int = 5672
    username: str = "guest"
    password: str = "guest"
    vhost: str = "/"
    insist: bool = False
    login_method: str = Field(default="AMQPLAIN", alias="loginMethod")

    @field_validator("login_method")
    @classmethod
    def _normalize_login_method(cls, value: str) -> str:
        value = value.upper()
        if value not in ("AMQPLAIN", "PLAIN", "EXTERNAL"):
            raise ValueError(f"Unsupported login method: {value}")
        return value


class ExchangeOptions(_FrozenOptions):
    """Exchange the queue is bound to, using the queue name as routing key."""

    name: str
    type: str = "direct"
    passive: bool = False
    durable: bool = False
    auto_delete: bool = Field(default=False, alias="autoDelete")


class QueueOptions(_FrozenOptions):
    """
    Immutable configuration of a single RabbitQueue.

    Field aliases match the option names of the options bag
    (``defaultTimeout``, ``autoDelete``, ...), so a plain mapping can be
    validated directly with ``QueueOptions.model_validate(options)``.
    """

    default_timeout: Optional[int] = Field(default=None, alias="defaultTimeout")
    client: ClientOptions = Field(default_factory=ClientOptions)

    # Queue declaration flags
    passive: bool = False
    durable: bool = False
    exclusive: bool = False
    auto_delete: bool = Field(default=False, alias="autoDelete")
    arguments: Optional[Dict[str, Any]] = None

    exchange: Optional[ExchangeOptions] = None

    # Seconds between basic.get attempts while waiting in wait_and_take
    poll_interval: float = Field(default=0.1, alias="pollInterval", gt=0)

    @field_validator("default_timeout")
    @classmethod
    def _non_negative_timeout(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("defaultTimeout must not be negative")
        return value

    @classmethod
    def from_settings(cls, settings: Settings) -> "QueueOptions":
        """Build queue options from the environment-backed settings."""
        return cls(
            default_timeout=settings.rabbitmq_default_timeout,
            durable=settings.rabbitmq_durable,
            client=ClientOptions(
                host=settings.rabbitmq_host,
                port=settings.rabbitmq_port,
                username=settings.rabbitmq_user,
                password=settings.rabbitmq_password,
                vhost=settings.rabbitmq_vhost,
            ),
        )
