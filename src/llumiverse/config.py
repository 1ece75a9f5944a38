"""Driver configuration using pydantic-settings."""

import dataclasses
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from llumiverse import __version__
from llumiverse.core.retry import execute_with_retry
from llumiverse.core.types import ExecutionOptions, ExecutionResponse, PromptSegment
from llumiverse.observability import init_observability

if TYPE_CHECKING:
    from llumiverse.core.driver import AbstractDriver, DriverOptions
    from llumiverse.core.protocol import CapabilityOracle
    from llumiverse.drivers.openai import OpenAIDriver


class Settings(BaseSettings):
    """Settings loaded from ``LLUMIVERSE_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="LLUMIVERSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = "llumiverse"

    # OpenAI compatible backend
    openai_api_key: SecretStr | None = None
    openai_base_url: str | None = None
    default_model: str = "gpt-4o-mini"
    timeout_seconds: float = 60.0

    # Circuit breaker
    circuit_breaker_fail_max: int = 5
    circuit_breaker_timeout: float = 60.0

    # Connection/timeout retries inside the driver
    transport_retry_attempts: int = 2
    transport_retry_max_wait: float = 5.0

    # Caller side retry policy
    retry_max_attempts: int = 3
    retry_unknown: bool = False  # Also retry errors with an UNKNOWN verdict
    retry_max_wait_seconds: float = 10.0

    # Observability
    log_level: str = "INFO"
    json_logs: bool = False
    tracing_enabled: bool = False
    otlp_endpoint: str | None = None
    console_export: bool = False
    sample_rate: float = 1.0  # Ratio of root traces kept (0-1)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def create_openai_driver(
    settings: Settings | None = None,
    *,
    capability_oracle: "CapabilityOracle | None" = None,
    options: "DriverOptions | None" = None,
) -> "OpenAIDriver":
    """Build an ``OpenAIDriver`` from settings.

    Raises:
        LlumiverseConfigurationError: If no API key is configured.
    """
    from llumiverse.drivers.openai import OpenAIDriver

    settings = settings or get_settings()
    api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else ""
    return OpenAIDriver(
        api_key,
        base_url=settings.openai_base_url,
        timeout_seconds=settings.timeout_seconds,
        circuit_breaker_fail_max=settings.circuit_breaker_fail_max,
        circuit_breaker_timeout=settings.circuit_breaker_timeout,
        transport_retry_attempts=settings.transport_retry_attempts,
        transport_retry_max_wait=settings.transport_retry_max_wait,
        capability_oracle=capability_oracle,
        options=options,
    )


def init_observability_from_settings(settings: Settings | None = None) -> None:
    """Configure logging and tracing from the observability settings."""
    settings = settings or get_settings()
    init_observability(
        settings.service_name,
        __version__,
        otlp_endpoint=settings.otlp_endpoint,
        console_export=settings.console_export,
        enabled=settings.tracing_enabled,
        sample_rate=settings.sample_rate,
        log_level=settings.log_level,
        json_logs=settings.json_logs,
    )


async def execute_with_configured_retry(
    driver: "AbstractDriver[Any]",
    segments: list[PromptSegment],
    options: ExecutionOptions,
    settings: Settings | None = None,
) -> ExecutionResponse:
    """Run ``execute_with_retry`` with the configured retry policy.

    An empty ``options.model`` is replaced by ``settings.default_model``.
    """
    settings = settings or get_settings()
    if not options.model:
        options = dataclasses.replace(options, model=settings.default_model)
    return await execute_with_retry(
        driver,
        segments,
        options,
        max_attempts=settings.retry_max_attempts,
        retry_unknown=settings.retry_unknown,
        max_wait=settings.retry_max_wait_seconds,
    )
