"""
Configuration models for Alexandria using Pydantic v2 Settings.

All defaults live on the models, so a constructed ``Settings`` is fully
populated and immutable. Values come from keyword arguments first, then
``ALEXANDRIA_*`` environment variables (``__`` separates nested groups, e.g.
``ALEXANDRIA_KAFKA__ENABLE=true``).

Example:

```python
from alexandria import Settings

settings = Settings(
    service_name="billing",
    service_version="1.4.2",
    service_environment="production",
    sentry={"enable": True, "dsn": "https://key@sentry.io/42", "level": "error"},
    kafka={"enable": True, "topic": "logs", "brokers": ["kafka:9092"]},
)
```
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import (  # type: ignore[import-not-found]
    BaseSettings,
    SettingsConfigDict,
)

from .levels import GATED_SINKS, LevelName, normalize_level


class _SinkSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    enable: bool = Field(default=False, description="Enable this integration")

    @field_validator("level", mode="before", check_fields=False)
    @classmethod
    def _normalize_level(cls, value: object) -> object:
        if isinstance(value, str):
            return normalize_level(value)
        return value


class SentrySettings(_SinkSettings):
    """Error-tracking integration. Defaults to ``fatal`` events only."""

    dsn: str | None = Field(
        default=None,
        description="Sentry DSN, e.g. https://<key>@sentry.io/<project>",
    )
    tags: dict[str, str] = Field(
        default_factory=dict,
        description="Extra tags attached to every captured event",
    )
    use_stack_trace: bool = Field(
        default=False,
        description="Attach a stack trace to captured messages",
    )
    level: LevelName = Field(default="fatal", description="Minimum level sent")


class ApmSettings(_SinkSettings):
    """Elastic APM integration. Defaults to ``fatal`` events only."""

    url: str | None = Field(default=None, description="APM server URL")
    token: str | None = Field(default=None, description="APM secret token")
    use_stack_trace: bool = Field(
        default=False,
        description="Attach a stack trace to captured messages",
    )
    level: LevelName = Field(default="fatal", description="Minimum level sent")


class FluentSettings(_SinkSettings):
    """Fluentd forwarder integration. Defaults to ``info`` and above."""

    tag: str | None = Field(
        default=None,
        description="Fluentd tag prefix; defaults to the service name",
    )
    host: str = Field(default="localhost", description="Fluentd host")
    port: int = Field(default=24224, ge=1, le=65535, description="Fluentd port")
    timeout: float = Field(
        default=3.0,
        gt=0.0,
        description="Socket timeout in seconds",
    )
    level: LevelName = Field(default="info", description="Minimum level sent")


class KafkaSettings(_SinkSettings):
    """Kafka producer integration. Defaults to ``info`` and above."""

    topic: str | None = Field(default=None, description="Base topic name")
    brokers: list[str] = Field(
        default_factory=list,
        description="Bootstrap brokers as host:port strings",
    )
    topic_prefix: str | None = Field(default=None, description="Topic prefix")
    topic_suffix: str | None = Field(default=None, description="Topic suffix")
    topic_separator: str = Field(
        default=".",
        description="Separator used to join prefix, topic and suffix",
    )
    level: LevelName = Field(default="info", description="Minimum level sent")

    @field_validator("brokers", mode="before")
    @classmethod
    def _split_brokers(cls, value: object) -> object:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @property
    def topic_name(self) -> str:
        """Full topic name; absent segments are omitted."""
        parts = [p for p in (self.topic_prefix, self.topic, self.topic_suffix) if p]
        return self.topic_separator.join(parts)


class CoreSettings(BaseModel):
    """Core dispatch behavior."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    trace_caller: bool = Field(
        default=False,
        description="Attach the call site of the severity method to each entry",
    )
    dispatch_workers: int = Field(
        default=4,
        ge=1,
        description="Threads available for blocking sink client calls",
    )
    enable_metrics: bool = Field(
        default=False,
        description="Enable Prometheus-compatible metrics",
    )
    internal_logging_enabled: bool = Field(
        default=False,
        description="Emit diagnostics to stderr for contained sink failures",
    )
    exceptions_max_frames: int = Field(
        default=50,
        ge=1,
        description="Maximum traceback frames kept when serializing errors",
    )
    drain_timeout_seconds: float = Field(
        default=2.0,
        gt=0.0,
        description="Time allowed for in-flight dispatches on close",
    )
    atexit_drain_enabled: bool = Field(
        default=True,
        description="Drain and close loggers when the interpreter exits",
    )


class CaptureUnhandledSettings(BaseModel):
    """Process-wide uncaught exception capture."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = Field(default=True, description="Install the capture hooks")
    delay_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="Delay before the hooks are installed",
    )


class Settings(BaseSettings):
    """Top-level configuration: service identity plus one group per sink."""

    service_name: str | None = Field(default=None, description="Service name")
    service_version: str | None = Field(default=None, description="Service version")
    service_environment: str | None = Field(
        default=None,
        description="Deployment environment, e.g. production",
    )

    sentry: SentrySettings = Field(default_factory=SentrySettings)
    apm: ApmSettings = Field(default_factory=ApmSettings)
    fluent: FluentSettings = Field(default_factory=FluentSettings)
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)
    core: CoreSettings = Field(default_factory=CoreSettings)
    capture_unhandled: CaptureUnhandledSettings = Field(
        default_factory=CaptureUnhandledSettings
    )

    model_config = SettingsConfigDict(
        env_prefix="ALEXANDRIA_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @property
    def identity(self) -> dict[str, str | None]:
        """Service identity attached to every console line."""
        return {
            "name": self.service_name,
            "version": self.service_version,
            "environment": self.service_environment,
        }

    def enabled_sinks(self) -> tuple[str, ...]:
        """Names of the enabled integrations, in fixed order."""
        return tuple(name for name in GATED_SINKS if getattr(self, name).enable)

