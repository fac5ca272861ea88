"""
Configuration models for eventbuffer using Pydantic v2 Settings.

Settings are grouped per concern (buffer, storage, sink, http,
observability) and load from ``EVENTBUFFER_``-prefixed environment
variables with ``__`` as the nesting delimiter, e.g.
``EVENTBUFFER_BUFFER__MAX_EVENT_COUNT=100``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LATEST_CONFIG_SCHEMA_VERSION = "1.0"


class BufferSettings(BaseModel):
    """Trigger policy and limits for each partition buffer."""

    model_config = ConfigDict(populate_by_name=True)

    max_event_count: int = Field(
        default=500,
        ge=1,
        validation_alias=AliasChoices("max_event_count", "maxEventCount"),
        description="Flush once this many events are pending",
    )
    max_buffer_bytes: int = Field(
        default=1_048_576,
        ge=1,
        validation_alias=AliasChoices("max_buffer_bytes", "maxBufferBytes"),
        description="Flush existing events before the estimated size exceeds this",
    )
    flush_interval_ms: int = Field(
        default=30_000,
        ge=1,
        validation_alias=AliasChoices("flush_interval_ms", "flushIntervalMs"),
        description="Time-based flush cadence per partition",
    )
    max_pending_events: int | None = Field(
        default=100_000,
        ge=1,
        description="Reject ingests once this many events are pending (None = unbounded)",
    )
    sink_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Upper bound on a single sink send",
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Initial backoff for threshold flushes after a failure",
    )
    retry_max_delay_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Backoff ceiling for threshold flushes",
    )

    @property
    def flush_interval_seconds(self) -> float:
        return self.flush_interval_ms / 1000.0

    @model_validator(mode="after")
    def _check_limits(self) -> BufferSettings:
        if (
            self.max_pending_events is not None
            and self.max_pending_events < self.max_event_count
        ):
            raise ValueError("max_pending_events must be >= max_event_count")
        if self.retry_max_delay_seconds < self.retry_base_delay_seconds:
            raise ValueError(
                "retry_max_delay_seconds must be >= retry_base_delay_seconds"
            )
        return self


class StorageSettings(BaseModel):
    backend: Literal["memory", "file"] = Field(default="memory")
    directory: str | None = Field(
        default=None, description="Root directory for the file backend"
    )
    key_prefix: str = Field(default="eventbuffer", min_length=1)

    @model_validator(mode="after")
    def _require_directory(self) -> StorageSettings:
        if self.backend == "file" and not self.directory:
            raise ValueError("directory is required when backend is 'file'")
        return self


class SinkSettings(BaseModel):
    kind: Literal["none", "memory", "http", "s3"] = Field(default="none")
    # http
    endpoint: str | None = Field(default=None)
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=5.0, gt=0.0)
    retry_max_attempts: int = Field(default=1, ge=1)
    retry_base_delay_seconds: float = Field(default=0.5, ge=0.0)
    # s3
    bucket: str | None = Field(default=None)
    prefix: str = Field(default="events/")
    region: str | None = Field(default=None)
    endpoint_url: str | None = Field(default=None)

    @model_validator(mode="after")
    def _check_kind(self) -> SinkSettings:
        if self.kind == "http" and not self.endpoint:
            raise ValueError("endpoint is required when kind is 'http'")
        if self.kind == "s3" and not self.bucket:
            raise ValueError("bucket is required when kind is 's3'")
        return self


class HttpSettings(BaseModel):
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    partition_strategy: Literal["global", "uid"] = Field(default="global")
    global_partition: str = Field(default="global", min_length=1)


class ObservabilitySettings(BaseModel):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    metrics_enabled: bool = Field(default=False)


class Settings(BaseSettings):
    """Top-level configuration model."""

    schema_version: str = Field(default=LATEST_CONFIG_SCHEMA_VERSION)

    buffer: BufferSettings = Field(default_factory=BufferSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    sink: SinkSettings = Field(default_factory=SinkSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings
    )

    model_config = SettingsConfigDict(
        env_prefix="EVENTBUFFER_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    def to_dict(self) -> dict[str, object]:
        from typing import cast

        return cast(
            dict[str, object],
            self.model_dump(by_alias=True, exclude_none=True),
        )
