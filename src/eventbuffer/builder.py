"""Factories and a fluent builder for assembling a ``PartitionRouter``."""

from __future__ import annotations

import copy
from typing import Any

from .core.errors import ConfigurationError
from .core.retry import RetryConfig
from .core.router import PartitionRouter
from .core.settings import Settings, SinkSettings, StorageSettings
from .metrics.metrics import MetricsCollector
from .sinks import HttpSink, MemorySink, ObjectStoreSink
from .storage import FileStore, MemoryStore


def build_store(settings: StorageSettings) -> Any:
    if settings.backend == "memory":
        return MemoryStore()
    if settings.backend == "file":
        if not settings.directory:
            raise ConfigurationError("file storage requires a directory")
        return FileStore(settings.directory)
    raise ConfigurationError(f"Unknown storage backend: {settings.backend}")


def build_sink(
    settings: SinkSettings, *, metrics: MetricsCollector | None = None
) -> Any | None:
    """Return the configured sink, or ``None`` when no sink is configured."""
    if settings.kind == "none":
        return None
    if settings.kind == "memory":
        return MemorySink()
    if settings.kind == "http":
        retry = None
        if settings.retry_max_attempts > 1:
            retry = RetryConfig(
                max_attempts=settings.retry_max_attempts,
                base_delay=settings.retry_base_delay_seconds,
            )
        return HttpSink(
            endpoint=settings.endpoint,
            headers=settings.headers,
            timeout_seconds=settings.timeout_seconds,
            retry=retry,
            metrics=metrics,
        )
    if settings.kind == "s3":
        return ObjectStoreSink(
            bucket=settings.bucket,
            prefix=settings.prefix,
            region=settings.region,
            endpoint_url=settings.endpoint_url,
            metrics=metrics,
        )
    raise ConfigurationError(f"Unknown sink kind: {settings.kind}")


def build_router(
    settings: Settings | None = None,
    *,
    store: Any | None = None,
    sink: Any | None = None,
    metrics: MetricsCollector | None = None,
) -> PartitionRouter:
    """Assemble a router from settings; explicit components take precedence."""
    settings = settings or Settings()
    if metrics is None:
        metrics = MetricsCollector(enabled=settings.observability.metrics_enabled)
    return PartitionRouter(
        store=store if store is not None else build_store(settings.storage),
        sink=sink if sink is not None else build_sink(settings.sink, metrics=metrics),
        settings=settings.buffer,
        key_prefix=settings.storage.key_prefix,
        metrics=metrics,
    )


class RouterBuilder:
    """Fluent builder for configuring a partition router.

    Builder accumulates Settings-compatible configuration and creates a
    router via ``build_router()`` on ``build()``.
    """

    def __init__(self) -> None:
        self._config: dict[str, Any] = {}
        self._store: Any | None = None
        self._sink: Any | None = None

    def with_max_event_count(self, count: int) -> RouterBuilder:
        self._config.setdefault("buffer", {})["max_event_count"] = count
        return self

    def with_max_buffer_bytes(self, size: int) -> RouterBuilder:
        self._config.setdefault("buffer", {})["max_buffer_bytes"] = size
        return self

    def with_flush_interval_ms(self, interval_ms: int) -> RouterBuilder:
        self._config.setdefault("buffer", {})["flush_interval_ms"] = interval_ms
        return self

    def with_max_pending_events(self, count: int | None) -> RouterBuilder:
        """Cap pending events per partition (None disables the cap)."""
        self._config.setdefault("buffer", {})["max_pending_events"] = count
        return self

    def with_file_store(self, directory: str) -> RouterBuilder:
        if not directory:
            raise ValueError("File store requires directory parameter")
        self._config["storage"] = {
            **self._config.get("storage", {}),
            "backend": "file",
            "directory": directory,
        }
        return self

    def with_store(self, store: Any) -> RouterBuilder:
        self._store = store
        return self

    def with_http_sink(
        self,
        endpoint: str,
        *,
        headers: dict[str, str] | None = None,
        timeout_seconds: float = 5.0,
        retry_max_attempts: int = 1,
    ) -> RouterBuilder:
        self._config["sink"] = {
            "kind": "http",
            "endpoint": endpoint,
            "headers": dict(headers or {}),
            "timeout_seconds": timeout_seconds,
            "retry_max_attempts": retry_max_attempts,
        }
        return self

    def with_s3_sink(
        self, bucket: str, *, prefix: str = "events/", region: str | None = None
    ) -> RouterBuilder:
        self._config["sink"] = {
            "kind": "s3",
            "bucket": bucket,
            "prefix": prefix,
            "region": region,
        }
        return self

    def with_sink(self, sink: Any) -> RouterBuilder:
        self._sink = sink
        return self

    def with_metrics(self, enabled: bool = True) -> RouterBuilder:
        self._config.setdefault("observability", {})["metrics_enabled"] = enabled
        return self

    def to_settings(self) -> Settings:
        return Settings(**copy.deepcopy(self._config))

    def build(self) -> PartitionRouter:
        return build_router(self.to_settings(), store=self._store, sink=self._sink)
