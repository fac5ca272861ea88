"""Tests for component factories and the fluent router builder."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from eventbuffer.builder import RouterBuilder, build_router, build_sink, build_store
from eventbuffer.core.router import PartitionRouter
from eventbuffer.core.settings import Settings, SinkSettings, StorageSettings
from eventbuffer.sinks import HttpSink, MemorySink, ObjectStoreSink
from eventbuffer.storage import FileStore, MemoryStore
from tests.stubs import RecordingSink


class TestFactories:
    def test_build_store(self, tmp_path) -> None:
        assert isinstance(build_store(StorageSettings()), MemoryStore)
        store = build_store(StorageSettings(backend="file", directory=str(tmp_path)))
        assert isinstance(store, FileStore)

    def test_build_sink_kinds(self) -> None:
        assert build_sink(SinkSettings()) is None
        assert isinstance(build_sink(SinkSettings(kind="memory")), MemorySink)
        http = build_sink(SinkSettings(kind="http", endpoint="https://p.example/in"))
        assert isinstance(http, HttpSink)
        assert http.config.retry is None
        s3 = build_sink(SinkSettings(kind="s3", bucket="events"))
        assert isinstance(s3, ObjectStoreSink)

    def test_http_sink_retry_from_settings(self) -> None:
        sink = build_sink(
            SinkSettings(
                kind="http",
                endpoint="https://p.example/in",
                retry_max_attempts=4,
                retry_base_delay_seconds=0.25,
            )
        )
        assert sink.config.retry is not None
        assert sink.config.retry.max_attempts == 4
        assert sink.config.retry.base_delay == 0.25

    def test_build_router_prefers_explicit_components(self) -> None:
        store = MemoryStore()
        sink = RecordingSink()
        router = build_router(Settings(), store=store, sink=sink)
        assert isinstance(router, PartitionRouter)
        assert router.sink is sink
        assert router.metrics is not None


class TestRouterBuilder:
    def test_settings_accumulate(self, tmp_path) -> None:
        settings = (
            RouterBuilder()
            .with_max_event_count(50)
            .with_max_buffer_bytes(4096)
            .with_flush_interval_ms(1000)
            .with_max_pending_events(None)
            .with_file_store(str(tmp_path))
            .with_http_sink("https://p.example/in", retry_max_attempts=3)
            .with_metrics()
            .to_settings()
        )
        assert settings.buffer.max_event_count == 50
        assert settings.buffer.max_buffer_bytes == 4096
        assert settings.buffer.flush_interval_ms == 1000
        assert settings.buffer.max_pending_events is None
        assert settings.storage.backend == "file"
        assert settings.sink.kind == "http"
        assert settings.sink.retry_max_attempts == 3
        assert settings.observability.metrics_enabled is True

    def test_build_uses_injected_components(self) -> None:
        sink = RecordingSink()
        router = (
            RouterBuilder()
            .with_max_event_count(2)
            .with_store(MemoryStore())
            .with_sink(sink)
            .build()
        )
        assert router.sink is sink
        assert router.settings.max_event_count == 2

    def test_s3_sink(self) -> None:
        settings = RouterBuilder().with_s3_sink("bucket", prefix="raw/").to_settings()
        assert settings.sink.kind == "s3"
        assert settings.sink.prefix == "raw/"

    def test_file_store_requires_directory(self) -> None:
        with pytest.raises(ValueError):
            RouterBuilder().with_file_store("")

    def test_invalid_values_fail_on_build(self) -> None:
        with pytest.raises(ValidationError):
            RouterBuilder().with_max_event_count(0).build()
