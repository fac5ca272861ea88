"""End-to-end tests for the HTTP ingest surface."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from eventbuffer.core.errors import InvalidPayload
from eventbuffer.core.router import PartitionRouter
from eventbuffer.core.settings import BufferSettings, HttpSettings, Settings
from eventbuffer.fastapi import create_app, resolve_partition, validate_payload
from eventbuffer.metrics.metrics import MetricsCollector
from eventbuffer.sinks import MemorySink
from eventbuffer.storage import MemoryStore
from tests.stubs import FlakyStore

pytestmark = pytest.mark.integration


def _app(
    *,
    store=None,
    sink=None,
    settings: Settings | None = None,
    metrics: MetricsCollector | None = None,
    **buffer: object,
):
    settings = settings or Settings()
    router = PartitionRouter(
        store=store if store is not None else MemoryStore(),
        sink=sink,
        settings=BufferSettings(**buffer),
        metrics=metrics,
    )
    return create_app(settings, router=router), router


class TestIngestEndpoint:
    def test_supplied_router_is_used_while_empty(self) -> None:
        sink = MemorySink()
        app, router = _app(sink=sink)
        assert len(router) == 0
        with TestClient(app) as client:
            assert app.state.router is router
            client.post("/events", json={"ev": "a", "uid": "u"})
            assert router.partitions() == ["global"]
        assert sink.events == [{"ev": "a", "uid": "u"}]

    def test_valid_event_is_buffered(self) -> None:
        app, router = _app(sink=MemorySink())
        with TestClient(app) as client:
            resp = client.post("/events", json={"ev": "click", "uid": "u1"})
            assert resp.status_code == 202
            assert resp.text == "Buffered"
            assert router.get("global").pending() == [{"ev": "click", "uid": "u1"}]

    def test_root_path_accepts_events(self) -> None:
        app, _ = _app(sink=MemorySink())
        with TestClient(app) as client:
            assert client.post("/", json={"ev": "view", "uid": "u1"}).status_code == 202

    @pytest.mark.parametrize(
        "body",
        [
            b"{not json",
            b"[1, 2]",
            b'{"ev": "click"}',
            b'{"uid": "u1"}',
            b'{"ev": "", "uid": "u1"}',
        ],
    )
    def test_invalid_payload_is_rejected(self, body: bytes) -> None:
        app, router = _app(sink=MemorySink())
        with TestClient(app) as client:
            resp = client.post(
                "/events", content=body, headers={"content-type": "application/json"}
            )
            assert resp.status_code == 400
            assert resp.text == "Invalid payload"
            assert len(router) == 0

    def test_other_methods_are_not_allowed(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            assert client.get("/").status_code == 405
            assert client.put("/events", json={"ev": "x", "uid": "u"}).status_code == 405

    def test_overflow_maps_to_503(self) -> None:
        app, _ = _app(max_event_count=1, max_pending_events=1)
        with TestClient(app) as client:
            assert client.post("/events", json={"ev": "a", "uid": "u"}).status_code == 202
            resp = client.post("/events", json={"ev": "b", "uid": "u"})
            assert resp.status_code == 503

    def test_persistence_failure_maps_to_500(self) -> None:
        store = FlakyStore()
        store.fail_puts = 1
        app, _ = _app(store=store, sink=MemorySink())
        with TestClient(app) as client:
            resp = client.post("/events", json={"ev": "a", "uid": "u"})
            assert resp.status_code == 500
            assert resp.text == "Error buffering event"

    def test_uid_partitioning(self) -> None:
        settings = Settings(http={"partition_strategy": "uid"})
        app, router = _app(settings=settings, sink=MemorySink())
        with TestClient(app) as client:
            client.post("/events", json={"ev": "a", "uid": "alice"})
            client.post("/events", json={"ev": "b", "uid": "bob"})
            assert sorted(router.partitions()) == ["alice", "bob"]

    def test_count_threshold_delivers_through_http(self) -> None:
        sink = MemorySink()
        app, _ = _app(sink=sink, max_event_count=3)
        with TestClient(app) as client:
            for n in range(3):
                client.post("/events", json={"ev": f"e{n}", "uid": "u"})
        assert [e["ev"] for e in sink.events] == ["e0", "e1", "e2"]
        assert len(sink.batches) == 1

    def test_shutdown_flushes_pending_events(self) -> None:
        sink = MemorySink()
        app, _ = _app(sink=sink)
        with TestClient(app) as client:
            client.post("/events", json={"ev": "late", "uid": "u"})
            assert sink.events == []
        assert sink.events == [{"ev": "late", "uid": "u"}]


class TestAuxiliaryEndpoints:
    def test_cors_preflight(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            resp = client.options(
                "/events",
                headers={
                    "Origin": "https://site.example",
                    "Access-Control-Request-Method": "POST",
                },
            )
            assert resp.status_code == 200
            assert resp.headers["access-control-allow-origin"] == "*"

    def test_health(self) -> None:
        app, _ = _app(sink=MemorySink())
        with TestClient(app) as client:
            client.post("/events", json={"ev": "a", "uid": "u"})
            assert client.get("/health").json() == {
                "status": "ok",
                "partitions": 1,
                "sink": "memory",
            }

    def test_metrics_disabled(self) -> None:
        app, _ = _app()
        with TestClient(app) as client:
            assert client.get("/metrics").status_code == 404

    def test_metrics_exposition(self) -> None:
        app, _ = _app(sink=MemorySink(), metrics=MetricsCollector(enabled=True))
        with TestClient(app) as client:
            client.post("/events", json={"ev": "a", "uid": "u"})
            resp = client.get("/metrics")
            assert resp.status_code == 200
            assert "eventbuffer_events_ingested_total 1.0" in resp.text

    def test_router_built_from_settings(self) -> None:
        settings = Settings(sink={"kind": "memory"})
        app = create_app(settings)
        with TestClient(app) as client:
            assert client.post("/events", json={"ev": "a", "uid": "u"}).status_code == 202
            assert client.get("/health").json()["sink"] == "memory"


class TestHelpers:
    def test_validate_payload(self) -> None:
        assert validate_payload({"ev": "a", "uid": "u", "x": 1})["x"] == 1
        with pytest.raises(InvalidPayload):
            validate_payload("text")
        with pytest.raises(InvalidPayload):
            validate_payload({"ev": "a", "uid": None})

    def test_resolve_partition(self) -> None:
        assert resolve_partition({"uid": "u"}, HttpSettings()) == "global"
        assert (
            resolve_partition({"uid": 42}, HttpSettings(partition_strategy="uid"))
            == "42"
        )
