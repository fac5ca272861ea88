"""
HTTP ingest entry point.

A thin FastAPI layer in front of the partition router: POST-only JSON
ingestion with a minimal shape check (non-empty ``ev`` and ``uid``),
CORS negotiation, partition resolution and mapping of ingest results to
status codes. Buffering semantics live entirely in ``PartitionRouter``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import orjson
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..builder import build_router
from ..core import diagnostics
from ..core.buffer import RejectReason
from ..core.errors import InvalidPayload
from ..core.router import PartitionRouter
from ..core.settings import HttpSettings, Settings
from ..sinks import sink_name

REQUIRED_FIELDS: tuple[str, ...] = ("ev", "uid")

_STATUS_FOR_REASON: dict[RejectReason, tuple[int, str]] = {
    RejectReason.INVALID_PAYLOAD: (400, "Invalid payload"),
    RejectReason.BUFFER_OVERFLOW: (503, "Buffer full, retry later"),
    RejectReason.PERSISTENCE_FAILED: (500, "Error buffering event"),
}


def validate_payload(data: Any) -> dict[str, Any]:
    """Check the minimal structure forwarded to the buffering core."""
    if not isinstance(data, dict):
        raise InvalidPayload("Payload must be a JSON object")
    missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
    if missing:
        raise InvalidPayload("Payload is missing required fields", missing=missing)
    return data


def resolve_partition(data: dict[str, Any], settings: HttpSettings) -> str:
    if settings.partition_strategy == "uid":
        return str(data["uid"])
    return settings.global_partition


def create_app(
    settings: Settings | None = None,
    *,
    router: PartitionRouter | None = None,
) -> FastAPI:
    """Build the ingest application.

    When ``router`` is omitted one is assembled from ``settings`` during
    startup and closed (with a final flush) on shutdown.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        diagnostics.configure_logging(settings.observability.log_level)
        active = router if router is not None else build_router(settings)
        sink = active.sink
        if sink is not None and hasattr(sink, "start"):
            await sink.start()
        app.state.router = active
        try:
            yield
        finally:
            await active.close(flush=True)
            if sink is not None and hasattr(sink, "stop"):
                await sink.stop()

    app = FastAPI(title="eventbuffer", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.http.cors_origins,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["*"],
    )

    async def ingest(request: Request) -> Response:
        active: PartitionRouter = request.app.state.router
        try:
            data = validate_payload(orjson.loads(await request.body()))
        except (orjson.JSONDecodeError, InvalidPayload) as exc:
            diagnostics.debug("http", "rejected malformed request", error=str(exc))
            return PlainTextResponse("Invalid payload", status_code=400)

        partition = resolve_partition(data, settings.http)
        result = await active.ingest(partition, data)
        if result.accepted:
            return PlainTextResponse("Buffered", status_code=202)
        assert result.reason is not None
        status, text = _STATUS_FOR_REASON[result.reason]
        return PlainTextResponse(text, status_code=status)

    app.add_api_route("/", ingest, methods=["POST"])
    app.add_api_route("/events", ingest, methods=["POST"])

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        active: PartitionRouter = request.app.state.router
        return JSONResponse(
            {
                "status": "ok",
                "partitions": len(active),
                "sink": sink_name(active.sink) if active.sink is not None else None,
            }
        )

    @app.get("/metrics")
    async def metrics(request: Request) -> Response:
        active: PartitionRouter = request.app.state.router
        registry = active.metrics.registry if active.metrics is not None else None
        if registry is None:
            return PlainTextResponse("metrics disabled", status_code=404)
        return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return app
