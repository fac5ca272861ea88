"""
HTTP pipeline sink.

POSTs each batch as a JSON array to an ingestion endpoint. Any 2xx
response confirms the hand-off. Transport errors and 5xx responses are
retried when a ``RetryConfig`` is supplied; 4xx responses fail at once.
The body is encoded with orjson, so it matches what the buffer sized.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core import diagnostics
from ..core.errors import InvalidPayload
from ..core.retry import AsyncRetrier, RetryConfig, RetryExhaustedError
from ..core.serialization import serialize_event
from ..metrics.metrics import MetricsCollector
from ._config import parse_sink_config

__all__ = ["HttpSink", "HttpSinkConfig"]


class HttpSinkConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    endpoint: str
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=5.0, gt=0.0)
    retry: RetryConfig | None = None

    @field_validator("headers", mode="before")
    @classmethod
    def _coerce_headers(cls, value: Mapping[str, str] | None) -> dict[str, str]:
        if value is None:
            return {}
        return dict(value)


class HttpSink:
    """Sink that delivers batches to a managed HTTP pipeline."""

    name = "http"

    def __init__(
        self,
        config: HttpSinkConfig | dict | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        metrics: MetricsCollector | None = None,
        **kwargs: Any,
    ) -> None:
        cfg = parse_sink_config(HttpSinkConfig, config, **kwargs)
        self._config = cfg
        self._client = client
        self._owns_client = client is None
        self._metrics = metrics
        self._retrier = AsyncRetrier(cfg.retry) if cfg.retry is not None else None
        self._last_status: int | None = None
        self._last_error: str | None = None

    @property
    def config(self) -> HttpSinkConfig:
        return self._config

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_seconds)

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _post(self, body: bytes) -> httpx.Response:
        if self._client is None:
            await self.start()
        assert self._client is not None
        client = self._client
        headers = {"Content-Type": "application/json", **self._config.headers}

        async def _do_post() -> httpx.Response:
            resp = await client.post(
                self._config.endpoint, content=body, headers=headers
            )
            if resp.status_code >= 500:
                resp.raise_for_status()
            return resp

        if self._retrier is not None:
            return await self._retrier(_do_post)
        return await _do_post()

    async def send(self, batch: Sequence[Any]) -> bool:
        try:
            body = serialize_event(list(batch)).data
        except InvalidPayload as exc:
            self._last_error = str(exc)
            diagnostics.warn(
                "http-sink",
                "batch is not JSON serializable",
                endpoint=self._config.endpoint,
                batch_size=len(batch),
                error=str(exc),
            )
            if self._metrics is not None:
                await self._metrics.record_sink_error(sink=self.name)
            return False
        try:
            resp = await self._post(body)
        except (httpx.HTTPError, RetryExhaustedError) as exc:
            self._last_error = str(exc)
            self._last_status = None
            if isinstance(exc, httpx.HTTPStatusError):
                self._last_status = exc.response.status_code
            diagnostics.warn(
                "http-sink",
                "exception while delivering batch",
                endpoint=self._config.endpoint,
                batch_size=len(batch),
                error=str(exc),
            )
            if self._metrics is not None:
                await self._metrics.record_sink_error(sink=self.name)
            return False

        self._last_status = resp.status_code
        if resp.status_code >= 400:
            self._last_error = f"HTTP {resp.status_code}"
            snippet = None
            try:
                snippet = resp.text[:256]
            except Exception:
                snippet = None
            diagnostics.warn(
                "http-sink",
                "pipeline rejected batch",
                status_code=resp.status_code,
                endpoint=self._config.endpoint,
                body=snippet,
            )
            if self._metrics is not None:
                await self._metrics.record_sink_error(sink=self.name)
            return False
        self._last_error = None
        return True

    async def health_check(self) -> bool:
        return (
            self._last_error is None
            and self._last_status is not None
            and self._last_status < 400
        )
