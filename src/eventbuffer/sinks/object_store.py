"""
Object store sink.

Writes each batch as one newline-delimited JSON object to an
S3-compatible bucket. Object keys are time-partitioned
(``<prefix>YYYY/MM/DD/HH/<millis>-<uuid>.jsonl``) so retried batches land in
distinct objects rather than overwriting each other.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..core import diagnostics
from ..core.serialization import encode_jsonl
from ..metrics.metrics import MetricsCollector
from ._config import parse_sink_config

__all__ = ["ObjectStoreSink", "ObjectStoreSinkConfig"]


class ObjectStoreSinkConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    bucket: str = Field(min_length=1)
    prefix: str = Field(default="events/")
    region: str | None = None
    endpoint_url: str | None = None
    content_type: str = Field(default="application/x-ndjson")


class ObjectStoreSink:
    """Sink that stores batches in an S3-compatible bucket."""

    name = "object-store"

    def __init__(
        self,
        config: ObjectStoreSinkConfig | dict | None = None,
        *,
        client: Any = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.time,
        **kwargs: Any,
    ) -> None:
        self._config = parse_sink_config(ObjectStoreSinkConfig, config, **kwargs)
        self._client = client
        self._metrics = metrics
        self._clock = clock

    @property
    def client(self) -> Any:
        """Lazily create the boto3 client (only needed when this sink is used)."""
        if self._client is None:
            try:
                import boto3
            except ImportError as e:
                raise ImportError(
                    "boto3 is required for ObjectStoreSink. "
                    "Install with: pip install eventbuffer[s3]"
                ) from e
            self._client = boto3.client(
                "s3",
                region_name=self._config.region,
                endpoint_url=self._config.endpoint_url,
            )
        return self._client

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    def object_key(self, now: float | None = None) -> str:
        ts = self._clock() if now is None else now
        hour_path = time.strftime("%Y/%m/%d/%H", time.gmtime(ts))
        return f"{self._config.prefix}{hour_path}/{int(ts * 1000)}-{uuid.uuid4().hex}.jsonl"

    async def send(self, batch: Sequence[Any]) -> bool:
        key = self.object_key()
        body = encode_jsonl(batch)
        client = self.client
        try:
            await asyncio.to_thread(
                client.put_object,
                Bucket=self._config.bucket,
                Key=key,
                Body=body,
                ContentType=self._config.content_type,
            )
        except Exception as exc:
            diagnostics.warn(
                "object-store-sink",
                "failed to upload batch",
                bucket=self._config.bucket,
                key=key,
                batch_size=len(batch),
                error=str(exc),
            )
            if self._metrics is not None:
                await self._metrics.record_sink_error(sink=self.name)
            return False
        diagnostics.debug(
            "object-store-sink",
            "uploaded batch",
            bucket=self._config.bucket,
            key=key,
            batch_size=len(batch),
        )
        return True
