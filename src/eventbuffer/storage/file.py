"""
Filesystem-backed durable store.

One JSON document per key under ``<directory>/records`` and one alarm file
per partition under ``<directory>/alarms``. Writes go to a temp file that
is fsynced and then moved into place, so a crash leaves either the old or
the new record, never a torn one.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any
from urllib.parse import quote

from ..core.errors import PersistenceFailed
from ..core.serialization import dumps, loads


def _file_name(key: str, suffix: str) -> str:
    return quote(key, safe="") + suffix


class FileStore:
    """Persists records and alarms as small files for restart recovery."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._root = Path(directory)
        self._records = self._root / "records"
        self._alarms = self._root / "alarms"
        self._records.mkdir(parents=True, exist_ok=True)
        self._alarms.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._root

    def _record_path(self, key: str) -> Path:
        return self._records / _file_name(key, ".json")

    def _alarm_path(self, partition: str) -> Path:
        return self._alarms / _file_name(partition, ".alarm")

    async def get(self, key: str) -> Any | None:
        raw = await self._read(self._record_path(key))
        if raw is None:
            return None
        return loads(raw)

    async def put(self, key: str, value: Any) -> None:
        await self._write_atomic(self._record_path(key), dumps(value))

    async def delete(self, key: str) -> None:
        await self._unlink(self._record_path(key))

    async def get_alarm(self, partition: str) -> float | None:
        raw = await self._read(self._alarm_path(partition))
        if raw is None:
            return None
        try:
            return float(raw.decode("ascii").strip())
        except (UnicodeDecodeError, ValueError):
            # An unreadable alarm is equivalent to none; the scheduler re-arms
            return None

    async def set_alarm(self, partition: str, when: float) -> None:
        await self._write_atomic(
            self._alarm_path(partition), repr(float(when)).encode("ascii")
        )

    async def delete_alarm(self, partition: str) -> None:
        await self._unlink(self._alarm_path(partition))

    async def _read(self, path: Path) -> bytes | None:
        def _read_bytes() -> bytes | None:
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None

        try:
            return await asyncio.to_thread(_read_bytes)
        except OSError as e:
            raise PersistenceFailed(
                "Failed to read durable record", cause=e, path=str(path)
            ) from e

    async def _write_atomic(self, path: Path, data: bytes) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")

        def _write() -> None:
            with open(temp_path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise PersistenceFailed(
                "Failed to write durable record", cause=e, path=str(path)
            ) from e

    async def _unlink(self, path: Path) -> None:
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise PersistenceFailed(
                "Failed to delete durable record", cause=e, path=str(path)
            ) from e
