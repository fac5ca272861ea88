"""
Async retry with exponential backoff for sink I/O.

Sinks opt in by accepting a ``RetryConfig``; the buffering engine itself
never retries inline and relies on its own trigger/backoff policy instead.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from . import diagnostics

T = TypeVar("T")


class RetryConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=0.5, ge=0.0)
    max_delay: float = Field(default=10.0, ge=0.0)
    multiplier: float = Field(default=2.0, ge=1.0)
    jitter: bool = Field(default=False)
    retry_on: tuple[type[BaseException], ...] = Field(default=(Exception,))


class RetryExhaustedError(Exception):
    """Raised after the final attempt fails; chains the last error."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class AsyncRetrier:
    def __init__(self, config: RetryConfig) -> None:
        self._config = config

    @property
    def config(self) -> RetryConfig:
        return self._config

    def delay_for(self, attempt: int) -> float:
        cfg = self._config
        delay = min(cfg.base_delay * (cfg.multiplier ** (attempt - 1)), cfg.max_delay)
        if cfg.jitter and delay > 0:
            delay = random.uniform(0, delay)
        return delay

    async def retry(self, func: Callable[[], Awaitable[T]]) -> T:
        cfg = self._config
        attempt = 0
        while True:
            attempt += 1
            try:
                return await func()
            except cfg.retry_on as exc:
                if attempt >= cfg.max_attempts:
                    raise RetryExhaustedError(attempt, exc) from exc
                delay = self.delay_for(attempt)
                diagnostics.debug(
                    "retry",
                    "attempt failed, retrying",
                    attempt=attempt,
                    delay_seconds=delay,
                    error=type(exc).__name__,
                )
                await asyncio.sleep(delay)

    async def __call__(self, func: Callable[[], Awaitable[T]]) -> T:
        return await self.retry(func)
