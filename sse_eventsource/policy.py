"""Reconnection policy: failure classification and server-adjustable backoff."""

from __future__ import annotations

import asyncio
import threading
from typing import Optional

from .concurrency import ReadWriteLock
from .types import DEFAULT_RETRY_INTERVAL_MS, ContentTypeError, NoContentError

NO_CONTENT = 204


def should_reconnect(error: Optional[BaseException], status_code: Optional[int] = None) -> bool:
    """Classify a connect or decode failure.

    Clients reconnect whenever the connection drops, except when the stream
    was rejected for its content type or the server answered 204 No Content,
    which tells the client to stop.
    """
    if isinstance(error, (ContentTypeError, NoContentError)):
        return False
    if status_code == NO_CONTENT:
        return False
    return True


class ReconnectPolicy:
    """Fixed backoff interval, overwritten by the server's retry directives."""

    def __init__(self, interval_ms: int = DEFAULT_RETRY_INTERVAL_MS) -> None:
        if interval_ms < 0:
            raise ValueError("interval_ms must be >= 0")
        self._interval_ms = interval_ms
        self._lock = ReadWriteLock()
        self._attempt = 0

    @property
    def interval_ms(self) -> int:
        with self._lock.read():
            return self._interval_ms

    @interval_ms.setter
    def interval_ms(self, value: int) -> None:
        with self._lock.write():
            self._interval_ms = value

    @property
    def current_attempt(self) -> int:
        return self._attempt

    def should_reconnect(self, error: Optional[BaseException], status_code: Optional[int] = None) -> bool:
        return should_reconnect(error, status_code)

    def mark_connected(self) -> None:
        self._attempt = 0

    def next_delay(self) -> float:
        """Seconds to wait before the next attempt."""
        self._attempt += 1
        return self.interval_ms / 1000.0

    def wait(self, stop: threading.Event) -> bool:
        """Sleep for the next delay. Returns True if ``stop`` was set meanwhile."""
        return stop.wait(self.next_delay())

    async def wait_async(self, stop: asyncio.Event) -> bool:
        try:
            await asyncio.wait_for(stop.wait(), timeout=self.next_delay())
        except asyncio.TimeoutError:
            return False
        return True
