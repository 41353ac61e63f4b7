"""Locks and hand-off channels shared by the event sources."""

from __future__ import annotations

import asyncio
import threading
from contextlib import contextmanager
from typing import Any, Generic, Iterator, TypeVar

T = TypeVar("T")

_EMPTY: Any = object()


class ChannelClosed(Exception):
    """Raised by ``get()`` once the channel has been closed."""


# ============================================================================
# Reader/Writer Lock
# ============================================================================

class ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            self._cond.wait_for(lambda: not self._writing)
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._cond.wait_for(lambda: not self._writing and not self._readers)
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


# ============================================================================
# Sync Hand-off
# ============================================================================

class HandOff(Generic[T]):
    """Unbuffered single-producer/single-consumer channel.

    ``put()`` blocks until the consumer has taken the item. Closing wakes both
    sides; an item that was not taken yet is dropped.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._item: Any = _EMPTY
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def put(self, item: T) -> bool:
        """Hand ``item`` to the consumer. Returns False if the channel closed first."""
        with self._cond:
            self._cond.wait_for(lambda: self._item is _EMPTY or self._closed)
            if self._closed:
                return False
            self._item = item
            self._cond.notify_all()
            self._cond.wait_for(lambda: self._item is _EMPTY or self._closed)
            if self._item is not _EMPTY:
                self._item = _EMPTY
                return False
            return True

    def get(self) -> T:
        with self._cond:
            self._cond.wait_for(lambda: self._item is not _EMPTY or self._closed)
            if self._closed:
                raise ChannelClosed()
            item, self._item = self._item, _EMPTY
            self._cond.notify_all()
            return item

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except ChannelClosed:
                return


# ============================================================================
# Async Hand-off
# ============================================================================

class AsyncHandOff(Generic[T]):
    """Event-loop version of :class:`HandOff`. Not thread-safe."""

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._item: Any = _EMPTY
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, item: T) -> bool:
        async with self._cond:
            await self._cond.wait_for(lambda: self._item is _EMPTY or self._closed)
            if self._closed:
                return False
            self._item = item
            self._cond.notify_all()
            await self._cond.wait_for(lambda: self._item is _EMPTY or self._closed)
            if self._item is not _EMPTY:
                self._item = _EMPTY
                return False
            return True

    async def get(self) -> T:
        async with self._cond:
            await self._cond.wait_for(lambda: self._item is not _EMPTY or self._closed)
            if self._closed:
                raise ChannelClosed()
            item, self._item = self._item, _EMPTY
            self._cond.notify_all()
            return item

    async def close(self) -> None:
        async with self._cond:
            self._closed = True
            self._cond.notify_all()
