"""
Incremental ``text/event-stream`` decoder.

The stream is a sequence of blocks separated by blank lines. Each block is a
sequence of ``field: value`` lines; ``id``, ``event``, ``data`` and ``retry``
are recognised, everything else is ignored.

Example::

    decoder = EventDecoder(response.iter_bytes())
    while True:
        event = decoder.decode()   # raises StreamEndError at the end
"""

from __future__ import annotations

import codecs
import logging
import re
from collections import deque
from typing import AsyncIterable, AsyncIterator, Deque, Iterable, Iterator, List, Optional

from .types import Event, Message, RetryDirective, StreamEndError, StreamTruncatedError

logger = logging.getLogger(__name__)

_LINE_END = re.compile(r"\r\n|\r|\n")
_BOM = "\ufeff"


class _BlockParser:
    """Turns raw byte chunks into events. Shared by the sync and async decoders."""

    def __init__(self) -> None:
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._started = False
        self._reset_block()

    def _reset_block(self) -> None:
        self._id: Optional[str] = None
        self._name = ""
        self._data: List[str] = []
        self._retry: Optional[int] = None
        self._dirty = False

    @property
    def pending(self) -> bool:
        """True while part of a block has been read but not dispatched."""
        return self._dirty or bool(self._buffer)

    def feed(self, chunk: bytes) -> List[Event]:
        self._buffer += self._text.decode(chunk)
        return self._drain(final=False)

    def finish(self) -> List[Event]:
        """Flush buffered input at end of stream. Lines left over form no block."""
        self._buffer += self._text.decode(b"", final=True)
        return self._drain(final=True)

    def _drain(self, final: bool) -> List[Event]:
        if not self._started and self._buffer:
            self._started = True
            if self._buffer.startswith(_BOM):
                self._buffer = self._buffer[1:]

        events: List[Event] = []
        buf = self._buffer
        start = 0
        while True:
            match = _LINE_END.search(buf, start)
            if match is None:
                break
            # A trailing "\r" may be the first half of "\r\n".
            if match.group() == "\r" and match.end() == len(buf) and not final:
                break
            events.extend(self._line(buf[start:match.start()]))
            start = match.end()
        self._buffer = buf[start:]
        return events

    def _line(self, line: str) -> List[Event]:
        if not line:
            return self._dispatch()

        self._dirty = True
        if line.startswith(":"):
            return []

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._name = value
        elif field == "id":
            if "\0" not in value:
                self._id = value
        elif field == "retry":
            if value.isascii() and value.isdigit():
                self._retry = int(value)
        return []

    def _dispatch(self) -> List[Event]:
        events: List[Event] = []
        if self._retry is not None:
            events.append(RetryDirective(delay_ms=self._retry))
        if self._data:
            events.append(Message(id=self._id or "", name=self._name, data="\n".join(self._data)))
        if not events and self._dirty:
            logger.debug("Skipping block without data or retry")
        self._reset_block()
        return events


# ============================================================================
# Sync Decoder
# ============================================================================

class EventDecoder:
    """Decodes one event per ``decode()`` call from an iterable of byte chunks.

    A decoder is bound to a single connection; build a new one for every
    response body.
    """

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks: Iterator[bytes] = iter(chunks)
        self._parser = _BlockParser()
        self._ready: Deque[Event] = deque()
        self._exhausted = False

    def decode(self) -> Event:
        while not self._ready:
            if self._exhausted:
                raise StreamEndError()
            try:
                chunk = next(self._chunks)
            except StopIteration:
                self._end()
            else:
                self._ready.extend(self._parser.feed(chunk))
        return self._ready.popleft()

    def _end(self) -> None:
        self._exhausted = True
        self._ready.extend(self._parser.finish())
        if self._parser.pending:
            raise StreamTruncatedError()

    def __iter__(self) -> Iterator[Event]:
        while True:
            try:
                yield self.decode()
            except StreamEndError:
                return


# ============================================================================
# Async Decoder
# ============================================================================

class AsyncEventDecoder:
    """Async counterpart of :class:`EventDecoder`."""

    def __init__(self, chunks: AsyncIterable[bytes]) -> None:
        self._chunks: AsyncIterator[bytes] = chunks.__aiter__()
        self._parser = _BlockParser()
        self._ready: Deque[Event] = deque()
        self._exhausted = False

    async def decode(self) -> Event:
        while not self._ready:
            if self._exhausted:
                raise StreamEndError()
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                self._end()
            else:
                self._ready.extend(self._parser.feed(chunk))
        return self._ready.popleft()

    def _end(self) -> None:
        self._exhausted = True
        self._ready.extend(self._parser.finish())
        if self._parser.pending:
            raise StreamTruncatedError()

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Event]:
        while True:
            try:
                yield await self.decode()
            except StreamEndError:
                return
