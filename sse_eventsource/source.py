"""
Server-Sent Events client with automatic reconnection.

Example (sync)::

    with EventSource("https://example.com/stream") as source:
        for message in source:
            print(message.id, message.name, message.data)

Example (async)::

    async with AsyncEventSource("https://example.com/stream") as source:
        async for message in source:
            print(message.data)
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, AsyncIterator, Dict, Iterator, Optional

import httpx

from .concurrency import AsyncHandOff, ChannelClosed, HandOff, ReadWriteLock
from .decoder import AsyncEventDecoder, EventDecoder
from .policy import NO_CONTENT, ReconnectPolicy
from .types import (
    EVENT_STREAM_CONTENT_TYPE,
    BadStatusError,
    ContentTypeError,
    EventSourceClosedError,
    EventSourceConfig,
    EventSourceError,
    Message,
    NoContentError,
    ReadyState,
    RetryDirective,
)

logger = logging.getLogger(__name__)

# Failures raised while connecting or reading. Anything else is a bug and propagates.
STREAM_ERRORS = (EventSourceError, httpx.HTTPError, httpx.StreamError, OSError)

# Upper bound on how long close() waits for the worker thread to exit.
WORKER_JOIN_TIMEOUT = 2.0


def _validate_url(url: str) -> str:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise ValueError(f"invalid url {url!r}: {exc}") from exc
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValueError(f"url must be an absolute http(s) URL, got {url!r}")
    return url


def _request_headers(last_event_id: str) -> Dict[str, str]:
    headers = {
        "Accept": EVENT_STREAM_CONTENT_TYPE,
        "Cache-Control": "no-store",
    }
    if last_event_id:
        headers["Last-Event-ID"] = last_event_id
    return headers


def check_response(response: httpx.Response) -> None:
    """Raise if ``response`` cannot carry an event stream."""
    if response.status_code == NO_CONTENT:
        raise NoContentError()
    content_type = response.headers.get("content-type")
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type != EVENT_STREAM_CONTENT_TYPE:
        raise ContentTypeError(content_type, status_code=response.status_code)
    # An event stream with an error status is retried.
    if response.status_code != 200:
        raise BadStatusError(response.status_code)


# ============================================================================
# Sync EventSource (background thread)
# ============================================================================

class EventSource:
    """Synchronous SSE client. Decodes and delivers events in a background thread.

    Messages are handed to a single consumer without buffering: the worker
    blocks until the consumer takes each one. The source reconnects on
    transient failures, waiting ``retry_interval_ms`` between attempts, and
    closes for good on a content-type mismatch or HTTP 204.

    Args:
        url: Absolute http(s) URL of the stream.
        client: Optional ``httpx.Client``. The source does not close a client
            it did not create.
        config: Reconnection settings.
    """

    def __init__(
        self,
        url: str,
        *,
        client: Optional[httpx.Client] = None,
        config: Optional[EventSourceConfig] = None,
    ) -> None:
        config = config or EventSourceConfig()
        self._url = _validate_url(url)
        self._policy = ReconnectPolicy(config.retry_interval_ms)
        self._events: HandOff[Message] = HandOff()
        self._own_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=None)

        self._ready_state = ReadyState.CONNECTING
        self._state_lock = ReadWriteLock()
        self._last_event_id = config.last_event_id
        self._id_lock = ReadWriteLock()

        self._response: Optional[httpx.Response] = None
        self._decoder: Optional[EventDecoder] = None
        self._last_status: Optional[int] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    # --- Accessors ---

    @property
    def url(self) -> str:
        return self._url

    @property
    def ready_state(self) -> ReadyState:
        with self._state_lock.read():
            return self._ready_state

    @property
    def last_event_id(self) -> str:
        with self._id_lock.read():
            return self._last_event_id

    @property
    def retry_interval_ms(self) -> int:
        return self._policy.interval_ms

    def events(self) -> Iterator[Message]:
        """Iterate delivered messages until the source is closed."""
        return iter(self._events)

    def __iter__(self) -> Iterator[Message]:
        return self.events()

    # --- Lifecycle ---

    def connect(self) -> "EventSource":
        """Open the stream, retrying transient failures until one attempt succeeds.

        Raises the terminal error (content-type mismatch, HTTP 204) after
        closing the source.
        """
        if self.ready_state is ReadyState.CLOSED:
            raise EventSourceClosedError()
        if self._thread is not None:
            return self

        self._set_ready_state(ReadyState.CONNECTING)
        try:
            self._connect_once()
        except STREAM_ERRORS as exc:
            logger.warning("Initial connection to %s failed: %s", self._url, exc)
            error = self._reconnect(exc)
            if error is not None:
                raise error
            if self._stop.is_set():
                raise EventSourceClosedError() from exc

        self._thread = threading.Thread(
            target=self._consume, name="EventSource", daemon=True
        )
        self._thread.start()
        return self

    def close(self) -> None:
        """Close the source. Safe to call repeatedly and from any thread."""
        with self._state_lock.write():
            if self._ready_state in (ReadyState.CLOSING, ReadyState.CLOSED):
                return
            self._ready_state = ReadyState.CLOSING
            response, self._response = self._response, None

        logger.info("Closing event source %s", self._url)
        self._stop.set()
        if response is not None:
            response.close()
        if self._own_client:
            self._client.close()
        self._events.close()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=WORKER_JOIN_TIMEOUT)
        with self._state_lock.write():
            self._ready_state = ReadyState.CLOSED

    # --- Context Manager ---

    def __enter__(self) -> "EventSource":
        return self.connect()

    def __exit__(self, *args: Any) -> None:
        self.close()

    # --- Internal ---

    def _set_ready_state(self, state: ReadyState) -> None:
        with self._state_lock.write():
            if self._ready_state in (ReadyState.CLOSING, ReadyState.CLOSED):
                return
            self._ready_state = state

    def _connect_once(self) -> None:
        self._last_status = None
        request = self._client.build_request(
            "GET", self._url, headers=_request_headers(self.last_event_id)
        )
        response = self._client.send(request, stream=True)
        self._last_status = response.status_code
        try:
            check_response(response)
        except EventSourceError:
            response.close()
            raise

        with self._state_lock.write():
            closing = self._ready_state in (ReadyState.CLOSING, ReadyState.CLOSED)
            if not closing:
                self._response = response
                self._ready_state = ReadyState.OPEN
        if closing:
            response.close()
            raise EventSourceClosedError()

        self._decoder = EventDecoder(response.iter_bytes())
        self._policy.mark_connected()
        logger.info("Connected to %s", self._url)

    def _reconnect(self, error: BaseException) -> Optional[BaseException]:
        """Retry until connected. Returns the terminal error, or None on success or close."""
        self._set_ready_state(ReadyState.CONNECTING)
        while self._policy.should_reconnect(error, self._last_status):
            logger.info(
                "Reconnecting to %s in %d ms (attempt %d)",
                self._url, self._policy.interval_ms, self._policy.current_attempt + 1,
            )
            if self._policy.wait(self._stop):
                return None
            try:
                self._connect_once()
                return None
            except EventSourceClosedError:
                return None
            except STREAM_ERRORS as exc:
                logger.warning("Reconnection to %s failed: %s", self._url, exc)
                error = exc
            except RuntimeError:
                # httpx refuses requests on a client closed under us.
                if self._stop.is_set():
                    return None
                raise

        logger.info("Not reconnecting to %s: %s", self._url, error)
        self.close()
        return error

    def _consume(self) -> None:
        while True:
            try:
                event = self._decoder.decode()
            except STREAM_ERRORS as exc:
                if self._stop.is_set():
                    return
                logger.warning("Stream from %s interrupted: %s", self._url, exc)
                self._release_response()
                if self._reconnect(exc) is not None or self._stop.is_set():
                    return
                continue

            if isinstance(event, RetryDirective):
                logger.debug("Server set retry interval to %d ms", event.delay_ms)
                self._policy.interval_ms = event.delay_ms
                continue

            if event.id:
                with self._id_lock.write():
                    self._last_event_id = event.id
            if not self._events.put(event):
                return

    def _release_response(self) -> None:
        with self._state_lock.write():
            response, self._response = self._response, None
        if response is not None:
            response.close()


def open_event_source(
    url: str,
    *,
    client: Optional[httpx.Client] = None,
    config: Optional[EventSourceConfig] = None,
) -> EventSource:
    """Create an :class:`EventSource` and connect it."""
    return EventSource(url, client=client, config=config).connect()


# ============================================================================
# Async EventSource (background task)
# ============================================================================

class AsyncEventSource:
    """Async SSE client. Decodes and delivers events in a background task.

    All state lives on the event loop that called :meth:`connect`, so no
    locks are needed; the worker task is cancelled on close.
    """

    def __init__(
        self,
        url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[EventSourceConfig] = None,
    ) -> None:
        config = config or EventSourceConfig()
        self._url = _validate_url(url)
        self._policy = ReconnectPolicy(config.retry_interval_ms)
        self._events: AsyncHandOff[Message] = AsyncHandOff()
        self._own_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(timeout=None)

        self._ready_state = ReadyState.CONNECTING
        self._last_event_id = config.last_event_id
        self._response: Optional[httpx.Response] = None
        self._decoder: Optional[AsyncEventDecoder] = None
        self._last_status: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    @property
    def url(self) -> str:
        return self._url

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    @property
    def last_event_id(self) -> str:
        return self._last_event_id

    @property
    def retry_interval_ms(self) -> int:
        return self._policy.interval_ms

    async def events(self) -> AsyncIterator[Message]:
        while True:
            try:
                yield await self._events.get()
            except ChannelClosed:
                return

    def __aiter__(self) -> AsyncIterator[Message]:
        return self.events()

    async def connect(self) -> "AsyncEventSource":
        if self._ready_state is ReadyState.CLOSED:
            raise EventSourceClosedError()
        if self._task is not None:
            return self

        self._set_ready_state(ReadyState.CONNECTING)
        try:
            await self._connect_once()
        except STREAM_ERRORS as exc:
            logger.warning("Initial connection to %s failed: %s", self._url, exc)
            error = await self._reconnect(exc)
            if error is not None:
                raise error
            if self._stop.is_set():
                raise EventSourceClosedError() from exc

        self._task = asyncio.create_task(self._consume())
        return self

    async def close(self) -> None:
        if self._ready_state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return
        self._ready_state = ReadyState.CLOSING
        response, self._response = self._response, None

        logger.info("Closing event source %s", self._url)
        self._stop.set()
        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.wait([task])
        if response is not None:
            await response.aclose()
        if self._own_client:
            await self._client.aclose()
        await self._events.close()
        self._ready_state = ReadyState.CLOSED

    async def __aenter__(self) -> "AsyncEventSource":
        return await self.connect()

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # --- Internal ---

    def _set_ready_state(self, state: ReadyState) -> None:
        if self._ready_state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return
        self._ready_state = state

    async def _connect_once(self) -> None:
        self._last_status = None
        request = self._client.build_request(
            "GET", self._url, headers=_request_headers(self._last_event_id)
        )
        response = await self._client.send(request, stream=True)
        self._last_status = response.status_code
        try:
            check_response(response)
        except EventSourceError:
            await response.aclose()
            raise

        if self._ready_state in (ReadyState.CLOSING, ReadyState.CLOSED):
            await response.aclose()
            raise EventSourceClosedError()
        self._response = response
        self._ready_state = ReadyState.OPEN
        self._decoder = AsyncEventDecoder(response.aiter_bytes())
        self._policy.mark_connected()
        logger.info("Connected to %s", self._url)

    async def _reconnect(self, error: BaseException) -> Optional[BaseException]:
        self._set_ready_state(ReadyState.CONNECTING)
        while self._policy.should_reconnect(error, self._last_status):
            logger.info(
                "Reconnecting to %s in %d ms (attempt %d)",
                self._url, self._policy.interval_ms, self._policy.current_attempt + 1,
            )
            if await self._policy.wait_async(self._stop):
                return None
            try:
                await self._connect_once()
                return None
            except EventSourceClosedError:
                return None
            except STREAM_ERRORS as exc:
                logger.warning("Reconnection to %s failed: %s", self._url, exc)
                error = exc
            except RuntimeError:
                # httpx refuses requests on a client closed under us.
                if self._stop.is_set():
                    return None
                raise

        logger.info("Not reconnecting to %s: %s", self._url, error)
        await self.close()
        return error

    async def _consume(self) -> None:
        while True:
            try:
                event = await self._decoder.decode()
            except STREAM_ERRORS as exc:
                if self._stop.is_set():
                    return
                logger.warning("Stream from %s interrupted: %s", self._url, exc)
                response, self._response = self._response, None
                if response is not None:
                    await response.aclose()
                if await self._reconnect(exc) is not None or self._stop.is_set():
                    return
                continue

            if isinstance(event, RetryDirective):
                logger.debug("Server set retry interval to %d ms", event.delay_ms)
                self._policy.interval_ms = event.delay_ms
                continue

            if event.id:
                self._last_event_id = event.id
            if not await self._events.put(event):
                return


async def open_async_event_source(
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    config: Optional[EventSourceConfig] = None,
) -> AsyncEventSource:
    """Create an :class:`AsyncEventSource` and connect it."""
    return await AsyncEventSource(url, client=client, config=config).connect()
