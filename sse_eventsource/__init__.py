"""
SSE EventSource for Python

Server-Sent Events client following the HTML5 EventSource contract:
content-type validation, Last-Event-ID replay, server-directed retry
intervals and the HTTP 204 "stop reconnecting" signal.

Example:
    >>> from sse_eventsource import open_event_source
    >>> source = open_event_source("https://example.com/stream")
    >>> for message in source:
    ...     print(message.id, message.data)
    >>> source.close()
"""

from .decoder import EventDecoder, AsyncEventDecoder
from .policy import ReconnectPolicy, should_reconnect
from .source import (
    EventSource,
    AsyncEventSource,
    open_event_source,
    open_async_event_source,
)
from .types import (
    DEFAULT_RETRY_INTERVAL_MS,
    EVENT_STREAM_CONTENT_TYPE,
    Event,
    Message,
    RetryDirective,
    ReadyState,
    EventSourceConfig,
    # Errors
    EventSourceError,
    ContentTypeError,
    NoContentError,
    BadStatusError,
    StreamEndError,
    StreamTruncatedError,
    EventSourceClosedError,
)

__version__ = "0.1.0"
__all__ = [
    # Clients
    "EventSource",
    "AsyncEventSource",
    "open_event_source",
    "open_async_event_source",
    # Decoding
    "EventDecoder",
    "AsyncEventDecoder",
    # Reconnection
    "ReconnectPolicy",
    "should_reconnect",
    # Types
    "DEFAULT_RETRY_INTERVAL_MS",
    "EVENT_STREAM_CONTENT_TYPE",
    "Event",
    "Message",
    "RetryDirective",
    "ReadyState",
    "EventSourceConfig",
    # Errors
    "EventSourceError",
    "ContentTypeError",
    "NoContentError",
    "BadStatusError",
    "StreamEndError",
    "StreamTruncatedError",
    "EventSourceClosedError",
]
