"""Type definitions for the SSE EventSource client."""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator


DEFAULT_RETRY_INTERVAL_MS = 1000
EVENT_STREAM_CONTENT_TYPE = "text/event-stream"


# ============================================================================
# Events
# ============================================================================

class Message(BaseModel):
    """A consumer-visible event decoded from the stream."""
    id: str = ""
    name: str = ""
    data: str

    class Config:
        frozen = True


class RetryDirective(BaseModel):
    """Server-sent reconnection delay. Never delivered to the consumer."""
    delay_ms: int = Field(ge=0)

    class Config:
        frozen = True


Event = Union[Message, RetryDirective]


# ============================================================================
# Connection State
# ============================================================================

class ReadyState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class EventSourceConfig(BaseModel):
    """Configuration for an event source."""
    retry_interval_ms: int = Field(default=DEFAULT_RETRY_INTERVAL_MS, ge=0)
    last_event_id: str = ""

    @field_validator("last_event_id", mode="before")
    @classmethod
    def id_as_text(cls, value: Any) -> Any:
        # TOML stores numeric ids such as 42 as integers.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


# ============================================================================
# Errors
# ============================================================================

class EventSourceError(Exception):
    """Base class for every error raised by this package."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ContentTypeError(EventSourceError):
    """The server answered with something other than text/event-stream."""

    def __init__(self, content_type: Optional[str], status_code: Optional[int] = None) -> None:
        super().__init__(
            f"the content type of the stream is not allowed: {content_type!r}",
            status_code=status_code,
        )
        self.content_type = content_type


class NoContentError(EventSourceError):
    """HTTP 204: the server asked the client to stop reconnecting."""

    def __init__(self) -> None:
        super().__init__("server responded with 204 No Content", status_code=204)


class BadStatusError(EventSourceError):
    """Unexpected HTTP status; treated as a transient failure."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"unexpected HTTP status {status_code}", status_code=status_code)


class StreamEndError(EventSourceError):
    """The stream ended cleanly on a block boundary."""

    def __init__(self) -> None:
        super().__init__("end of stream")


class StreamTruncatedError(EventSourceError):
    """The stream ended in the middle of a block."""

    def __init__(self) -> None:
        super().__init__("stream truncated mid-block")


class EventSourceClosedError(EventSourceError):
    """The event source has been closed and cannot be reused."""

    def __init__(self) -> None:
        super().__init__("event source is closed")
