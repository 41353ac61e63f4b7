"""Shared helpers for the EventSource tests."""

import threading
import time
from typing import Any, List, Optional

import httpx

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

STREAM_URL = "http://sse.test/stream"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def sse_response(
    body: str = "",
    *,
    status: int = 200,
    content_type: Optional[str] = "text/event-stream",
) -> httpx.Response:
    headers = {"Content-Type": content_type} if content_type else {}
    return httpx.Response(status, headers=headers, content=body.encode("utf-8"))


class ScriptedServer:
    """Answers each request with the next scripted item; 204 once the script runs out.

    Items are responses, exceptions to raise, or callables taking the request.
    """

    def __init__(self, *script: Any) -> None:
        self.script: List[Any] = list(script)
        self.requests: List[httpx.Request] = []
        self.times: List[float] = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            self.times.append(time.monotonic())
            item = self.script.pop(0) if self.script else httpx.Response(204)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))

    def async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

