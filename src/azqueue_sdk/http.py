"""Request and response objects that flow through the pipeline."""

from __future__ import annotations

import io
import time
from dataclasses import dataclass
from typing import IO, Mapping, Union

import httpx

from .exceptions import BodyNotRewindableError

Body = Union[bytes, IO[bytes], None]


@dataclass
class _BodyState:
    start: int | None = None
    consumed: bool = False


class Request:
    """Mutable outbound message.

    ``deadline`` is an absolute ``time.monotonic()`` value for the whole
    operation (all attempts plus backoff), or ``None`` for no deadline.
    """

    def __init__(
        self,
        method: str,
        url: str | httpx.URL,
        *,
        headers: Mapping[str, str] | httpx.Headers | None = None,
        body: Body = None,
        deadline: float | None = None,
    ) -> None:
        self.method = method.upper()
        self.url = httpx.URL(url)
        self.headers = httpx.Headers(headers)
        self.body = body
        self.deadline = deadline
        self.operation_id: str | None = None
        self.request_id_generated = False
        self.attempt = 1
        self._body_state = _BodyState()
        if body is not None and not isinstance(body, bytes) and _seekable(body):
            self._body_state.start = body.tell()

    @classmethod
    def with_timeout(cls, method: str, url: str | httpx.URL, *, timeout: float | None = None, **kwargs) -> "Request":
        deadline = time.monotonic() + timeout if timeout is not None else None
        return cls(method, url, deadline=deadline, **kwargs)

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.url}>"

    def remaining(self) -> float | None:
        """Seconds left before the operation deadline, or ``None``."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def copy(self) -> "Request":
        clone = Request.__new__(Request)
        clone.method = self.method
        clone.url = self.url
        clone.headers = self.headers.copy()
        clone.body = self.body
        clone.deadline = self.deadline
        clone.operation_id = self.operation_id
        clone.request_id_generated = self.request_id_generated
        clone.attempt = self.attempt
        # Clones share the body stream, so they share its bookkeeping too.
        clone._body_state = self._body_state
        return clone

    def rewind_body(self) -> None:
        if self.body is None or isinstance(self.body, bytes):
            return
        if self._body_state.start is not None:
            self.body.seek(self._body_state.start)
        elif self._body_state.consumed:
            raise BodyNotRewindableError("request body is not seekable and was already sent")

    def body_length(self) -> int | None:
        """Bytes the transport will send, or ``None`` for a stream that can't be sized."""
        if self.body is None:
            return 0
        if isinstance(self.body, bytes):
            return len(self.body)
        if self._body_state.start is None:
            return None
        position = self.body.tell()
        end = self.body.seek(0, io.SEEK_END)
        self.body.seek(position)
        return end - position

    def read_body(self) -> bytes:
        """Return the body bytes to send; streams are read from their current position."""
        if self.body is None:
            return b""
        if isinstance(self.body, bytes):
            return self.body
        if self._body_state.consumed and self._body_state.start is None:
            raise BodyNotRewindableError("request body is not seekable and was already sent")
        self._body_state.consumed = True
        return self.body.read()


class Response:
    """Result of one completed attempt."""

    def __init__(
        self,
        status_code: int,
        *,
        headers: Mapping[str, str] | httpx.Headers | None = None,
        content: bytes = b"",
        request: Request | None = None,
    ) -> None:
        self.status_code = status_code
        self.headers = httpx.Headers(headers)
        self.content = content
        self.request = request

    def __repr__(self) -> str:
        return f"<Response [{self.status_code}]>"

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    @property
    def request_id(self) -> str | None:
        return self.headers.get("x-ms-request-id")


def _seekable(stream: IO[bytes]) -> bool:
    try:
        return bool(stream.seekable())
    except (AttributeError, ValueError):
        return False
