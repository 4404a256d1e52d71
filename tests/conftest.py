from __future__ import annotations

import asyncio
from typing import Callable, Sequence, Union

import pytest

from azqueue_sdk.http import Request, Response
from azqueue_sdk.log import LogLevel, LogOptions
from azqueue_sdk.pipeline import Policy

Step = Union[int, Response, BaseException, Callable[[Request], object]]


class ScriptedTransport(Policy):
    """Innermost stage that plays back one scripted outcome per attempt.

    A step is a status code, a ready ``Response``, an exception to raise, or
    a coroutine function taking the request.
    """

    def __init__(self, steps: Sequence[Step]) -> None:
        self.steps = list(steps)
        self.requests: list[Request] = []
        self.bodies: list[bytes] = []
        self.responses: list[Response] = []
        self.closed = False

    @property
    def attempts(self) -> int:
        return len(self.requests)

    async def send(self, request: Request) -> Response:
        self.requests.append(request)
        if request.body is not None:
            self.bodies.append(request.read_body())
        step = self.steps[min(len(self.requests), len(self.steps)) - 1]
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            step = await step(request)
        if isinstance(step, int):
            step = Response(step, headers={"x-attempt": str(len(self.requests))}, request=request)
        self.responses.append(step)
        return step

    async def aclose(self) -> None:
        self.closed = True


class LogCollector:
    def __init__(self, enabled: Callable[[LogLevel], bool] = lambda level: True) -> None:
        self.enabled = enabled
        self.entries: list[tuple[LogLevel, str]] = []
        self.asked: list[LogLevel] = []

    def should_log(self, level: LogLevel) -> bool:
        self.asked.append(level)
        return self.enabled(level)

    def log(self, level: LogLevel, message: str) -> None:
        self.entries.append((level, message))

    def options(self) -> LogOptions:
        return LogOptions(should_log=self.should_log, log=self.log)

    def messages(self, level: LogLevel) -> list[str]:
        return [message for entry_level, message in self.entries if entry_level == level]


@pytest.fixture
def fake_sleep(monkeypatch):
    """Record backoff waits instead of sleeping through them."""
    real_sleep = asyncio.sleep
    delays: list[float] = []

    async def sleep(delay: float, *args, **kwargs):
        delays.append(delay)
        await real_sleep(0)

    monkeypatch.setattr("azqueue_sdk.retry.asyncio.sleep", sleep)
    return delays
