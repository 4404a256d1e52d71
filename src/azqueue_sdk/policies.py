"""Telemetry, request-id and request-logging policies."""

from __future__ import annotations

import asyncio
import platform
import time
import uuid
from dataclasses import dataclass

from ._version import __version__
from .http import Request, Response
from .log import LogLevel
from .pipeline import Factory, Policy, PolicyOptions
from .security import redact_url, sanitize_headers

REQUEST_ID_HEADER = "x-ms-client-request-id"
USER_AGENT_HEADER = "User-Agent"
SDK_NAME = "azqueue-python-sdk"

# Failure statuses the service returns routinely; logged like successes.
_EXPECTED_FAILURE_STATUSES = frozenset({404, 409, 412, 416})


@dataclass(frozen=True)
class TelemetryOptions:
    # Prepended to the SDK's own User-Agent string, e.g. "myapp/1.2".
    value: str = ""


def platform_info() -> str:
    return f"Python {platform.python_version()}; {platform.system() or 'unknown'}"


def user_agent(value: str = "") -> str:
    sdk = f"{SDK_NAME}/{__version__} ({platform_info()})"
    value = value.strip()
    return f"{value} {sdk}" if value else sdk


class TelemetryPolicy(Policy):
    def __init__(self, next_policy: Policy, telemetry_value: str) -> None:
        self._next = next_policy
        self._user_agent = telemetry_value

    async def send(self, request: Request) -> Response:
        request.headers[USER_AGENT_HEADER] = self._user_agent
        return await self._next.send(request)


class TelemetryPolicyFactory(Factory):
    def __init__(self, options: TelemetryOptions | None = None) -> None:
        self._user_agent = user_agent((options or TelemetryOptions()).value)

    def create(self, next_policy: Policy, options: PolicyOptions) -> Policy:
        return TelemetryPolicy(next_policy, self._user_agent)


def new_request_id() -> str:
    return str(uuid.uuid4())


class UniqueRequestIDPolicy(Policy):
    """Stamps ``x-ms-client-request-id`` unless the caller already set one.

    The id is also recorded as the request's ``operation_id``; the retry
    policy replaces pipeline-generated ids on every later attempt, so the
    operation id is what ties the attempts together.
    """

    def __init__(self, next_policy: Policy) -> None:
        self._next = next_policy

    async def send(self, request: Request) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER)
        if not request_id:
            request_id = new_request_id()
            request.headers[REQUEST_ID_HEADER] = request_id
            request.request_id_generated = True
        request.operation_id = request_id
        return await self._next.send(request)


class UniqueRequestIDPolicyFactory(Factory):
    def create(self, next_policy: Policy, options: PolicyOptions) -> Policy:
        return UniqueRequestIDPolicy(next_policy)


@dataclass(frozen=True)
class RequestLogOptions:
    # A try taking longer than this many seconds is logged as a warning;
    # zero or a negative value disables the check.
    log_warning_if_try_over_threshold: float = 3.0


class RequestLogPolicy(Policy):
    def __init__(self, next_policy: Policy, request_log: RequestLogOptions, options: PolicyOptions) -> None:
        self._next = next_policy
        self._threshold = request_log.log_warning_if_try_over_threshold
        self._options = options

    async def send(self, request: Request) -> Response:
        try_number = request.attempt
        if self._options.should_log(LogLevel.INFO):
            self._options.log(
                LogLevel.INFO,
                f"==> OUTGOING REQUEST (Try={try_number})\n{_describe_request(request)}",
            )

        started = time.perf_counter()
        try:
            response = await self._next.send(request)
        except asyncio.CancelledError:
            # Per-try timeouts reach this stage as a cancellation.
            self._log_failure(request, try_number, started, "REQUEST CANCELLED OR TIMED OUT", None)
            raise
        except Exception as exc:
            self._log_failure(request, try_number, started, "REQUEST ERROR", exc)
            raise
        elapsed = time.perf_counter() - started

        level = LogLevel.INFO
        prefix = "RESPONSE RECEIVED"
        if 0 < self._threshold < elapsed:
            level = LogLevel.WARNING
            prefix = f"SLOW OPERATION [tryDuration > {self._threshold:.3f}s]"
        if response.status_code >= 400 and response.status_code not in _EXPECTED_FAILURE_STATUSES:
            level = LogLevel.ERROR
            prefix = "RESPONSE STATUS CODE ERROR"

        if self._options.should_log(level):
            self._options.log(
                level,
                f"{prefix} (Try={try_number}, TryDuration={elapsed:.3f}s, Status={response.status_code})\n"
                f"{_describe_request(request)}",
            )
        return response

    def _log_failure(
        self,
        request: Request,
        try_number: int,
        started: float,
        prefix: str,
        exc: BaseException | None,
    ) -> None:
        if not self._options.should_log(LogLevel.ERROR):
            return
        elapsed = time.perf_counter() - started
        message = f"{prefix} (Try={try_number}, TryDuration={elapsed:.3f}s)\n{_describe_request(request)}"
        if exc is not None:
            message += f"\nERROR: {type(exc).__name__}: {exc}"
        self._options.log(LogLevel.ERROR, message)


class RequestLogPolicyFactory(Factory):
    def __init__(self, options: RequestLogOptions | None = None) -> None:
        self._request_log = options or RequestLogOptions()

    def create(self, next_policy: Policy, options: PolicyOptions) -> Policy:
        return RequestLogPolicy(next_policy, self._request_log, options)


def _describe_request(request: Request) -> str:
    lines = [f"   {request.method} {redact_url(request.url)}"]
    if request.operation_id:
        lines.append(f"   OperationId: {request.operation_id}")
    for key, value in sanitize_headers(dict(request.headers)).items():
        lines.append(f"   {key}: {value}")
    return "\n".join(lines)
