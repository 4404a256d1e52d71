"""Retry policy with exponential or fixed backoff."""

from __future__ import annotations

import asyncio
import enum
import random
from dataclasses import dataclass
from typing import ClassVar

from .exceptions import NetworkError, OperationTimeoutError, TryTimeoutError, ValidationError
from .http import Request, Response
from .log import LogLevel
from .pipeline import Factory, Policy, PolicyOptions
from .policies import REQUEST_ID_HEADER, new_request_id

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Exponential delays are scaled by a factor drawn from [JITTER_MIN, JITTER_MIN + JITTER_SPAN).
JITTER_MIN = 0.8
JITTER_SPAN = 0.5


class RetryPolicyType(str, enum.Enum):
    EXPONENTIAL = "exponential"
    FIXED = "fixed"


@dataclass(frozen=True)
class RetryOptions:
    """Retry configuration. Zero values are replaced by defaults.

    ``max_tries=1`` disables retries. Times are in seconds.
    """

    policy: RetryPolicyType = RetryPolicyType.EXPONENTIAL
    max_tries: int = 0
    try_timeout: float = 0.0
    retry_delay: float = 0.0
    max_retry_delay: float = 0.0

    default_max_tries: ClassVar[int] = 4
    default_try_timeout: ClassVar[float] = 60.0
    default_exponential_retry_delay: ClassVar[float] = 4.0
    default_fixed_retry_delay: ClassVar[float] = 30.0
    default_max_retry_delay: ClassVar[float] = 120.0

    def with_defaults(self) -> "RetryOptions":
        """Validate and return a copy with every unset value filled in."""
        try:
            policy = RetryPolicyType(self.policy)
        except ValueError:
            raise ValidationError(f"unknown retry policy: {self.policy!r}") from None
        if self.max_tries < 0:
            raise ValidationError("max_tries must be non-negative")
        if self.try_timeout < 0 or self.retry_delay < 0 or self.max_retry_delay < 0:
            raise ValidationError("try_timeout, retry_delay and max_retry_delay must be non-negative")
        if self.retry_delay and self.max_retry_delay and self.max_retry_delay < self.retry_delay:
            raise ValidationError("max_retry_delay must be greater than or equal to retry_delay")

        if policy is RetryPolicyType.EXPONENTIAL:
            default_delay = self.default_exponential_retry_delay
        else:
            default_delay = self.default_fixed_retry_delay

        retry_delay = self.retry_delay
        if not retry_delay:
            retry_delay = min(default_delay, self.max_retry_delay) if self.max_retry_delay else default_delay
        max_retry_delay = self.max_retry_delay or max(self.default_max_retry_delay, retry_delay)

        return RetryOptions(
            policy=policy,
            max_tries=self.max_tries or self.default_max_tries,
            try_timeout=float(self.try_timeout or self.default_try_timeout),
            retry_delay=float(retry_delay),
            max_retry_delay=float(max_retry_delay),
        )


def calculate_delay(options: RetryOptions, attempt: int) -> float:
    """Seconds to wait after failed try number ``attempt`` (1-based).

    ``options`` must already have defaults applied.
    """
    if options.policy is RetryPolicyType.FIXED:
        return min(options.retry_delay, options.max_retry_delay)
    delay = options.retry_delay * (2 ** (attempt - 1))
    delay *= JITTER_MIN + random.random() * JITTER_SPAN
    return min(delay, options.max_retry_delay)


class RetryPolicy(Policy):
    """Re-sends a request while failures are classified as transient.

    Each try runs on a fresh copy of the request under a timeout of
    ``min(try_timeout, time left before the request deadline)``. A deadline
    that expires (during a try or a backoff wait) raises
    ``OperationTimeoutError`` at once; task cancellation propagates untouched.
    When every try fails, the last response is returned or the last network
    error re-raised as is.
    """

    def __init__(self, next_policy: Policy, retry: RetryOptions, options: PolicyOptions) -> None:
        self._next = next_policy
        self._retry = retry
        self._options = options

    @property
    def retry_options(self) -> RetryOptions:
        return self._retry

    def calculate_delay(self, attempt: int) -> float:
        return calculate_delay(self._retry, attempt)

    def _try_timeout(self, request: Request) -> tuple[float, bool]:
        """Return the timeout for the next try and whether the deadline is what bounds it."""
        remaining = request.remaining()
        if remaining is None:
            return self._retry.try_timeout, False
        if remaining <= 0:
            raise OperationTimeoutError("operation deadline expired before the request could be sent")
        if remaining <= self._retry.try_timeout:
            return remaining, True
        return self._retry.try_timeout, False

    async def _wait(self, request: Request, delay: float) -> None:
        remaining = request.remaining()
        if remaining is not None and remaining <= delay:
            await asyncio.sleep(max(0.0, remaining))
            raise OperationTimeoutError("operation deadline expired while waiting to retry")
        await asyncio.sleep(delay)

    def _log(self, level: LogLevel, message: str) -> None:
        if self._options.should_log(level):
            self._options.log(level, message)

    async def send(self, request: Request) -> Response:
        max_tries = self._retry.max_tries
        last_response: Response | None = None
        last_error: NetworkError | None = None

        for attempt in range(1, max_tries + 1):
            if attempt > 1:
                request.rewind_body()
            attempt_request = request.copy()
            attempt_request.attempt = attempt
            if attempt > 1 and request.request_id_generated:
                attempt_request.headers[REQUEST_ID_HEADER] = new_request_id()

            try_timeout, bounded_by_deadline = self._try_timeout(request)
            self._log(LogLevel.INFO, f"[Try={attempt}/{max_tries}, TryTimeout={try_timeout:.3f}s]")

            try:
                response = await asyncio.wait_for(self._next.send(attempt_request), timeout=try_timeout)
            except asyncio.TimeoutError as exc:
                if bounded_by_deadline or _deadline_passed(request):
                    raise OperationTimeoutError("operation deadline expired during the request") from exc
                last_error = TryTimeoutError(
                    f"try {attempt} timed out after {try_timeout:.3f}s",
                    timeout=try_timeout,
                    cause=exc,
                )
                last_response = None
                action = "Retry: try timed out"
            except NetworkError as exc:
                if _deadline_passed(request):
                    raise OperationTimeoutError("operation deadline expired during the request") from exc
                if not exc.retryable:
                    self._log(LogLevel.INFO, f"[Try={attempt}] NoRetry: {exc.kind.value} network error")
                    raise
                last_error = exc
                last_response = None
                action = f"Retry: {exc.kind.value} network error"
            else:
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    return response
                last_error = None
                last_response = response
                action = f"Retry: status code {response.status_code}"

            if attempt == max_tries:
                self._log(LogLevel.INFO, f"[Try={attempt}] NoRetry: max tries reached ({action})")
                break

            delay = self.calculate_delay(attempt)
            self._log(LogLevel.INFO, f"[Try={attempt}] {action}; waiting {delay:.3f}s")
            await self._wait(request, delay)

        if last_error is not None:
            raise last_error
        assert last_response is not None
        return last_response


class RetryPolicyFactory(Factory):
    def __init__(self, options: RetryOptions | None = None) -> None:
        self._retry = (options or RetryOptions()).with_defaults()

    @property
    def retry_options(self) -> RetryOptions:
        return self._retry

    def create(self, next_policy: Policy, options: PolicyOptions) -> Policy:
        return RetryPolicy(next_policy, self._retry, options)


def _deadline_passed(request: Request) -> bool:
    remaining = request.remaining()
    return remaining is not None and remaining <= 0
