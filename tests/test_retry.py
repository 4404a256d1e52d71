from __future__ import annotations

import asyncio
import io
import time

import pytest
from conftest import ScriptedTransport

from azqueue_sdk.exceptions import (
    BodyNotRewindableError,
    NetworkError,
    NetworkErrorKind,
    OperationTimeoutError,
    TryTimeoutError,
    ValidationError,
)
from azqueue_sdk.http import Request
from azqueue_sdk.pipeline import Pipeline
from azqueue_sdk.policies import REQUEST_ID_HEADER, UniqueRequestIDPolicyFactory
from azqueue_sdk.retry import (
    RetryOptions,
    RetryPolicyFactory,
    RetryPolicyType,
    calculate_delay,
)

URL = "https://account.queue.core.windows.net/orders/messages"

FAST = RetryOptions(max_tries=4, retry_delay=0.001, max_retry_delay=0.002, try_timeout=5)


def _pipeline(transport: ScriptedTransport, options: RetryOptions = FAST) -> Pipeline:
    return Pipeline([UniqueRequestIDPolicyFactory(), RetryPolicyFactory(options)], transport=transport)


def test_defaults_are_filled_for_unset_values() -> None:
    options = RetryOptions().with_defaults()
    assert options.policy is RetryPolicyType.EXPONENTIAL
    assert options.max_tries == 4
    assert options.try_timeout == 60.0
    assert options.retry_delay == 4.0
    assert options.max_retry_delay == 120.0

    fixed = RetryOptions(policy=RetryPolicyType.FIXED).with_defaults()
    assert fixed.retry_delay == 30.0
    assert fixed.max_retry_delay == 120.0


def test_retry_delay_defaults_below_an_explicit_cap() -> None:
    options = RetryOptions(max_retry_delay=2.0).with_defaults()
    assert options.retry_delay == 2.0
    assert options.max_retry_delay == 2.0


@pytest.mark.parametrize(
    "options",
    [
        RetryOptions(max_tries=-1),
        RetryOptions(try_timeout=-1),
        RetryOptions(retry_delay=5, max_retry_delay=1),
        RetryOptions(policy="linear"),
    ],
)
def test_invalid_options_are_rejected(options: RetryOptions) -> None:
    with pytest.raises(ValidationError):
        RetryPolicyFactory(options)


def test_exhausts_max_tries_and_returns_last_response_unmodified() -> None:
    transport = ScriptedTransport([503])
    response = asyncio.run(_pipeline(transport).send(Request("GET", URL)))

    assert transport.attempts == 4
    assert response is transport.responses[-1]
    assert response.status_code == 503
    assert response.headers["x-attempt"] == "4"


def test_max_tries_one_disables_retries() -> None:
    transport = ScriptedTransport([500])
    options = RetryOptions(max_tries=1, retry_delay=0.001, max_retry_delay=0.001)
    response = asyncio.run(_pipeline(transport, options).send(Request("GET", URL)))

    assert transport.attempts == 1
    assert response.status_code == 500


def test_succeeds_on_kth_attempt() -> None:
    transport = ScriptedTransport([500, 429, 408, 201])
    response = asyncio.run(_pipeline(transport).send(Request("PUT", URL)))

    assert response.status_code == 201
    assert transport.attempts == 4


@pytest.mark.parametrize("status", [200, 204, 400, 403, 404, 409, 501])
def test_non_retryable_status_returns_after_one_attempt(status: int) -> None:
    transport = ScriptedTransport([status, 201])
    response = asyncio.run(_pipeline(transport).send(Request("GET", URL)))

    assert transport.attempts == 1
    assert response.status_code == status


def test_request_id_changes_between_attempts() -> None:
    transport = ScriptedTransport([500, 502, 504, 200])
    request = Request("GET", URL)
    asyncio.run(_pipeline(transport).send(request))

    ids = [attempt.headers[REQUEST_ID_HEADER] for attempt in transport.requests]
    assert len(ids) == 4
    assert len(set(ids)) == 4
    # Every attempt keeps the id of the operation for correlation.
    assert {attempt.operation_id for attempt in transport.requests} == {ids[0]}
    assert [attempt.attempt for attempt in transport.requests] == [1, 2, 3, 4]


def test_caller_supplied_request_id_is_kept() -> None:
    transport = ScriptedTransport([500, 200])
    request = Request("GET", URL, headers={REQUEST_ID_HEADER: "caller-id"})
    asyncio.run(_pipeline(transport).send(request))

    assert [attempt.headers[REQUEST_ID_HEADER] for attempt in transport.requests] == ["caller-id", "caller-id"]


def test_retryable_network_errors_are_retried_then_reraised() -> None:
    errors = [
        NetworkError("refused", kind=NetworkErrorKind.CONNECT),
        NetworkError("reset", kind=NetworkErrorKind.CONNECTION_RESET),
        NetworkError("slow", kind=NetworkErrorKind.TIMEOUT),
        NetworkError("refused again", kind=NetworkErrorKind.CONNECT),
    ]
    transport = ScriptedTransport(errors)

    with pytest.raises(NetworkError) as exc_info:
        asyncio.run(_pipeline(transport).send(Request("GET", URL)))

    assert transport.attempts == 4
    assert exc_info.value is errors[-1]


def test_network_error_then_success() -> None:
    transport = ScriptedTransport([NetworkError("reset", kind=NetworkErrorKind.CONNECTION_RESET), 200])
    response = asyncio.run(_pipeline(transport).send(Request("GET", URL)))

    assert response.status_code == 200
    assert transport.attempts == 2


@pytest.mark.parametrize("kind", [NetworkErrorKind.PROTOCOL, NetworkErrorKind.OTHER])
def test_permanent_network_errors_are_not_retried(kind: NetworkErrorKind) -> None:
    transport = ScriptedTransport([NetworkError("bad", kind=kind), 200])

    with pytest.raises(NetworkError):
        asyncio.run(_pipeline(transport).send(Request("GET", URL)))
    assert transport.attempts == 1


def test_try_timeout_is_retried() -> None:
    async def hang(request: Request) -> int:
        await asyncio.sleep(5)
        return 200

    transport = ScriptedTransport([hang, 200])
    options = RetryOptions(max_tries=3, try_timeout=0.05, retry_delay=0.001, max_retry_delay=0.001)
    response = asyncio.run(_pipeline(transport, options).send(Request("GET", URL)))

    assert response.status_code == 200
    assert transport.attempts == 2


def test_try_timeout_on_every_attempt_raises_try_timeout_error() -> None:
    async def hang(request: Request) -> int:
        await asyncio.sleep(5)
        return 200

    transport = ScriptedTransport([hang])
    options = RetryOptions(max_tries=2, try_timeout=0.02, retry_delay=0.001, max_retry_delay=0.001)

    with pytest.raises(TryTimeoutError) as exc_info:
        asyncio.run(_pipeline(transport, options).send(Request("GET", URL)))
    assert transport.attempts == 2
    assert exc_info.value.kind is NetworkErrorKind.TIMEOUT


def test_outer_deadline_during_attempt_is_not_retried() -> None:
    async def hang(request: Request) -> int:
        await asyncio.sleep(5)
        return 200

    transport = ScriptedTransport([hang, 200])
    options = RetryOptions(max_tries=4, try_timeout=10, retry_delay=0.001, max_retry_delay=0.001)

    with pytest.raises(OperationTimeoutError):
        asyncio.run(_pipeline(transport, options).send(Request.with_timeout("GET", URL, timeout=0.05)))
    assert transport.attempts == 1


def test_outer_deadline_during_backoff_aborts_promptly() -> None:
    transport = ScriptedTransport([503])
    options = RetryOptions(max_tries=4, retry_delay=10, max_retry_delay=10)

    started = time.monotonic()
    with pytest.raises(OperationTimeoutError):
        asyncio.run(_pipeline(transport, options).send(Request.with_timeout("GET", URL, timeout=0.1)))

    assert time.monotonic() - started < 2
    assert transport.attempts == 1


def test_cancellation_during_backoff_propagates_without_more_attempts() -> None:
    transport = ScriptedTransport([503])
    options = RetryOptions(max_tries=4, retry_delay=10, max_retry_delay=10)

    async def scenario() -> None:
        task = asyncio.create_task(_pipeline(transport, options).send(Request("GET", URL)))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    started = time.monotonic()
    asyncio.run(scenario())

    assert time.monotonic() - started < 2
    assert transport.attempts == 1


def test_seekable_body_is_rewound_for_each_attempt() -> None:
    transport = ScriptedTransport([500, 500, 201])
    body = io.BytesIO(b"<QueueMessage/>")
    response = asyncio.run(_pipeline(transport).send(Request("POST", URL, body=body)))

    assert response.status_code == 201
    assert transport.bodies == [b"<QueueMessage/>"] * 3


class _OneShotStream(io.RawIOBase):
    def __init__(self, data: bytes) -> None:
        self._data = data

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def read(self, size: int = -1) -> bytes:
        data, self._data = self._data, b""
        return data


def test_non_rewindable_body_fails_permanently_on_retry() -> None:
    transport = ScriptedTransport([500, 201])

    with pytest.raises(BodyNotRewindableError):
        asyncio.run(_pipeline(transport).send(Request("POST", URL, body=_OneShotStream(b"payload"))))
    assert transport.attempts == 1


def test_exponential_delays_are_non_decreasing_and_capped() -> None:
    options = RetryOptions(retry_delay=1, max_retry_delay=10).with_defaults()
    for _ in range(50):
        delays = [calculate_delay(options, attempt) for attempt in range(1, 9)]
        assert delays == sorted(delays)
        assert all(0 < delay <= 10 for delay in delays)
        assert delays[-1] == 10


def test_fixed_delays_are_constant() -> None:
    options = RetryOptions(policy=RetryPolicyType.FIXED, retry_delay=5, max_retry_delay=10).with_defaults()
    assert {calculate_delay(options, attempt) for attempt in range(1, 6)} == {5.0}

    capped = RetryOptions(policy=RetryPolicyType.FIXED, max_retry_delay=3).with_defaults()
    assert {calculate_delay(capped, attempt) for attempt in range(1, 6)} == {3.0}


def test_exponential_scenario_with_500_500_201(fake_sleep, monkeypatch) -> None:
    # A draw of 0.4 gives a jitter factor of exactly 1.0.
    monkeypatch.setattr("azqueue_sdk.retry.random.random", lambda: 0.4)
    transport = ScriptedTransport([500, 500, 201])
    options = RetryOptions(
        policy=RetryPolicyType.EXPONENTIAL,
        max_tries=3,
        try_timeout=3,
        retry_delay=1,
        max_retry_delay=3,
    )

    response = asyncio.run(_pipeline(transport, options).send(Request("PUT", URL)))

    assert response.status_code == 201
    assert transport.attempts == 3
    assert fake_sleep == pytest.approx([1.0, 2.0])
