"""Asynchronous clients for queues and messages.

Every method builds one request and runs it through a shared
:class:`~azqueue_sdk.pipeline.Pipeline`. Failure statuses that survive the
retry policy are raised as :class:`~azqueue_sdk.exceptions.StorageError`.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Any, Iterable, Mapping

import httpx

from .exceptions import StorageAuthError, StorageError, ValidationError
from .http import Request, Response
from .models import (
    AccessPolicyPermission,
    DequeuedMessage,
    EnqueueMessageResult,
    ListQueuesSegment,
    PeekedMessage,
    QueueProperties,
    SignedIdentifier,
    UpdatedMessage,
)
from .pipeline import Pipeline
from .policies import REQUEST_ID_HEADER
from .request_options import RequestOptions
from .security import validate_base_url
from .serialization import (
    message_body,
    parse_error,
    parse_message_list,
    parse_queue_list,
    parse_signed_identifiers,
    signed_identifiers_body,
)

SERVICE_VERSION = "2018-03-28"
METADATA_HEADER_PREFIX = "x-ms-meta-"
QUEUE_MAX_MESSAGES = 32
# A time-to-live of -1 means the message never expires.
INFINITE_TIME_TO_LIVE = -1
MAX_SIGNED_IDENTIFIERS = 5
MAX_SIGNED_IDENTIFIER_ID_LENGTH = 64

_QUEUE_NAME = re.compile(r"^[a-z0-9](?!.*--)[a-z0-9-]{1,61}[a-z0-9]$")


def _normalize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    clean: dict[str, str] = {}
    for key, value in headers.items():
        clean[str(key)] = str(value)
    return clean


def _metadata_headers(metadata: Mapping[str, str] | None) -> dict[str, str]:
    if not metadata:
        return {}
    return {f"{METADATA_HEADER_PREFIX}{key}": str(value) for key, value in metadata.items()}


def _metadata_from_headers(headers: httpx.Headers) -> dict[str, str]:
    return {
        key[len(METADATA_HEADER_PREFIX):]: value
        for key, value in headers.items()
        if key.lower().startswith(METADATA_HEADER_PREFIX)
    }


def _append_path(url: httpx.URL, segment: str) -> httpx.URL:
    return url.copy_with(path=url.path.rstrip("/") + "/" + segment)


def _seconds(value: float | None) -> int | None:
    return None if value is None else int(value)


def validate_queue_name(name: str) -> str:
    if not _QUEUE_NAME.match(name or ""):
        raise ValidationError(
            f"invalid queue name {name!r}: use 3-63 lower-case letters, digits and single dashes"
        )
    return name


def _validate_visibility_timeout(visibility_timeout: float | None) -> None:
    if visibility_timeout is not None and visibility_timeout < 0:
        raise ValidationError("visibility_timeout must be non-negative")


def _validate_time_to_live(time_to_live: float | None) -> None:
    # Zero or None keeps the service default; fractions would truncate to zero.
    if time_to_live is None or time_to_live in (0, INFINITE_TIME_TO_LIVE):
        return
    if time_to_live < 1:
        raise ValidationError("time_to_live must be at least 1 second, or -1 for no expiry")


def _validate_max_messages(max_messages: int) -> None:
    if not 1 <= max_messages <= QUEUE_MAX_MESSAGES:
        raise ValidationError(f"max_messages must be between 1 and {QUEUE_MAX_MESSAGES}")


def _validate_signed_identifiers(identifiers: list[SignedIdentifier]) -> None:
    if len(identifiers) > MAX_SIGNED_IDENTIFIERS:
        raise ValidationError(f"a queue holds at most {MAX_SIGNED_IDENTIFIERS} access policies")
    for identifier in identifiers:
        if not identifier.id or len(identifier.id) > MAX_SIGNED_IDENTIFIER_ID_LENGTH:
            raise ValidationError(
                f"access policy id must be 1-{MAX_SIGNED_IDENTIFIER_ID_LENGTH} characters: {identifier.id!r}"
            )
        permission = identifier.access_policy.permission
        if permission:
            try:
                AccessPolicyPermission.parse(permission)
            except ValueError as exc:
                raise ValidationError(str(exc), cause=exc) from exc


class _BaseQueueClient:
    def __init__(self, url: str | httpx.URL, pipeline: Pipeline, *, allow_http: bool = False) -> None:
        if pipeline is None:
            raise ValidationError("pipeline is required")
        url = httpx.URL(url)
        validate_base_url(str(url), allow_http=allow_http)
        self._url = url
        self._pipeline = pipeline
        self._allow_http = allow_http

    @property
    def url(self) -> httpx.URL:
        return self._url

    @property
    def pipeline(self) -> Pipeline:
        return self._pipeline

    def _build_request(
        self,
        method: str,
        url: httpx.URL,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
        options: RequestOptions | None = None,
    ) -> Request:
        options = options or RequestOptions()
        if options.timeout is not None and options.timeout <= 0:
            raise ValidationError("timeout must be greater than 0")
        if params:
            url = url.copy_merge_params({key: str(value) for key, value in params.items() if value is not None})
        merged = {"x-ms-version": SERVICE_VERSION}
        if body is not None:
            merged["Content-Type"] = "application/xml; charset=utf-8"
        merged.update(_normalize_headers(headers))
        merged.update(_normalize_headers(options.headers))
        if options.client_request_id:
            merged[REQUEST_ID_HEADER] = options.client_request_id
        return Request.with_timeout(method, url, timeout=options.timeout, headers=merged, body=body)

    async def _send(self, request: Request, *, expected: frozenset[int]) -> Response:
        response = await self._pipeline.send(request)
        self._raise_for_status(response, expected)
        return response

    @staticmethod
    def _raise_for_status(response: Response, expected: frozenset[int]) -> None:
        if response.status_code in expected:
            return
        code, message = parse_error(response.content)
        code = response.headers.get("x-ms-error-code") or code
        kwargs = {
            "status_code": response.status_code,
            "error_code": code,
            "body": response.text or None,
            "headers": MappingProxyType(dict(response.headers)),
            "request_id": response.request_id,
        }
        message = message or f"service responded with status {response.status_code}"
        if response.status_code in {401, 403}:
            raise StorageAuthError(message, response=response, **kwargs)
        raise StorageError(message, response=response, **kwargs)


class QueueServiceClient(_BaseQueueClient):
    """Account-level operations."""

    def get_queue_client(self, queue_name: str) -> "QueueClient":
        url = _append_path(self._url, validate_queue_name(queue_name))
        return QueueClient(url, self._pipeline, allow_http=self._allow_http)

    async def list_queues(
        self,
        *,
        prefix: str | None = None,
        marker: str | None = None,
        max_results: int | None = None,
        include_metadata: bool = False,
        options: RequestOptions | None = None,
    ) -> ListQueuesSegment:
        if max_results is not None and max_results <= 0:
            raise ValidationError("max_results must be positive")
        request = self._build_request(
            "GET",
            self._url,
            params={
                "comp": "list",
                "prefix": prefix,
                "marker": marker,
                "maxresults": max_results,
                "include": "metadata" if include_metadata else None,
            },
            options=options,
        )
        response = await self._send(request, expected=frozenset({200}))
        return ListQueuesSegment.model_validate(parse_queue_list(response.content))


class QueueClient(_BaseQueueClient):
    """Operations on one queue."""

    def with_pipeline(self, pipeline: Pipeline) -> "QueueClient":
        return QueueClient(self._url, pipeline, allow_http=self._allow_http)

    def get_messages_client(self) -> "MessagesClient":
        return MessagesClient(_append_path(self._url, "messages"), self._pipeline, allow_http=self._allow_http)

    async def create(self, *, metadata: Mapping[str, str] | None = None, options: RequestOptions | None = None) -> None:
        request = self._build_request("PUT", self._url, headers=_metadata_headers(metadata), options=options)
        # 204 means the queue already exists with identical metadata.
        await self._send(request, expected=frozenset({201, 204}))

    async def delete(self, *, options: RequestOptions | None = None) -> None:
        request = self._build_request("DELETE", self._url, options=options)
        await self._send(request, expected=frozenset({204}))

    async def get_properties(self, *, options: RequestOptions | None = None) -> QueueProperties:
        request = self._build_request("GET", self._url, params={"comp": "metadata"}, options=options)
        response = await self._send(request, expected=frozenset({200}))
        return QueueProperties(
            approximate_messages_count=int(response.headers.get("x-ms-approximate-messages-count", "0")),
            metadata=_metadata_from_headers(response.headers),
            request_id=response.request_id,
        )

    async def set_metadata(self, metadata: Mapping[str, str], *, options: RequestOptions | None = None) -> None:
        request = self._build_request(
            "PUT",
            self._url,
            params={"comp": "metadata"},
            headers=_metadata_headers(metadata),
            options=options,
        )
        await self._send(request, expected=frozenset({204}))

    async def get_access_policy(self, *, options: RequestOptions | None = None) -> list[SignedIdentifier]:
        request = self._build_request("GET", self._url, params={"comp": "acl"}, options=options)
        response = await self._send(request, expected=frozenset({200}))
        return [SignedIdentifier.model_validate(item) for item in parse_signed_identifiers(response.content)]

    async def set_access_policy(
        self,
        identifiers: Iterable[SignedIdentifier],
        *,
        options: RequestOptions | None = None,
    ) -> None:
        """Replace the queue's stored access policies; an empty list removes them all."""
        identifiers = list(identifiers)
        _validate_signed_identifiers(identifiers)
        request = self._build_request(
            "PUT",
            self._url,
            params={"comp": "acl"},
            body=signed_identifiers_body(identifier.model_dump() for identifier in identifiers),
            options=options,
        )
        await self._send(request, expected=frozenset({204}))


class MessagesClient(_BaseQueueClient):
    """Enqueue, dequeue, peek, update and delete messages of one queue.

    Times are in seconds.
    """

    def _message_url(self, message_id: str) -> httpx.URL:
        if not message_id:
            raise ValidationError("message_id is required")
        return _append_path(self._url, message_id)

    async def enqueue(
        self,
        text: str,
        *,
        visibility_timeout: float | None = None,
        time_to_live: float | None = None,
        options: RequestOptions | None = None,
    ) -> EnqueueMessageResult:
        _validate_visibility_timeout(visibility_timeout)
        _validate_time_to_live(time_to_live)
        request = self._build_request(
            "POST",
            self._url,
            params={
                "visibilitytimeout": _seconds(visibility_timeout),
                # Zero keeps the service default of seven days.
                "messagettl": _seconds(time_to_live) if time_to_live else None,
            },
            body=message_body(text),
            options=options,
        )
        response = await self._send(request, expected=frozenset({201}))
        messages = parse_message_list(response.content)
        if not messages:
            raise ValidationError("enqueue response did not contain a message", body=response.text)
        return EnqueueMessageResult.model_validate(messages[0])

    async def dequeue(
        self,
        *,
        max_messages: int = 1,
        visibility_timeout: float | None = None,
        options: RequestOptions | None = None,
    ) -> list[DequeuedMessage]:
        _validate_max_messages(max_messages)
        _validate_visibility_timeout(visibility_timeout)
        request = self._build_request(
            "GET",
            self._url,
            params={"numofmessages": max_messages, "visibilitytimeout": _seconds(visibility_timeout)},
            options=options,
        )
        response = await self._send(request, expected=frozenset({200}))
        return [DequeuedMessage.model_validate(item) for item in parse_message_list(response.content)]

    async def peek(self, *, max_messages: int = 1, options: RequestOptions | None = None) -> list[PeekedMessage]:
        _validate_max_messages(max_messages)
        request = self._build_request(
            "GET",
            self._url,
            params={"peekonly": "true", "numofmessages": max_messages},
            options=options,
        )
        response = await self._send(request, expected=frozenset({200}))
        return [PeekedMessage.model_validate(item) for item in parse_message_list(response.content)]

    async def clear(self, *, options: RequestOptions | None = None) -> None:
        request = self._build_request("DELETE", self._url, options=options)
        await self._send(request, expected=frozenset({204}))

    async def update(
        self,
        message_id: str,
        pop_receipt: str,
        visibility_timeout: float,
        *,
        text: str | None = None,
        options: RequestOptions | None = None,
    ) -> UpdatedMessage:
        if not pop_receipt:
            raise ValidationError("pop_receipt is required")
        _validate_visibility_timeout(visibility_timeout)
        request = self._build_request(
            "PUT",
            self._message_url(message_id),
            params={"popreceipt": pop_receipt, "visibilitytimeout": _seconds(visibility_timeout)},
            body=message_body(text) if text is not None else None,
            options=options,
        )
        response = await self._send(request, expected=frozenset({204}))
        return UpdatedMessage(
            pop_receipt=response.headers.get("x-ms-popreceipt", ""),
            time_next_visible=response.headers.get("x-ms-time-next-visible"),
        )

    async def delete(self, message_id: str, pop_receipt: str, *, options: RequestOptions | None = None) -> None:
        if not pop_receipt:
            raise ValidationError("pop_receipt is required")
        request = self._build_request(
            "DELETE",
            self._message_url(message_id),
            params={"popreceipt": pop_receipt},
            options=options,
        )
        await self._send(request, expected=frozenset({204}))
