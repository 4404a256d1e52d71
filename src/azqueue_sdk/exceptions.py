"""SDK-specific exceptions."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Mapping

if TYPE_CHECKING:
    from .http import Response


class AzQueueError(Exception):
    """Base exception for all queue SDK failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
        body: object = None,
        headers: Mapping[str, str] | None = None,
        request_id: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.body = body
        self.headers = dict(headers) if headers is not None else {}
        self.request_id = request_id
        self.cause = cause

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        if self.status_code is None:
            return str(self.args[0])
        parts = [f"{self.status_code}"]
        if self.error_code:
            parts.append(self.error_code)
        return " ".join(parts) + f": {self.args[0]}"


class ValidationError(AzQueueError):
    """Raised when arguments or options are invalid."""


class PipelineConstructionError(ValidationError):
    """Raised when a pipeline cannot be built from the given credential/options."""


class NetworkErrorKind(str, enum.Enum):
    TIMEOUT = "timeout"
    CONNECT = "connect"
    CONNECTION_RESET = "connection_reset"
    PROTOCOL = "protocol"
    OTHER = "other"


RETRYABLE_NETWORK_ERROR_KINDS = frozenset(
    {NetworkErrorKind.TIMEOUT, NetworkErrorKind.CONNECT, NetworkErrorKind.CONNECTION_RESET}
)


class NetworkError(AzQueueError):
    """Raised for transport-level failures like DNS, TCP and TLS errors."""

    def __init__(
        self,
        message: str,
        *,
        kind: NetworkErrorKind = NetworkErrorKind.OTHER,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_NETWORK_ERROR_KINDS


class TryTimeoutError(NetworkError):
    """Raised when a single attempt exceeds its per-try timeout."""

    def __init__(self, message: str, *, timeout: float, cause: BaseException | None = None) -> None:
        super().__init__(message, kind=NetworkErrorKind.TIMEOUT, cause=cause)
        self.timeout = timeout


class OperationTimeoutError(AzQueueError):
    """Raised when the caller's overall operation deadline expires."""


class BodyNotRewindableError(AzQueueError):
    """Raised when a request body must be replayed but cannot be rewound."""


class StorageError(AzQueueError):
    """Raised when the service answers with a failure status."""

    def __init__(self, message: str, *, response: "Response", **kwargs: object) -> None:
        super().__init__(message, **kwargs)  # type: ignore[arg-type]
        self.response = response

    @property
    def service_code(self) -> str | None:
        return self.error_code


class StorageAuthError(StorageError):
    """Raised for authentication and authorization failures."""
