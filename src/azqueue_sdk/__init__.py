"""Async Python client for the storage queue service."""

from ._version import __version__
from .client import MessagesClient, QueueClient, QueueServiceClient
from .credentials import AnonymousCredential, Credential, SharedKeyCredential
from .exceptions import (
    AzQueueError,
    BodyNotRewindableError,
    NetworkError,
    NetworkErrorKind,
    OperationTimeoutError,
    PipelineConstructionError,
    StorageAuthError,
    StorageError,
    TryTimeoutError,
    ValidationError,
)
from .http import Request, Response
from .log import LogLevel, LogOptions
from .models import (
    AccessPolicy,
    AccessPolicyPermission,
    DequeuedMessage,
    EnqueueMessageResult,
    ListQueuesSegment,
    PeekedMessage,
    QueueItem,
    QueueProperties,
    SignedIdentifier,
    UpdatedMessage,
)
from .pipeline import Factory, FactoryFunc, MethodFactoryMarker, Pipeline, Policy, PolicyOptions
from .policies import RequestLogOptions, TelemetryOptions
from .queue_pipeline import PipelineOptions, new_pipeline
from .request_options import RequestOptions
from .retry import RetryOptions, RetryPolicyType
from .transport import HTTPTransport

__all__ = [
    "AccessPolicy",
    "AccessPolicyPermission",
    "AnonymousCredential",
    "AzQueueError",
    "BodyNotRewindableError",
    "Credential",
    "DequeuedMessage",
    "EnqueueMessageResult",
    "Factory",
    "FactoryFunc",
    "HTTPTransport",
    "ListQueuesSegment",
    "LogLevel",
    "LogOptions",
    "MessagesClient",
    "MethodFactoryMarker",
    "NetworkError",
    "NetworkErrorKind",
    "OperationTimeoutError",
    "PeekedMessage",
    "Pipeline",
    "PipelineConstructionError",
    "PipelineOptions",
    "Policy",
    "PolicyOptions",
    "QueueClient",
    "QueueItem",
    "QueueProperties",
    "QueueServiceClient",
    "Request",
    "RequestLogOptions",
    "RequestOptions",
    "Response",
    "RetryOptions",
    "RetryPolicyType",
    "SharedKeyCredential",
    "SignedIdentifier",
    "StorageAuthError",
    "StorageError",
    "TelemetryOptions",
    "TryTimeoutError",
    "UpdatedMessage",
    "ValidationError",
    "__version__",
    "new_pipeline",
]
