"""Builds the standard request pipeline used by the queue clients."""

from __future__ import annotations

from dataclasses import dataclass, field

from .credentials import AnonymousCredential, Credential
from .exceptions import PipelineConstructionError
from .log import LogOptions
from .pipeline import Factory, MethodFactoryMarker, Pipeline, Policy
from .policies import (
    RequestLogOptions,
    RequestLogPolicyFactory,
    TelemetryOptions,
    TelemetryPolicyFactory,
    UniqueRequestIDPolicyFactory,
)
from .retry import RetryOptions, RetryPolicyFactory


@dataclass(frozen=True)
class PipelineOptions:
    """Configuration shared by every call made through one pipeline.

    To change anything, build a new value (``dataclasses.replace``) and a new
    pipeline.
    """

    log: LogOptions = field(default_factory=LogOptions)
    retry: RetryOptions = field(default_factory=RetryOptions)
    request_log: RequestLogOptions = field(default_factory=RequestLogOptions)
    telemetry: TelemetryOptions = field(default_factory=TelemetryOptions)


def new_pipeline(
    credential: Credential | None,
    options: PipelineOptions | None = None,
    *,
    transport: Policy | None = None,
) -> Pipeline:
    """Create a pipeline that authenticates with ``credential``.

    Raises ``PipelineConstructionError`` when no credential is given and
    ``ValidationError`` for inconsistent retry options.
    """
    if credential is None:
        raise PipelineConstructionError("a credential is required; use AnonymousCredential for SAS URLs")
    if not isinstance(credential, Credential):
        raise PipelineConstructionError(f"unsupported credential type: {type(credential).__name__}")
    options = options or PipelineOptions()

    # Closest to the API first, closest to the wire last.
    factories: list[Factory] = [
        TelemetryPolicyFactory(options.telemetry),
        UniqueRequestIDPolicyFactory(),
        RetryPolicyFactory(options.retry),
    ]
    if not isinstance(credential, AnonymousCredential):
        # Signs after every other policy has finished changing the request.
        factories.append(credential)
    factories.append(MethodFactoryMarker())
    factories.append(RequestLogPolicyFactory(options.request_log))

    return Pipeline(factories, log=options.log, transport=transport)
