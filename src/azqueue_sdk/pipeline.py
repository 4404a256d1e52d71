"""Composable request pipeline.

A pipeline is an ordered list of factories. Each factory builds one policy
bound to the policy below it; the last policy wraps the transport. The chain
is composed once when the pipeline is built and then invoked top-down for
every request:

    pipeline = Pipeline([TelemetryPolicyFactory(), RetryPolicyFactory()])
    response = await pipeline.send(Request("GET", url))
"""

from __future__ import annotations

import abc
from typing import Callable, Sequence

from .http import Request, Response
from .log import LogLevel, LogOptions


class Policy(abc.ABC):
    """One stage of request processing."""

    @abc.abstractmethod
    async def send(self, request: Request) -> Response:
        ...


class PolicyOptions:
    """Pipeline-wide services handed to every policy when it is created."""

    def __init__(self, log: LogOptions) -> None:
        self._log = log

    def should_log(self, level: LogLevel) -> bool:
        return self._log.should_log(level)

    def log(self, level: LogLevel, message: str) -> None:
        if self._log.should_log(level):
            self._log.log(level, message)


class Factory(abc.ABC):
    """Builds a policy bound to the next policy in the chain."""

    @abc.abstractmethod
    def create(self, next_policy: Policy, options: PolicyOptions) -> Policy:
        ...


class FactoryFunc(Factory):
    """Adapts a plain callable ``(next_policy, options) -> Policy`` into a factory."""

    def __init__(self, func: Callable[[Policy, PolicyOptions], Policy]) -> None:
        self._func = func

    def create(self, next_policy: Policy, options: PolicyOptions) -> Policy:
        return self._func(next_policy, options)


class _MethodMarkerPolicy(Policy):
    def __init__(self, next_policy: Policy) -> None:
        self._next = next_policy

    async def send(self, request: Request) -> Response:
        return await self._next.send(request)


class MethodFactoryMarker(Factory):
    """Marks where per-operation behavior sits in the chain; passes requests through."""

    def create(self, next_policy: Policy, options: PolicyOptions) -> Policy:
        return _MethodMarkerPolicy(next_policy)


class Pipeline:
    """A fully composed, reusable chain of policies.

    Holds no per-call state and can be shared by any number of concurrent
    tasks. ``aclose()`` releases the transport's connection pool.
    """

    def __init__(
        self,
        factories: Sequence[Factory],
        *,
        log: LogOptions | None = None,
        transport: Policy | None = None,
    ) -> None:
        if transport is None:
            from .transport import HTTPTransport

            transport = HTTPTransport()
        self._transport = transport
        self._policy_options = PolicyOptions(log or LogOptions())
        self.factories = tuple(factories)

        policy = transport
        for factory in reversed(self.factories):
            policy = factory.create(policy, self._policy_options)
        self._head = policy

    async def __aenter__(self) -> "Pipeline":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        aclose = getattr(self._transport, "aclose", None)
        if aclose is not None:
            await aclose()

    @property
    def transport(self) -> Policy:
        return self._transport

    def should_log(self, level: LogLevel) -> bool:
        return self._policy_options.should_log(level)

    def log(self, level: LogLevel, message: str) -> None:
        self._policy_options.log(level, message)

    async def send(self, request: Request) -> Response:
        return await self._head.send(request)
