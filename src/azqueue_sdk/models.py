"""Typed results returned by the queue and message clients."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _parse_rfc1123(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    value = value.strip()
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AzQueueModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class QueueItem(AzQueueModel):
    name: str
    metadata: dict[str, str] = Field(default_factory=dict)


class ListQueuesSegment(AzQueueModel):
    service_endpoint: str | None = None
    prefix: str | None = None
    marker: str | None = None
    max_results: int | None = None
    queues: list[QueueItem] = Field(default_factory=list)
    next_marker: str | None = None

    @property
    def done(self) -> bool:
        return not self.next_marker


class QueueProperties(AzQueueModel):
    approximate_messages_count: int = 0
    metadata: dict[str, str] = Field(default_factory=dict)
    request_id: str | None = None


class _MessageTimes(AzQueueModel):
    insertion_time: datetime | None = None
    expiration_time: datetime | None = None

    @field_validator("insertion_time", "expiration_time", mode="before")
    @classmethod
    def _coerce_times(cls, value: Any) -> Any:
        return _parse_rfc1123(value)


class EnqueueMessageResult(_MessageTimes):
    message_id: str
    pop_receipt: str
    time_next_visible: datetime | None = None

    @field_validator("time_next_visible", mode="before")
    @classmethod
    def _coerce_next_visible(cls, value: Any) -> Any:
        return _parse_rfc1123(value)


class PeekedMessage(_MessageTimes):
    message_id: str
    dequeue_count: int = 0
    text: str = ""


class DequeuedMessage(PeekedMessage):
    pop_receipt: str
    time_next_visible: datetime | None = None

    @field_validator("time_next_visible", mode="before")
    @classmethod
    def _coerce_next_visible(cls, value: Any) -> Any:
        return _parse_rfc1123(value)


class UpdatedMessage(AzQueueModel):
    pop_receipt: str
    time_next_visible: datetime | None = None

    @field_validator("time_next_visible", mode="before")
    @classmethod
    def _coerce_next_visible(cls, value: Any) -> Any:
        return _parse_rfc1123(value)


_ISO_FRACTION = re.compile(r"\.(\d+)")


def _parse_iso8601(value: Any) -> Any:
    # The service writes seven fractional digits; fromisoformat takes at most six.
    if not isinstance(value, str):
        return value
    value = value.strip()
    if not value:
        return None
    value = _ISO_FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), value, count=1)
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return value


class AccessPolicyPermission(AzQueueModel):
    """Permissions granted by a stored access policy, written as ``raup``."""

    read: bool = False
    add: bool = False
    update: bool = False
    process_messages: bool = False

    def __str__(self) -> str:
        flags = (("r", self.read), ("a", self.add), ("u", self.update), ("p", self.process_messages))
        return "".join(letter for letter, enabled in flags if enabled)

    @classmethod
    def parse(cls, value: str) -> "AccessPolicyPermission":
        unknown = set(value) - set("raup")
        if unknown:
            raise ValueError(f"unknown access policy permission(s): {''.join(sorted(unknown))}")
        return cls(read="r" in value, add="a" in value, update="u" in value, process_messages="p" in value)


class AccessPolicy(AzQueueModel):
    start: datetime | None = None
    expiry: datetime | None = None
    permission: str | None = None

    @field_validator("start", "expiry", mode="before")
    @classmethod
    def _coerce_times(cls, value: Any) -> Any:
        return _parse_iso8601(value)


class SignedIdentifier(AzQueueModel):
    id: str
    access_policy: AccessPolicy = Field(default_factory=AccessPolicy)
