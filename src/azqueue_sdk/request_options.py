"""Per-call overrides for the queue clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class RequestOptions:
    # Overall deadline for the operation in seconds, across all retries.
    timeout: float | None = None
    headers: Mapping[str, str] | None = None
    client_request_id: str | None = None
