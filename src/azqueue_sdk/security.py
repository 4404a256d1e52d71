"""Redaction and URL validation helpers."""

from __future__ import annotations

from typing import Mapping
from urllib.parse import urlparse

import httpx

from .exceptions import ValidationError


SENSITIVE_HEADERS = {
    "authorization",
    "x-ms-copy-source-authorization",
}

SENSITIVE_QUERY_PARAMS = {"sig"}

REDACTED = "REDACTED"


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return headers with sensitive values redacted for logging."""
    redacted: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            redacted[key] = REDACTED
        else:
            redacted[key] = value
    return redacted


def redact_url(url: str | httpx.URL) -> str:
    """Return the URL with SAS signature values replaced so it can be logged."""
    url = httpx.URL(url)
    if not any(key.lower() in SENSITIVE_QUERY_PARAMS for key in url.params.keys()):
        return str(url)
    params = [
        (key, REDACTED if key.lower() in SENSITIVE_QUERY_PARAMS else value)
        for key, value in url.params.multi_items()
    ]
    return str(url.copy_with(params=params))


def validate_base_url(url: str, *, allow_http: bool = False) -> None:
    """Validate a service/queue URL before building requests against it."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValidationError("url must include scheme and host")
    if parsed.scheme not in {"http", "https"}:
        raise ValidationError(f"Unsupported url scheme: {parsed.scheme}")
    if parsed.scheme == "http" and not allow_http:
        allowed = {"localhost", "127.0.0.1", "::1"}
        host = (parsed.hostname or "").lower()
        if host not in allowed:
            raise ValidationError("Non-HTTPS url is not allowed without allow_http=True")
    if "\x00" in url:
        raise ValidationError("Invalid url")
