"""Credentials that authenticate requests right before they hit the wire."""

from __future__ import annotations

import abc
import base64
import binascii
import hashlib
import hmac
import os
from email.utils import formatdate
from urllib.parse import parse_qsl

from .exceptions import ValidationError
from .http import Request, Response
from .pipeline import Factory, Policy, PolicyOptions

ACCOUNT_NAME_ENV_VAR = "AZQUEUE_ACCOUNT_NAME"
ACCOUNT_KEY_ENV_VAR = "AZQUEUE_ACCOUNT_KEY"

_STANDARD_SIGNED_HEADERS = (
    "Content-Encoding",
    "Content-Language",
    "Content-Length",
    "Content-MD5",
    "Content-Type",
    "Date",
    "If-Modified-Since",
    "If-Match",
    "If-None-Match",
    "If-Unmodified-Since",
    "Range",
)


class Credential(Factory):
    """A factory whose policy authenticates each outgoing request."""

    @abc.abstractmethod
    def sign(self, request: Request) -> Request:
        ...

    def create(self, next_policy: Policy, options: PolicyOptions) -> Policy:
        return _CredentialPolicy(next_policy, self)


class _CredentialPolicy(Policy):
    def __init__(self, next_policy: Policy, credential: Credential) -> None:
        self._next = next_policy
        self._credential = credential

    async def send(self, request: Request) -> Response:
        return await self._next.send(self._credential.sign(request))


class AnonymousCredential(Credential):
    """For public queues or URLs that already carry a SAS token."""

    def sign(self, request: Request) -> Request:
        return request


class SharedKeyCredential(Credential):
    """Signs requests with a storage account name and base64 account key."""

    def __init__(self, account_name: str, account_key: str) -> None:
        if not account_name:
            raise ValidationError("account_name is required")
        self._account_name = account_name
        self._key = _decode_account_key(account_key)

    @classmethod
    def from_env(
        cls,
        *,
        name_env_var: str = ACCOUNT_NAME_ENV_VAR,
        key_env_var: str = ACCOUNT_KEY_ENV_VAR,
    ) -> "SharedKeyCredential":
        account_name = os.getenv(name_env_var)
        account_key = os.getenv(key_env_var)
        if not account_name or not account_key:
            raise ValidationError(f"{name_env_var} and {key_env_var} must both be set")
        return cls(account_name, account_key)

    @property
    def account_name(self) -> str:
        return self._account_name

    def set_account_key(self, account_key: str) -> None:
        """Replace the key, e.g. after a key rotation; later requests use the new key."""
        self._key = _decode_account_key(account_key)

    def compute_hmac_sha256(self, message: str) -> str:
        digest = hmac.new(self._key, message.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def sign(self, request: Request) -> Request:
        request.headers["x-ms-date"] = formatdate(usegmt=True)
        string_to_sign = self.build_string_to_sign(request)
        signature = self.compute_hmac_sha256(string_to_sign)
        request.headers["Authorization"] = f"SharedKey {self._account_name}:{signature}"
        return request

    def build_string_to_sign(self, request: Request) -> str:
        headers = request.headers
        values = [request.method]
        for name in _STANDARD_SIGNED_HEADERS:
            if name == "Content-Length":
                value = headers.get(name) or _content_length(request)
                values.append("" if value == "0" else value)
            elif name == "Date" and "x-ms-date" in headers:
                values.append("")
            else:
                values.append(headers.get(name, ""))
        values.append(_canonicalized_headers(request))
        values.append(self._canonicalized_resource(request))
        return "\n".join(values)

    def _canonicalized_resource(self, request: Request) -> str:
        path = request.url.raw_path.split(b"?", 1)[0].decode("ascii") or "/"
        resource = f"/{self._account_name}{path}"
        params: dict[str, list[str]] = {}
        query = request.url.query.decode("ascii")
        for key, value in parse_qsl(query, keep_blank_values=True):
            params.setdefault(key.lower(), []).append(value)
        for key in sorted(params):
            resource += f"\n{key}:{','.join(sorted(params[key]))}"
        return resource


def _decode_account_key(account_key: str) -> bytes:
    try:
        return base64.b64decode(account_key, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise ValidationError("account_key must be base64 encoded", cause=exc) from exc


def _content_length(request: Request) -> str:
    length = request.body_length()
    return str(length) if length else ""


def _canonicalized_headers(request: Request) -> str:
    ms_headers: dict[str, str] = {}
    for key, value in request.headers.multi_items():
        key = key.lower()
        if key.startswith("x-ms-"):
            value = value.strip()
            ms_headers[key] = f"{ms_headers[key]},{value}" if key in ms_headers else value
    return "\n".join(f"{key}:{ms_headers[key]}" for key in sorted(ms_headers))
