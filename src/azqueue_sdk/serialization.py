"""XML bodies for the queue operations this SDK supports."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from .exceptions import ValidationError

_MESSAGE_FIELDS = {
    "MessageId": "message_id",
    "InsertionTime": "insertion_time",
    "ExpirationTime": "expiration_time",
    "PopReceipt": "pop_receipt",
    "TimeNextVisible": "time_next_visible",
    "DequeueCount": "dequeue_count",
    "MessageText": "text",
}


def message_body(text: str) -> bytes:
    root = ET.Element("QueueMessage")
    ET.SubElement(root, "MessageText").text = text
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def _parse(content: bytes) -> ET.Element:
    try:
        return ET.fromstring(content)
    except ET.ParseError as exc:
        raise ValidationError("service returned malformed XML", body=content, cause=exc) from exc


def parse_message_list(content: bytes) -> list[dict[str, Any]]:
    """Parse a ``QueueMessagesList`` body into plain dicts keyed by model field names."""
    if not content.strip():
        return []
    messages: list[dict[str, Any]] = []
    for node in _parse(content).findall("QueueMessage"):
        message: dict[str, Any] = {}
        for child in node:
            field = _MESSAGE_FIELDS.get(child.tag)
            if field is not None:
                message[field] = child.text or ""
        messages.append(message)
    return messages


def parse_queue_list(content: bytes) -> dict[str, Any]:
    """Parse an ``EnumerationResults`` body from a list-queues call."""
    root = _parse(content)
    max_results = root.findtext("MaxResults")
    queues = []
    for node in root.iterfind("Queues/Queue"):
        metadata_node = node.find("Metadata")
        metadata = {}
        if metadata_node is not None:
            metadata = {child.tag: child.text or "" for child in metadata_node}
        queues.append({"name": node.findtext("Name", default=""), "metadata": metadata})
    return {
        "service_endpoint": root.get("ServiceEndpoint"),
        "prefix": root.findtext("Prefix") or None,
        "marker": root.findtext("Marker") or None,
        "max_results": int(max_results) if max_results else None,
        "queues": queues,
        "next_marker": root.findtext("NextMarker") or None,
    }


def parse_error(content: bytes) -> tuple[str | None, str | None]:
    """Return ``(code, message)`` from a service error body, tolerating junk."""
    if not content.strip():
        return None, None
    try:
        root = ET.fromstring(content)
    except ET.ParseError:
        return None, None
    return root.findtext("Code"), root.findtext("Message")


_ACCESS_POLICY_FIELDS = {"Start": "start", "Expiry": "expiry", "Permission": "permission"}


def _format_iso8601(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def signed_identifiers_body(identifiers: Iterable[Mapping[str, Any]]) -> bytes:
    """Build a ``SignedIdentifiers`` body; naive datetimes are taken as UTC."""
    root = ET.Element("SignedIdentifiers")
    for identifier in identifiers:
        node = ET.SubElement(root, "SignedIdentifier")
        ET.SubElement(node, "Id").text = identifier["id"]
        policy = identifier.get("access_policy") or {}
        policy_node = ET.SubElement(node, "AccessPolicy")
        for tag, field in _ACCESS_POLICY_FIELDS.items():
            value = policy.get(field)
            if value is None:
                continue
            ET.SubElement(policy_node, tag).text = _format_iso8601(value) if isinstance(value, datetime) else str(value)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def parse_signed_identifiers(content: bytes) -> list[dict[str, Any]]:
    if not content.strip():
        return []
    identifiers: list[dict[str, Any]] = []
    for node in _parse(content).iterfind("SignedIdentifier"):
        policy: dict[str, Any] = {}
        policy_node = node.find("AccessPolicy")
        if policy_node is not None:
            for tag, field in _ACCESS_POLICY_FIELDS.items():
                text = policy_node.findtext(tag)
                if text:
                    policy[field] = text
        identifiers.append({"id": node.findtext("Id", default=""), "access_policy": policy})
    return identifiers
