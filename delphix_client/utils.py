"""Stateless helpers shared by request building and response wrapping."""

from __future__ import annotations

import uuid
from email.utils import formatdate
from threading import Lock
from typing import Any

_request_id: str | None = None
_request_id_lock = Lock()


def utc_httpdate() -> str:
    """Current UTC time as an RFC 7231 HTTP-date, e.g. 'Sun, 06 Nov 1994 08:49:37 GMT'."""
    return formatdate(usegmt=True)


def request_id() -> str:
    """Random identifier generated once and reused for the rest of the process.

    Sent as the Request-ID header so the appliance can correlate every call
    made by this client.
    """
    global _request_id
    if _request_id is None:
        with _request_id_lock:
            if _request_id is None:
                _request_id = str(uuid.uuid4())
    return _request_id


def normalize_keys(value: Any) -> Any:
    """Recursively lower-case mapping keys in a decoded JSON document.

    Lists and tuples are mapped element-wise, scalars pass through. Keys that
    are not strings are kept unchanged.
    """
    if isinstance(value, dict):
        return {_normalize_key(k): normalize_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_keys(item) for item in value]
    return value


def _normalize_key(key: Any) -> Any:
    if isinstance(key, str):
        return key.lower()
    return key
