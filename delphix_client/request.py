"""Request - Builds validated outbound request descriptors.

GET parameters are folded into the query string; POST and DELETE keep the
body for JSON encoding at send time. Every request is stamped with Date and
Request-ID headers before the caller's headers are overlaid.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, urlencode

from delphix_client.models import Diagnostics, HttpMethod, Request, RequestSnapshot
from delphix_client.utils import request_id, utc_httpdate


class InvalidURLError(ValueError):
    """Raised when a request URL does not match the absolute-URI grammar."""


# RFC 3986 absolute-URI: scheme ":" followed by URI characters and
# percent escapes only.
_ABSOLUTE_URI = re.compile(
    r"^[A-Za-z][A-Za-z0-9+.\-]*:"
    r"(?:[A-Za-z0-9\-._~:/?#\[\]@!$&'()*+,;=]|%[0-9A-Fa-f]{2})*$"
)
_WHITESPACE = re.compile(r"\s+")

# Snapshot bodies at or below this length ("{}", "[]", '""') carry nothing.
_TRIVIAL_BODY_LENGTH = 2


def build_request(
    method: HttpMethod | str,
    url: str,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    diagnostics: Diagnostics | None = None,
) -> Request:
    """Build an immutable Request.

    Args:
        method: GET, POST or DELETE (case-insensitive).
        url: Absolute URL. Whitespace is percent-encoded, not rejected.
        headers: Caller headers. Keys are lower-cased and override defaults.
        body: For GET, a mapping of query parameters; otherwise the body.
        diagnostics: Optional holder that receives a RequestSnapshot.

    Returns:
        The validated Request.

    Raises:
        InvalidURLError: If the final URL is not an absolute URI.
        ValueError: If method is not a supported verb.
    """
    verb = _coerce_method(method)

    request_body: Any = None
    if verb is HttpMethod.GET:
        if isinstance(body, Mapping) and len(body) > 0:
            url += "&" if "?" in url else "?"
            url += encode_query(body)
    else:
        request_body = body

    final_url = _validate_url(url)

    merged: dict[str, str] = {"Date": utc_httpdate(), "Request-ID": request_id()}
    for key, value in (headers or {}).items():
        name = str(key).lower()
        # Caller value replaces a default of any spelling.
        for default in [k for k in merged if k.lower() == name]:
            del merged[default]
        merged[name] = str(value)

    request = Request(method=verb, url=final_url, headers=merged, body=request_body)

    if diagnostics is not None:
        diagnostics.last_request = RequestSnapshot(
            method=verb,
            url=final_url,
            headers=dict(merged),
            body=_snapshot_body(request_body),
        )

    return request


def encode_query(params: Mapping[str, Any]) -> str:
    """Percent-encode a parameter mapping as a query string.

    Spaces become %20, booleans are rendered as true/false, None as an empty
    value, and list or tuple values as repeated keys. Nested mappings use
    bracketed keys: {"a": {"b": 1}} encodes as a%5Bb%5D=1 (a[b]=1).
    """
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        _add_pairs(pairs, str(key), value)
    return urlencode(pairs, safe="", quote_via=quote)


def _add_pairs(pairs: list[tuple[str, str]], key: str, value: Any) -> None:
    if isinstance(value, Mapping):
        for sub_key, sub_value in value.items():
            _add_pairs(pairs, f"{key}[{sub_key}]", sub_value)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _add_pairs(pairs, key, item)
    else:
        pairs.append((key, _query_value(value)))


def _query_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _coerce_method(method: HttpMethod | str) -> HttpMethod:
    if isinstance(method, HttpMethod):
        return method
    try:
        return HttpMethod(str(method).upper())
    except ValueError:
        allowed = ", ".join(m.value for m in HttpMethod)
        raise ValueError(f"Unsupported method '{method}'. Expected one of: {allowed}") from None


def _validate_url(url: str) -> str:
    """Percent-encode whitespace, then check the absolute-URI grammar."""
    encoded = _WHITESPACE.sub("%20", url) if url else url
    if not encoded or not _ABSOLUTE_URI.match(encoded):
        raise InvalidURLError(f"Invalid URL: {url}")
    return encoded


def _snapshot_body(body: Any) -> Any:
    """Decoded body for the diagnostic snapshot, or None.

    JSON strings longer than a trivial placeholder are decoded; a decode
    failure only drops the body from the snapshot.
    """
    if isinstance(body, (str, bytes, bytearray)):
        if len(body) <= _TRIVIAL_BODY_LENGTH:
            return None
        try:
            return json.loads(body)
        except ValueError:
            return None
    if isinstance(body, (Mapping, list, tuple)):
        return body if len(body) > 0 else None
    return body
