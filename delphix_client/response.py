"""Response - Wraps httpx replies into normalized Response objects.

Every reply is data, whatever its status code. The body is decoded as JSON
when possible; a decode failure leaves body equal to the raw text.
"""

from __future__ import annotations

import json
from http.cookies import CookieError, SimpleCookie
from typing import Any

import httpx

from delphix_client.models import BodyMode, Diagnostics, Response, ResponseSnapshot
from delphix_client.utils import normalize_keys


def wrap_response(
    raw: httpx.Response,
    body_mode: BodyMode = BodyMode.JSON,
    diagnostics: Diagnostics | None = None,
) -> Response:
    """Convert an httpx Response to a Response.

    Args:
        raw: The transport reply (any status code).
        body_mode: BodyMode.RAW lower-cases keys of the decoded body.
        diagnostics: Optional holder that receives a ResponseSnapshot.

    Returns:
        Response model instance.
    """
    headers = _collect_headers(raw)
    cookies = _collect_cookies(raw)
    cookie = raw.headers.get("set-cookie")
    raw_body = raw.text
    description = raw.reason_phrase

    # The snapshot decodes on its own so its outcome never leaks into the
    # instance body.
    if diagnostics is not None:
        diagnostics.last_response = ResponseSnapshot(
            code=raw.status_code,
            headers=headers,
            body=_decode(raw_body, body_mode),
            cookies=cookies,
            cookie=cookie,
            description=description,
        )

    return Response(
        code=raw.status_code,
        headers=headers,
        raw_body=raw_body,
        body=_decode(raw_body, body_mode),
        cookies=cookies,
        cookie=cookie,
        description=description,
    )


def _decode(raw_body: str, body_mode: BodyMode) -> Any:
    """Decode JSON, or hand back raw_body unchanged when it is not JSON."""
    try:
        decoded = json.loads(raw_body)
    except ValueError:
        return raw_body
    if body_mode is BodyMode.RAW:
        return normalize_keys(decoded)
    return decoded


def _collect_headers(raw: httpx.Response) -> dict[str, list[str]]:
    """Headers with lowercase keys and list values, in arrival order."""
    headers: dict[str, list[str]] = {}
    for key, value in raw.headers.multi_items():
        headers.setdefault(key.lower(), []).append(value)
    return headers


def _collect_cookies(raw: httpx.Response) -> dict[str, str]:
    """Cookie name -> value from every Set-Cookie header, later ones winning.

    Parsed from the headers so a reply with no request attached still works.
    """
    cookies: dict[str, str] = {}
    for header in raw.headers.get_list("set-cookie"):
        parsed = SimpleCookie()
        try:
            parsed.load(header)
        except CookieError:
            continue
        for name, morsel in parsed.items():
            cookies[name] = morsel.value
    return cookies
