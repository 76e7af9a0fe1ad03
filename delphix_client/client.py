"""Client - Sends requests to the appliance and wraps the replies.

The Client builds a Request, adds the fixed protocol headers, performs the
call through httpx and wraps whatever comes back into a Response. Calls run
synchronously, or on a bounded worker pool when a callback is supplied.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from http.cookiejar import CookieJar, DefaultCookiePolicy
from threading import Lock
from typing import Any, Callable

import httpx

from delphix_client.models import (
    CLIENT_VERSION,
    BodyMode,
    Diagnostics,
    HttpMethod,
    Request,
    Response,
)
from delphix_client.request import build_request
from delphix_client.response import wrap_response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_WORKERS = 8

HTTP_HEADERS: dict[str, str] = {
    "Content-Type": "application/json; charset=UTF-8",
    "Accept": "application/json",
    "User-Agent": f"delphix-client/{CLIENT_VERSION}",
}

ResponseCallback = Callable[[Response], Any]


class ClientError(Exception):
    """Base class for client errors."""


class RequestTimeoutError(ClientError):
    """Raised when the appliance does not answer within the timeout."""


class TransportError(ClientError):
    """Raised when a call fails without any reply to wrap (connection, DNS, protocol)."""


def _refusing_jar() -> CookieJar:
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


class Client:
    """Dispatches requests to the appliance and returns Responses.

    Usage:
        with Client() as client:
            response = client.dispatch("GET", url, {}, {"type": "Database"})

    Asynchronous use:
        future = client.dispatch("GET", url, {}, None, callback=handle)
        response = future.result()  # optional; handle() also receives it
    """

    def __init__(
        self,
        body_mode: BodyMode = BodyMode.JSON,
        diagnostics: Diagnostics | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        verbose: bool = False,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            body_mode: Request/response body handling (see BodyMode).
            diagnostics: Holder for last request/response snapshots.
            max_workers: Upper bound on concurrently running async calls.
            verbose: Log every call at INFO instead of DEBUG.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        self.body_mode = body_mode
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.verbose = verbose
        self._max_workers = max_workers
        # The session cookie travels only in the caller headers; the httpx jar
        # must never store or replay Set-Cookie values.
        self._http = httpx.Client(transport=transport, cookies=_refusing_jar())
        self._closed = False
        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = Lock()

    def __enter__(self) -> Client:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Wait for pending async calls, then close the HTTP client."""
        self._closed = True
        try:
            if self._pool is not None:
                self._pool.shutdown(wait=True)
                self._pool = None
        finally:
            self._http.close()

    def dispatch(
        self,
        method: HttpMethod | str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        timeout: float = DEFAULT_TIMEOUT,
        callback: ResponseCallback | None = None,
        body_mode: BodyMode | None = None,
        verbose: bool | None = None,
    ) -> Response | Future[Response]:
        """Send one request.

        Args:
            method: GET, POST or DELETE.
            url: Absolute URL.
            headers: Caller headers (usually the session default headers).
            body: Query parameters for GET, JSON body otherwise.
            timeout: Timeout in seconds.
            callback: When given, the call runs on a worker thread and
                      callback(response) is invoked once it completes.
            body_mode: Body handling for this call; defaults to the client's.
            verbose: Log level choice for this call; defaults to the client's.

        Returns:
            The Response, or a Future resolving to it when callback is given.

        Raises:
            InvalidURLError: If url is malformed (raised before any work is
                             scheduled, even on the async path).
            RequestTimeoutError: On timeout (sync path; async stores it on
                                 the Future).
            ClientError: If the client has been closed.
            TransportError: If no reply was received at all.
        """
        if self._closed:
            raise ClientError("Client is closed")
        request = build_request(method, url, headers, body, diagnostics=self.diagnostics)
        mode = self.body_mode if body_mode is None else body_mode
        loud = self.verbose if verbose is None else verbose
        if callback is None:
            return self.execute(request, timeout, mode, loud)
        return self._executor().submit(self._run_async, request, timeout, mode, loud, callback)

    def execute(
        self,
        request: Request,
        timeout: float = DEFAULT_TIMEOUT,
        body_mode: BodyMode | None = None,
        verbose: bool | None = None,
    ) -> Response:
        """Send an already built Request and wrap the reply.

        Raises:
            RequestTimeoutError: If the call times out.
            TransportError: If the call fails without a reply.
        """
        mode = self.body_mode if body_mode is None else body_mode
        loud = self.verbose if verbose is None else verbose
        request = request.with_headers(HTTP_HEADERS)
        content = self._encode_body(request, mode)

        try:
            raw = self._http.request(
                method=request.method.value,
                url=request.url,
                headers=request.headers,
                content=content,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"Request timeout after {timeout}s: {request.method.value} {request.url}"
            ) from e
        except httpx.RequestError as e:
            raise TransportError(
                f"Request failed: {request.method.value} {request.url}: {e}"
            ) from e
        except UnicodeEncodeError as e:
            # Non-ASCII in a header value; HTTP requires ASCII there.
            raise TransportError(
                f"Encoding error: non-ASCII character {e.object[e.start:e.end]!r} in request headers"
            ) from e

        response = wrap_response(raw, mode, diagnostics=self.diagnostics)
        logger.log(
            logging.INFO if loud else logging.DEBUG,
            "%s %s -> %d %s",
            request.method.value,
            request.url,
            response.code,
            response.description,
        )
        return response

    def _encode_body(self, request: Request, body_mode: BodyMode) -> bytes | None:
        """Serialize the request body for the wire.

        GET and None bodies send no content. RAW mode passes str/bytes
        through untouched; everything else is compact JSON.
        """
        if request.method is HttpMethod.GET or request.body is None:
            return None
        body = request.body
        if body_mode is BodyMode.RAW:
            if isinstance(body, (bytes, bytearray)):
                return bytes(body)
            if isinstance(body, str):
                return body.encode("utf-8")
        return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    def _executor(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="delphix-client",
                )
            return self._pool

    def _run_async(
        self,
        request: Request,
        timeout: float,
        body_mode: BodyMode,
        verbose: bool,
        callback: ResponseCallback,
    ) -> Response:
        try:
            response = self.execute(request, timeout, body_mode, verbose)
            callback(response)
        except Exception:
            logger.exception("Async %s %s failed", request.method.value, request.url)
            raise
        return response
