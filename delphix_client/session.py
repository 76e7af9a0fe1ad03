"""Session facade - Configuration, login and verb shortcuts for one appliance.

A DelphixSession owns its ClientConfig, the diagnostics holder and the
memoized session cookies, so several independent sessions can coexist in
one process.

Usage:
    config = ClientConfig(server="delphix.example.com", api_user="delphix",
                          api_password="delphix", api_version="1.4.3")
    with DelphixSession(config) as session:
        session.ensure_session()
        response = session.get(session.resource_url("database"))
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from threading import Lock
from typing import Any

from delphix_client.client import Client, ResponseCallback
from delphix_client.models import (
    ApiVersion,
    ClientConfig,
    Diagnostics,
    HttpMethod,
    RequestSnapshot,
    Resource,
    Response,
    ResponseSnapshot,
)

logger = logging.getLogger(__name__)

API_ENDPOINT = "/resources/json/delphix"


class SessionError(Exception):
    """Raised when the session is missing configuration it needs."""


class DelphixSession:
    """Facade over Client for one appliance.

    Configuration is mutated through the setters (or validated attribute
    assignment on .config). Nothing here is synchronized except the session
    bootstrap; single-writer use is assumed.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        client: Client | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            config: Connection settings. Defaults to an empty ClientConfig.
            client: Client to dispatch through. By default one is created
                    from the config's body mode, worker bound and verbosity.
        """
        self.config = config if config is not None else ClientConfig()
        if client is None:
            client = Client(
                body_mode=self.config.body_mode,
                max_workers=self.config.max_workers,
                verbose=self.config.verbose,
            )
        self.client = client
        self._bootstrap: Response | None = None
        self._session: Response | None = None
        self._session_lock = Lock()

    def __enter__(self) -> DelphixSession:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def __repr__(self) -> str:
        return (
            f"<DelphixSession server={self.config.server!r} "
            f"user={self.config.api_user!r} authenticated={self._session is not None}>"
        )

    # --- Configuration ---

    @property
    def diagnostics(self) -> Diagnostics:
        return self.client.diagnostics

    @property
    def last_request(self) -> RequestSnapshot | None:
        return self.client.diagnostics.last_request

    @property
    def last_response(self) -> ResponseSnapshot | None:
        return self.client.diagnostics.last_response

    def set_server(self, server: str) -> None:
        self.config.server = server

    def set_credentials(self, user: str, password: str) -> None:
        self.config.api_user = user
        self.config.api_password = password

    def set_api_version(self, version: str | ApiVersion) -> None:
        """Set the API version from a dotted string ("1.4.3") or ApiVersion."""
        self.config.api_version = version

    def set_timeout(self, seconds: float) -> None:
        self.config.timeout = seconds

    def set_verbose(self, verbose: bool) -> None:
        self.config.verbose = verbose

    def default_header(self, name: str, value: str) -> None:
        """Add a header sent with every subsequent call."""
        self.config.default_headers[name] = value

    def clear_default_headers(self) -> None:
        self.config.default_headers = {}

    # --- URLs ---

    def api_url(self, path: str = "") -> str:
        """Absolute URL for a path on the configured server.

        A bare host is reached over http://; a server that already carries a
        scheme is used as the base unchanged.

        Raises:
            SessionError: If no server is configured.
        """
        server = (self.config.server or "").strip()
        if not server:
            raise SessionError("No server configured. Call set_server() first.")
        if "://" in server:
            base = server.rstrip("/")
        else:
            base = "http://" + server
        return base + path

    def resource_url(self, name: Resource | str) -> str:
        """URL of a resource collection, e.g. resource_url("database").

        Raises:
            ValueError: If name is not a known Resource.
            SessionError: If no server is configured.
        """
        resource = Resource(name)
        return self.api_url(f"{API_ENDPOINT}/{resource.value}")

    # --- Session bootstrap ---

    def login(self, user: str | None = None, password: str | None = None) -> Response:
        """POST a LoginRequest; credentials default to the configured ones."""
        payload = {
            "type": "LoginRequest",
            "username": user if user is not None else self.config.api_user,
            "password": password if password is not None else self.config.api_password,
        }
        return self.post(self.resource_url(Resource.LOGIN), payload)

    def cookies(self) -> dict[str, str]:
        """Cookies from the APISession bootstrap call, fetched once.

        Raises:
            SessionError: If no API version is configured.
        """
        if self._bootstrap is None:
            version = self.config.api_version
            if version is None:
                raise SessionError("No API version configured. Call set_api_version() first.")
            self._bootstrap = self.post(
                self.resource_url(Resource.SESSION),
                {"type": "APISession", "version": version.to_payload()},
            )
            logger.debug(
                "Session bootstrap -> %d, %d cookie(s)",
                self._bootstrap.code,
                len(self._bootstrap.cookies),
            )
        return self._bootstrap.cookies

    def ensure_session(self) -> Response:
        """Bootstrap cookies and log in, at most once per DelphixSession.

        The login Response is memoized whatever its status code; inspect
        .code to see whether authentication succeeded.
        """
        with self._session_lock:
            if self._session is None:
                cookies = self.cookies()
                if cookies:
                    self.default_header("cookie", format_cookie_header(cookies))
                self._session = self.login()
            return self._session

    @property
    def session(self) -> Response | None:
        """Memoized login Response, or None before ensure_session()."""
        return self._session

    # --- Verbs ---

    def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        callback: ResponseCallback | None = None,
    ) -> Response | Future[Response]:
        return self._dispatch(HttpMethod.GET, url, params, callback)

    def post(
        self,
        url: str,
        params: Any = None,
        callback: ResponseCallback | None = None,
    ) -> Response | Future[Response]:
        return self._dispatch(HttpMethod.POST, url, {} if params is None else params, callback)

    def delete(
        self,
        url: str,
        params: Any = None,
        callback: ResponseCallback | None = None,
    ) -> Response | Future[Response]:
        return self._dispatch(HttpMethod.DELETE, url, {} if params is None else params, callback)

    def _dispatch(
        self,
        method: HttpMethod,
        url: str,
        params: Any,
        callback: ResponseCallback | None,
    ) -> Response | Future[Response]:
        return self.client.dispatch(
            method,
            url,
            headers=dict(self.config.default_headers),
            body=params,
            timeout=self.config.timeout,
            callback=callback,
            body_mode=self.config.body_mode,
            verbose=self.config.verbose,
        )


def format_cookie_header(cookies: dict[str, str]) -> str:
    """Render cookies as a Cookie header value: "a=1; b=2"."""
    return "; ".join(f"{name}={value}" for name, value in cookies.items())
