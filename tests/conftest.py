"""Pytest configuration and fixtures for delphix-client tests.

This file provides:
- make_http_response: Real httpx.Response objects for wrapping tests
- RecordingTransport: httpx.MockTransport that records outbound requests
- PortReservation: Race-free port allocation for test servers
- MockServer: Subprocess management for the mock appliance
"""

from __future__ import annotations

import json
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest

from delphix_client.client import Client
from delphix_client.models import ClientConfig
from delphix_client.session import DelphixSession

# Project root for subprocess cwd
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"

BASE_URL = "http://delphix.example.com"


def make_http_response(
    status_code: int = 200,
    body: Any = None,
    text: str | None = None,
    headers: list[tuple[str, str]] | None = None,
    url: str = BASE_URL + "/resources/json/delphix/database",
    method: str = "GET",
) -> httpx.Response:
    """Create an httpx.Response as the transport would return it.

    Pass body for a JSON payload or text for a raw one. The request is
    attached so cookie extraction works.
    """
    content = b""
    if text is not None:
        content = text.encode("utf-8")
    elif body is not None:
        content = json.dumps(body).encode("utf-8")
    return httpx.Response(
        status_code,
        headers=headers or [],
        content=content,
        request=httpx.Request(method, url),
    )


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it handled.

    Usage:
        transport = RecordingTransport(lambda request: httpx.Response(200, json={}))
        client = Client(transport=transport)
        ...
        assert transport.requests[0].method == "GET"
    """

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            request.read()
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)

    def bodies(self) -> list[Any]:
        """Decoded JSON bodies of recorded requests (None when empty)."""
        return [json.loads(r.content) if r.content else None for r in self.requests]


def json_handler(
    status_code: int = 200,
    body: Any = None,
    headers: list[tuple[str, str]] | None = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """Handler that answers every request with the same JSON reply."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code,
            headers=headers or [],
            content=json.dumps(body if body is not None else {}).encode("utf-8"),
        )

    return handler


@pytest.fixture
def recording_transport() -> RecordingTransport:
    """Transport replying 200 {"type": "OKResult"} to everything."""
    return RecordingTransport(json_handler(body={"type": "OKResult"}))


@pytest.fixture
def client(recording_transport: RecordingTransport) -> Generator[Client, None, None]:
    with Client(transport=recording_transport) as c:
        yield c


@pytest.fixture
def session_config() -> ClientConfig:
    return ClientConfig(
        server="delphix.example.com",
        api_user="delphix_admin",
        api_password="secret",
        api_version="1.4.3",
    )


@pytest.fixture
def session(
    session_config: ClientConfig, client: Client
) -> Generator[DelphixSession, None, None]:
    with DelphixSession(session_config, client=client) as s:
        yield s


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    Usage:
        reservation = PortReservation()
        # port is held exclusively until release()
        server = MockServer(reservation)
        server.start()  # calls release() internally, then binds
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except (ConnectionRefusedError, socket.timeout, OSError):
            time.sleep(0.1)
    return False


class MockServer:
    """Manages the mock appliance subprocess for integration tests.

    Runs tests/integration/mock_server.py, a FastAPI app that mimics the
    session, login and resource endpoints of the appliance.
    """

    def __init__(self, port: int | PortReservation) -> None:
        if isinstance(port, PortReservation):
            self._reservation = port
            self.port = port.port
        else:
            self._reservation = None
            self.port = port
        self.host = "127.0.0.1"
        self.server = f"{self.host}:{self.port}"
        self.base_url = f"http://{self.server}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the mock server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        if self._reservation:
            self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"MockServer failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the mock server subprocess with graceful shutdown.

        Uses SIGTERM first, then SIGKILL after 5s if process doesn't exit.
        Safe to call multiple times or if server was never started.
        """
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass  # Unkillable; nothing more to do
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


@pytest.fixture(scope="session")
def mock_appliance() -> Generator[MockServer, None, None]:
    """Mock appliance started once per test session."""
    with MockServer(PortReservation()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
