"""Internal data models for delphix-client.

All models use Pydantic v2. Request and Response are frozen once built;
ClientConfig validates on assignment so setters cannot store bad values.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


CLIENT_VERSION = "0.4.2"


# =============================================================================
# Enumerations
# =============================================================================


class HttpMethod(str, Enum):
    """HTTP verbs the appliance API is called with."""

    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"


class BodyMode(str, Enum):
    """How request bodies are encoded and response bodies are decoded."""

    JSON = "json"  # Encode params as JSON, decode replies as-is
    RAW = "raw"  # Send str/bytes bodies verbatim, normalize decoded reply keys


class Resource(str, Enum):
    """API resource collections under /resources/json/delphix/."""

    ALERT = "alert"
    CONTAINER = "container"
    DATABASE = "database"
    ENVIRONMENT = "environment"
    GROUP = "group"
    HOST = "host"
    JOB = "job"
    LOGIN = "login"
    POLICY = "policy"
    REPOSITORY = "repository"
    SESSION = "session"
    SNAPSHOT = "snapshot"
    SOURCE = "source"
    SOURCECONFIG = "sourceconfig"
    TIMEFLOW = "timeflow"
    USER = "user"


# =============================================================================
# Configuration Models
# =============================================================================


class ApiVersion(BaseModel):
    """API version triple sent with the APISession bootstrap call."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    major: int = Field(ge=0, description="Major version")
    minor: int = Field(default=0, ge=0, description="Minor version")
    micro: int = Field(default=0, ge=0, description="Micro version")
    type: Literal["APIVersion"] = Field(default="APIVersion", description="Wire type tag")

    @classmethod
    def parse(cls, text: str) -> ApiVersion:
        """Parse a dotted version string such as "1.4.3".

        Missing trailing components default to 0, so "1.4" is 1.4.0.

        Raises:
            ValueError: If the string has more than three components or a
                component is not a non-negative integer.
        """
        parts = [p.strip() for p in str(text).strip().split(".")]
        if not parts or len(parts) > 3 or any(not p.isdigit() for p in parts):
            raise ValueError(f"Invalid API version '{text}'. Expected MAJOR[.MINOR[.MICRO]]")
        numbers = [int(p) for p in parts] + [0] * (3 - len(parts))
        return cls(major=numbers[0], minor=numbers[1], micro=numbers[2])

    def to_payload(self) -> dict[str, Any]:
        """Wire form: {"major", "minor", "micro", "type": "APIVersion"}."""
        return self.model_dump()

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.micro}"


class ClientConfig(BaseModel):
    """Connection settings for one appliance session.

    Mutable through attribute assignment; every assignment is validated.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    server: str | None = Field(default=None, description="Appliance host, or a base URL with scheme")
    api_user: str | None = Field(default=None, description="Login user name")
    api_password: str | None = Field(default=None, description="Login password")
    api_version: ApiVersion | None = Field(default=None, description="API version for the session bootstrap")
    timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")
    default_headers: dict[str, str] = Field(
        default_factory=dict, description="Headers merged into every call"
    )
    verbose: bool = Field(default=False, description="Log each call at INFO instead of DEBUG")
    body_mode: BodyMode = Field(default=BodyMode.JSON, description="Body encoding mode")
    max_workers: int = Field(default=8, gt=0, description="Worker bound for async calls")

    @field_validator("api_version", mode="before")
    @classmethod
    def parse_version_string(cls, v: Any) -> Any:
        if isinstance(v, (str, int, float)) and not isinstance(v, bool):
            return ApiVersion.parse(str(v))
        return v


# =============================================================================
# Core HTTP Models
# =============================================================================


class Request(BaseModel):
    """One outbound request, validated and ready to send.

    GET requests never carry a body; their parameters are already folded
    into the URL query string.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: HttpMethod = Field(description="HTTP method")
    url: str = Field(description="Absolute URL, query string included")
    headers: dict[str, str] = Field(default_factory=dict, description="Outbound headers")
    body: Any = Field(default=None, description="JSON-encodable body (None for GET)")

    def with_headers(self, extra: dict[str, str]) -> Request:
        """Return a copy with extra headers overlaid.

        Matching is case-insensitive and extra wins, so the result never
        holds two spellings of one header.
        """
        overridden = {k.lower() for k in extra}
        merged = {k: v for k, v in self.headers.items() if k.lower() not in overridden}
        merged.update(extra)
        return self.model_copy(update={"headers": merged})


class Response(BaseModel):
    """One reply from the appliance, whatever its status code.

    Header keys are lowercase. Header values are arrays for repeated headers.
    body is the decoded JSON document, or raw_body when decoding fails.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    code: int = Field(description="HTTP status code")
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Response headers (lowercase keys, array values)"
    )
    raw_body: str = Field(default="", description="Undecoded response text")
    body: Any = Field(default=None, description="Decoded JSON, or raw_body on failure")
    cookies: dict[str, str] = Field(default_factory=dict, description="Cookies set by the reply")
    cookie: str | None = Field(default=None, description="Raw Set-Cookie header, if any")
    description: str = Field(default="", description="Reason phrase")

    @property
    def ok(self) -> bool:
        return 200 <= self.code < 300

    def header(self, name: str) -> str | None:
        """First value of a header, looked up case-insensitively."""
        values = self.headers.get(name.lower())
        return values[0] if values else None


# =============================================================================
# Diagnostic Snapshots
# =============================================================================


class RequestSnapshot(BaseModel):
    """Debug view of the most recently built request."""

    model_config = ConfigDict(extra="forbid")

    method: HttpMethod
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None


class ResponseSnapshot(BaseModel):
    """Debug view of the most recently wrapped response."""

    model_config = ConfigDict(extra="forbid")

    code: int
    headers: dict[str, list[str]] = Field(default_factory=dict)
    body: Any = None
    cookies: dict[str, str] = Field(default_factory=dict)
    cookie: str | None = None
    description: str = ""


class Diagnostics:
    """Holder for the last request/response snapshots.

    Overwritten on every call. Not synchronized: under concurrent dispatch
    the slots reflect whichever call wrote last.
    """

    def __init__(self) -> None:
        self.last_request: RequestSnapshot | None = None
        self.last_response: ResponseSnapshot | None = None

    def clear(self) -> None:
        self.last_request = None
        self.last_response = None
