"""Data models for the API client."""

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from raffle_client.api.constants import (
    DEFAULT_BACKOFF_MS,
    DEFAULT_MAX_RETRIES,
    HTTP_STATUS_NO_RESPONSE,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_UNAUTHORIZED,
    IDEMPOTENT_METHODS,
    NETWORK_ERROR_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
)


class Session(BaseModel):
    """Credentials of the signed-in user.

    Owned by the caller; the client reads it on every attempt and only
    ever replaces it (after a refresh) or clears it (forced logout).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    access_token: str | None = None
    refresh_token: str | None = None
    user: dict[str, Any] | None = None

    @property
    def is_authenticated(self) -> bool:
        """Check if an access credential is present."""
        return bool(self.access_token)

    @property
    def can_refresh(self) -> bool:
        """Check if a refresh credential is present."""
        return bool(self.refresh_token)


class MultipartBody(BaseModel):
    """Multipart form payload (e.g. image uploads).

    The JSON content type is never inferred for it; httpx writes the
    multipart boundary header itself.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    data: dict[str, str] = Field(default_factory=dict)
    files: dict[str, Any] = Field(default_factory=dict)


class RequestOptions(BaseModel):
    """Per-call options supplied by UI callers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes | str | MultipartBody | dict[str, Any] | list[Any] | None = None
    timeout_ms: Annotated[int, Field(ge=1)] | None = None

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        """Upper-case the HTTP method."""
        return v.strip().upper()

    @property
    def has_body(self) -> bool:
        """Check if a request body was supplied."""
        return self.body is not None

    @property
    def is_binary_body(self) -> bool:
        """Check if the body is raw bytes or multipart."""
        return isinstance(self.body, bytes | MultipartBody)


class RequestDescriptor(BaseModel):
    """Transport-ready request produced by the request builder.

    ``attempted_refresh`` marks a replay issued after a refresh cycle; a
    descriptor carrying it never triggers another refresh.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: Annotated[str, Field(min_length=1)]
    options: RequestOptions
    headers: dict[str, str]
    attempted_refresh: bool = False

    @property
    def method(self) -> str:
        """HTTP method of the request."""
        return self.options.method

    @property
    def body(self) -> bytes | str | MultipartBody | dict[str, Any] | list[Any] | None:
        """Request body as supplied by the caller."""
        return self.options.body


class TransportErrorClass(str, Enum):
    """Classification of transport failures.

    - TIMEOUT: Deadline expired or the call was cancelled
    - CONNECTION_ERROR: Could not establish connection
    - NETWORK_ERROR: Any other failure before a response arrived
    """

    TIMEOUT = "TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


class TransportError(Exception):
    """No response reached the client.

    Attributes:
        error_class: Classification used by the retry policy.
    """

    def __init__(self, error_class: TransportErrorClass, message: str) -> None:
        super().__init__(message)
        self.error_class = error_class

    @property
    def is_timeout(self) -> bool:
        """Check if the failure was a deadline expiry or cancellation."""
        return self.error_class == TransportErrorClass.TIMEOUT


class ErrorKind(str, Enum):
    """Failure taxonomy reported to the telemetry sink."""

    TRANSPORT = "transport"
    SERVER = "server"
    AUTH_RECOVERABLE = "auth_recoverable"
    AUTH_TERMINAL = "auth_terminal"
    APPLICATION = "application"


class ApiResponse(BaseModel):
    """Summary of the HTTP outcome handed to callers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ok: bool
    status: Annotated[int, Field(ge=0)]
    network_error: bool = False

    @classmethod
    def from_status(cls, status: int) -> "ApiResponse":
        """Build a summary from an HTTP status code."""
        return cls(ok=HTTP_STATUS_OK_MIN <= status < HTTP_STATUS_OK_MAX, status=status)


class ApiResult(BaseModel):
    """Normalized outcome of a call: response summary plus parsed body.

    Every failure is represented here with ``res.ok`` false and a
    human-readable ``data["error"]``; nothing is raised to callers.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    res: ApiResponse
    data: Any = Field(default_factory=dict)

    @classmethod
    def network_failure(cls, message: str = NETWORK_ERROR_MESSAGE) -> "ApiResult":
        """Result for a call that never got a response."""
        return cls(
            res=ApiResponse(ok=False, status=HTTP_STATUS_NO_RESPONSE, network_error=True),
            data={"error": message},
        )

    @classmethod
    def session_expired(cls) -> "ApiResult":
        """Uniform result for a terminal authentication failure."""
        return cls(
            res=ApiResponse(ok=False, status=HTTP_STATUS_UNAUTHORIZED),
            data={"error": SESSION_EXPIRED_MESSAGE},
        )

    @property
    def ok(self) -> bool:
        """Shortcut for ``res.ok``."""
        return self.res.ok

    @property
    def status(self) -> int:
        """Shortcut for ``res.status``."""
        return self.res.status

    @property
    def error_message(self) -> str | None:
        """Server or client provided error message, if any."""
        if not isinstance(self.data, dict):
            return None
        message = self.data.get("error") or self.data.get("message")
        return str(message) if message else None

    @property
    def is_session_expired(self) -> bool:
        """Check if this is the uniform session-expired result."""
        return (
            self.res.status == HTTP_STATUS_UNAUTHORIZED
            and self.error_message == SESSION_EXPIRED_MESSAGE
        )

    def raise_for_session(self) -> "ApiResult":
        """Raise ``SessionExpiredError`` for a session-expired result.

        Returns:
            The result itself, for chaining.

        Raises:
            SessionExpiredError: If the session was invalidated.
        """
        if self.is_session_expired:
            from raffle_client.auth.errors import SessionExpiredError

            raise SessionExpiredError(SESSION_EXPIRED_MESSAGE)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire-shaped mapping used by UI callers."""
        res: dict[str, Any] = {"ok": self.res.ok, "status": self.res.status}
        if self.res.network_error:
            res["networkError"] = True
        return {"res": res, "data": self.data}


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Only idempotent methods are retried, on 5xx responses and on
    deadline expiry. Delays follow a fixed schedule rather than an
    exponential curve; the last step is reused if the schedule is
    shorter than ``max_retries``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=0, le=10)] = DEFAULT_MAX_RETRIES
    backoff_ms: tuple[int, ...] = DEFAULT_BACKOFF_MS
    idempotent_methods: frozenset[str] = IDEMPOTENT_METHODS

    @field_validator("backoff_ms")
    @classmethod
    def validate_backoff(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        """Ensure the schedule is non-empty and non-negative."""
        if not v:
            msg = "backoff_ms must contain at least one delay"
            raise ValueError(msg)
        if any(delay < 0 for delay in v):
            msg = "backoff_ms delays must be non-negative"
            raise ValueError(msg)
        return v

    def is_idempotent(self, method: str) -> bool:
        """Check if a method is safe to repeat."""
        return method.upper() in self.idempotent_methods

    def max_retries_for(self, method: str) -> int:
        """Get the retry budget for a method.

        Args:
            method: HTTP method.

        Returns:
            ``max_retries`` for idempotent methods, 0 otherwise.
        """
        return self.max_retries if self.is_idempotent(method) else 0

    def should_retry_status(self, status: int, method: str, attempt: int) -> bool:
        """Determine if a response should be retried.

        Args:
            status: HTTP status code received.
            method: HTTP method.
            attempt: Current attempt number (0-indexed).

        Returns:
            True for a 5xx on an idempotent method with budget left.
        """
        if attempt >= self.max_retries_for(method):
            return False
        return status >= HTTP_STATUS_SERVER_ERROR_MIN

    def should_retry_error(
        self, error: TransportError, method: str, attempt: int
    ) -> bool:
        """Determine if a transport error should be retried.

        Args:
            error: The transport failure.
            method: HTTP method.
            attempt: Current attempt number (0-indexed).

        Returns:
            True for a timeout on an idempotent method with budget left.
        """
        if attempt >= self.max_retries_for(method):
            return False
        return error.is_timeout

    def get_delay_ms(self, attempt: int) -> int:
        """Get the delay before the next attempt.

        Args:
            attempt: Number of the attempt that just failed (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        index = min(attempt, len(self.backoff_ms) - 1)
        return self.backoff_ms[index]
