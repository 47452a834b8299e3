"""HTTP API layer with deadlines, retries and session renewal.

This module provides the client every screen uses to reach the backend:
- Bearer credentials and content type inferred per request
- Per-attempt cancellation deadline
- Fixed-backoff retries for idempotent calls only
- Single-flight token renewal with forced logout on terminal failures
- Metrics collection for observability
"""

from raffle_client.api.builder import build_headers, build_replay, build_request
from raffle_client.api.client import ApiClient
from raffle_client.api.config import ApiConfig
from raffle_client.api.constants import (
    DEFAULT_BACKOFF_MS,
    DEFAULT_TIMEOUT_MS,
    NETWORK_ERROR_MESSAGE,
    RENEWAL_PATH,
    SESSION_EXPIRED_MESSAGE,
)
from raffle_client.api.metrics import ApiMetrics
from raffle_client.api.models import (
    ApiResponse,
    ApiResult,
    ErrorKind,
    MultipartBody,
    RequestDescriptor,
    RequestOptions,
    RetryPolicy,
    Session,
    TransportError,
    TransportErrorClass,
)
from raffle_client.api.redact import redact_headers, redact_payload
from raffle_client.api.transport import DeadlineTransport


__all__ = [
    # Client
    "ApiClient",
    "DeadlineTransport",
    # Builder
    "build_headers",
    "build_request",
    "build_replay",
    # Config
    "ApiConfig",
    # Models
    "ApiResponse",
    "ApiResult",
    "ErrorKind",
    "MultipartBody",
    "RequestDescriptor",
    "RequestOptions",
    "RetryPolicy",
    "Session",
    "TransportError",
    "TransportErrorClass",
    # Constants
    "DEFAULT_BACKOFF_MS",
    "DEFAULT_TIMEOUT_MS",
    "NETWORK_ERROR_MESSAGE",
    "RENEWAL_PATH",
    "SESSION_EXPIRED_MESSAGE",
    # Metrics
    "ApiMetrics",
    # Redaction
    "redact_headers",
    "redact_payload",
]
