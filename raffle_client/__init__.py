"""Authenticated client for the raffle backend API."""

from raffle_client.api import ApiClient, ApiConfig, ApiResult, RequestOptions, Session
from raffle_client.session import InMemorySessionStore


__version__ = "0.1.0"

__all__ = [
    "ApiClient",
    "ApiConfig",
    "ApiResult",
    "InMemorySessionStore",
    "RequestOptions",
    "Session",
    "__version__",
]
