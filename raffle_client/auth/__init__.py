"""Session renewal and invalidation."""

from raffle_client.auth.classify import (
    TokenFailureKind,
    classify_error_message,
    classify_token_failure,
)
from raffle_client.auth.coordinator import RefreshCoordinator
from raffle_client.auth.errors import RefreshFailedError, SessionExpiredError
from raffle_client.auth.protocols import ErrorReporter, SessionSink, SessionStore
from raffle_client.auth.state_machine import (
    RefreshState,
    RefreshStateError,
    RefreshStateMachine,
)


__all__ = [
    "ErrorReporter",
    "RefreshCoordinator",
    "RefreshFailedError",
    "RefreshState",
    "RefreshStateError",
    "RefreshStateMachine",
    "SessionExpiredError",
    "SessionSink",
    "SessionStore",
    "TokenFailureKind",
    "classify_error_message",
    "classify_token_failure",
]
