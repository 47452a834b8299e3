"""Protocol interfaces for collaborators of the API client."""

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable


if TYPE_CHECKING:
    from raffle_client.api.models import Session


@runtime_checkable
class SessionSink(Protocol):
    """Persists or clears credentials on behalf of the client.

    The client decides when a session is renewed or invalidated; the
    sink owns where credentials live.
    """

    async def persist(
        self,
        access_token: str,
        refresh_token: str | None,
        user: dict[str, Any] | None,
        *,
        remember: bool | None = None,
    ) -> None:
        """Store a renewed or freshly issued session.

        Args:
            access_token: New access credential.
            refresh_token: New or carried-over refresh credential.
            user: User profile returned by the backend.
            remember: Whether to keep credentials across restarts;
                None keeps the sink's current preference.
        """
        ...

    async def clear(self) -> None:
        """Drop all credentials (forced logout)."""
        ...


@runtime_checkable
class ErrorReporter(Protocol):
    """Receives classified failures for observability.

    Implementations may fail; callers treat reporting as best-effort.
    """

    def report(self, error: BaseException | str, context: dict[str, Any]) -> None:
        """Report a failure.

        Args:
            error: Exception or message describing the failure.
            context: ``path``, ``method`` and ``kind`` of the failed call.
        """
        ...


@runtime_checkable
class SessionStore(SessionSink, Protocol):
    """Session sink that also exposes the current session to the client."""

    def current(self) -> "Session | None":
        """Get the session to attach to the next request."""
        ...
