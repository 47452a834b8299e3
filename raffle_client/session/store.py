"""In-memory session store."""

from typing import Any

import structlog

from raffle_client.api.models import Session


logger = structlog.get_logger()


class InMemorySessionStore:
    """Holds the current session for the lifetime of the process.

    Implements the ``SessionStore`` protocol. ``remember`` only records
    the caller's preference; durable storage belongs to the host app.
    """

    def __init__(self, session: Session | None = None, remember: bool = False) -> None:
        """Initialize the store.

        Args:
            session: Initial session, e.g. restored by the host app.
            remember: Initial "keep me signed in" preference.
        """
        self._session = session
        self._remember = remember
        self._log = logger.bind(component="session")

    @property
    def remember(self) -> bool:
        """Get the "keep me signed in" preference."""
        return self._remember

    def current(self) -> Session | None:
        """Get the current session."""
        return self._session

    async def persist(
        self,
        access_token: str,
        refresh_token: str | None,
        user: dict[str, Any] | None,
        *,
        remember: bool | None = None,
    ) -> None:
        """Replace the current session.

        Args:
            access_token: New access credential.
            refresh_token: New or carried-over refresh credential.
            user: User profile returned by the backend.
            remember: New preference; None keeps the current one.
        """
        if remember is not None:
            self._remember = remember
        self._session = Session(
            access_token=access_token,
            refresh_token=refresh_token,
            user=user,
        )
        self._log.info("session_persisted", remember=self._remember)

    async def clear(self) -> None:
        """Drop the current session."""
        self._session = None
        self._remember = False
        self._log.info("session_cleared")
