"""Domain-specific error types for session handling."""


class RefreshFailedError(Exception):
    """Token renewal failed; the session has been cleared.

    Attributes:
        status_code: HTTP status of the renewal response, 0 if none.
    """

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionExpiredError(Exception):
    """The session was invalidated and the user must sign in again."""
