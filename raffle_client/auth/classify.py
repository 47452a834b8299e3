"""Classification of authentication failures.

The backend may tag auth errors with a machine-readable ``code``. Older
deployments only send a free-text message, so a phrase heuristic is kept
as a compatibility fallback in ``classify_error_message``.
"""

from enum import Enum
from typing import Any

from raffle_client.api.constants import HTTP_STATUS_FORBIDDEN, HTTP_STATUS_UNAUTHORIZED


class TokenFailureKind(str, Enum):
    """What an auth failure means for the session.

    - STALE: Access token outdated; a refresh may recover it
    - INVALID: Token malformed or rejected by the server; terminal
    - EXPIRED: Token permanently expired; terminal
    - NONE: Not a token failure
    """

    STALE = "STALE"
    INVALID = "INVALID"
    EXPIRED = "EXPIRED"
    NONE = "NONE"

    @property
    def is_terminal(self) -> bool:
        """Check if the session cannot be recovered."""
        return self in (TokenFailureKind.INVALID, TokenFailureKind.EXPIRED)


_SERVER_CODES: dict[str, TokenFailureKind] = {
    "token_invalid": TokenFailureKind.INVALID,
    "token_expired": TokenFailureKind.EXPIRED,
    "token_stale": TokenFailureKind.STALE,
}

_INVALID_PHRASES = (
    "token inválido",
    "token invalido",
    "invalid token",
    "jwt malformed",
    "invalid signature",
)

_EXPIRED_PHRASES = (
    "token expirado",
    "expired token",
    "jwt expired",
)


def classify_error_message(message: str | None) -> TokenFailureKind:
    """Classify a free-text server error message.

    Args:
        message: Error text from the response body.

    Returns:
        INVALID or EXPIRED on a phrase match, NONE otherwise.
    """
    if not message:
        return TokenFailureKind.NONE

    text = message.lower()
    if any(phrase in text for phrase in _INVALID_PHRASES):
        return TokenFailureKind.INVALID
    if any(phrase in text for phrase in _EXPIRED_PHRASES):
        return TokenFailureKind.EXPIRED
    return TokenFailureKind.NONE


def classify_token_failure(status: int, body: Any) -> TokenFailureKind:
    """Classify a 401/403 response.

    A server ``code`` wins over the message heuristic. An unmatched 401 is
    treated as a stale token eligible for refresh; an unmatched 403 is an
    ordinary permission error.

    Args:
        status: HTTP status code.
        body: Parsed response body.

    Returns:
        Kind of token failure.
    """
    if status not in (HTTP_STATUS_UNAUTHORIZED, HTTP_STATUS_FORBIDDEN):
        return TokenFailureKind.NONE

    payload = body if isinstance(body, dict) else {}

    code = payload.get("code")
    if isinstance(code, str) and code.lower() in _SERVER_CODES:
        return _SERVER_CODES[code.lower()]

    message = payload.get("error") or payload.get("message")
    kind = classify_error_message(message if isinstance(message, str) else None)
    if kind is not TokenFailureKind.NONE:
        return kind

    if status == HTTP_STATUS_UNAUTHORIZED:
        return TokenFailureKind.STALE
    return TokenFailureKind.NONE
