"""Redaction utilities for logging requests and auth payloads."""

from typing import Any


# Headers that must never appear in logs
SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "proxy-authorization",
        "x-api-key",
    }
)

# Payload keys carrying credentials
SENSITIVE_KEYS = frozenset(
    {
        "accesstoken",
        "refreshtoken",
        "password",
        "token",
    }
)

REDACTED_VALUE = "[REDACTED]"


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header name is sensitive.

    Args:
        header_name: The header name to check.

    Returns:
        True if the header should be redacted.
    """
    return header_name.lower() in SENSITIVE_HEADERS


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Redact sensitive headers for logging.

    Args:
        headers: Original headers dictionary.

    Returns:
        New dictionary with sensitive values redacted.
    """
    return {
        key: REDACTED_VALUE if is_sensitive_header(key) else value
        for key, value in headers.items()
    }


def is_sensitive_key(key: object) -> bool:
    """Check if a payload key names a credential.

    Matching ignores case, underscores and hyphens, so ``refreshToken``,
    ``refresh_token`` and ``Refresh-Token`` are all sensitive.
    """
    normalized = str(key).lower().replace("_", "").replace("-", "")
    return normalized in SENSITIVE_KEYS


def redact_payload(payload: Any) -> Any:
    """Redact credential fields from a JSON-like payload.

    Nested mappings and lists are walked; other values are returned
    unchanged.

    Args:
        payload: Parsed JSON body.

    Returns:
        Copy of the payload with credential values replaced.
    """
    if isinstance(payload, dict):
        return {
            key: REDACTED_VALUE
            if is_sensitive_key(key)
            else redact_payload(value)
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [redact_payload(item) for item in payload]
    return payload
