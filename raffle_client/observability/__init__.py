"""Observability helpers."""

from raffle_client.observability.logging import (
    client_context,
    configure_logging,
    redact_secrets,
)


__all__ = ["client_context", "configure_logging", "redact_secrets"]
