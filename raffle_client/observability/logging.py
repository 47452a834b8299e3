"""Structured logging configuration."""

import logging
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any, TextIO

import structlog

from raffle_client.api.redact import REDACTED_VALUE, is_sensitive_key, redact_headers


def redact_secrets(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask credentials in a log event before it is rendered.

    Top-level credential keys are replaced and a ``headers`` mapping is
    passed through header redaction.
    """
    for key in list(event_dict):
        if is_sensitive_key(key):
            event_dict[key] = REDACTED_VALUE
    headers = event_dict.get("headers")
    if isinstance(headers, dict):
        event_dict["headers"] = redact_headers(headers)
    return event_dict


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structlog for the client.

    Every event passes through ``redact_secrets``; tokens and passwords
    never reach the output stream.

    Args:
        level: Logging level (default: INFO).
        output: Output stream (default: stderr).
        json_format: JSON lines when true, console rendering otherwise.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.format_exc_info,
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s", stream=output, level=level)


@contextmanager
def client_context(client_id: str) -> Iterator[None]:
    """Tag every log event emitted inside the block with ``client_id``.

    Args:
        client_id: Identifier of the running client (e.g. one CLI run).
    """
    structlog.contextvars.bind_contextvars(client_id=client_id)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars("client_id")
