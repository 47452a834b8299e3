"""Best-effort error telemetry."""

from typing import Any

import structlog

from raffle_client.api.models import ErrorKind
from raffle_client.auth.protocols import ErrorReporter


logger = structlog.get_logger()


class LoggingErrorReporter:
    """Error reporter that writes classified failures to the log."""

    def __init__(self) -> None:
        self._log = logger.bind(component="telemetry")

    def report(self, error: BaseException | str, context: dict[str, Any]) -> None:
        """Log a failure with its call context.

        Args:
            error: Exception or message describing the failure.
            context: ``path``, ``method`` and ``kind`` of the failed call.
        """
        self._log.warning(
            "api_error_reported",
            error=str(error),
            error_type=type(error).__name__ if isinstance(error, BaseException) else None,
            **context,
        )


def report_safely(
    reporter: ErrorReporter | None,
    error: BaseException | str,
    *,
    path: str,
    method: str,
    kind: ErrorKind,
) -> None:
    """Hand a failure to the reporter, ignoring reporter failures.

    Args:
        reporter: Telemetry sink; nothing is reported when None.
        error: Exception or message describing the failure.
        path: Call path.
        method: HTTP method.
        kind: Failure classification.
    """
    if reporter is None:
        return

    context = {"path": path, "method": method, "kind": kind.value}
    try:
        reporter.report(error, context)
    except Exception as exc:  # noqa: BLE001
        logger.debug(
            "error_report_failed",
            component="telemetry",
            error=str(exc),
            **context,
        )
