"""Error telemetry for failed API calls."""

from raffle_client.telemetry.reporter import LoggingErrorReporter, report_safely


__all__ = ["LoggingErrorReporter", "report_safely"]
