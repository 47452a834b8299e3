"""Unit tests for logging configuration."""

import io
import json
from collections.abc import Iterator

import pytest
import structlog

from raffle_client.api.redact import REDACTED_VALUE
from raffle_client.observability import client_context, configure_logging, redact_secrets


@pytest.fixture
def restore_structlog() -> Iterator[None]:
    """Put structlog back to its defaults after the test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestRedactSecrets:
    """Tests for the redaction processor."""

    def test_masks_credential_keys(self) -> None:
        """Credential fields bound to an event are masked."""
        event = {"event": "login", "password": "p", "refresh_token": "r", "status": 200}

        result = redact_secrets(None, "info", event)

        assert result == {
            "event": "login",
            "password": REDACTED_VALUE,
            "refresh_token": REDACTED_VALUE,
            "status": 200,
        }

    def test_masks_authorization_header(self) -> None:
        """A logged headers mapping goes through header redaction."""
        event = {"event": "request_sent", "headers": {"Authorization": "Bearer t"}}

        result = redact_secrets(None, "debug", event)

        assert result["headers"] == {"Authorization": REDACTED_VALUE}


@pytest.mark.usefixtures("restore_structlog")
class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_output_is_redacted(self) -> None:
        """JSON lines never contain raw credentials."""
        output = io.StringIO()
        configure_logging(output=output, json_format=True)

        structlog.get_logger().info("session_persisted", access_token="secret")

        line = json.loads(output.getvalue().strip())
        assert line["event"] == "session_persisted"
        assert line["access_token"] == REDACTED_VALUE
        assert line["level"] == "info"
        assert "secret" not in output.getvalue()

    def test_level_filtering(self) -> None:
        """Events below the configured level are dropped."""
        output = io.StringIO()
        configure_logging(level=30, output=output)

        structlog.get_logger().info("request_complete")

        assert output.getvalue() == ""

    def test_client_context_bound_inside_block(self) -> None:
        """client_id is attached only while the block runs."""
        output = io.StringIO()
        configure_logging(output=output)

        with client_context("abc123"):
            structlog.get_logger().info("inside")
            assert structlog.contextvars.get_contextvars() == {"client_id": "abc123"}
        structlog.get_logger().info("outside")

        inside, outside = (json.loads(line) for line in output.getvalue().splitlines())
        assert inside["client_id"] == "abc123"
        assert "client_id" not in outside
