"""Single-flight token renewal shared by concurrent requests."""

import asyncio
import json

import structlog

from raffle_client.api.builder import build_request
from raffle_client.api.constants import HTTP_STATUS_OK_MAX, HTTP_STATUS_OK_MIN, RENEWAL_PATH
from raffle_client.api.metrics import ApiMetrics
from raffle_client.api.models import (
    ErrorKind,
    RequestOptions,
    Session,
    TransportError,
)
from raffle_client.api.transport import DeadlineTransport
from raffle_client.auth.errors import RefreshFailedError
from raffle_client.auth.protocols import ErrorReporter, SessionSink
from raffle_client.auth.state_machine import RefreshState, RefreshStateMachine
from raffle_client.telemetry import report_safely


logger = structlog.get_logger()


def _retrieve_outcome(task: "asyncio.Task[Session]") -> None:
    """Mark a finished renewal's exception as retrieved.

    Every waiter may have been cancelled before the task failed; the
    failure is already logged and reported by the task itself.
    """
    if not task.cancelled():
        task.exception()


class RefreshCoordinator:
    """Coordinates session renewal for one API client.

    At most one renewal runs at a time. Every caller that needs a fresh
    access token while one is pending awaits the same task and observes
    the same outcome. The task owns its own lifetime: a waiter being
    cancelled (for instance by its request deadline) does not abort it.
    """

    def __init__(
        self,
        transport: DeadlineTransport,
        sink: SessionSink,
        renewal_path: str = RENEWAL_PATH,
        reporter: ErrorReporter | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            transport: Transport used for the renewal call.
            sink: Receives renewed sessions and forced logouts.
            renewal_path: Path of the renewal endpoint.
            reporter: Optional telemetry sink.
        """
        self._transport = transport
        self._sink = sink
        self._renewal_path = renewal_path
        self._reporter = reporter
        self._machine = RefreshStateMachine()
        self._in_flight: asyncio.Task[Session] | None = None
        self._metrics = ApiMetrics.get_instance()
        self._log = logger.bind(component="auth", subcomponent="refresh")

    @property
    def state(self) -> RefreshState:
        """Get the current refresh state."""
        return self._machine.state

    @property
    def in_flight(self) -> bool:
        """Check if a renewal is underway."""
        return self._in_flight is not None

    async def refresh(self, session: Session) -> Session:
        """Renew the session, joining a pending renewal if there is one.

        Args:
            session: Session whose refresh token starts a new cycle.

        Returns:
            The renewed session, already handed to the sink.

        Raises:
            RefreshFailedError: If the renewal failed; the sink has been
                cleared by then.
        """
        if self._in_flight is None:
            if not session.refresh_token:
                msg = "No refresh token available"
                raise RefreshFailedError(msg)
            self._machine.transition(RefreshState.REFRESH_PENDING)
            self._metrics.record_refresh_started()
            self._log.info("refresh_started")
            self._in_flight = asyncio.create_task(self._run(session))
            self._in_flight.add_done_callback(_retrieve_outcome)
        else:
            self._log.debug("refresh_joined")

        return await asyncio.shield(self._in_flight)

    async def force_logout(self, reason: str) -> None:
        """Clear the session through the sink.

        Sink failures are logged and reported but never raised.

        Args:
            reason: Why the session is being invalidated.
        """
        self._metrics.record_forced_logout()
        self._log.warning("forced_logout", reason=reason)
        try:
            await self._sink.clear()
        except Exception as exc:  # noqa: BLE001
            self._log.error("session_clear_failed", error=str(exc))
            report_safely(
                self._reporter,
                exc,
                path=self._renewal_path,
                method="POST",
                kind=ErrorKind.AUTH_TERMINAL,
            )

    async def _run(self, session: Session) -> Session:
        """Execute one renewal cycle and clear the in-flight slot."""
        try:
            try:
                renewed = await self._request_renewal(session)
                await self._sink.persist(
                    renewed.access_token or "",
                    renewed.refresh_token,
                    renewed.user,
                )
            except RefreshFailedError:
                raise
            except Exception as exc:
                msg = f"Could not persist renewed session: {exc}"
                raise RefreshFailedError(msg) from exc
        except RefreshFailedError as exc:
            self._machine.transition(RefreshState.REFRESH_FAILED)
            self._metrics.record_refresh_failed()
            self._log.warning(
                "refresh_failed", error=str(exc), status_code=exc.status_code
            )
            report_safely(
                self._reporter,
                exc,
                path=self._renewal_path,
                method="POST",
                kind=ErrorKind.AUTH_TERMINAL,
            )
            await self.force_logout(reason="refresh_failed")
            raise
        else:
            self._machine.transition(RefreshState.REFRESH_SUCCEEDED)
            self._metrics.record_refresh_succeeded()
            self._log.info("refresh_succeeded")
            return renewed
        finally:
            self._in_flight = None
            self._machine.transition(RefreshState.IDLE)

    async def _request_renewal(self, session: Session) -> Session:
        """Post the refresh token to the renewal endpoint.

        Success requires a 2xx status and a non-empty ``accessToken``;
        a 2xx body without one is rejected.

        Raises:
            RefreshFailedError: On transport failure or a rejected renewal.
        """
        descriptor = build_request(
            self._renewal_path,
            RequestOptions(method="POST", body={"refreshToken": session.refresh_token}),
            None,
        )

        try:
            response = await self._transport.send(descriptor)
        except TransportError as exc:
            msg = f"Network error during token refresh: {exc}"
            raise RefreshFailedError(msg) from exc

        if not HTTP_STATUS_OK_MIN <= response.status_code < HTTP_STATUS_OK_MAX:
            msg = f"Token refresh failed with status {response.status_code}"
            raise RefreshFailedError(msg, status_code=response.status_code)

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            data = {}
        if not isinstance(data, dict):
            data = {}

        access_token = data.get("accessToken")
        if not isinstance(access_token, str) or not access_token:
            msg = "No accessToken in refresh response"
            raise RefreshFailedError(msg, status_code=response.status_code)

        refresh_token = data.get("refreshToken")
        user = data.get("user")
        return Session(
            access_token=access_token,
            refresh_token=refresh_token
            if isinstance(refresh_token, str) and refresh_token
            else session.refresh_token,
            user=user if isinstance(user, dict) else session.user,
        )
