"""Authenticated API client with deadlines, retries and session renewal."""

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from raffle_client.api.builder import build_replay, build_request
from raffle_client.api.config import ApiConfig
from raffle_client.api.constants import (
    HEALTH_PATH,
    HTTP_STATUS_SERVER_ERROR_MIN,
    LOGIN_PATH,
    RESEND_CODE_PATH,
    VERIFY_EMAIL_PATH,
)
from raffle_client.api.metrics import ApiMetrics
from raffle_client.api.models import (
    ApiResponse,
    ApiResult,
    ErrorKind,
    RequestDescriptor,
    RequestOptions,
    Session,
    TransportError,
)
from raffle_client.api.transport import DeadlineTransport
from raffle_client.auth.classify import TokenFailureKind, classify_token_failure
from raffle_client.auth.coordinator import RefreshCoordinator
from raffle_client.auth.errors import RefreshFailedError
from raffle_client.auth.protocols import ErrorReporter, SessionStore
from raffle_client.telemetry import report_safely


if TYPE_CHECKING:
    from raffle_client.settings import AppSettings


logger = structlog.get_logger()

SleepFunc = Callable[[float], Awaitable[None]]


def _parse_body(response: httpx.Response) -> Any:
    """Parse a JSON body, falling back to an empty object."""
    if not response.content:
        return {}
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return {} if data is None else data


def _has_credentials(session: Session | None) -> bool:
    return session is not None and bool(session.access_token or session.refresh_token)


class ApiClient:
    """Client used by every screen to talk to the raffle backend.

    ``call`` never raises for network, server or auth faults; every
    outcome is normalized into an ``ApiResult``:

    - Idempotent calls are retried on 5xx and on deadline expiry.
    - A 401 with a refresh token available triggers one shared renewal,
      after which the original request is replayed exactly once.
    - A token the server reports as invalid or expired, a failed
      renewal, or a 401 on the replay clears the session and yields the
      uniform session-expired result.
    """

    def __init__(
        self,
        config: ApiConfig,
        session_store: SessionStore,
        reporter: ErrorReporter | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration.
            session_store: Provides the current session and receives
                renewed or cleared credentials.
            reporter: Optional telemetry sink for classified failures.
            http_client: HTTP client to use; one is created (and owned)
                when omitted.
            sleep: Coroutine used for retry backoff.
        """
        self._config = config
        self._store = session_store
        self._reporter = reporter
        self._sleep = sleep
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            headers={"User-Agent": config.user_agent},
        )
        self._transport = DeadlineTransport(
            self._http,
            base_url=config.base_url,
            default_timeout_ms=config.timeout_ms,
        )
        self._refresh = RefreshCoordinator(
            self._transport,
            session_store,
            renewal_path=config.renewal_path,
            reporter=reporter,
        )
        self._metrics = ApiMetrics.get_instance()
        self._log = logger.bind(component="api", base_url=config.base_url)

    @classmethod
    def from_settings(
        cls,
        settings: "AppSettings",
        session_store: SessionStore,
        reporter: ErrorReporter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "ApiClient":
        """Build a client from environment settings."""
        config = ApiConfig(base_url=settings.api_url, timeout_ms=settings.api_timeout_ms)
        return cls(config, session_store, reporter=reporter, http_client=http_client)

    @property
    def config(self) -> ApiConfig:
        """Get the client configuration."""
        return self._config

    @property
    def refresh_coordinator(self) -> RefreshCoordinator:
        """Get the coordinator owning this client's refresh cycles."""
        return self._refresh

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client:
            await self._http.aclose()

    async def call(
        self,
        path: str,
        options: RequestOptions | dict[str, Any] | None = None,
    ) -> ApiResult:
        """Call the backend with the current session.

        Args:
            path: Path relative to the API base URL.
            options: Method, headers, body and deadline override.

        Returns:
            Normalized result; never raises for request failures.
        """
        if isinstance(options, dict):
            options = RequestOptions.model_validate(options)
        return await self._call(path, options, self._store.current())

    async def health(self) -> ApiResult:
        """Check that the backend is reachable."""
        return await self.call(HEALTH_PATH)

    async def login(self, email: str, password: str, remember: bool = False) -> ApiResult:
        """Sign in and hand the issued session to the session store.

        Args:
            email: Account email.
            password: Account password.
            remember: Keep credentials across restarts.

        Returns:
            Result of the login call, with the backend's error on failure.
        """
        options = RequestOptions(
            method="POST", body={"email": email, "password": password}
        )
        result = await self._call(LOGIN_PATH, options, None)

        data = result.data if isinstance(result.data, dict) else {}
        access_token = data.get("accessToken")
        if result.ok and isinstance(access_token, str) and access_token:
            await self._store.persist(
                access_token,
                data.get("refreshToken"),
                data.get("user"),
                remember=remember,
            )
            self._log.info("login_succeeded", remember=remember)
        else:
            self._log.info("login_rejected", status=result.status)
        return result

    async def verify_account(self, email: str, code: str) -> ApiResult:
        """Confirm a new account with the emailed verification code.

        Args:
            email: Account email.
            code: Code received by email.

        Returns:
            Result of the verification call.
        """
        options = RequestOptions(method="POST", body={"email": email, "code": code})
        return await self._call(VERIFY_EMAIL_PATH, options, None)

    async def resend_verification_code(self, email: str) -> ApiResult:
        """Ask the backend to email a new verification code."""
        options = RequestOptions(method="POST", body={"email": email})
        return await self._call(RESEND_CODE_PATH, options, None)

    async def logout(self) -> None:
        """Drop the current session."""
        await self._store.clear()
        self._log.info("logout")

    async def _call(
        self,
        path: str,
        options: RequestOptions | None,
        session: Session | None,
    ) -> ApiResult:
        start_time_ns = time.perf_counter_ns()
        descriptor = build_request(path, options, session)
        log = self._log.bind(method=descriptor.method, path=path)

        result = await self._execute(descriptor, session, log)

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        self._metrics.record_call(duration_ms)
        log.info(
            "request_complete",
            status=result.status,
            ok=result.ok,
            network_error=result.res.network_error,
            duration_ms=round(duration_ms, 2),
        )
        return result

    async def _execute(
        self,
        descriptor: RequestDescriptor,
        session: Session | None,
        log: structlog.stdlib.BoundLogger,
    ) -> ApiResult:
        """Run a request and route auth failures."""
        result = await self._execute_with_retry(descriptor, log)
        if result.res.network_error:
            return result
        if not _has_credentials(session):
            return self._pass_through(descriptor, result)

        kind = classify_token_failure(result.status, result.data)

        if kind.is_terminal:
            return await self._expire_session(
                descriptor,
                session,
                result,
                log,
                reason=f"token_{kind.value.lower()}",
            )

        if kind is TokenFailureKind.STALE:
            if descriptor.attempted_refresh:
                return await self._expire_session(
                    descriptor,
                    session,
                    result,
                    log,
                    reason="unauthorized_after_refresh",
                )
            if session is not None and session.can_refresh:
                report_safely(
                    self._reporter,
                    f"Unauthorized ({result.status})",
                    path=descriptor.path,
                    method=descriptor.method,
                    kind=ErrorKind.AUTH_RECOVERABLE,
                )
                return await self._recover(descriptor, session, log)

        return self._pass_through(descriptor, result)

    async def _recover(
        self,
        descriptor: RequestDescriptor,
        session: Session,
        log: structlog.stdlib.BoundLogger,
    ) -> ApiResult:
        """Renew the session and replay the request once."""
        latest = self._store.current()
        if not _has_credentials(latest):
            log.info("session_cleared_during_request")
            return ApiResult.session_expired()

        if latest is not None and latest.access_token != session.access_token:
            log.debug("session_already_renewed")
            renewed = latest
        else:
            try:
                renewed = await self._refresh.refresh(latest or session)
            except RefreshFailedError:
                return ApiResult.session_expired()

        log.debug("request_replayed")
        return await self._execute(build_replay(descriptor, renewed), renewed, log)

    async def _expire_session(  # noqa: PLR0913
        self,
        descriptor: RequestDescriptor,
        session: Session | None,
        result: ApiResult,
        log: structlog.stdlib.BoundLogger,
        reason: str,
    ) -> ApiResult:
        """Force a logout and return the session-expired result.

        Only the session the request was sent with is cleared. If the store
        is already empty nothing is cleared again; if it holds a newer
        session (renewed or signed in meanwhile) that session is kept and
        the server response is returned as-is.
        """
        latest = self._store.current()
        if not _has_credentials(latest):
            log.info("session_cleared_during_request", reason=reason)
            return ApiResult.session_expired()
        if (
            latest is not None
            and session is not None
            and latest.access_token != session.access_token
        ):
            log.info("stale_credential_rejected", reason=reason)
            return result

        log.warning("session_expired", reason=reason)
        report_safely(
            self._reporter,
            reason,
            path=descriptor.path,
            method=descriptor.method,
            kind=ErrorKind.AUTH_TERMINAL,
        )
        await self._refresh.force_logout(reason=reason)
        return ApiResult.session_expired()

    async def _execute_with_retry(
        self,
        descriptor: RequestDescriptor,
        log: structlog.stdlib.BoundLogger,
    ) -> ApiResult:
        """Execute request with retry logic.

        Args:
            descriptor: Request to send.
            log: Bound logger.

        Returns:
            Result of the last attempt.
        """
        policy = self._config.retry_policy
        method = descriptor.method
        last_response: httpx.Response | None = None
        last_error: TransportError | None = None

        for attempt in range(policy.max_retries_for(method) + 1):
            if attempt > 0:
                delay_ms = policy.get_delay_ms(attempt - 1)
                self._metrics.record_retry()
                log.debug(
                    "retry_attempt",
                    attempt=attempt,
                    delay_ms=delay_ms,
                    max_retries=policy.max_retries_for(method),
                )
                await self._sleep(delay_ms / 1000.0)

            try:
                response = await self._transport.send(descriptor)
            except TransportError as exc:
                self._metrics.record_network_failure(exc.error_class)
                last_response, last_error = None, exc
                if not policy.should_retry_error(exc, method, attempt):
                    break
                continue

            self._metrics.record_response(response.status_code)
            last_response, last_error = response, None
            if not policy.should_retry_status(response.status_code, method, attempt):
                break

        if last_response is not None:
            return self._to_result(descriptor, last_response)

        log.warning(
            "request_failed",
            error_class=last_error.error_class.value if last_error else None,
            error=str(last_error),
        )
        report_safely(
            self._reporter,
            last_error or "no response",
            path=descriptor.path,
            method=method,
            kind=ErrorKind.TRANSPORT,
        )
        return ApiResult.network_failure()

    def _pass_through(
        self, descriptor: RequestDescriptor, result: ApiResult
    ) -> ApiResult:
        """Report a non-2xx client-side status and hand it back unmodified."""
        if not result.ok and result.status < HTTP_STATUS_SERVER_ERROR_MIN:
            report_safely(
                self._reporter,
                result.error_message or f"Request failed ({result.status})",
                path=descriptor.path,
                method=descriptor.method,
                kind=ErrorKind.APPLICATION,
            )
        return result

    def _to_result(
        self, descriptor: RequestDescriptor, response: httpx.Response
    ) -> ApiResult:
        """Normalize a response into a result."""
        status = response.status_code
        if status >= HTTP_STATUS_SERVER_ERROR_MIN:
            report_safely(
                self._reporter,
                f"Server error ({status})",
                path=descriptor.path,
                method=descriptor.method,
                kind=ErrorKind.SERVER,
            )
        return ApiResult(res=ApiResponse.from_status(status), data=_parse_body(response))
