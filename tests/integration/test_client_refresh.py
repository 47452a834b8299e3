"""Integration tests for session renewal and forced logout."""

import asyncio
import json

import httpx
import pytest

from raffle_client.api.client import ApiClient
from raffle_client.api.config import ApiConfig
from raffle_client.api.constants import SESSION_EXPIRED_MESSAGE
from raffle_client.api.metrics import ApiMetrics
from raffle_client.api.models import RequestOptions, Session
from raffle_client.auth.errors import SessionExpiredError
from tests.helpers.backend import (
    BASE_URL,
    FakeBackend,
    RecordingReporter,
    RecordingSessionStore,
    Reply,
)


SESSION_EXPIRED = {
    "res": {"ok": False, "status": 401},
    "data": {"error": SESSION_EXPIRED_MESSAGE},
}


def accepts_only(token: str, body: object = None):
    """Build a responder that accepts one bearer token and 401s the rest."""

    def respond(request: httpx.Request) -> Reply:
        if request.headers.get("Authorization") == f"Bearer {token}":
            return Reply(200, body if body is not None else {"id": 7})
        return Reply(401, {"error": "Unauthorized"})

    return respond


class TestTransparentRenewal:
    """Tests for stale-token recovery."""

    @pytest.mark.asyncio
    async def test_stale_token_renewed_and_replayed(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
    ) -> None:
        """A 401 is recovered and the caller sees only the final 200."""
        backend.add("GET", "/me", accepts_only("access-2"))
        backend.add("POST", "/auth/refresh", Reply(200, {"accessToken": "access-2"}))

        result = await client.call("/me")

        assert result.to_dict() == {"res": {"ok": True, "status": 200}, "data": {"id": 7}}
        assert backend.calls("GET", "/me") == 2
        assert backend.calls("POST", "/auth/refresh") == 1
        assert store.persisted == [("access-2", "refresh-1", {"id": 7})]
        assert store.clear_count == 0

        replay = backend.requests_to("GET", "/me")[1]
        assert replay.headers["Authorization"] == "Bearer access-2"

    @pytest.mark.asyncio
    async def test_renewal_request_shape(
        self, backend: FakeBackend, client: ApiClient
    ) -> None:
        """The renewal call posts the refresh token without a bearer header."""
        backend.add("GET", "/me", accepts_only("access-2"))
        backend.add("POST", "/auth/refresh", Reply(200, {"accessToken": "access-2"}))

        await client.call("/me")

        renewal = backend.requests_to("POST", "/auth/refresh")[0]
        assert json.loads(renewal.content) == {"refreshToken": "refresh-1"}
        assert "authorization" not in renewal.headers
        assert renewal.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_rotated_credentials_persisted(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
    ) -> None:
        """A rotated refresh token and profile replace the old ones."""
        backend.add("GET", "/me", accepts_only("access-2"))
        backend.add(
            "POST",
            "/auth/refresh",
            Reply(
                200,
                {
                    "accessToken": "access-2",
                    "refreshToken": "refresh-2",
                    "user": {"id": 7, "name": "Ana"},
                },
            ),
        )

        await client.call("/me")

        assert store.current() == Session(
            access_token="access-2",
            refresh_token="refresh-2",
            user={"id": 7, "name": "Ana"},
        )

    @pytest.mark.asyncio
    async def test_replay_preserves_method_and_body(
        self, backend: FakeBackend, client: ApiClient
    ) -> None:
        """A mutating call is replayed with the same body."""
        backend.add("POST", "/raffles/1/tickets", accepts_only("access-2", {"ok": True}))
        backend.add("POST", "/auth/refresh", Reply(200, {"accessToken": "access-2"}))

        result = await client.call(
            "/raffles/1/tickets",
            RequestOptions(method="POST", body={"numbers": [4, 8]}),
        )

        assert result.ok is True
        first, replay = backend.requests_to("POST", "/raffles/1/tickets")
        assert json.loads(first.content) == json.loads(replay.content) == {"numbers": [4, 8]}

    @pytest.mark.asyncio
    async def test_recoverable_failure_reported(
        self,
        backend: FakeBackend,
        client: ApiClient,
        reporter: RecordingReporter,
    ) -> None:
        """The stale 401 is reported as recoverable, nothing else is."""
        backend.add("GET", "/me", accepts_only("access-2"))
        backend.add("POST", "/auth/refresh", Reply(200, {"accessToken": "access-2"}))

        await client.call("/me")

        assert reporter.kinds() == ["auth_recoverable"]


class TestSingleFlight:
    """Tests for concurrent callers sharing one renewal."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_renewal(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
    ) -> None:
        """Five callers hitting 401 together trigger exactly one renewal."""
        backend.add("GET", "/me", accepts_only("access-2"))
        backend.add(
            "POST",
            "/auth/refresh",
            Reply(200, {"accessToken": "access-2"}, delay=0.05),
        )

        results = await asyncio.gather(*(client.call("/me") for _ in range(5)))

        assert all(result.ok for result in results)
        assert backend.calls("POST", "/auth/refresh") == 1
        assert len(store.persisted) == 1
        metrics = ApiMetrics.get_instance()
        assert metrics.refresh_started_total == 1
        assert metrics.refresh_succeeded_total == 1

    @pytest.mark.asyncio
    async def test_failed_renewal_clears_once_for_all_waiters(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
        reporter: RecordingReporter,
    ) -> None:
        """Every waiter sees session expiry; the session is cleared once."""
        backend.add("GET", "/me", Reply(401, {"error": "Unauthorized"}))
        backend.add("POST", "/auth/refresh", Reply(500, delay=0.05))

        results = await asyncio.gather(*(client.call("/me") for _ in range(3)))

        assert [result.to_dict() for result in results] == [SESSION_EXPIRED] * 3
        assert backend.calls("POST", "/auth/refresh") == 1
        assert store.clear_count == 1
        assert store.current() is None
        assert reporter.kinds().count("auth_terminal") == 1
        metrics = ApiMetrics.get_instance()
        assert metrics.refresh_failed_total == 1
        assert metrics.forced_logout_total == 1

    @pytest.mark.asyncio
    async def test_sequential_calls_after_renewal_use_new_token(
        self, backend: FakeBackend, client: ApiClient
    ) -> None:
        """Later calls pick up the renewed session without another renewal."""
        backend.add("GET", "/me", accepts_only("access-2"))
        backend.add("POST", "/auth/refresh", Reply(200, {"accessToken": "access-2"}))

        await client.call("/me")
        second = await client.call("/me")

        assert second.ok is True
        assert backend.calls("POST", "/auth/refresh") == 1
        assert backend.calls("GET", "/me") == 3


class TestForcedLogout:
    """Tests for terminal authentication failures."""

    @pytest.mark.parametrize(
        ("status", "body"),
        [
            (401, {"error": "Token inválido"}),
            (401, {"message": "jwt malformed"}),
            (403, {"error": "Token expirado, inicia sesión"}),
            (403, {"code": "TOKEN_EXPIRED", "error": "Forbidden"}),
            (401, {"code": "token_invalid"}),
        ],
    )
    @pytest.mark.asyncio
    async def test_terminal_token_clears_session_without_renewal(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
        reporter: RecordingReporter,
        status: int,
        body: dict[str, str],
    ) -> None:
        """Invalid or expired tokens force a logout with the uniform result."""
        backend.add("GET", "/me", Reply(status, body))

        result = await client.call("/me")

        assert result.to_dict() == SESSION_EXPIRED
        assert backend.calls("POST", "/auth/refresh") == 0
        assert store.clear_count == 1
        assert store.current() is None
        assert reporter.kinds() == ["auth_terminal"]

    @pytest.mark.asyncio
    async def test_unauthorized_replay_forces_logout(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
    ) -> None:
        """A 401 on the replayed request never starts a second renewal."""
        backend.add("GET", "/me", Reply(401, {"error": "Unauthorized"}))
        backend.add("POST", "/auth/refresh", Reply(200, {"accessToken": "access-2"}))

        result = await client.call("/me")

        assert result.to_dict() == SESSION_EXPIRED
        assert backend.calls("GET", "/me") == 2
        assert backend.calls("POST", "/auth/refresh") == 1
        assert store.clear_count == 1

    @pytest.mark.parametrize(
        "renewal",
        [
            Reply(200, {"user": {"id": 7}}),
            Reply(200, {"accessToken": ""}),
            Reply(401, {"error": "refresh token revoked"}),
            Reply(200, content=b"<html>oops</html>"),
        ],
    )
    @pytest.mark.asyncio
    async def test_rejected_renewal_forces_logout(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
        renewal: Reply,
    ) -> None:
        """A renewal without a usable access token is a failed renewal."""
        backend.add("GET", "/me", Reply(401, {"error": "Unauthorized"}))
        backend.add("POST", "/auth/refresh", renewal)

        result = await client.call("/me")

        assert result.to_dict() == SESSION_EXPIRED
        assert backend.calls("GET", "/me") == 1
        assert store.persisted == []
        assert store.clear_count == 1

    @pytest.mark.asyncio
    async def test_renewal_network_failure_forces_logout(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
    ) -> None:
        """A renewal that never gets a response also ends the session."""
        backend.add("GET", "/me", Reply(401, {"error": "Unauthorized"}))

        async def unreachable(request: httpx.Request) -> Reply:
            raise httpx.ConnectError("refused", request=request)

        backend.add("POST", "/auth/refresh", unreachable)

        result = await client.call("/me")

        assert result.to_dict() == SESSION_EXPIRED
        assert store.clear_count == 1

    @pytest.mark.asyncio
    async def test_session_cleared_while_request_in_flight(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
    ) -> None:
        """A 401 arriving after a logout does not start a renewal."""

        async def logout_then_reject(request: httpx.Request) -> Reply:
            await store.clear()
            return Reply(401, {"error": "Unauthorized"})

        backend.add("GET", "/me", logout_then_reject)

        result = await client.call("/me")

        assert result.to_dict() == SESSION_EXPIRED
        assert backend.calls("POST", "/auth/refresh") == 0
        assert store.clear_count == 1

    @pytest.mark.asyncio
    async def test_late_rejection_keeps_newer_login(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
        reporter: RecordingReporter,
    ) -> None:
        """A rejection of an old token does not sign out a newer login."""
        entered = asyncio.Event()
        release = asyncio.Event()

        async def reject_late(request: httpx.Request) -> Reply:
            entered.set()
            await release.wait()
            return Reply(401, {"error": "Token inválido"})

        backend.add("GET", "/me", reject_late)
        backend.add(
            "POST",
            "/auth/login",
            Reply(200, {"accessToken": "fresh-access", "refreshToken": "fresh-refresh"}),
        )

        pending = asyncio.create_task(client.call("/me"))
        await asyncio.wait_for(entered.wait(), timeout=1)
        await client.login("ana@example.com", "s3cret")
        release.set()
        result = await pending

        assert result.status == 401
        assert result.data == {"error": "Token inválido"}
        assert store.clear_count == 0
        current = store.current()
        assert current is not None
        assert current.access_token == "fresh-access"
        assert "auth_terminal" not in reporter.kinds()

    @pytest.mark.asyncio
    async def test_concurrent_terminal_rejections_clear_once(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
        reporter: RecordingReporter,
    ) -> None:
        """Overlapping terminal failures share a single logout."""
        backend.add("GET", "/me", Reply(401, {"error": "Token inválido"}, delay=0.01))

        results = await asyncio.gather(*(client.call("/me") for _ in range(5)))

        assert [result.to_dict() for result in results] == [SESSION_EXPIRED] * 5
        assert store.clear_count == 1
        assert reporter.kinds() == ["auth_terminal"]
        assert ApiMetrics.get_instance().forced_logout_total == 1

    @pytest.mark.asyncio
    async def test_concurrent_rejected_replays_clear_once(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
    ) -> None:
        """Replays all rejected after one renewal still clear only once."""
        backend.add("GET", "/me", Reply(401, {"error": "Unauthorized"}, delay=0.01))
        backend.add(
            "POST",
            "/auth/refresh",
            Reply(200, {"accessToken": "access-2"}, delay=0.02),
        )

        results = await asyncio.gather(*(client.call("/me") for _ in range(5)))

        assert [result.to_dict() for result in results] == [SESSION_EXPIRED] * 5
        assert backend.calls("POST", "/auth/refresh") == 1
        assert store.clear_count == 1

    @pytest.mark.asyncio
    async def test_session_expired_result_can_raise(
        self, backend: FakeBackend, client: ApiClient
    ) -> None:
        """Callers preferring exceptions can opt in."""
        backend.add("GET", "/me", Reply(401, {"error": "Token inválido"}))

        result = await client.call("/me")

        with pytest.raises(SessionExpiredError):
            result.raise_for_session()


class TestPassThrough:
    """Tests for auth failures the client does not act on."""

    @pytest.mark.asyncio
    async def test_forbidden_without_token_problem_passes_through(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
        reporter: RecordingReporter,
    ) -> None:
        """A plain 403 is an application failure; the session is kept."""
        backend.add("DELETE", "/raffles/3", Reply(403, {"error": "No tienes permiso"}))

        result = await client.call("/raffles/3", {"method": "delete"})

        assert result.to_dict() == {
            "res": {"ok": False, "status": 403},
            "data": {"error": "No tienes permiso"},
        }
        assert store.clear_count == 0
        assert reporter.kinds() == ["application"]

    @pytest.mark.asyncio
    async def test_unauthorized_without_refresh_token_passes_through(
        self, backend: FakeBackend, http_client: httpx.AsyncClient
    ) -> None:
        """With nothing to renew with, the 401 is returned as-is."""
        store = RecordingSessionStore(Session(access_token="access-1"))
        client = ApiClient(ApiConfig(base_url=BASE_URL), store, http_client=http_client)
        backend.add("GET", "/me", Reply(401, {"error": "Unauthorized"}))

        result = await client.call("/me")

        assert result.status == 401
        assert result.data == {"error": "Unauthorized"}
        assert backend.calls("POST", "/auth/refresh") == 0
        assert store.clear_count == 0

    @pytest.mark.asyncio
    async def test_anonymous_call_sends_no_credentials(
        self, backend: FakeBackend, http_client: httpx.AsyncClient
    ) -> None:
        """Without a session no bearer header is sent and 401s pass through."""
        store = RecordingSessionStore()
        client = ApiClient(ApiConfig(base_url=BASE_URL), store, http_client=http_client)
        backend.add("GET", "/raffles", Reply(401, {"error": "Token inválido"}))

        result = await client.call("/raffles")

        assert result.status == 401
        assert result.data == {"error": "Token inválido"}
        assert "authorization" not in backend.requests_to("GET", "/raffles")[0].headers
        assert store.clear_count == 0

    @pytest.mark.asyncio
    async def test_failing_reporter_never_breaks_a_call(
        self, backend: FakeBackend, http_client: httpx.AsyncClient
    ) -> None:
        """Telemetry failures are swallowed."""

        class BrokenReporter:
            def report(self, error: object, context: dict[str, str]) -> None:
                raise RuntimeError("telemetry down")

        store = RecordingSessionStore(
            Session(access_token="access-1", refresh_token="refresh-1")
        )
        client = ApiClient(
            ApiConfig(base_url=BASE_URL),
            store,
            reporter=BrokenReporter(),
            http_client=http_client,
        )
        backend.add("GET", "/me", Reply(401, {"error": "Token inválido"}))

        result = await client.call("/me")

        assert result.to_dict() == SESSION_EXPIRED
        assert store.clear_count == 1


class TestAccountCalls:
    """Tests for login, logout and health."""

    @pytest.mark.asyncio
    async def test_login_persists_issued_session(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
    ) -> None:
        """A successful login hands the new session to the store."""
        backend.add(
            "POST",
            "/auth/login",
            Reply(
                200,
                {
                    "accessToken": "fresh-access",
                    "refreshToken": "fresh-refresh",
                    "user": {"id": 9},
                },
            ),
        )

        result = await client.login("ana@example.com", "s3cret", remember=True)

        assert result.ok is True
        assert store.persisted == [("fresh-access", "fresh-refresh", {"id": 9})]
        assert store.remember is True
        request = backend.requests_to("POST", "/auth/login")[0]
        assert "authorization" not in request.headers
        assert json.loads(request.content) == {
            "email": "ana@example.com",
            "password": "s3cret",
        }

    @pytest.mark.asyncio
    async def test_rejected_login_keeps_existing_session(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
    ) -> None:
        """Bad credentials are an ordinary failure, not a logout."""
        backend.add("POST", "/auth/login", Reply(401, {"error": "Credenciales inválidas"}))

        result = await client.login("ana@example.com", "wrong")

        assert result.status == 401
        assert result.error_message == "Credenciales inválidas"
        assert store.persisted == []
        assert store.clear_count == 0
        assert backend.calls("POST", "/auth/refresh") == 0

    @pytest.mark.asyncio
    async def test_logout_clears_session(
        self, client: ApiClient, store: RecordingSessionStore
    ) -> None:
        """Logout drops the session through the store."""
        await client.logout()

        assert store.current() is None
        assert store.clear_count == 1

    @pytest.mark.asyncio
    async def test_health(self, backend: FakeBackend, client: ApiClient) -> None:
        """Health calls the health endpoint."""
        backend.add("GET", "/health", Reply(200, {"status": "ok"}))

        result = await client.health()

        assert result.ok is True
        assert result.data == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_verify_account_posts_email_and_code(
        self, backend: FakeBackend, client: ApiClient
    ) -> None:
        """Verification sends the code without credentials."""
        backend.add("POST", "/verify-email", Reply(200, {"message": "Cuenta verificada"}))

        result = await client.verify_account("ana@example.com", "482913")

        assert result.ok is True
        request = backend.requests_to("POST", "/verify-email")[0]
        assert "authorization" not in request.headers
        assert json.loads(request.content) == {
            "email": "ana@example.com",
            "code": "482913",
        }

    @pytest.mark.asyncio
    async def test_wrong_verification_code_keeps_session(
        self,
        backend: FakeBackend,
        client: ApiClient,
        store: RecordingSessionStore,
    ) -> None:
        """A rejected code is an ordinary failure."""
        backend.add("POST", "/verify-email", Reply(400, {"error": "Código incorrecto"}))

        result = await client.verify_account("ana@example.com", "000000")

        assert result.status == 400
        assert result.error_message == "Código incorrecto"
        assert store.clear_count == 0

    @pytest.mark.asyncio
    async def test_resend_verification_code(
        self, backend: FakeBackend, client: ApiClient
    ) -> None:
        """Resending posts only the email."""
        backend.add("POST", "/resend-code", Reply(200, {"message": "Código reenviado"}))

        result = await client.resend_verification_code("ana@example.com")

        assert result.ok is True
        request = backend.requests_to("POST", "/resend-code")[0]
        assert "authorization" not in request.headers
        assert json.loads(request.content) == {"email": "ana@example.com"}
