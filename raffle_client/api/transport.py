"""HTTP transport bounded by a cancellation deadline."""

import asyncio

import httpx
import structlog

from raffle_client.api.builder import encode_body
from raffle_client.api.constants import DEFAULT_TIMEOUT_MS
from raffle_client.api.models import (
    RequestDescriptor,
    TransportError,
    TransportErrorClass,
)
from raffle_client.api.redact import redact_headers


logger = structlog.get_logger()


class DeadlineTransport:
    """Issues single HTTP attempts against the API base URL.

    Each attempt (connect, send and body read) runs under its own
    deadline. When the deadline expires the attempt is cancelled, which
    closes the response stream and returns the connection to the pool.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        """Initialize the transport.

        Args:
            client: Shared async HTTP client.
            base_url: API base URL without trailing slash.
            default_timeout_ms: Deadline used when a call sets none.
        """
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._default_timeout_ms = default_timeout_ms
        self._log = logger.bind(component="api", subcomponent="transport")

    @property
    def base_url(self) -> str:
        """Get the API base URL."""
        return self._base_url

    def url_for(self, path: str) -> str:
        """Join a call path onto the base URL."""
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self._base_url}{path}"

    async def send(
        self,
        descriptor: RequestDescriptor,
        timeout_ms: int | None = None,
    ) -> httpx.Response:
        """Execute one attempt.

        Args:
            descriptor: Request to send.
            timeout_ms: Deadline override for this attempt.

        Returns:
            The HTTP response with its body already read.

        Raises:
            TransportError: If no response arrived before the deadline or
                the network call failed.
        """
        deadline_ms = (
            timeout_ms or descriptor.options.timeout_ms or self._default_timeout_ms
        )
        deadline_s = deadline_ms / 1000.0
        url = self.url_for(descriptor.path)

        self._log.debug(
            "request_sent",
            method=descriptor.method,
            path=descriptor.path,
            headers=redact_headers(descriptor.headers),
            deadline_ms=deadline_ms,
        )

        try:
            request = self._client.build_request(
                descriptor.method,
                url,
                headers=descriptor.headers,
                timeout=deadline_s,
                **encode_body(descriptor.body),
            )
            async with asyncio.timeout(deadline_s):
                return await self._client.send(request)
        except TimeoutError as e:
            msg = f"Request cancelled after {deadline_ms} ms deadline"
            raise TransportError(TransportErrorClass.TIMEOUT, msg) from e
        except httpx.TimeoutException as e:
            msg = f"Request timed out: {e}"
            raise TransportError(TransportErrorClass.TIMEOUT, msg) from e
        except httpx.ConnectError as e:
            msg = f"Connection failed: {e}"
            raise TransportError(TransportErrorClass.CONNECTION_ERROR, msg) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            msg = f"Network error: {e}"
            raise TransportError(TransportErrorClass.NETWORK_ERROR, msg) from e
