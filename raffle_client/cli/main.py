"""CLI commands for exercising the raffle API client."""

import asyncio
import json
import logging
import sys
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import click
import structlog

from raffle_client.api.client import ApiClient
from raffle_client.api.models import ApiResult, RequestOptions, Session
from raffle_client.api.redact import redact_payload
from raffle_client.observability import client_context, configure_logging
from raffle_client.session import InMemorySessionStore
from raffle_client.settings import get_settings
from raffle_client.telemetry import LoggingErrorReporter


logger = structlog.get_logger()


def _setup_logging(verbose: bool, json_logs: bool) -> None:
    settings = get_settings()
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    configure_logging(level=level, json_format=json_logs and settings.log_json)


def _run(
    store: InMemorySessionStore,
    action: Callable[[ApiClient], Awaitable[ApiResult]],
    base_url: str | None,
) -> ApiResult:
    """Run one client action on a fresh event loop."""
    settings = get_settings()
    if base_url:
        settings = settings.model_copy(update={"api_url": base_url})
    logger.debug("cli_action_started", base_url=settings.api_url)

    async def _main() -> ApiResult:
        async with ApiClient.from_settings(
            settings, store, reporter=LoggingErrorReporter()
        ) as client:
            return await action(client)

    with client_context(uuid.uuid4().hex[:12]):
        return asyncio.run(_main())


def _emit(result: ApiResult, extra: dict[str, Any] | None = None) -> None:
    """Print the result as JSON and exit non-zero on failure."""
    payload = result.to_dict()
    payload["data"] = redact_payload(payload["data"])
    if extra:
        payload.update(extra)
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))
    if not result.ok:
        sys.exit(1)


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--base-url",
    default=None,
    help="Override the API base URL (default: RAFFLE_API_URL).",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON format for logs (default: true).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)
@click.pass_context
def cli(ctx: click.Context, base_url: str | None, json_logs: bool, verbose: bool) -> None:
    """Raffle API client CLI."""
    _setup_logging(verbose, json_logs)
    ctx.obj = {"base_url": base_url}


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check that the backend is reachable."""
    store = InMemorySessionStore()
    result = _run(store, lambda client: client.health(), ctx.obj["base_url"])
    _emit(result)


@cli.command()
@click.argument("path")
@click.option(
    "--method",
    "-X",
    default="GET",
    show_default=True,
    help="HTTP method.",
)
@click.option(
    "--data",
    "-d",
    default=None,
    help="JSON request body.",
)
@click.option(
    "--access-token",
    default=None,
    help="Access token (default: RAFFLE_ACCESS_TOKEN).",
)
@click.option(
    "--refresh-token",
    default=None,
    help="Refresh token (default: RAFFLE_REFRESH_TOKEN).",
)
@click.pass_context
def call(  # noqa: PLR0913
    ctx: click.Context,
    path: str,
    method: str,
    data: str | None,
    access_token: str | None,
    refresh_token: str | None,
) -> None:
    """Call PATH on the backend with the given credentials.

    When the session is renewed during the call, the renewed session is
    reported under "session" so it can be reused.
    """
    body: Any = None
    if data is not None:
        try:
            body = json.loads(data)
        except json.JSONDecodeError as e:
            msg = f"--data is not valid JSON: {e}"
            raise click.BadParameter(msg, param_hint="--data") from e

    if access_token or refresh_token:
        session = Session(access_token=access_token, refresh_token=refresh_token)
    else:
        session = get_settings().initial_session()
    store = InMemorySessionStore(session)
    options = RequestOptions(method=method, body=body)

    result = _run(store, lambda client: client.call(path, options), ctx.obj["base_url"])

    current = store.current()
    extra = None
    if current != session:
        extra = {"session": "cleared" if current is None else "renewed"}
    _emit(result, extra)


@cli.command()
@click.argument("email")
@click.option(
    "--password",
    prompt=True,
    hide_input=True,
    help="Account password.",
)
@click.option(
    "--remember/--no-remember",
    default=False,
    help="Keep the session across restarts.",
)
@click.pass_context
def login(ctx: click.Context, email: str, password: str, remember: bool) -> None:
    """Sign in as EMAIL."""
    store = InMemorySessionStore()
    result = _run(
        store,
        lambda client: client.login(email, password, remember=remember),
        ctx.obj["base_url"],
    )
    _emit(result)


@cli.command()
@click.argument("email")
@click.argument("code")
@click.pass_context
def verify(ctx: click.Context, email: str, code: str) -> None:
    """Verify the account EMAIL with the emailed CODE."""
    store = InMemorySessionStore()
    result = _run(
        store,
        lambda client: client.verify_account(email, code),
        ctx.obj["base_url"],
    )
    _emit(result)


@cli.command("resend-code")
@click.argument("email")
@click.pass_context
def resend_code(ctx: click.Context, email: str) -> None:
    """Email a new verification code to EMAIL."""
    store = InMemorySessionStore()
    result = _run(
        store, lambda client: client.resend_verification_code(email), ctx.obj["base_url"]
    )
    _emit(result)


def main() -> None:
    """Console script entry point."""
    cli()
