"""Request assembly: headers, credentials and body encoding."""

import json
from typing import Any

from raffle_client.api.constants import JSON_CONTENT_TYPE
from raffle_client.api.models import (
    MultipartBody,
    RequestDescriptor,
    RequestOptions,
    Session,
)


def _has_header(headers: dict[str, str], name: str) -> bool:
    lowered = name.lower()
    return any(key.lower() == lowered for key in headers)


def build_headers(options: RequestOptions, session: Session | None) -> dict[str, str]:
    """Build request headers for a call.

    JSON is always accepted. The session's access token, when present,
    replaces any caller supplied Authorization header. A JSON content
    type is inferred for non-binary bodies unless the caller set one.

    Args:
        options: Caller options.
        session: Current session, if any.

    Returns:
        Complete headers dictionary.
    """
    headers: dict[str, str] = {"Accept": JSON_CONTENT_TYPE}
    headers.update(options.headers)

    if session is not None and session.access_token:
        for key in [k for k in headers if k.lower() == "authorization"]:
            del headers[key]
        headers["Authorization"] = f"Bearer {session.access_token}"

    if (
        options.has_body
        and not options.is_binary_body
        and not _has_header(headers, "Content-Type")
    ):
        headers["Content-Type"] = JSON_CONTENT_TYPE

    return headers


def build_request(
    path: str,
    options: RequestOptions | None,
    session: Session | None,
) -> RequestDescriptor:
    """Produce a transport-ready descriptor.

    Args:
        path: Path relative to the API base URL.
        options: Caller options (defaults to a plain GET).
        session: Current session, if any.

    Returns:
        Request descriptor with ``attempted_refresh`` unset.
    """
    opts = options or RequestOptions()
    return RequestDescriptor(
        path=path,
        options=opts,
        headers=build_headers(opts, session),
    )


def build_replay(descriptor: RequestDescriptor, session: Session) -> RequestDescriptor:
    """Rebuild a descriptor with renewed credentials for its single replay."""
    return RequestDescriptor(
        path=descriptor.path,
        options=descriptor.options,
        headers=build_headers(descriptor.options, session),
        attempted_refresh=True,
    )


def encode_body(body: Any) -> dict[str, Any]:
    """Translate a request body into httpx keyword arguments.

    Args:
        body: Body as supplied in ``RequestOptions``.

    Returns:
        Keyword arguments for ``httpx.AsyncClient.build_request``.
    """
    if body is None:
        return {}
    if isinstance(body, MultipartBody):
        return {"data": dict(body.data), "files": dict(body.files)}
    if isinstance(body, bytes | str):
        return {"content": body}
    return {"content": json.dumps(body, ensure_ascii=False).encode("utf-8")}
