"""Request payloads for Sentry events, built from an ASGI connection scope."""

from __future__ import annotations

from typing import Any

from starlette.datastructures import Headers


# Dropped from reported headers unless the client is allowed to send PII.
SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "x-forwarded-for",
        "x-real-ip",
    }
)


def _scheme(scope: dict[str, Any], headers: Headers) -> str:
    if headers.get("x-forwarded-proto", "").lower() == "https":
        return "https"
    if scope.get("scheme") in ("https", "wss"):
        return "https"
    return "http"


def _host(scope: dict[str, Any], headers: Headers) -> str:
    host = headers.get("host")
    if host:
        return host

    server = scope.get("server")
    if not server:
        return ""
    name, port = server
    if port is None:
        return str(name)
    return f"{name}:{port}"


def _joined_headers(headers: Headers, send_default_pii: bool) -> dict[str, str]:
    joined: dict[str, list[str]] = {}
    for key, value in headers.items():
        if not send_default_pii and key in SENSITIVE_HEADERS:
            continue
        joined.setdefault(key.title(), []).append(value)
    return {key: ",".join(values) for key, values in joined.items()}


def request_data(scope: dict[str, Any], send_default_pii: bool = False) -> dict[str, Any]:
    """Describe the inbound request the way Sentry's `request` interface expects.

    Cookies and the client address are only included when `send_default_pii`
    is set; the same flag controls whether sensitive headers are kept.
    """

    headers = Headers(scope=scope)
    host = _host(scope, headers)
    path = scope.get("path", "")

    query = scope.get("query_string", b"")
    if isinstance(query, bytes):
        query = query.decode("latin-1")

    data: dict[str, Any] = {
        "url": f"{_scheme(scope, headers)}://{host}{path}",
        "method": scope.get("method"),
        "query_string": query,
        "headers": _joined_headers(headers, send_default_pii),
    }
    if host:
        data["headers"]["Host"] = host

    if send_default_pii:
        cookies = headers.get("cookie")
        if cookies:
            data["cookies"] = cookies
        client = scope.get("client")
        if client:
            addr, port = client
            data["env"] = {"REMOTE_ADDR": str(addr), "REMOTE_PORT": str(port)}

    return data
