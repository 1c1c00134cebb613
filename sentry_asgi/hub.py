"""Request-scoped reporting handles.

A :class:`Hub` pairs a ``sentry_sdk`` client with its own ``sentry_sdk.Scope``.
The middleware gives every request a hub of its own, bound into the ASGI
connection scope under :data:`HUB_SCOPE_KEY`, so handlers further down the
chain can report messages and exceptions that carry the request's data.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Any

import sentry_sdk
from sentry_sdk.client import NonRecordingClient
from sentry_sdk.utils import event_from_exception

from sentry_asgi.request import request_data

if TYPE_CHECKING:
    from sentry_sdk.client import BaseClient
    from starlette.requests import HTTPConnection

    from sentry_asgi.config import Settings


HUB_SCOPE_KEY = "sentry_asgi.hub"

MECHANISM = {"type": "sentry_asgi", "handled": False}


class Hub:
    def __init__(self, client: BaseClient | None = None, scope: sentry_sdk.Scope | None = None) -> None:
        self.client = client if client is not None else NonRecordingClient()
        self.scope = scope if scope is not None else sentry_sdk.Scope()
        self.request: dict[str, Any] | None = None

    @classmethod
    def current(cls) -> Hub:
        """Snapshot the client and isolation scope the SDK is currently using."""

        return cls(sentry_sdk.get_client(), sentry_sdk.get_isolation_scope().fork())

    @classmethod
    def from_settings(cls, settings: Settings) -> Hub:
        """Build a dedicated client from settings; no DSN means reporting is off."""

        if not settings.reporting_enabled:
            return cls()

        client = sentry_sdk.Client(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment,
            release=settings.sentry_release,
            send_default_pii=settings.sentry_send_default_pii,
            default_integrations=False,
        )
        return cls(client)

    def clone(self) -> Hub:
        """Return an independent hub sharing the client but not the scope."""

        hub = Hub(self.client, self.scope.fork())
        hub.request = self.request
        return hub

    @property
    def send_default_pii(self) -> bool:
        return bool(self.client.options.get("send_default_pii"))

    def set_request(self, scope: dict[str, Any]) -> None:
        """Attach the request to every event reported through this hub.

        A later call replaces the earlier request.
        """

        self.request = request_data(scope, send_default_pii=self.send_default_pii)

    def set_tag(self, key: str, value: Any) -> None:
        self.scope.set_tag(key, value)

    def set_context(self, key: str, value: dict[str, Any]) -> None:
        self.scope.set_context(key, value)

    def set_user(self, user: dict[str, Any] | None) -> None:
        self.scope.set_user(user)

    def recover(self, exc: BaseException, request: HTTPConnection | None = None) -> str | None:
        """Report an exception caught at the request boundary.

        The inbound request travels in the event hint under ``"request"``.
        Returns the event id, or ``None`` when the client dropped the event.
        """

        event, hint = event_from_exception(exc, client_options=self.client.options, mechanism=dict(MECHANISM))
        if request is not None:
            hint["request"] = request
        return self._capture(event, hint)

    def capture_exception(self, exc: BaseException | None = None) -> str | None:
        """Report `exc`, or the exception currently being handled."""

        exc_info = exc if exc is not None else sys.exc_info()
        if exc is None and exc_info[0] is None:
            return None

        event, hint = event_from_exception(exc_info, client_options=self.client.options)
        return self._capture(event, hint)

    def capture_message(self, message: str, level: str = "info") -> str | None:
        return self._capture({"message": message, "level": level})

    def _capture(self, event: dict[str, Any], hint: dict[str, Any] | None = None) -> str | None:
        # Event processors on an explicitly passed scope are not run by the client.
        if self.request is not None:
            event["request"] = dict(self.request)
        return self.client.capture_event(event, hint=hint, scope=self.scope)

    def flush(self, timeout: float) -> None:
        """Block until queued events are sent or ``timeout`` seconds pass."""

        self.client.flush(timeout=timeout)


def get_hub_from_scope(scope: dict[str, Any]) -> Hub | None:
    return scope.get(HUB_SCOPE_KEY)


def set_hub_on_scope(scope: dict[str, Any], hub: Hub) -> dict[str, Any]:
    """Return a shallow copy of ``scope`` with ``hub`` bound to it."""

    child = dict(scope)
    child[HUB_SCOPE_KEY] = hub
    return child


def get_hub(request: HTTPConnection) -> Hub | None:
    """Hub bound to the request by the middleware, if any."""

    return get_hub_from_scope(request.scope)
