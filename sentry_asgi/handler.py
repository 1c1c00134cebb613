"""ASGI middleware that reports unhandled exceptions to Sentry.

Use :meth:`Handler.handle` to wrap an existing ASGI application::

    handler = Handler(Options(repanic=True), hub=Hub.from_settings(get_settings()))
    app = handler.handle(app)

or register :class:`SentryMiddleware` on a Starlette/FastAPI app::

    app.add_middleware(SentryMiddleware, handler=handler)

A wrapped application recovers from and reports exceptions raised while a
request is handled, and exposes a request-specific hub (see
:func:`sentry_asgi.hub.get_hub`) for reporting messages and errors.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from time import perf_counter
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import anyio
import structlog
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.routing import request_response

from sentry_asgi.hub import Hub, get_hub_from_scope, set_hub_on_scope
from sentry_asgi.metrics import get_metrics

if TYPE_CHECKING:
    from starlette.responses import Response

    from sentry_asgi.config import Settings


DEFAULT_TIMEOUT = 2.0

ASGIApp = Callable[..., Awaitable[None]]


@dataclass(frozen=True)
class Options:
    # Re-raise the exception once it has been reported.
    repanic: bool = False
    # Wait until the event has been sent before re-raising or returning.
    wait_for_delivery: bool = False
    # Upper bound in seconds for the wait; unset or 0 means DEFAULT_TIMEOUT.
    timeout: float | None = None


class Handler:
    """Middleware factory holding the recovery policy and the default hub.

    The default hub is only ever cloned, so a single handler can serve any
    number of concurrent requests.
    """

    def __init__(self, options: Options | None = None, *, hub: Hub | None = None) -> None:
        options = options or Options()
        self._repanic = options.repanic
        self._wait_for_delivery = options.wait_for_delivery
        self._timeout = float(options.timeout) if options.timeout else DEFAULT_TIMEOUT
        self._hub = hub if hub is not None else Hub.current()

    @classmethod
    def from_settings(cls, settings: Settings, *, hub: Hub | None = None) -> Handler:
        options = Options(
            repanic=settings.sentry_repanic,
            wait_for_delivery=settings.sentry_wait_for_delivery,
            timeout=settings.sentry_timeout,
        )
        return cls(options, hub=hub if hub is not None else Hub.from_settings(settings))

    @property
    def repanic(self) -> bool:
        return self._repanic

    @property
    def wait_for_delivery(self) -> bool:
        return self._wait_for_delivery

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def hub(self) -> Hub:
        return self._hub

    def handle(self, app: ASGIApp) -> SentryMiddleware:
        return SentryMiddleware(app, handler=self)

    def handle_func(self, endpoint: Callable[[Request], Awaitable[Response] | Response]) -> SentryMiddleware:
        """Wrap a plain ``endpoint(request) -> Response`` function.

        Deprecated: wrap an ASGI app with :meth:`handle` instead.
        """

        warnings.warn(
            "Handler.handle_func is deprecated, use Handler.handle instead",
            DeprecationWarning,
            stacklevel=2,
        )
        return self.handle(request_response(endpoint))

    def hub_for(self, scope: dict[str, Any]) -> Hub:
        """Reuse a hub bound by an outer layer, otherwise clone the default one."""

        hub = get_hub_from_scope(scope)
        if hub is None:
            hub = self._hub.clone()
        return hub

    async def recover(self, hub: Hub, exc: Exception, request: Request) -> str | None:
        """Report `exc` and, when configured, wait for delivery.

        The wait survives anyio cancellation of the request (a deadline or a
        cancelled task group). A bare asyncio `Task.cancel()` still interrupts
        it; the flush thread then finishes on its own.
        """

        event_id = hub.recover(exc, request=request)
        get_metrics().observe_fault(event_id)
        structlog.get_logger("sentry_asgi").error(
            "fault_recovered",
            exc_type=type(exc).__name__,
            event_id=event_id,
            exc_info=exc,
        )

        if event_id is not None and self._wait_for_delivery:
            start = perf_counter()
            # Flush regardless of whether the request itself was cancelled meanwhile.
            with anyio.CancelScope(shield=True):
                await run_in_threadpool(hub.flush, self._timeout)
            elapsed_ms = (perf_counter() - start) * 1000.0
            get_metrics().observe_flush(elapsed_ms)
            structlog.get_logger("sentry_asgi").info(
                "delivery_flushed",
                event_id=event_id,
                elapsed_ms=round(elapsed_ms, 2),
                timeout=self._timeout,
            )

        return event_id


class SentryMiddleware:
    """Binds a request hub into the ASGI scope and reports unhandled exceptions."""

    def __init__(
        self,
        app: ASGIApp,
        handler: Handler | None = None,
        *,
        options: Options | None = None,
        hub: Hub | None = None,
    ) -> None:
        self.app = app
        self.handler = handler if handler is not None else Handler(options, hub=hub)

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        hub = self.handler.hub_for(scope)
        hub.set_request(scope)
        child_scope = set_hub_on_scope(scope, hub)

        with structlog.contextvars.bound_contextvars(method=scope.get("method"), path=scope.get("path")):
            try:
                await self.app(child_scope, receive, send)
            except Exception as exc:
                await self.handler.recover(hub, exc, Request(scope, receive))
                if self.handler.repanic:
                    get_metrics().observe_reraise()
                    structlog.get_logger("sentry_asgi").info("fault_reraised", exc_type=type(exc).__name__)
                    raise
