"""Small FastAPI app showing the middleware and the request hub in use.

Run it with ``uvicorn --factory sentry_asgi.example:create_app``.
"""

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request

from sentry_asgi.config import get_settings
from sentry_asgi.handler import Handler
from sentry_asgi.hub import get_hub
from sentry_asgi.logging import configure_logging
from sentry_asgi.metrics import get_metrics


def create_app(handler: Handler | None = None) -> FastAPI:
    api = FastAPI(title="sentry-asgi example", version="0.1.0")

    @api.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @api.get("/message")
    async def message(request: Request) -> dict[str, str | None]:
        hub = get_hub(request)
        if hub is None:
            raise HTTPException(status_code=500, detail="No hub bound to request")
        hub.set_tag("endpoint", "message")
        return {"event_id": hub.capture_message("hello from /message")}

    @api.get("/boom")
    async def boom() -> None:
        raise RuntimeError("boom")

    @api.get("/metrics")
    async def metrics() -> dict:
        return get_metrics().snapshot()

    if handler is None:
        settings = get_settings()
        configure_logging(settings.log_level)
        handler = Handler.from_settings(settings)

    # Outermost, so faults that escape Starlette's own error handling still reach it.
    return handler.handle(api)

