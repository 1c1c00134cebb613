"""Sentry integration for ASGI applications."""

from sentry_asgi.handler import DEFAULT_TIMEOUT, Handler, Options, SentryMiddleware
from sentry_asgi.hub import HUB_SCOPE_KEY, Hub, get_hub, get_hub_from_scope, set_hub_on_scope

__all__ = [
    "DEFAULT_TIMEOUT",
    "HUB_SCOPE_KEY",
    "Handler",
    "Hub",
    "Options",
    "SentryMiddleware",
    "get_hub",
    "get_hub_from_scope",
    "set_hub_on_scope",
]
