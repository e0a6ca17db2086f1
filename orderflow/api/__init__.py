"""API package."""

from orderflow.api.dependencies import Identity, get_identity
from orderflow.api.middleware import LoggingMiddleware
from orderflow.api.routes import router

__all__ = [
    "router",
    "Identity",
    "get_identity",
    "LoggingMiddleware",
]
