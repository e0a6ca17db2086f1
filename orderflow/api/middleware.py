"""API middleware for request processing."""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with the caller's identity headers and its outcome.

    Typed rejections are logged with their error kind, which the
    ``OrderflowError`` handler leaves on ``request.state``.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.monotonic()
        caller = {
            "user_id": request.headers.get("X-User-ID"),
            "role": request.headers.get("X-User-Role"),
        }
        logger.info(
            "%s %s from %s (%s)",
            request.method,
            request.url.path,
            caller["user_id"] or "anonymous",
            caller["role"] or "no role",
            extra={"method": request.method, "path": request.url.path, **caller},
        )

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.monotonic() - started
            logger.error(
                "%s %s failed after %.3fs: %s",
                request.method,
                request.url.path,
                elapsed,
                e,
                extra={"process_time_s": round(elapsed, 3), **caller},
            )
            raise

        elapsed = time.monotonic() - started
        error_kind = getattr(request.state, "error_kind", None)
        if response.status_code >= 500:
            level = logging.ERROR
        elif error_kind:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            "%s %s -> %s%s in %.3fs",
            request.method,
            request.url.path,
            response.status_code,
            f" ({error_kind})" if error_kind else "",
            elapsed,
            extra={
                "status_code": response.status_code,
                "error_kind": error_kind,
                "process_time_s": round(elapsed, 3),
                **caller,
            },
        )
        response.headers["X-Process-Time"] = f"{elapsed:.3f}"
        return response
