"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderflow.api.middleware import LoggingMiddleware
from orderflow.api.routes import router
from orderflow.config import get_settings
from orderflow.database.storage import Storage, build_storage
from orderflow.errors import ErrorKind, OrderflowError
from orderflow.models.request import ErrorResponse
from orderflow.services.notifier import Notifier
from orderflow.services.order_service import OrderService
from orderflow.services.otp_service import OTPService
from orderflow.utils.logger import setup_logging

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

settings = get_settings()

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHORIZATION_DENIED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.RESOURCE_EXHAUSTED: 429,
    ErrorKind.DELIVERY_FAILURE: 503,
}


def create_app(storage: Optional[Storage] = None, notifier: Optional[Notifier] = None) -> FastAPI:
    """Build the application around a storage bundle and a notifier."""
    storage = storage or build_storage(settings)
    notifier = notifier or Notifier.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting application...")
        try:
            await storage.connect()
            logger.info("Storage ready: %s", storage.status)
            yield
        finally:
            logger.info("Shutting down application...")
            await storage.disconnect()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Order lifecycle and one-time code verification service",
        lifespan=lifespan,
    )

    app.state.storage = storage
    app.state.order_service = OrderService(
        storage.orders, storage.sequence, storage.catalog, storage.users, settings=settings
    )
    app.state.otp_service = OTPService(storage.codes, notifier, settings=settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    app.include_router(router)

    @app.exception_handler(OrderflowError)
    async def orderflow_exception_handler(request: Request, exc: OrderflowError) -> JSONResponse:
        """Map a typed rejection to its HTTP status."""
        request.state.error_kind = exc.kind.value
        headers = {}
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            headers["Retry-After"] = str(retry_after)
        return JSONResponse(
            status_code=STATUS_BY_KIND[exc.kind],
            content=ErrorResponse(
                error=type(exc).__name__,
                message=str(exc),
                kind=exc.kind.value,
                **exc.details(),
            ).model_dump(mode="json"),
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler."""
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal Server Error",
                message="An unexpected error occurred",
            ).model_dump(exclude_none=True),
        )

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "running",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "orderflow.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
