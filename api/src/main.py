"""
FastAPI application entry point for the Tour Booking API.

This module provides the application factory with:
- Health and metrics endpoints
- Resource routers (users, tours, reviews, bookings) under the API prefix
- Request/response logging with correlation IDs
- Prometheus metrics
- CORS and rate limiting
- Error normalization for domain and framework errors
- Document store lifecycle (indexes on startup, close on shutdown)
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from api.src.config import Settings, get_settings
from api.src.dependencies import AppContainer, build_container, create_store
from api.src.middleware.errors import ErrorNormalizer
from api.src.repositories.document_store import DocumentStore
from api.src.routers import bookings, reviews, tours, users
from api.src.services.notifier import Notifier, create_notifier
from api.src.services.payment_service import PaymentGateway, create_payment_gateway
from shared.logging import bind_context, clear_context, configure_logging
from shared.metrics import CONTENT_TYPE_LATEST, ApiMetrics

# Initialize logger
logger = structlog.get_logger(__name__)


# ============================================================================
# Request Logging and Metrics Middleware
# ============================================================================


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging and metrics."""

    def __init__(self, app, metrics: ApiMetrics):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        """Process request and log details."""
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        clear_context()
        bind_context(correlation_id=correlation_id)

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        self.metrics.requests_in_progress.labels(method=method).inc()
        start_time = time.time()

        logger.info("request_started", method=method, path=path, client_ip=client_ip)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            route = request.scope.get("route")
            self.metrics.observe(method, getattr(route, "path", "unmatched"), 500, duration)
            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration=f"{duration:.3f}s",
            )
            raise
        finally:
            self.metrics.requests_in_progress.labels(method=method).dec()

        duration = time.time() - start_time
        route = request.scope.get("route")
        self.metrics.observe(method, getattr(route, "path", "unmatched"), response.status_code, duration)

        logger.info(
            "request_completed",
            method=method,
            path=path,
            status_code=response.status_code,
            duration=f"{duration:.3f}s",
        )

        response.headers["X-Correlation-ID"] = correlation_id
        return response


# ============================================================================
# Application Factory
# ============================================================================


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    notifier: Optional[Notifier] = None,
    payment_gateway: Optional[PaymentGateway] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Collaborators default to the ones configured in ``settings``; tests pass
    a memory store and recording doubles instead.

    Args:
        settings: Application settings (defaults to ``get_settings()``)
        store: Document store backend
        notifier: Email collaborator
        payment_gateway: Hosted checkout collaborator

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.log_format == "json",
        environment=settings.environment,
    )

    container: AppContainer = build_container(
        settings,
        store if store is not None else create_store(settings),
        notifier if notifier is not None else create_notifier(settings),
        payment_gateway if payment_gateway is not None else create_payment_gateway(settings),
    )
    metrics = ApiMetrics()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifespan manager.

        Ensures unique indexes on startup and closes the store on shutdown.
        """
        logger.info(
            "application_starting",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment,
            store_backend=settings.store_backend,
        )

        for repo in container.repositories:
            await repo.ensure_indexes()

        logger.info("application_started", app_name=settings.app_name)

        try:
            yield
        finally:
            logger.info("application_shutting_down")
            await container.store.close()
            logger.info("application_shutdown_complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Tours, reviews, bookings and user accounts.",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.container = container
    app.state.metrics = metrics

    # ------------------------------------------------------------------------
    # Middleware
    # ------------------------------------------------------------------------

    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit_default],
        enabled=settings.rate_limit_enabled,
    )
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    if settings.cors_enabled:
        logger.info("configuring_cors", origins=settings.cors_origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(RequestLoggingMiddleware, metrics=metrics)

    # ------------------------------------------------------------------------
    # Exception Handlers
    # ------------------------------------------------------------------------

    normalizer = ErrorNormalizer(environment=settings.environment)
    normalizer.register(app)

    # ------------------------------------------------------------------------
    # Health and Metrics Endpoints
    # ------------------------------------------------------------------------

    @app.get("/health", tags=["Health"])
    @limiter.exempt
    async def health_check() -> JSONResponse:
        """
        Health check endpoint.

        Reports the document store's reachability alongside service metadata.
        """
        try:
            store_ok = await container.store.ping()
        except Exception as e:
            logger.error("store_health_check_failed", error=str(e))
            store_ok = False

        content: Dict[str, Any] = {
            "status": "healthy" if store_ok else "unhealthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": {"store": "healthy" if store_ok else "unhealthy"},
        }
        return JSONResponse(status_code=200 if store_ok else 503, content=content)

    @app.get("/metrics", tags=["Monitoring"])
    @limiter.exempt
    async def metrics_endpoint() -> Response:
        """Prometheus metrics endpoint."""
        return Response(content=metrics.render(), media_type=CONTENT_TYPE_LATEST)

    # ------------------------------------------------------------------------
    # API Routers
    # ------------------------------------------------------------------------

    for router in (
        users.router,
        tours.router,
        reviews.tour_reviews_router,
        reviews.router,
        bookings.router,
    ):
        app.include_router(router, prefix=settings.api_prefix)

    return app


# ============================================================================
# Application Entry Point
# ============================================================================

if __name__ == "__main__":
    settings = get_settings()
    logger.info("starting_uvicorn_server", host=settings.host, port=settings.port)

    uvicorn.run(
        "api.src.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
