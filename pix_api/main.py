"""
PIX API main application.
Entry point for the FastAPI server.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from shared.config.logging import setup_logging, api_logger as logger
from shared.config.settings import Settings, get_settings
from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.infrastructure.db import Store
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler
from shared.utils.exceptions import (
    AppException,
    app_exception_handler,
    request_validation_exception_handler,
)
from pix_api.routers import health_router, pix_router, webhook_router
from pix_api.services.payments import (
    ConfigurationError,
    LedgerWriter,
    MercadoPagoClient,
    ReconciliationEngine,
)


def create_app(
    settings: Settings | None = None,
    *,
    store: Store | None = None,
    gateway: MercadoPagoClient | None = None,
) -> FastAPI:
    """
    Build the application.

    ``store`` and ``gateway`` may be supplied by the caller (tests, embedding);
    components built here are owned by the app and closed on shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.
        Runs on startup and shutdown.
        """
        # Initialize logging
        setup_logging(settings)

        # Missing credentials are fatal: never start half-configured
        errors = settings.validate_required()
        if errors:
            for error in errors:
                logger.error("Configuration error", error=error)
            raise ConfigurationError("; ".join(errors))

        logger.info("Starting PIX API", port=settings.port, env=settings.environment)

        owned_store = store is None
        owned_gateway = gateway is None
        app_store = store or Store.from_settings(settings)
        app_gateway = gateway or MercadoPagoClient.from_settings(settings)

        app_store.create_all()
        logger.info("Database tables created/verified")

        app.state.settings = settings
        app.state.store = app_store
        app.state.gateway = app_gateway
        app.state.reconciliation_engine = ReconciliationEngine(
            app_gateway, LedgerWriter(app_store)
        )

        yield

        # Shutdown
        logger.info("Shutting down PIX API")

        if owned_gateway:
            await app_gateway.aclose()
            logger.info("Mercado Pago HTTP client closed")
        if owned_store:
            app_store.close()

    app = FastAPI(
        title="PIX API",
        description="PIX charges and Mercado Pago payment reconciliation",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Uniform {ok, message} error bodies
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(health_router)
    app.include_router(pix_router)
    app.include_router(webhook_router)

    return app


app = create_app()
