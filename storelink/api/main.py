"""storelink API: FastAPI entry point.

Registers middleware, routers, error mapping, and lifecycle hooks. All
services live on ``app.state.container``; nothing is a module-level
singleton, so tests can build an app around an injected container.

Run with::

    uvicorn storelink.api.main:create_app --factory
"""

from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storelink import __version__
from storelink.api.middleware import ShopContextMiddleware
from storelink.api.routes import auth, events, subscriptions, webhooks
from storelink.api.schemas import ErrorResponse, HealthResponse
from storelink.config import Settings
from storelink.container import ServiceContainer
from storelink.errors import AuthError, ConfigurationError, ValidationError
from storelink.observability import configure_logging

logger = logging.getLogger(__name__)

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")


def _error(status_code: int, error: str, message: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message).model_dump(),
    )


def create_app(
    settings: Settings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Build the application. Pass ``container`` to inject services."""
    settings = settings or (container.settings if container else Settings.from_env())
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = container or ServiceContainer.build(settings)
        app.state.container = services
        await services.startup()
        logger.info("storelink API started")
        yield
        await services.shutdown()
        logger.info("storelink API shutting down")

    app = FastAPI(
        title="storelink",
        description="Commerce platform credentials, rate-limited API access, and webhook ingestion",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ShopContextMiddleware)

    # -- Error mapping --

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return _error(400, "Validation failed", exc.message)

    @app.exception_handler(AuthError)
    async def auth_error(request: Request, exc: AuthError):
        return _error(401, "Authorization failed", exc.message)

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError):
        logger.error("Configuration error: %s", exc.message)
        return _error(500, "Service misconfigured")

    # -- Routers --

    app.include_router(auth.router, prefix="/auth", tags=["Auth"])
    app.include_router(
        subscriptions.router, prefix="/webhooks/subscriptions", tags=["Webhook subscriptions"]
    )
    app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
    app.include_router(events.router, prefix="/events", tags=["Events"])

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        services: ServiceContainer = request.app.state.container
        return HealthResponse(
            version=__version__,
            environment=services.settings.environment,
            handlers=services.dispatcher.namespaces,
        )

    return app
