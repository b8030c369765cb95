"""Main FastAPI application for the TeamHub API."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from teamhub import __version__
from teamhub.api.dependencies import build_services, error_envelope
from teamhub.api.rate_limit import limiter
from teamhub.api.v1.teams import router as teams_router
from teamhub.api.v1.webhooks import router as webhooks_router
from teamhub.email.service import EmailService
from teamhub.errors import InvalidArgumentError, TeamHubError
from teamhub.logging_config import configure_logging, get_logger
from teamhub.payments.stripe_service import StripeGateway
from teamhub.settings import Settings, settings as default_settings
from teamhub.storage.db import Database
from teamhub.teams.reconciler import OneOffPurchaseHandler, log_one_off_purchase

logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # JSON API only, nothing to load
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    services = app.state.services
    logger.info("app_starting", env=services.settings.env)

    # Initialize database tables
    services.db.create_tables()

    # Bounded retention of the webhook idempotency ledger
    services.ledger.prune(services.settings.webhook_event_retention_days)

    yield

    logger.info("app_shutting_down")


def create_app(
    settings: Settings | None = None,
    db: Database | None = None,
    gateway: StripeGateway | None = None,
    email_service: EmailService | None = None,
    one_off_purchase_handler: OneOffPurchaseHandler = log_one_off_purchase,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators are built here, once, from validated settings. A missing
    Stripe key or an insecure production identity secret fails at startup.

    Returns:
        Configured FastAPI app

    Raises:
        ConfigurationError: if the deployment is misconfigured
    """
    settings = settings or default_settings
    configure_logging(settings)

    settings.require_secure_identity()
    gateway = gateway or StripeGateway.from_settings(settings)
    db = db or Database(settings.database_url)

    app = FastAPI(
        title="TeamHub API",
        description="Team subscription entitlement",
        version=__version__,
        docs_url=None if settings.is_production else "/api/docs",
        redoc_url=None if settings.is_production else "/api/redoc",
        openapi_url=None if settings.is_production else "/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = build_services(
        settings,
        db,
        gateway,
        email_service=email_service,
        one_off_purchase_handler=one_off_purchase_handler,
    )

    # Security Headers middleware (must be added before CORS)
    app.add_middleware(SecurityHeadersMiddleware)

    allowed_origins = [
        origin.strip()
        for origin in settings.allowed_origins.split(",")
        if origin.strip()
    ]

    # Block wildcard in production
    if settings.is_production and "*" in allowed_origins:
        logger.error("cors_wildcard_blocked", message="Wildcard CORS not allowed in production")
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        max_age=3600,
    )

    # Rate limiting (shared instance from rate_limit module)
    limiter.enabled = settings.is_production
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests. Please try again later."},
        )

    # Raised by dependencies (require_auth) before a route body runs
    @app.exception_handler(TeamHubError)
    async def teamhub_error_handler(request: Request, exc: TeamHubError):
        return error_envelope(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        field = ".".join(str(p) for p in errors[0]["loc"][1:]) if errors else ""
        message = f"Invalid or missing field: {field}" if field else "Invalid request body"
        return error_envelope(InvalidArgumentError(message))

    app.include_router(teams_router, prefix="/api/v1")
    app.include_router(webhooks_router, prefix="/api/v1")

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "env": settings.env,
        }

    return app
