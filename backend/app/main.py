"""
Unistudents Match - FastAPI Application

Main entry point for the membership backend.
Provides account registration/login and the subscription lifecycle endpoints.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config.settings import settings
from app.infrastructure.exceptions import MembershipError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info(f"{settings.app_name} backend starting in {settings.environment} mode...")

    if settings.database_url:
        try:
            from app.infrastructure.db.database import init_db
            await init_db()
            logger.info("SQLModel database connection pool initialized")
        except Exception as e:
            logger.warning(f"SQLModel database initialization skipped: {e}")

    yield

    # Shutdown
    from app.api.dependencies import get_payment_adapters
    if get_payment_adapters.cache_info().currsize:
        for adapter in get_payment_adapters().values():
            await adapter.aclose()

    if settings.database_url:
        try:
            from app.infrastructure.db.database import close_db
            await close_db()
            logger.info("SQLModel database connection pool closed")
        except Exception as e:
            logger.warning(f"SQLModel database shutdown error: {e}")

    logger.info(f"{settings.app_name} backend shutting down...")


app = FastAPI(
    title=settings.app_name,
    description="Membership and subscription API for Unistudents Match",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"message": message}})


@app.exception_handler(MembershipError)
async def membership_error_handler(request: Request, exc: MembershipError):
    """Handle all application errors with their mapped status."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Report the first invalid field as a 400."""
    errors = exc.errors()
    if not errors:
        return _error_response(400, "Invalid request")

    first = errors[0]
    message = str(first.get("msg", "Invalid request")).removeprefix("Value error, ")
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    if field and first.get("type") != "value_error":
        message = f"{field}: {message}"
    return _error_response(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Never expose internals to the client."""
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return _error_response(500, "Internal server error")


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "unistudents-match",
        "providers": {
            "stripe": settings.stripe_configured,
            "paypal": settings.paypal_configured,
        },
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Unistudents Match API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import auth, subscriptions  # noqa: E402

app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(subscriptions.router, prefix="/subscription", tags=["Subscription"])
