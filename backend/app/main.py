from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from app.core.config import settings
from app.core.database import init_db, close_db
from app.core.exceptions import PanelError, error_response
from app.core.logging_config import logger
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.core.rate_limiter import limiter, rate_limit_exceeded_handler
from app.api.v1.router import api_router
from app.modules.pin_auth.cleanup import pin_cleanup_service
from slowapi.errors import RateLimitExceeded

PLACEHOLDER_SECRETS = {"CHANGE_ME", "changeme", "secret", "your-secret-key", "your-jwt-secret-key"}


async def validate_critical_config():
    """Validate critical configuration at startup - fail fast if missing"""
    errors = []
    warnings = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL is not set")

    secret = settings.JWT_SECRET_KEY or ""
    if not secret or secret in PLACEHOLDER_SECRETS:
        errors.append("JWT_SECRET_KEY is not set or using default value")
    elif len(secret) < 16:
        errors.append("JWT_SECRET_KEY must be at least 16 characters")

    if not settings.STREMIO_API_URL.startswith(("http://", "https://")):
        warnings.append(f"STREMIO_API_URL looks wrong: {settings.STREMIO_API_URL}")

    if not settings.RATE_LIMIT_ENABLED:
        warnings.append("Rate limiting disabled - login and PIN endpoints are unprotected")

    if errors:
        for err in errors:
            logger.critical(f"[Startup] CRITICAL: {err}")
        raise RuntimeError(f"Missing critical configuration: {', '.join(errors)}")

    for warn in warnings:
        logger.warning(f"[Startup] WARNING: {warn}")

    logger.info("[Startup] Critical configuration validated")
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"API Version: {settings.API_VERSION}")
    logger.info(f"Stremio API: {settings.STREMIO_API_URL}")
    logger.info("=" * 60)

    await validate_critical_config()

    await init_db()
    logger.info("[Startup] Database tables ready")

    if settings.PIN_CLEANUP_ENABLED:
        await pin_cleanup_service.start()
    else:
        logger.info("PIN session cleanup disabled")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")

    if settings.PIN_CLEANUP_ENABLED:
        await pin_cleanup_service.stop()

    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Admin panel for Stremio accounts, resellers and addon collections",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False  # Prevent 307 redirects that break CORS
)

# Add rate limiter state and exception handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Add middleware (order matters - last added runs first)
# 1. Request logging (runs first for all requests)
app.add_middleware(RequestLoggingMiddleware)

# 2. Security headers
app.add_middleware(SecurityHeadersMiddleware)

# 3. CORS - Origins from CORS_ORIGINS_STR in .env
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


# Exception handlers
@app.exception_handler(PanelError)
async def panel_exception_handler(request: Request, exc: PanelError):
    if exc.status_code >= 500:
        logger.warning(f"[API] {request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_response(exc))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.log_error_with_context(exc, context=f"{request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "message": str(exc) if settings.DEBUG else "An error occurred"
        }
    )


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": "1.0.0",
        "docs": "/docs",
        "health": f"/api/{settings.API_VERSION}/health"
    }


# Include API router
app.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG
    )
