"""Comment Gateway: Main FastAPI Application.

Accepts comments and other entries for static sites, commits them to the
site's repository (directly or through a pull/merge request for moderation)
and notifies subscribers of new entries by email.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import api_router
from .core import GatewayError, get_settings
from .core.dependencies import ClientFactory
from .schemas import ErrorResponse

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Starting {settings.app_name} {settings.app_version} (environment: {settings.exe_env or 'untagged'})")

    if not settings.encryption_enabled:
        logger.warning("RSA_PRIVATE_KEY not configured - encryption, confirmations and moderation notifications are unavailable")

    app.state.client_factory = ClientFactory(settings)
    yield
    # Shutdown
    await app.state.client_factory.aclose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Comment Gateway API

    Accepts user-generated content (such as comments) for static sites and
    stores it as files in the site's GitHub or GitLab repository.

    ### Key Features

    - **Moderation**: Entries can be sent as pull/merge requests for review.
    - **Notifications**: Subscribers are emailed when new entries are published.
    - **Double Opt-In**: Subscriptions can require email confirmation.
    - **Spam Protection**: Akismet and reCAPTCHA checks.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)


@app.exception_handler(GatewayError)
async def gateway_exception_handler(request: Request, exc: GatewayError):
    """Errors that escaped a route's own response shaping."""
    logger.warning(f"Unhandled gateway error on {request.url.path}: {exc.code}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.code,
            message=exc.message,
            details=[exc.data] if exc.data is not None else [],
        ).model_dump(),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception on {request.url.path}")

    message = "An unexpected error occurred"
    if settings.debug or settings.environment != "production":
        message = f"{message}: {str(exc)[:200]}"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="internal_error",
            message=message,
            details=[],
        ).model_dump(),
    )


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "comment_gateway.main:app",
        host="0.0.0.0",
        port=8080,
        reload=settings.debug,
    )
