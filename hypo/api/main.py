"""
FastAPI Application Entry Point.

This module creates and configures the FastAPI application instance.
It handles:
1. Service wiring (one ServiceContainer per app)
2. Router registration
3. Middleware configuration (audit logging, security headers, CORS)
4. Exception handlers
5. Background sweeps and client shutdown in the lifespan

Run with: uvicorn hypo.api.main:app --reload
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hypo import __version__
from hypo.api.dependencies import ServiceContainer, build_container
from hypo.api.routes import chat_router, health_router, models_router
from hypo.core.audit import AuditMiddleware, SecurityHeadersMiddleware
from hypo.core.config import get_settings
from hypo.core.exceptions import HypoException, RateLimitExceeded
from hypo.core.logging_config import get_logger, setup_logging
from hypo.core.scheduler import PeriodicTask
from hypo.llm.errors import BackendError

logger = get_logger(__name__)


def _background_tasks(container: ServiceContainer) -> list:
    settings = container.settings
    return [
        PeriodicTask(
            "conversation-sweep",
            container.store.sweep_idle,
            settings.conversation_sweep_minutes * 60,
        ),
        PeriodicTask(
            "cache-cleanup",
            container.cache.cleanup,
            settings.cache_cleanup_minutes * 60,
        ),
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    - Startup: start the idle-conversation and cache TTL sweeps
    - Shutdown: stop the sweeps and close backend HTTP clients
    """
    container: ServiceContainer = app.state.container
    settings = container.settings

    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")
    logger.info(f"Backends: {container.gateway.names} (auto order: {container.gateway.priority})")
    logger.info(
        f"Cooldown: {settings.rate_limit_cooldown_seconds}s, "
        f"budget: {settings.rate_limit_per_minute} req/min"
    )
    logger.info(f"Audit Logging: {settings.enable_audit_logging}")

    tasks = _background_tasks(container)
    for task in tasks:
        task.start()

    yield  # Application runs here

    logger.info(f"Shutting down {settings.app_name}")
    for task in tasks:
        await task.stop()
    await container.gateway.aclose()
    logger.info("Closed backend clients")


def _register_exception_handlers(app: FastAPI, include_details: bool) -> None:

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        """Cooldown or budget rejection: 429 with the wait hint."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers={"Retry-After": str(exc.wait_time)},
        )

    @app.exception_handler(HypoException)
    async def hypo_exception_handler(request: Request, exc: HypoException):
        """Handle all custom API exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
        )

    @app.exception_handler(BackendError)
    async def backend_error_handler(request: Request, exc: BackendError):
        """Backend failures outside a chat turn (model management endpoints)."""
        content = {"error": "backend_error", **exc.to_dict()}
        if include_details:
            content["originalError"] = exc.original_error
        return JSONResponse(status_code=exc.http_status, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Handle uncaught exceptions globally.

        Detailed error information is only included in development mode.
        """
        logger.exception(f"Unhandled exception: {exc}")

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An unexpected error occurred",
                "details": str(exc) if include_details else None,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application around ``container`` (a fresh one from settings by default).
    """
    container = container or build_container()
    settings = container.settings
    setup_logging(settings.log_level, log_to_file=settings.log_to_file)

    app = FastAPI(
        title="Hypo Chat API",
        description="""
        Chat orchestration for the Hypo workspace assistant.

        ## Features

        - **Streaming replies** over Server-Sent Events
        - **Multi-turn conversations** with bounded in-memory history
        - **Response cache** for repeated questions
        - **Per-client cooldown** with wait hints
        - **Multiple backends**: OpenRouter, Groq, Perplexity Sonar, Ollama
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.container = container

    # ============================================================
    # Middleware Configuration (Order matters!)
    # ============================================================

    app.add_middleware(SecurityHeadersMiddleware)

    if settings.enable_audit_logging:
        app.add_middleware(AuditMiddleware)
        logger.info("Audit logging middleware enabled")

    if settings.is_development():
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Conversation-Id", "Retry-After"],
        )
        logger.warning("CORS configured for development (all origins allowed)")

    _register_exception_handlers(app, include_details=settings.is_development())

    # ============================================================
    # Routers
    # ============================================================

    app.include_router(health_router)
    app.include_router(chat_router)
    app.include_router(models_router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "Hypo Chat API",
            "version": __version__,
            "documentation": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "hypo.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().is_development(),
    )
