"""Main FastAPI application for the t3 proxy."""

import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.routes import chat_completions, health, list_models, service_info
from .config_loader import ProxySettings, load_settings
from .core.exceptions import ProxyError
from .logging import setup_logging
from .registry import SessionRegistry

logger = logging.getLogger("t3proxy")


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(
    settings: Optional[ProxySettings] = None,
    registry: Optional[SessionRegistry] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Resolved configuration; loaded from the YAML config when omitted.
        registry: Session registry to serve from; built from ``settings`` when omitted.
        transport: Optional httpx transport for backend calls (tests).

    Returns:
        The configured FastAPI application instance.
    """
    if settings is None:
        settings = load_settings()
    if registry is None:
        registry = SessionRegistry(
            settings.backend,
            settings.credentials,
            max_sessions=settings.max_sessions,
            idle_ttl=settings.idle_ttl,
            transport=transport,
        )

    app = FastAPI(title="t3proxy")
    app.state.settings = settings
    app.state.registry = registry
    logger.info("FastAPI application created")

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        logger.info("t3proxy server starting up...")
        logger.info("Configured bind address %s:%s", settings.host, settings.port)
        logger.info("Backend: %s", settings.backend.origin)
        if settings.credentials is not None:
            logger.info("Using configured backend credentials")
        else:
            logger.info("No configured credentials; clients must send Bearer cookies:convexSessionId")
        logger.info(f"Available models: {[model.name for model in settings.models]}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Handle application shutdown."""
        if len(registry):
            logger.info("Closing %d backend sessions", len(registry))
        await registry.aclose()

    app.add_exception_handler(ProxyError, proxy_error_handler)

    # Register routes
    app.post("/v1/chat/completions")(chat_completions)
    app.get("/v1/models")(list_models)
    app.get("/health")(health)
    app.get("/")(service_info)

    return app


def build_default_app() -> FastAPI:
    """Load settings from the environment, configure logging and build the app."""
    settings = load_settings()
    setup_logging(settings.log_level)
    return create_app(settings)
