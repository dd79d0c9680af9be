"""
Main FastAPI application for the image generation proxy.
Serves the health listing, POST /generate-image and metrics.

`app` is served by uvicorn; `handler` is the entry point for
function-as-a-service hosts (API Gateway / Lambda style events).
"""
import logging
from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI, Request
from mangum import Mangum
from starlette.exceptions import HTTPException as StarletteHTTPException

from imagegen_proxy.api.middleware import install_middleware
from imagegen_proxy.api.responses import error_response
from imagegen_proxy.api.routes import generation, health
from imagegen_proxy.core.config import Settings, get_settings
from imagegen_proxy.core.logging import configure_logging
from imagegen_proxy.services.generation.service import GenerationService
from imagegen_proxy.services.image_generation import ImageGenerationClient
from imagegen_proxy.storage.public_host import PublicFileHostStorage
from imagegen_proxy.utils.metrics import router as metrics_router

logger = logging.getLogger(__name__)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Unknown paths and unsupported methods look the same to API clients
    if exc.status_code in (404, 405):
        return error_response(404, "Endpoint not found")
    return error_response(exc.status_code, str(exc.detail))


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    Build the application from validated settings.

    Args:
        settings: injected configuration; defaults to environment settings
        http_client: shared upstream client; created (and closed on shutdown)
            here when not given
    """
    settings = settings or get_settings()
    client = http_client or httpx.AsyncClient(
        timeout=settings.http_client_timeout,
        follow_redirects=True,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Runs once per uvicorn worker; the serverless handler configures logging itself
        configure_logging(settings)
        yield
        if http_client is None:
            await client.aclose()

    app = FastAPI(
        title="Image Generation Proxy API",
        description="Generates AI images and publishes them on a public file host",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.generation_service = GenerationService(
        generator=ImageGenerationClient.from_settings(settings, client),
        storage=PublicFileHostStorage.from_settings(settings, client),
    )

    missing = settings.missing_required()
    if missing:
        logger.error("configuration_incomplete", extra={"error": ", ".join(missing)})

    install_middleware(app, missing, settings.request_id_header)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # Routers
    app.include_router(health.router, tags=["health"])
    app.include_router(generation.router, tags=["generation"])
    if settings.metrics_enabled:
        app.include_router(metrics_router)
    return app


app = create_app()
_lambda_handler: Mangum | None = None


def build_handler(application: FastAPI, settings: Settings) -> Mangum:
    configure_logging(settings)
    # ASGI lifespan shutdown closes the shared client; a warm host reuses it across invocations
    return Mangum(application, lifespan="off")


def handler(event: dict, context: Any) -> dict:
    """Function-as-a-service entry point (API Gateway / Lambda style events)."""
    global _lambda_handler
    if _lambda_handler is None:
        _lambda_handler = build_handler(app, app.state.settings)
    return _lambda_handler(event, context)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(
        "imagegen_proxy.main:app",
        host=settings.uvicorn_host,
        port=settings.uvicorn_port,
        workers=settings.uvicorn_workers,
        log_config=None,
    )
