"""FastAPI application factory for the relayer."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from moleswap import __version__
from moleswap.config import get_settings
from moleswap.errors import MoleSwapError
from moleswap.escrow.factory import load_plugin_configs
from moleswap.escrow.registry import PluginRegistry
from moleswap.orders.database import close_db, init_db

logger = logging.getLogger(__name__)

_registry_lock = asyncio.Lock()


def error_response(
    status_code: int, code: str, message: str, details: Optional[dict[str, Any]] = None
) -> JSONResponse:
    """Render the ``{success: false, error}`` envelope."""
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _validation_code(path: str) -> str:
    if path.startswith("/api/orders"):
        return "INVALID_ORDER"
    if path.startswith("/api/secrets"):
        return "INVALID_SECRET_REQUEST"
    if path.startswith("/api/plugins"):
        return "INVALID_REQUEST"
    return "VALIDATION_ERROR"


async def moleswap_error_handler(request: Request, exc: MoleSwapError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return error_response(
        400, _validation_code(request.url.path), "Invalid request data", {"errors": errors}
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(500, "INTERNAL_ERROR", "Internal server error")


async def get_registry(app: FastAPI) -> PluginRegistry:
    """Plugin registry of the app, loaded from settings on first use."""
    async with _registry_lock:
        if not app.state.plugins_loaded:
            await app.state.registry.load_plugins(load_plugin_configs(get_settings()))
            app.state.plugins_loaded = True
    return app.state.registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    await get_registry(app)
    yield
    # Shutdown
    await app.state.registry.close()
    await close_db()


def create_app(registry: Optional[PluginRegistry] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        registry: Pre-loaded plugin registry; built from settings when omitted
    """
    settings = get_settings()

    app = FastAPI(
        title="MoleSwap Relayer",
        description="Order book and secret distribution for EVM-TON atomic swaps",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.registry = registry or PluginRegistry()
    app.state.plugins_loaded = registry is not None

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MoleSwapError, moleswap_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Register routes
    from moleswap.api.routes import health, orders, plugins, secrets

    app.include_router(health.router, tags=["Health"])
    app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
    app.include_router(secrets.router, prefix="/api/secrets", tags=["Secrets"])
    app.include_router(plugins.router, prefix="/api/plugins", tags=["Plugins"])

    return app
