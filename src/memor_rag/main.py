"""
RAG Service Application Entry Point

This module defines the FastAPI application, registers routers and exception
handlers, and owns the lifespan of the service container.

Design Goals
------------
- Deterministic startup: secrets validated, schema ready and synchronizer
  running before the first request
- Explicit dependency wiring through the container, no import-time singletons
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI

from .api import health_routes, note_routes, rag_routes
from .config import Settings, get_settings
from .container import ServiceContainer, build_container
from .core.errors import MemorError, memor_error_handler, unhandled_exception_handler

logger = logging.getLogger("memor.app")

ContainerFactory = Callable[[Settings], ServiceContainer]


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    container_factory: ContainerFactory = build_container,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Parameters
    ----------
    settings : Optional[Settings]
        Settings to build the container from. Read from the environment at
        startup when omitted.

    container_factory : ContainerFactory
        Builds the service container. Tests pass a factory that injects fake
        collaborators.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        cfg = settings or get_settings()
        logging.getLogger("memor").setLevel(cfg.log_level.upper())
        logger.info("Starting memor-rag")

        # Touch critical secrets to force validation now (not at first use)
        _ = cfg.openai_api_key.get_secret_value()
        _ = cfg.jwt_client_secret.get_secret_value()
        _ = cfg.jwt_service_secret.get_secret_value()

        container = container_factory(cfg)
        await container.start()
        app.state.container = container
        logger.info("Service container ready")

        try:
            yield
        finally:
            logger.info("Shutting down memor-rag")
            await container.close()
            app.state.container = None

    app = FastAPI(
        title="memor-rag",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(MemorError, memor_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(rag_routes.router)
    app.include_router(note_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()
