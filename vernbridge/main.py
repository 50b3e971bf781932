from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import bridge, health, websocket
from .config import settings
from .container import Container
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware

logger = structlog.stdlib.get_logger("vernbridge")


def create_app(container: Optional[Container] = None) -> FastAPI:
    """Build the API. A prepared container can be passed in (tests, embedding)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.container = container or Container(settings)
        logger.info(
            "bridge_service_started",
            network=app.state.container.settings.source_network,
            contract=app.state.container.settings.bridge_contract_address,
        )
        yield
        await app.state.container.shutdown()
        logger.info("bridge_service_stopped")

    app = FastAPI(
        title="VernBridge API",
        description="Bitcoin to Starknet bridge transaction orchestration",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["Health"])
    app.include_router(bridge.router, tags=["Bridge"])
    app.include_router(websocket.router)

    @app.get("/")
    async def root():
        """Root endpoint with basic info"""
        return {
            "name": "VernBridge API",
            "version": __version__,
            "docs": "/docs",
            "health": "/healthz",
            "websocket": "/ws",
        }

    return app


app = create_app()


def run() -> None:
    setup_logging()
    uvicorn.run(
        "vernbridge.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
