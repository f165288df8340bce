"""
StockAgent API behind the request security gate.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from stockgate.logging_config import setup_logging
from stockgate.managers.config.config_manager import config_manager
from stockgate.middleware.security_gate import SecurityGate, set_security_gate
from stockgate.middleware.security_gate_middleware import SecurityGateMiddleware
from stockgate.routes import api_router, health_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info("Starting StockAgent API")
    yield
    logger.info("Shutting down StockAgent API")


def create_app(gate: Optional[SecurityGate] = None) -> FastAPI:
    """Build the app with every route behind ``gate``.

    The gate also becomes the process-wide gate so route guards share its
    policy and rate-limit table.
    """
    gate = gate or SecurityGate.from_config()
    set_security_gate(gate)

    settings = config_manager.app_settings
    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Stock portfolio API protected by the request security gate",
        version="0.1.0",
        debug=settings.debug_mode,
        lifespan=lifespan,
    )
    app.add_middleware(SecurityGateMiddleware, gate=gate)
    app.include_router(health_router)
    app.include_router(api_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
