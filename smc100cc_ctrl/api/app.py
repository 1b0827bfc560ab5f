"""
FastAPI application factory.
"""

import logging
import itertools
import threading
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from smc100cc_ctrl import __version__
from smc100cc_ctrl.config.models import AppConfig
from smc100cc_ctrl.api.models import make_response
from smc100cc_ctrl.protocol.discovery import list_available_ports
from smc100cc_ctrl.protocol.logger import get_protocol_logger


logger = logging.getLogger(__name__)

# Global server transaction ID counter (thread-safe)
_transaction_counter = itertools.count(1)
_transaction_lock = threading.Lock()


def get_next_transaction_id() -> int:
    """
    Get next server transaction ID (thread-safe).

    Returns:
        Incremented transaction ID.
    """
    with _transaction_lock:
        return next(_transaction_counter)


def create_app(config: AppConfig) -> FastAPI:
    """
    Create FastAPI application instance.

    Args:
        config: Application configuration.

    Returns:
        Configured FastAPI app. Routers and app.state are attached by the caller.
    """
    app = FastAPI(
        title="SMC100CC Stage Controller",
        description="Property bridge for a Newport SMC100CC motion controller",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch all unhandled exceptions and return an error envelope."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)

        response = make_response(
            value=None,
            server_id=get_next_transaction_id(),
            error=exc
        )

        return JSONResponse(status_code=500, content=response.model_dump())

    @app.get("/api/v1/management/description")
    async def get_server_description():
        """Return server description."""
        return make_response(
            {
                "ServerName": "SMC100CC Stage Controller",
                "Version": __version__,
                "Property": config.stage.property_name,
                "Simulator": config.simulator.enabled,
            },
            get_next_transaction_id(),
        )

    @app.get("/api/v1/management/ports")
    def get_available_ports():
        """List all serial ports on the system."""
        ports = list_available_ports()
        return make_response([p.to_dict() for p in ports], get_next_transaction_id())

    @app.get("/api/v1/protocol/log")
    async def get_protocol_log(limit: int = Query(100, ge=1, le=1000)):
        """Recent TX/RX frames and statistics."""
        protocol_logger = get_protocol_logger()
        return make_response(
            {
                "messages": protocol_logger.get_messages(limit),
                "stats": protocol_logger.get_stats(),
            },
            get_next_transaction_id(),
        )

    @app.delete("/api/v1/protocol/log")
    async def clear_protocol_log():
        """Clear the protocol log."""
        get_protocol_logger().clear()
        return make_response(None, get_next_transaction_id())

    return app
