"""
Web API endpoints for driving the simulated controller (fault injection).
"""

import logging
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from smc100cc_ctrl.simulator.mock_transport import SimulatedController


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/simulator", tags=["simulator"])


def get_simulator(request: Request) -> SimulatedController:
    """Get simulator from app.state."""
    simulator = getattr(request.app.state, 'simulator', None)
    if simulator is None:
        raise HTTPException(status_code=503, detail="Simulator not available")
    return simulator


class InjectErrorRequest(BaseModel):
    """Error character the next TE query should report."""
    status_char: str = Field(..., min_length=1, max_length=1)


class PositionOffsetRequest(BaseModel):
    """Offset applied to the end point of every move."""
    offset: float = 0.0


@router.get("/status")
async def get_status(request: Request):
    """Get current simulator state."""
    return get_simulator(request).status()


@router.post("/unplug")
async def unplug(request: Request):
    """Simulate pulling the USB cable."""
    get_simulator(request).unplug()
    return {"plugged": False}


@router.post("/plug")
async def plug(request: Request):
    """Simulate reconnecting the USB cable."""
    get_simulator(request).plug()
    return {"plugged": True}


@router.post("/reset")
async def reset(request: Request):
    """Simulate a controller power cycle."""
    get_simulator(request).reset()
    return {"state": "0A"}


@router.post("/inject-error")
async def inject_error(body: InjectErrorRequest, request: Request):
    """Make the next TE query report the given status character."""
    get_simulator(request).inject_error(body.status_char)
    logger.info(f"[SIMULATOR] Injected error {body.status_char!r}")
    return {"injected": body.status_char}


@router.post("/position-offset")
async def set_position_offset(body: PositionOffsetRequest, request: Request):
    """Make moves end away from their target, to exercise the mismatch path."""
    get_simulator(request).set_position_offset(body.offset)
    return {"offset": body.offset}
