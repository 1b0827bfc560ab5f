"""
Stage property endpoints.

PUT handlers are plain functions so FastAPI runs them in its worker threads:
a submission may block until the in-flight move completes.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Query, Request

from smc100cc_ctrl.api.app import get_next_transaction_id
from smc100cc_ctrl.api.bridge import PropertyBridge
from smc100cc_ctrl.api.models import BridgeResponse, MotionRequestModel, PositionProperty, make_response
from smc100cc_ctrl.stage.controller import StageController
from smc100cc_ctrl.utils.exceptions import StageException


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/stage", tags=["stage"])


def get_controller(request: Request) -> StageController:
    """Dependency to get the stage controller from app.state."""
    controller = getattr(request.app.state, 'controller', None)
    if controller is None:
        raise RuntimeError("Stage controller not initialized")
    return controller


def get_bridge(request: Request) -> PropertyBridge:
    """Dependency to get the property bridge from app.state."""
    bridge = getattr(request.app.state, 'bridge', None)
    if bridge is None:
        raise RuntimeError("Property bridge not initialized")
    return bridge


@router.get("/health")
async def health_check():
    """Simple health check endpoint (no dependencies)."""
    return {"status": "ok", "message": "Server is running"}


@router.get("/position", response_model=BridgeResponse)
async def get_position(bridge: PropertyBridge = Depends(get_bridge)):
    """Get the published position property."""
    value = PositionProperty(**bridge.get_property())
    logger.debug(f"GET /position -> {value}")
    return make_response(value.model_dump(), get_next_transaction_id())


@router.put("/position", response_model=BridgeResponse)
def put_position(
    current: Optional[float] = Form(None),
    target: Optional[float] = Form(None),
    bridge: PropertyBridge = Depends(get_bridge),
):
    """Submit a new target position."""
    try:
        request = bridge.on_new_property(current=current, target=target)
        value = MotionRequestModel(
            issued=request is not None,
            target=request.target if request else None,
            sequence=request.sequence if request else None,
        )
        return make_response(value.model_dump(), get_next_transaction_id())
    except StageException as e:
        logger.error(f"Error in /position PUT: {e}")
        return make_response(None, get_next_transaction_id(), e)


@router.get("/state", response_model=BridgeResponse)
async def get_state(controller: StageController = Depends(get_controller)):
    """Connection state, device name and latest sample."""
    sample = controller.sample
    status = controller.last_status
    value = {
        "state": controller.state.value,
        "device_name": controller.device_name,
        "connected": controller.connected,
        "sample": sample.to_dict() if sample else None,
        "controller_state": status.description if status else None,
    }
    return make_response(value, get_next_transaction_id())


@router.get("/faults", response_model=BridgeResponse)
async def get_faults(
    limit: int = Query(50, ge=1, le=500),
    bridge: PropertyBridge = Depends(get_bridge),
):
    """Recent faults, oldest first."""
    return make_response(bridge.get_faults(limit), get_next_transaction_id())
