"""
Pydantic models for property bridge responses.
"""

from typing import Any, Optional
from pydantic import BaseModel, Field


class BridgeResponse(BaseModel):
    """
    Standard response envelope.

    All stage endpoints return this format.
    """
    Value: Any = Field(description="Response value (type varies by endpoint)")
    ServerTransactionID: int = Field(description="Server transaction ID (auto-incremented)")
    ErrorNumber: int = Field(0, description="Error code (0 = success, non-zero = error)")
    ErrorMessage: str = Field("", description="Error message (empty string if no error)")


class PositionProperty(BaseModel):
    """The published position property."""
    name: str
    current: Optional[float] = None
    target: Optional[float] = None
    timestamp: Optional[str] = None


class MotionRequestModel(BaseModel):
    """Outcome of an inbound target update."""
    issued: bool
    target: Optional[float] = None
    sequence: Optional[int] = None


def make_response(
    value: Any,
    server_id: int = 0,
    error: Optional[Exception] = None
) -> BridgeResponse:
    """
    Helper to create a bridge response.

    Args:
        value: Response value (None if error).
        server_id: Server transaction ID.
        error: Exception (if any).

    Returns:
        BridgeResponse instance.
    """
    if error is None:
        return BridgeResponse(
            Value=value,
            ServerTransactionID=server_id,
            ErrorNumber=0,
            ErrorMessage=""
        )

    from smc100cc_ctrl.api.error_mapper import map_exception
    error_number, error_message = map_exception(error)

    return BridgeResponse(
        Value=None,
        ServerTransactionID=server_id,
        ErrorNumber=error_number,
        ErrorMessage=error_message
    )
