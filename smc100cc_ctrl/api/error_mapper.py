"""
Map exceptions to bridge error numbers.
"""

from typing import Tuple
from smc100cc_ctrl.utils.exceptions import (
    DeviceFault,
    DiscoveryError,
    InvalidValueError,
    InvariantFault,
    NotConnectedError,
    NotReadyError,
    ProtocolFault,
    StageException,
    TransportFault,
)


ERROR_INVALID_VALUE = 0x402  # 1026
ERROR_NOT_CONNECTED = 0x407  # 1031
ERROR_NOT_READY = 0x408  # 1032
ERROR_DRIVER_ERROR = 0x500  # 1280
ERROR_TRANSPORT = 0x501  # 1281
ERROR_PROTOCOL = 0x502  # 1282
ERROR_DEVICE = 0x503  # 1283
ERROR_INVARIANT = 0x504  # 1284


def map_exception(exception: Exception) -> Tuple[int, str]:
    """
    Map exception to error number and message.

    Args:
        exception: Python exception.

    Returns:
        Tuple of (ErrorNumber, ErrorMessage).
    """
    if isinstance(exception, NotConnectedError):
        return (ERROR_NOT_CONNECTED, str(exception))

    if isinstance(exception, NotReadyError):
        return (ERROR_NOT_READY, str(exception))

    if isinstance(exception, InvalidValueError):
        return (ERROR_INVALID_VALUE, str(exception))

    if isinstance(exception, (TransportFault, DiscoveryError)):
        return (ERROR_TRANSPORT, str(exception))

    if isinstance(exception, ProtocolFault):
        return (ERROR_PROTOCOL, str(exception))

    if isinstance(exception, DeviceFault):
        return (ERROR_DEVICE, str(exception))

    if isinstance(exception, InvariantFault):
        return (ERROR_INVARIANT, str(exception))

    if isinstance(exception, StageException):
        return (ERROR_DRIVER_ERROR, str(exception))

    return (ERROR_DRIVER_ERROR, f"Internal error: {type(exception).__name__}: {exception}")
