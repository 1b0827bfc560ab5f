"""
Protocol package for SMC100CC serial communication.
"""

from smc100cc_ctrl.protocol.interface import DeviceHandle, DiscoveryInterface, TransportInterface
from smc100cc_ctrl.protocol.serial_transport import SerialHandle, SerialTransport
from smc100cc_ctrl.protocol.discovery import PortInfo, SerialDiscovery, list_available_ports
from smc100cc_ctrl.protocol.device_errors import DeviceError, DeviceErrorCode, ErrorCategory
from smc100cc_ctrl.protocol.codec import (
    StatusCode,
    decode_error,
    decode_identity,
    decode_position,
    decode_status,
    encode_error_query,
    encode_home,
    encode_identity_query,
    encode_move_absolute,
    encode_position_query,
    encode_status_query,
)

__all__ = [
    "DeviceHandle",
    "DiscoveryInterface",
    "TransportInterface",
    "SerialHandle",
    "SerialTransport",
    "PortInfo",
    "SerialDiscovery",
    "list_available_ports",
    "DeviceError",
    "DeviceErrorCode",
    "ErrorCategory",
    "StatusCode",
    "decode_error",
    "decode_identity",
    "decode_position",
    "decode_status",
    "encode_error_query",
    "encode_home",
    "encode_identity_query",
    "encode_move_absolute",
    "encode_position_query",
    "encode_status_query",
]
