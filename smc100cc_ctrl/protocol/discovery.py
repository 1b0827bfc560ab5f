"""
Serial port enumeration and USB identity discovery.

Resolves the configured vendor/product/serial identity to the device node
the controller is currently attached to (e.g. /dev/ttyUSB0).
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

import serial.tools.list_ports

from smc100cc_ctrl.config.models import SerialConfig
from smc100cc_ctrl.protocol.interface import DiscoveryInterface
from smc100cc_ctrl.utils.exceptions import DiscoveryError, DiscoveryErrorKind


logger = logging.getLogger(__name__)


@dataclass
class PortInfo:
    """Information about an available serial port."""

    name: str
    description: str
    hardware_id: str
    vendor_id: Optional[str] = None
    product_id: Optional[str] = None
    serial_number: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "hardware_id": self.hardware_id,
            "vendor_id": self.vendor_id,
            "product_id": self.product_id,
            "serial_number": self.serial_number,
        }


def list_available_ports() -> List[PortInfo]:
    """
    List all serial ports on the system.

    Returns:
        PortInfo objects sorted by device name.
    """
    ports = []

    for port in serial.tools.list_ports.comports():
        ports.append(
            PortInfo(
                name=port.device,
                description=port.description or "Unknown",
                hardware_id=port.hwid or "",
                vendor_id=f"{port.vid:04x}" if port.vid is not None else None,
                product_id=f"{port.pid:04x}" if port.pid is not None else None,
                serial_number=port.serial_number,
            )
        )

    ports.sort(key=lambda p: p.name)

    logger.debug(f"Found {len(ports)} serial ports")
    return ports


class SerialDiscovery(DiscoveryInterface):
    """Matches serial ports against the configured USB identity."""

    def __init__(self, config: SerialConfig):
        self._config = config

    @property
    def identity(self) -> str:
        """vendor:product:serial string used in log messages."""
        return f"{self._config.vendor_id}:{self._config.product_id}:{self._config.serial_number or '*'}"

    def _matches(self, port: PortInfo) -> bool:
        if port.vendor_id != self._config.vendor_id:
            return False
        if port.product_id != self._config.product_id:
            return False
        if self._config.serial_number and port.serial_number != self._config.serial_number:
            return False
        return True

    def resolve_identity(self) -> str:
        if self._config.port:
            if os.path.exists(self._config.port):
                return self._config.port
            raise DiscoveryError(
                f"Configured port {self._config.port} does not exist",
                DiscoveryErrorKind.DEVICE_ABSENT,
            )

        try:
            ports = list_available_ports()
        except OSError as e:
            raise DiscoveryError(
                f"Serial port enumeration failed: {e}", DiscoveryErrorKind.MECHANISM, e
            ) from e

        if not ports:
            raise DiscoveryError("No serial ports on system", DiscoveryErrorKind.NO_CANDIDATE_NAMES)

        matches = [p for p in ports if self._matches(p)]
        if not matches:
            raise DiscoveryError(
                f"USB device {self.identity} not found", DiscoveryErrorKind.DEVICE_ABSENT
            )

        if len(matches) > 1:
            logger.warning(
                f"Multiple ports match {self.identity}, using first one: {matches[0].name}"
            )
        return matches[0].name
