"""
Abstract interfaces for the serial transport and device discovery.

These allow transparent substitution between real hardware and the simulator.
"""

from abc import ABC, abstractmethod


class DeviceHandle(ABC):
    """One open transport session to the controller."""

    @property
    @abstractmethod
    def device_name(self) -> str:
        """Name of the device this handle was opened on."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    def write(self, data: bytes, timeout_ms: int) -> None:
        """
        Write a frame.

        Raises:
            TransportFault: On write failure or timeout.
        """
        pass

    @abstractmethod
    def write_read(self, data: bytes, terminator: bytes, write_timeout_ms: int,
                   read_timeout_ms: int) -> bytes:
        """
        Write a frame and read the reply up to the terminator.

        Returns:
            Reply bytes without the terminator.

        Raises:
            TransportFault: On write/read failure or timeout.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the session. Safe to call more than once."""
        pass


class TransportInterface(ABC):
    """Opens device handles."""

    @abstractmethod
    def open(self, device_name: str) -> DeviceHandle:
        """
        Open a session on the named device.

        Raises:
            TransportFault: DEVICE_ABSENT if the device node is gone,
                IO for any other failure.
        """
        pass


class DiscoveryInterface(ABC):
    """Resolves the configured device identity to an addressable name."""

    @abstractmethod
    def resolve_identity(self) -> str:
        """
        Find the device name for the configured identity.

        Raises:
            DiscoveryError: DEVICE_ABSENT / NO_CANDIDATE_NAMES if the device
                is not present, MECHANISM if enumeration itself failed.
        """
        pass
