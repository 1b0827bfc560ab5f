"""
Real serial transport for the SMC100CC controller.

Implements TransportInterface using pyserial. Each open() returns a
SerialHandle owning one serial.Serial instance; the state machine closes it
whenever the connection is dropped.
"""

import logging
import threading
from typing import Optional

import serial
from serial import SerialException, SerialTimeoutException

from smc100cc_ctrl.config.models import SerialConfig
from smc100cc_ctrl.protocol.interface import DeviceHandle, TransportInterface
from smc100cc_ctrl.protocol.logger import get_protocol_logger
from smc100cc_ctrl.utils.exceptions import TransportErrorKind, TransportFault


logger = logging.getLogger(__name__)


def _is_absent_error(error: Exception) -> bool:
    """True if an open failure means the device node does not exist."""
    if isinstance(error, FileNotFoundError):
        return True
    message = str(error).lower()
    return "no such file" in message or "filenotfounderror" in message or "could not find" in message


class SerialHandle(DeviceHandle):
    """Open pyserial session."""

    def __init__(self, port: serial.Serial, device_name: str):
        self._port: Optional[serial.Serial] = port
        self._device_name = device_name
        self._lock = threading.Lock()

    @property
    def device_name(self) -> str:
        return self._device_name

    @property
    def is_open(self) -> bool:
        return self._port is not None and self._port.is_open

    def _require_open(self) -> serial.Serial:
        if not self.is_open:
            raise TransportFault(f"{self._device_name} is not open")
        return self._port

    def write(self, data: bytes, timeout_ms: int) -> None:
        with self._lock:
            self._write(self._require_open(), data, timeout_ms)

    def _write(self, port: serial.Serial, data: bytes, timeout_ms: int) -> None:
        protocol_logger = get_protocol_logger()
        port.write_timeout = timeout_ms / 1000.0

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"TX: {data!r}")
        protocol_logger.log_tx(data)

        try:
            port.reset_output_buffer()
            port.write(data)
            port.flush()
        except SerialTimeoutException as e:
            protocol_logger.log_error(f"Write timeout after {timeout_ms} ms", data)
            raise TransportFault(f"Write timeout on {self._device_name}: {e}") from e
        except (SerialException, OSError) as e:
            protocol_logger.log_error(f"Write failed: {e}", data)
            raise TransportFault(f"Write failed on {self._device_name}: {e}") from e

    def write_read(self, data: bytes, terminator: bytes, write_timeout_ms: int,
                   read_timeout_ms: int) -> bytes:
        with self._lock:
            port = self._require_open()
            protocol_logger = get_protocol_logger()

            try:
                port.reset_input_buffer()
            except (SerialException, OSError) as e:
                raise TransportFault(f"Failed to flush {self._device_name}: {e}") from e

            self._write(port, data, write_timeout_ms)

            port.timeout = read_timeout_ms / 1000.0
            try:
                raw = port.read_until(terminator)
            except (SerialException, OSError) as e:
                protocol_logger.log_error(f"Read failed: {e}")
                raise TransportFault(f"Read failed on {self._device_name}: {e}") from e

            if not raw.endswith(terminator):
                protocol_logger.log_error(f"Read timeout after {read_timeout_ms} ms", raw)
                raise TransportFault(
                    f"No complete reply to {data.strip()!r} within {read_timeout_ms} ms"
                )

            reply = raw[:-len(terminator)]
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(f"RX: {reply!r}")
            protocol_logger.log_rx(reply)
            return reply

    def close(self) -> None:
        with self._lock:
            if self._port is not None and self._port.is_open:
                self._port.close()
                logger.info(f"Serial port {self._device_name} closed")
            self._port = None


class SerialTransport(TransportInterface):
    """
    Opens the controller's serial port.

    The SMC100CC link is fixed at 8 data bits, no parity, one stop bit,
    XON/XOFF flow control.
    """

    DATA_BITS = serial.EIGHTBITS
    PARITY = serial.PARITY_NONE
    STOP_BITS = serial.STOPBITS_ONE

    def __init__(self, config: SerialConfig):
        self._config = config

    def open(self, device_name: str) -> SerialHandle:
        logger.info(f"Opening serial port {device_name}")

        try:
            port = serial.Serial(
                port=device_name,
                baudrate=self._config.baud,
                bytesize=self.DATA_BITS,
                parity=self.PARITY,
                stopbits=self.STOP_BITS,
                xonxoff=True,
                timeout=self._config.read_timeout_ms / 1000.0,
                write_timeout=self._config.write_timeout_ms / 1000.0,
            )
        except (SerialException, OSError) as e:
            if _is_absent_error(e):
                raise TransportFault(
                    f"Failed to open {device_name}: device not found",
                    TransportErrorKind.DEVICE_ABSENT,
                ) from e
            raise TransportFault(f"Failed to open {device_name}: {e}") from e

        try:
            port.reset_input_buffer()
            port.reset_output_buffer()
        except (SerialException, OSError) as e:
            port.close()
            raise TransportFault(f"Failed to reset buffers on {device_name}: {e}") from e

        return SerialHandle(port, device_name)
