"""
Simulated SMC100CC controller.

Speaks the same ASCII protocol as the hardware so the full state machine can
run without a stage attached. Motion and homing progress are computed from
the elapsed time on each query.
"""

import logging
import threading
import time
from typing import Callable, Optional

from smc100cc_ctrl.config.models import SimulatorConfig
from smc100cc_ctrl.protocol.codec import (
    ALL_CLEAR,
    HOMING_STATES,
    MOVING_STATE,
    NOT_REFERENCED_STATES,
    READY_STATES,
    TERMINATOR,
)
from smc100cc_ctrl.protocol.device_errors import DeviceErrorCode
from smc100cc_ctrl.protocol.interface import DeviceHandle, DiscoveryInterface, TransportInterface
from smc100cc_ctrl.protocol.logger import get_protocol_logger
from smc100cc_ctrl.utils.exceptions import (
    DiscoveryError,
    DiscoveryErrorKind,
    TransportErrorKind,
    TransportFault,
)


logger = logging.getLogger(__name__)


class SimulatedController:
    """
    Virtual controller state.

    Shared by MockTransport, MockDiscovery and the simulator web API.
    """

    def __init__(self, config: SimulatorConfig, address: int = 1,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.address = str(address)
        self._clock = clock
        self._lock = threading.Lock()

        self.plugged = True
        self.error_bits = ALL_CLEAR
        self.state = "0A"
        self.position = config.initial_position
        self.target = config.initial_position
        self.position_offset = 0.0
        self._last_error = DeviceErrorCode.NO_ERROR.value
        self._injected_error: Optional[str] = None
        self._motion_start = 0.0
        self._motion_origin = config.initial_position
        self._homing_start = 0.0

        logger.info("SimulatedController initialized")

    @property
    def device_name(self) -> str:
        return self.config.device_name

    # Fault injection

    def unplug(self) -> None:
        with self._lock:
            self.plugged = False
        logger.info("[SIMULATOR] Device unplugged")

    def plug(self) -> None:
        with self._lock:
            self.plugged = True
        logger.info("[SIMULATOR] Device plugged in")

    def inject_error(self, status_char: str) -> None:
        """Make the next TE query report status_char (may be outside the known alphabet)."""
        with self._lock:
            self._injected_error = status_char

    def set_position_offset(self, offset: float) -> None:
        """Make moves stop `offset` units away from their target."""
        with self._lock:
            self.position_offset = offset

    def reset(self) -> None:
        """Power cycle: controller returns to NOT REFERENCED."""
        with self._lock:
            self.state = "0A"
            self.error_bits = ALL_CLEAR
            self._last_error = DeviceErrorCode.NO_ERROR.value

    # Protocol

    def _advance(self) -> None:
        now = self._clock()

        if self.state in HOMING_STATES:
            if now - self._homing_start >= self.config.homing_time_sec:
                self.position = 0.0
                self.target = 0.0
                self.state = "32"

        elif self.state == MOVING_STATE:
            final = self.target + self.position_offset
            distance = final - self._motion_origin
            travelled = (now - self._motion_start) * self.config.speed_units_per_sec
            if travelled >= abs(distance):
                self.position = final
                self.state = "33"
            else:
                direction = 1.0 if distance > 0 else -1.0
                self.position = self._motion_origin + direction * travelled

    def _set_error(self, code: DeviceErrorCode) -> None:
        self._last_error = code.value

    def handle_frame(self, frame: bytes) -> Optional[bytes]:
        """
        Process one command frame.

        Returns:
            Reply without terminator, or None for commands that do not reply
            (and for frames addressed to another controller).
        """
        text = frame.decode("ascii", errors="replace").strip()

        with self._lock:
            self._advance()

            if not text.startswith(self.address):
                return None
            command = text[len(self.address):len(self.address) + 2]
            argument = text[len(self.address) + 2:]

            if command == "TS":
                return f"{self.address}TS{self.error_bits}{self.state}".encode("ascii")

            if command == "TP":
                return f"{self.address}TP{self.position:.6f}".encode("ascii")

            if command == "TE":
                error = self._injected_error or self._last_error
                self._injected_error = None
                self._last_error = DeviceErrorCode.NO_ERROR.value
                return f"{self.address}TE{error}".encode("ascii")

            if command == "ID" and argument == "?":
                return f"{self.address}ID{self.config.stage_id}".encode("ascii")

            if command == "OR":
                self._handle_home()
                return None

            if command == "PA":
                self._handle_move(argument)
                return None

            self._set_error(DeviceErrorCode.UNKNOWN_MESSAGE_CODE)
            return None

    def _handle_home(self) -> None:
        if self.state in HOMING_STATES:
            self._set_error(DeviceErrorCode.HOME_ALREADY_STARTED)
        elif self.state in NOT_REFERENCED_STATES:
            self.state = "1E"
            self._homing_start = self._clock()
            self._advance()
        else:
            self._set_error(DeviceErrorCode.NOT_ALLOWED_READY)

    def _handle_move(self, argument: str) -> None:
        try:
            target = float(argument)
        except ValueError:
            self._set_error(DeviceErrorCode.PARAMETER_OUT_OF_RANGE)
            return

        if self.state in NOT_REFERENCED_STATES:
            self._set_error(DeviceErrorCode.NOT_ALLOWED_NOT_REFERENCED)
        elif self.state in HOMING_STATES:
            self._set_error(DeviceErrorCode.NOT_ALLOWED_HOMING)
        elif self.state == MOVING_STATE:
            self._set_error(DeviceErrorCode.NOT_ALLOWED_MOVING)
        elif self.state in READY_STATES:
            self.target = target
            self._motion_origin = self.position
            self._motion_start = self._clock()
            self.state = MOVING_STATE
            self._advance()
        else:
            self._set_error(DeviceErrorCode.COMMAND_NOT_ALLOWED)

    def status(self) -> dict:
        with self._lock:
            self._advance()
            return {
                "device_name": self.device_name,
                "plugged": self.plugged,
                "state": self.state,
                "error_bits": self.error_bits,
                "position": self.position,
                "target": self.target,
                "position_offset": self.position_offset,
            }


class MockHandle(DeviceHandle):
    """Open session on a SimulatedController."""

    def __init__(self, controller: SimulatedController):
        self._controller = controller
        self._open = True

    @property
    def device_name(self) -> str:
        return self._controller.device_name

    @property
    def is_open(self) -> bool:
        return self._open

    def _check(self) -> None:
        if not self._open:
            raise TransportFault(f"{self.device_name} is not open")
        if not self._controller.plugged:
            raise TransportFault(f"I/O error on {self.device_name}: device disconnected")

    def _latency(self) -> None:
        if self._controller.config.response_latency_ms > 0:
            time.sleep(self._controller.config.response_latency_ms / 1000.0)

    def write(self, data: bytes, timeout_ms: int) -> None:
        self._check()
        get_protocol_logger().log_tx(data)
        self._latency()
        self._controller.handle_frame(data)

    def write_read(self, data: bytes, terminator: bytes, write_timeout_ms: int,
                   read_timeout_ms: int) -> bytes:
        self._check()
        protocol_logger = get_protocol_logger()
        protocol_logger.log_tx(data)
        self._latency()

        reply = self._controller.handle_frame(data)
        if reply is None:
            protocol_logger.log_error(f"Read timeout after {read_timeout_ms} ms")
            raise TransportFault(
                f"No complete reply to {data.strip()!r} within {read_timeout_ms} ms"
            )

        protocol_logger.log_rx(reply)
        logger.debug("[SIMULATOR] TX: %r -> RX: %r", data, reply)
        return reply

    def close(self) -> None:
        self._open = False


class MockTransport(TransportInterface):
    """Opens handles on the simulated controller."""

    def __init__(self, controller: SimulatedController):
        self._controller = controller

    def open(self, device_name: str) -> MockHandle:
        if not self._controller.plugged or device_name != self._controller.device_name:
            raise TransportFault(
                f"Failed to open {device_name}: device not found",
                TransportErrorKind.DEVICE_ABSENT,
            )
        logger.info(f"[SIMULATOR] Opened {device_name}")
        return MockHandle(self._controller)


class MockDiscovery(DiscoveryInterface):
    """Reports the simulated device while it is plugged in."""

    def __init__(self, controller: SimulatedController):
        self._controller = controller

    def resolve_identity(self) -> str:
        if not self._controller.plugged:
            raise DiscoveryError(
                "Simulated device not plugged in", DiscoveryErrorKind.DEVICE_ABSENT
            )
        return self._controller.device_name
