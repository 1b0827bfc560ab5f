"""
Stage controller (connection state machine).

Owns the device handle and drives discovery, connection, liveness testing,
homing, motion supervision and recovery. tick() is called by the polling
thread; start_motion() is called by the dispatcher from the submitting thread.
"""

import logging
import threading
from typing import Optional

from smc100cc_ctrl.config.models import SerialConfig, StageConfig
from smc100cc_ctrl.protocol.codec import (
    TERMINATOR,
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
from smc100cc_ctrl.protocol.device_errors import DeviceError, DeviceErrorCode
from smc100cc_ctrl.protocol.interface import DeviceHandle, DiscoveryInterface, TransportInterface
from smc100cc_ctrl.stage.dispatcher import CommandDispatcher
from smc100cc_ctrl.stage.state import (
    HANDLE_STATES,
    ConnectionState,
    FaultCategory,
    FaultReport,
    MotionRequest,
    PositionSample,
    PropertyPublisher,
    StateTracker,
)
from smc100cc_ctrl.utils.exceptions import (
    DecodeError,
    DeviceFault,
    DiscoveryError,
    InvariantFault,
    NotConnectedError,
    NotReadyError,
    ProtocolFault,
    TransportFault,
)
from smc100cc_ctrl.utils.privileges import elevated_privileges


logger = logging.getLogger(__name__)


class StageController:
    """
    Connection state machine for one SMC100CC controller.

    States: NoDevice -> NotConnected -> Connected -> Ready <-> Operating,
    with Error for recoverable faults and Fatal as the terminal state.
    """

    def __init__(
        self,
        transport: TransportInterface,
        discovery: DiscoveryInterface,
        serial_config: SerialConfig,
        stage_config: StageConfig,
        publisher: Optional[PropertyPublisher] = None,
    ):
        """
        Args:
            transport: Opens device handles (real serial or simulator).
            discovery: Resolves the device identity to a device name.
            serial_config: Timeouts for every exchange.
            stage_config: Stage behavior (address, tolerance, homing, identity).
            publisher: Outbound property bus. Optional.
        """
        self._transport = transport
        self._discovery = discovery
        self._serial_config = serial_config
        self.config = stage_config
        self._publisher = publisher

        self.tracker = StateTracker(ConnectionState.NO_DEVICE)
        self.dispatcher = CommandDispatcher(self.tracker, self, stage_config.position_tolerance)

        self._handle: Optional[DeviceHandle] = None
        self._device_name: Optional[str] = None
        self._io_lock = threading.RLock()
        self._homing_issued = False
        self._reported = set()

        self._sample: Optional[PositionSample] = None
        self._last_status: Optional[StatusCode] = None
        self._sample_lock = threading.Lock()

        self._polling_thread: Optional[threading.Thread] = None
        self._stop_polling = threading.Event()

        logger.info("StageController initialized")

    def set_publisher(self, publisher: PropertyPublisher) -> None:
        self._publisher = publisher

    @property
    def state(self) -> ConnectionState:
        return self.tracker.state

    @property
    def device_name(self) -> Optional[str]:
        return self._device_name

    @property
    def connected(self) -> bool:
        """True while a device handle is held."""
        return self.state in HANDLE_STATES

    @property
    def sample(self) -> Optional[PositionSample]:
        """Latest polled position, or None before the first poll."""
        with self._sample_lock:
            return self._sample

    @property
    def last_status(self) -> Optional[StatusCode]:
        with self._sample_lock:
            return self._last_status

    # ------------------------------------------------------------------
    # Polling thread

    def start(self) -> None:
        """Start the polling thread."""
        if self._polling_thread and self._polling_thread.is_alive():
            logger.warning("Polling thread already running")
            return

        self._stop_polling.clear()
        self._polling_thread = threading.Thread(
            target=self._poll_loop, name="stage-poll", daemon=True
        )
        self._polling_thread.start()
        logger.info(f"Polling started (interval {self.config.poll_interval_ms} ms)")

    def stop(self) -> None:
        """Stop the polling thread."""
        if self._polling_thread:
            self._stop_polling.set()
            self._polling_thread.join(timeout=5.0)
            self._polling_thread = None

    def shutdown(self) -> None:
        """Stop polling and release the device."""
        self.stop()
        with self._io_lock:
            if self.state in HANDLE_STATES:
                self._set_state(ConnectionState.NOT_CONNECTED)
            self._close_handle()
        logger.info("StageController shut down")

    def _poll_loop(self) -> None:
        logger.debug("Polling thread started")
        interval = self.config.poll_interval_ms / 1000.0

        while not self._stop_polling.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Error in poll tick: {e}", exc_info=True)
            self._stop_polling.wait(interval)

        logger.debug("Polling thread stopped")

    # ------------------------------------------------------------------
    # State bookkeeping

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self.tracker.state
        if new_state not in HANDLE_STATES:
            self._close_handle()
        if self.tracker.set(new_state):
            self._reported.clear()
            logger.debug(f"State {old_state.value} -> {new_state.value}")

    def _close_handle(self) -> None:
        if self._handle is not None:
            try:
                self._handle.close()
            except TransportFault as e:
                logger.warning(f"Error closing {self._handle.device_name}: {e}")
            self._handle = None

    def _report(self, category: FaultCategory, message: str, code: Optional[str] = None,
                once: bool = False, level: int = logging.ERROR) -> None:
        """
        Log a fault and publish it to the property bus.

        With once=True the same message is reported only once per state entry.
        """
        if once:
            key = (category, message)
            if key in self._reported:
                logger.debug(message)
                return
            self._reported.add(key)

        logger.log(level, message)
        if self._publisher:
            self._publisher.publish_fault(FaultReport(category, message, self.state, code))

    def _go_fatal(self, category: FaultCategory, message: str) -> None:
        self._set_state(ConnectionState.FATAL)
        if not self.tracker.state_logged():
            self._report(category, message, level=logging.CRITICAL)

    def _demote(self, category: FaultCategory, message: str) -> None:
        """Drop the connection; the next tick reconnects and re-validates."""
        self._report(category, message, once=True, level=logging.WARNING)
        self._set_state(ConnectionState.NOT_CONNECTED)
        if not self.tracker.state_logged():
            logger.warning(f"Connection to {self._device_name} lost, reconnecting")

    def _update_sample(self, current: float, status: Optional[StatusCode]) -> None:
        target = self.dispatcher.target
        with self._sample_lock:
            self._sample = PositionSample(current=current, target=target)
            if status is not None:
                self._last_status = status
        if self._publisher:
            self._publisher.publish_position(current, target)

    # ------------------------------------------------------------------
    # Exchanges

    def _require_handle(self) -> DeviceHandle:
        if self._handle is None:
            raise NotConnectedError("Stage not connected")
        return self._handle

    def _exchange(self, frame: bytes) -> bytes:
        return self._require_handle().write_read(
            frame,
            TERMINATOR,
            self._serial_config.write_timeout_ms,
            self._serial_config.read_timeout_ms,
        )

    def _write(self, frame: bytes) -> None:
        self._require_handle().write(frame, self._serial_config.write_timeout_ms)

    def _query_status(self) -> StatusCode:
        return decode_status(self._exchange(encode_status_query(self.config.controller_address)))

    def _query_position(self) -> float:
        return decode_position(self._exchange(encode_position_query(self.config.controller_address)))

    def _query_identity(self) -> str:
        return decode_identity(self._exchange(encode_identity_query(self.config.controller_address)))

    def _surface_last_error(self) -> Optional[DeviceError]:
        """
        Query TE and publish any reported error.

        Returns:
            The DeviceError, or None if the controller reports no error.

        Raises:
            TransportFault: If the query fails on the link.
            DecodeError: If the reply is malformed or the code is unknown.
            InvariantFault: If the code signals persistent misconfiguration.
        """
        code = decode_error(self._exchange(encode_error_query(self.config.controller_address)))
        if code is DeviceErrorCode.NO_ERROR:
            return None

        error = DeviceError(code)
        self._report(
            FaultCategory.DEVICE,
            f"Controller error {error.status_char}: {error.description}",
            code=error.status_char,
        )
        if error.persistent:
            raise InvariantFault(
                f"Controller reports persistent misconfiguration: {error.description}"
            )
        return error

    def _test_liveness(self) -> Optional[StatusCode]:
        """
        Send the status query and check the positioner error field.

        Returns:
            The decoded status if the field is all-clear, else None (fault reported).

        Raises:
            InvariantFault: If the controller reports persistent misconfiguration.
        """
        try:
            status = self._query_status()
        except TransportFault as e:
            self._report(FaultCategory.TRANSPORT, f"Liveness test failed: {e}", once=True,
                         level=logging.WARNING)
            return None
        except ProtocolFault as e:
            self._report(FaultCategory.PROTOCOL, f"Liveness test failed: {e}", once=True,
                         level=logging.WARNING)
            return None

        if status.all_clear:
            return status

        self._report(
            FaultCategory.PROTOCOL,
            f"Liveness test failed: positioner error {status.error_bits} ({status.description})",
            code=status.error_bits,
            once=True,
            level=logging.WARNING,
        )
        try:
            self._surface_last_error()
        except (TransportFault, DecodeError) as e:
            logger.debug(f"Could not read last error: {e}")
        return None

    # ------------------------------------------------------------------
    # State machine

    def tick(self) -> None:
        """
        Run one poll cycle.

        State blocks run in order, so a single tick can go from NoDevice to
        Connected when the device is available.
        """
        with self._io_lock:
            start_state = self.state
            try:
                if self.state is ConnectionState.NO_DEVICE:
                    self._tick_no_device()

                if self.state is ConnectionState.NOT_CONNECTED:
                    self._tick_not_connected()

                if self.state in HANDLE_STATES:
                    self._tick_connected()

                if start_state is ConnectionState.ERROR and self.state is ConnectionState.ERROR:
                    self._tick_error()

            except InvariantFault as e:
                self._go_fatal(FaultCategory.INVARIANT, str(e))

    def _resolve(self) -> bool:
        """
        Resolve the device identity.

        Returns:
            True if found (state NotConnected), False otherwise (state
            NoDevice or Fatal).
        """
        try:
            name = self._discovery.resolve_identity()
        except DiscoveryError as e:
            if e.is_absence:
                self._set_state(ConnectionState.NO_DEVICE)
                if not self.tracker.state_logged():
                    logger.info(f"Stage device not found: {e}")
                return False
            self._go_fatal(FaultCategory.DISCOVERY, f"Device discovery failed: {e}")
            return False

        self._device_name = name
        self._set_state(ConnectionState.NOT_CONNECTED)
        if not self.tracker.state_logged():
            logger.info(f"Stage device found as {name}")
        return True

    def _tick_no_device(self) -> None:
        self._resolve()

    def _tick_error(self) -> None:
        self._close_handle()
        self._resolve()

    def _tick_not_connected(self) -> None:
        try:
            with elevated_privileges():
                handle = self._transport.open(self._device_name)
        except TransportFault as e:
            self._handle_open_failure(e)
            return

        self._handle = handle
        self._homing_issued = False

        status = self._test_liveness()
        if status is None:
            self._close_handle()
            return

        if self.config.expected_stage_id is not None and not self._verify_identity():
            return

        self._set_state(ConnectionState.CONNECTED)
        with self._sample_lock:
            self._last_status = status
        if not self.tracker.state_logged():
            logger.info(f"Connected to stage on {self._device_name} ({status.description})")

    def _handle_open_failure(self, error: TransportFault) -> None:
        if error.is_absence:
            self._set_state(ConnectionState.NO_DEVICE)
            if not self.tracker.state_logged():
                logger.info(f"Stage device {self._device_name} no longer present")
            return

        # The open failed for some other reason; check whether the device is still there
        if self._resolve():
            self._go_fatal(
                FaultCategory.TRANSPORT,
                f"Cannot open {self._device_name} although the device is present: {error}",
            )

    def _verify_identity(self) -> bool:
        """
        Compare the ID? reply with the configured stage identifier.

        Returns:
            True if it matches, False if the query failed (handle closed).

        Raises:
            InvariantFault: On mismatch.
        """
        try:
            stage_id = self._query_identity()
        except (TransportFault, ProtocolFault) as e:
            self._report(FaultCategory.PROTOCOL, f"Identity query failed: {e}", once=True,
                         level=logging.WARNING)
            self._close_handle()
            return False

        if stage_id != self.config.expected_stage_id:
            raise InvariantFault(
                f"Stage identity mismatch: expected {self.config.expected_stage_id!r}, got {stage_id!r}"
            )
        return True

    def _tick_connected(self) -> None:
        status = self._test_liveness()
        if status is None:
            self._set_state(ConnectionState.NOT_CONNECTED)
            if not self.tracker.state_logged():
                logger.warning(f"Connection to {self._device_name} lost, reconnecting")
            return

        if self.state is ConnectionState.READY and not status.is_referenced:
            # Controller was reset behind our back
            self._set_state(ConnectionState.CONNECTED)
            self._homing_issued = False
            logger.warning(f"Stage lost its reference ({status.description}), homing again")

        try:
            if self.state is ConnectionState.CONNECTED:
                self._ensure_homed(status)

            current = self._query_position()
            self._update_sample(current, status)
            error = self._surface_last_error()

        except TransportFault as e:
            self._demote(FaultCategory.TRANSPORT, f"Transport failure: {e}")
            return
        except ProtocolFault as e:
            self._demote(FaultCategory.PROTOCOL, f"Bad reply from controller: {e}")
            return

        if self.state is not ConnectionState.OPERATING:
            return

        if error is not None:
            self._enter_error(f"Controller error during motion: {error.description}")
            return

        outcome = self.dispatcher.poll_completion(current, status)
        if outcome.reached:
            self._set_state(ConnectionState.READY)
            logger.info(f"Move completed at {current} (target {outcome.target})")
        elif outcome.mismatch:
            self._report(
                FaultCategory.MOTION,
                f"Current and target don't match when controller is not moving: "
                f"Current: {outcome.current} & Target: {outcome.target}",
            )
            self._enter_error("Motion ended outside tolerance")

    def _enter_error(self, message: str) -> None:
        self._set_state(ConnectionState.ERROR)
        if not self.tracker.state_logged():
            logger.error(f"{message}; attempting recovery")

    def _ensure_homed(self, status: StatusCode) -> None:
        """Move Connected -> Ready, homing first if the controller is not referenced."""
        if status.is_ready:
            self._set_state(ConnectionState.READY)
            if not self.tracker.state_logged():
                logger.info(f"Stage ready ({status.description})")
            return

        if status.is_homing:
            logger.debug("Homing in progress")
            return

        if status.is_referenced:
            if not self.tracker.state_logged():
                logger.info(f"Waiting for controller to become ready ({status.description})")
            return

        if not self.config.home_on_connect:
            if not self.tracker.state_logged():
                logger.warning("Stage not referenced and home_on_connect is disabled")
            return

        if not self._homing_issued:
            self._write(encode_home(self.config.controller_address))
            self._homing_issued = True
            logger.info(f"Homing stage ({status.description})")

    # ------------------------------------------------------------------
    # Motion

    def start_motion(self, request: MotionRequest) -> None:
        """
        Issue a move absolute command and enter Operating.

        Called by the dispatcher with its issue lock held.

        Raises:
            NotReadyError: If a poll tick left Ready (homing again) before the write.
            NotConnectedError: If the connection was lost before the write.
            InvalidValueError: If the target is not a finite number.
            TransportFault: If the write fails (connection demoted).
            DeviceFault: If the controller rejects the command (state Error).
            InvariantFault: If the controller reports persistent misconfiguration (state Fatal).
        """
        with self._io_lock:
            # A tick may have left Ready since the dispatcher checked
            state = self.state
            if state is ConnectionState.CONNECTED:
                raise NotReadyError("Stage is connected but not ready (homing)")
            if state is not ConnectionState.READY:
                raise NotConnectedError(f"Stage not connected (state {state.value})")

            frame = encode_move_absolute(
                request.target,
                self.config.controller_address,
                self.config.position_decimals,
            )

            try:
                self._write(frame)
            except TransportFault as e:
                self._demote(FaultCategory.TRANSPORT, f"Move command failed: {e}")
                raise

            self._set_state(ConnectionState.OPERATING)
            logger.info(f"Moving to {request.target} (request #{request.sequence})")

            sample = self.sample
            if sample is not None:
                self._update_sample(sample.current, None)

            try:
                error = self._surface_last_error()
            except InvariantFault as e:
                self._go_fatal(FaultCategory.INVARIANT, str(e))
                raise
            except TransportFault as e:
                self._demote(FaultCategory.TRANSPORT, f"Error query after move failed: {e}")
                raise
            except DecodeError as e:
                self._demote(FaultCategory.PROTOCOL, f"Bad reply to error query after move: {e}")
                raise

            if error is not None:
                self._enter_error(f"Move to {request.target} rejected: {error.description}")
                raise DeviceFault(error)
