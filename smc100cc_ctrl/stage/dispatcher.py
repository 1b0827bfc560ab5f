"""
Command dispatcher: serializes target submissions against the in-flight move.
"""

import logging
import threading
from typing import Optional

from smc100cc_ctrl.protocol.codec import StatusCode
from smc100cc_ctrl.stage.state import (
    ConnectionState,
    MotionOutcome,
    MotionRequest,
    MotionStatus,
    StateTracker,
)
from smc100cc_ctrl.utils.exceptions import NotConnectedError, NotReadyError


logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.05


class CommandDispatcher:
    """
    Accepts target positions and drives them to completion.

    At most one physical move is outstanding. A submission that arrives while
    a move is in flight waits for it to finish; if several arrive in the same
    window only the most recent one is issued.
    """

    def __init__(self, tracker: StateTracker, mover, tolerance: float = DEFAULT_TOLERANCE):
        """
        Args:
            tracker: Shared connection state.
            mover: Object with start_motion(request) that issues the move
                and enters Operating (the state machine).
            tolerance: Absolute completion tolerance in device units.
        """
        self._tracker = tracker
        self._mover = mover
        self._tolerance = tolerance

        self._lock = threading.Lock()          # guards the request fields below
        self._issue_lock = threading.Lock()    # one issuer at a time
        self._sequence = 0
        self._pending: Optional[MotionRequest] = None
        self._active: Optional[MotionRequest] = None

    @property
    def tolerance(self) -> float:
        return self._tolerance

    @property
    def pending_request(self) -> Optional[MotionRequest]:
        """Most recently submitted request."""
        with self._lock:
            return self._pending

    @property
    def active_request(self) -> Optional[MotionRequest]:
        """Request of the move last issued to the controller."""
        with self._lock:
            return self._active

    @property
    def target(self) -> Optional[float]:
        """Target of the move last issued to the controller."""
        with self._lock:
            return self._active.target if self._active else None

    def submit(self, target: float, timeout: Optional[float] = None) -> Optional[MotionRequest]:
        """
        Submit a new target position.

        Blocks while a move is in flight.

        Args:
            target: Absolute target position.
            timeout: Max seconds to wait for an in-flight move; None waits forever.

        Returns:
            The issued MotionRequest, or None if a later submission superseded it.

        Raises:
            NotReadyError: If connected but not ready (homing), or the wait timed out.
            NotConnectedError: If there is no connection to the controller.
        """
        with self._lock:
            self._sequence += 1
            request = MotionRequest(target=target, sequence=self._sequence)
            superseded, self._pending = self._pending, request

        logger.debug(f"Target {target} submitted (request #{request.sequence})")

        while True:
            if not self._tracker.wait_while(ConnectionState.OPERATING, timeout):
                with self._lock:
                    # Hand the slot back so an earlier waiter still gets issued
                    if self._pending is request:
                        self._pending = superseded
                raise NotReadyError(f"Move still in progress after {timeout} s")

            with self._issue_lock:
                with self._lock:
                    if self._pending is not request:
                        logger.info(
                            f"Target {target} (request #{request.sequence}) superseded "
                            f"by request #{self._pending.sequence}"
                        )
                        return None

                state = self._tracker.state
                if state is ConnectionState.OPERATING:
                    continue
                if state is ConnectionState.CONNECTED:
                    raise NotReadyError("Stage is connected but not ready (homing)")
                if state is not ConnectionState.READY:
                    raise NotConnectedError(f"Stage not connected (state {state.value})")

                with self._lock:
                    previous, self._active = self._active, request
                try:
                    self._mover.start_motion(request)
                except (NotReadyError, NotConnectedError):
                    with self._lock:
                        self._active = previous
                    raise
                return request

    def poll_completion(self, current: float, status: StatusCode) -> MotionOutcome:
        """
        Check whether the active move has finished.

        Args:
            current: Latest polled position.
            status: Latest decoded status reply.

        Returns:
            STILL_MOVING while the controller reports MOVING, otherwise
            REACHED if |current - target| is within tolerance, else MISMATCH.
        """
        active = self.active_request
        target = active.target if active else current

        if status.is_moving:
            return MotionOutcome(MotionStatus.STILL_MOVING, current, target)

        if abs(current - target) > self._tolerance:
            return MotionOutcome(MotionStatus.MISMATCH, current, target)

        return MotionOutcome(MotionStatus.REACHED, current, target)
