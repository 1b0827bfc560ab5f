"""
Connection states and the values exchanged between the stage layers.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional


class ConnectionState(Enum):
    """Connection lifecycle of the controller."""
    NO_DEVICE = "NoDevice"
    NOT_CONNECTED = "NotConnected"
    CONNECTED = "Connected"
    READY = "Ready"
    OPERATING = "Operating"
    ERROR = "Error"
    FATAL = "Fatal"


# A device handle exists in exactly these states
HANDLE_STATES = frozenset({
    ConnectionState.CONNECTED,
    ConnectionState.READY,
    ConnectionState.OPERATING,
})


@dataclass(frozen=True)
class MotionRequest:
    """A target position and its submission sequence number."""
    target: float
    sequence: int


@dataclass(frozen=True)
class PositionSample:
    """Latest polled position."""
    current: float
    target: Optional[float]
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat(timespec='milliseconds')
        return data


class MotionStatus(Enum):
    STILL_MOVING = "still_moving"
    REACHED = "reached"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class MotionOutcome:
    """Result of one completion check."""
    status: MotionStatus
    current: float
    target: float

    @property
    def reached(self) -> bool:
        return self.status is MotionStatus.REACHED

    @property
    def mismatch(self) -> bool:
        return self.status is MotionStatus.MISMATCH


class FaultCategory(Enum):
    DISCOVERY = "discovery"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    DEVICE = "device"
    MOTION = "motion"
    INVARIANT = "invariant"


@dataclass(frozen=True)
class FaultReport:
    """A fault published for operator visibility."""
    category: FaultCategory
    message: str
    state: ConnectionState
    code: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "message": self.message,
            "state": self.state.value,
            "code": self.code,
            "timestamp": self.timestamp.isoformat(timespec='milliseconds'),
        }


class PropertyPublisher(ABC):
    """Outbound side of the property bus."""

    @abstractmethod
    def publish_position(self, current: float, target: float) -> None:
        pass

    @abstractmethod
    def publish_fault(self, report: FaultReport) -> None:
        pass


class StateTracker:
    """
    Current connection state with transition notification.

    Waiters block on a condition variable that is signalled on every
    transition, so no caller has to spin on the state.
    """

    def __init__(self, initial: ConnectionState = ConnectionState.NO_DEVICE):
        self._state = initial
        self._logged = False
        self._condition = threading.Condition()

    @property
    def state(self) -> ConnectionState:
        with self._condition:
            return self._state

    def set(self, new_state: ConnectionState) -> bool:
        """
        Change state.

        Returns:
            True if the state actually changed.
        """
        with self._condition:
            if new_state is self._state:
                return False
            self._state = new_state
            self._logged = False
            self._condition.notify_all()
            return True

    def state_logged(self) -> bool:
        """
        Report whether the current state entry was already logged, marking it logged.

        Use as `if not tracker.state_logged(): logger.info(...)` to log once per entry.
        """
        with self._condition:
            logged = self._logged
            self._logged = True
            return logged

    def wait_while(self, state: ConnectionState, timeout: Optional[float] = None) -> bool:
        """
        Block until the state is no longer `state`.

        Args:
            state: State to wait out.
            timeout: Seconds to wait; None waits indefinitely.

        Returns:
            True if the state changed, False on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._condition:
            while self._state is state:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._condition.wait(remaining)
            return True
