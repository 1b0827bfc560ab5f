"""
Custom exception classes for the SMC100CC stage controller daemon.

Fault taxonomy:
    TransportFault  - link-level failure, recoverable by reconnection.
    ProtocolFault   - malformed/truncated/unknown reply, demotes the connection.
    DeviceFault     - condition reported by the controller itself.
    InvariantFault  - unrecoverable mismatch, the daemon goes to Fatal.
"""

from enum import Enum
from typing import Optional


class StageException(Exception):
    """Base exception for all stage controller errors."""
    pass


class NotConnectedError(StageException):
    """Raised when an operation requires an open connection but none exists."""
    pass


class NotReadyError(StageException):
    """Raised when the stage is connected but cannot accept a move yet (e.g. homing)."""
    pass


class InvalidValueError(StageException):
    """Invalid parameter value."""
    pass


class TransportErrorKind(Enum):
    """The three transport failure kinds the state machine branches on."""
    DEVICE_ABSENT = "device_absent"
    NO_CANDIDATE_NAMES = "no_candidate_names"
    IO = "io"


class TransportFault(StageException):
    """Serial transport failure (open, write, read or timeout)."""

    def __init__(self, message: str, kind: TransportErrorKind = TransportErrorKind.IO):
        super().__init__(message)
        self.kind = kind

    @property
    def is_absence(self) -> bool:
        """True if the failure means the device is simply not there."""
        return self.kind in (TransportErrorKind.DEVICE_ABSENT, TransportErrorKind.NO_CANDIDATE_NAMES)


class ProtocolFault(StageException):
    """Reply did not follow the controller's ASCII grammar."""
    pass


class DecodeError(ProtocolFault):
    """Base class for reply decoding failures."""

    def __init__(self, message: str, reply: bytes = b""):
        super().__init__(message)
        self.reply = reply


class TruncatedReplyError(DecodeError):
    """Reply is shorter than the fixed header of its reply family."""
    pass


class MalformedReplyError(DecodeError):
    """Reply has the right length but wrong echo or unparseable value."""
    pass


class UnknownErrorCodeError(DecodeError):
    """Error query returned a status character outside the known alphabet."""

    def __init__(self, message: str, reply: bytes = b"", status_char: str = ""):
        super().__init__(message, reply)
        self.status_char = status_char


class DeviceFault(StageException):
    """Error condition reported by the controller (TE query)."""

    def __init__(self, error):
        super().__init__(f"{error.status_char}: {error.description}")
        self.error = error


class InvariantFault(StageException):
    """Unrecoverable condition (identity/type mismatch); requires a restart."""
    pass


class DiscoveryErrorKind(Enum):
    """Outcome kinds of a failed identity lookup."""
    DEVICE_ABSENT = "device_absent"
    NO_CANDIDATE_NAMES = "no_candidate_names"
    MECHANISM = "mechanism"


class DiscoveryError(StageException):
    """Device identity could not be resolved to a device name."""

    def __init__(self, message: str, kind: DiscoveryErrorKind = DiscoveryErrorKind.MECHANISM,
                 cause: Optional[Exception] = None):
        super().__init__(message)
        self.kind = kind
        self.cause = cause

    @property
    def is_absence(self) -> bool:
        """True if the device is absent; False if discovery itself is broken."""
        return self.kind in (DiscoveryErrorKind.DEVICE_ABSENT, DiscoveryErrorKind.NO_CANDIDATE_NAMES)
