"""
Command encoding and reply decoding for the SMC100CC ASCII protocol.

Frames are '<address><command>[<value>]' terminated by CR-LF. Replies echo
the address and command, followed by fixed-width fields:

    1TS000028   status: 4 hex digits positioner error + 2 hex digits state
    1TP12.345   position: float after the 3-byte header
    1TE@        last error: one status character at offset 3
"""

import math

from smc100cc_ctrl.protocol.device_errors import DeviceErrorCode
from smc100cc_ctrl.utils.exceptions import (
    InvalidValueError,
    MalformedReplyError,
    TruncatedReplyError,
    UnknownErrorCodeError,
)


TERMINATOR = b"\r\n"
DEFAULT_ADDRESS = 1
POSITION_DECIMALS = 6

HEADER_LENGTH = 3
STATUS_REPLY_LENGTH = 9
ERROR_CHAR_OFFSET = 3

ALL_CLEAR = "0000"
MOVING_STATE = "28"

CONTROLLER_STATES = {
    "0A": "NOT REFERENCED from reset",
    "0B": "NOT REFERENCED from HOMING",
    "0C": "NOT REFERENCED from CONFIGURATION",
    "0D": "NOT REFERENCED from DISABLE",
    "0E": "NOT REFERENCED from READY",
    "0F": "NOT REFERENCED from MOVING",
    "10": "NOT REFERENCED ESP stage error",
    "11": "NOT REFERENCED from JOGGING",
    "14": "CONFIGURATION",
    "1E": "HOMING commanded from RS-232-C",
    "1F": "HOMING commanded by SMC-RC",
    "28": "MOVING",
    "32": "READY from HOMING",
    "33": "READY from MOVING",
    "34": "READY from DISABLE",
    "35": "READY from JOGGING",
    "3C": "DISABLE from READY",
    "3D": "DISABLE from MOVING",
    "3E": "DISABLE from JOGGING",
    "46": "JOGGING from READY",
    "47": "JOGGING from DISABLE",
}

NOT_REFERENCED_STATES = frozenset({"0A", "0B", "0C", "0D", "0E", "0F", "10", "11"})
HOMING_STATES = frozenset({"1E", "1F"})
READY_STATES = frozenset({"32", "33", "34", "35"})


class StatusCode:
    """Decoded TS reply."""

    def __init__(self, address: str, error_bits: str, state: str):
        self.address = address
        self.error_bits = error_bits
        self.state = state

    @property
    def all_clear(self) -> bool:
        """True if the positioner error field reports no errors."""
        return self.error_bits == ALL_CLEAR

    @property
    def is_moving(self) -> bool:
        return self.state == MOVING_STATE

    @property
    def is_referenced(self) -> bool:
        return self.state not in NOT_REFERENCED_STATES

    @property
    def is_homing(self) -> bool:
        return self.state in HOMING_STATES

    @property
    def is_ready(self) -> bool:
        return self.state in READY_STATES

    @property
    def description(self) -> str:
        return CONTROLLER_STATES.get(self.state, f"unknown state {self.state}")

    def __eq__(self, other):
        if not isinstance(other, StatusCode):
            return NotImplemented
        return (self.address, self.error_bits, self.state) == (other.address, other.error_bits, other.state)

    def __repr__(self):
        return f"StatusCode(address={self.address!r}, error_bits={self.error_bits!r}, state={self.state!r})"


def _frame(command: str, address: int = DEFAULT_ADDRESS, value: str = "") -> bytes:
    return f"{address}{command}{value}".encode("ascii") + TERMINATOR


def encode_status_query(address: int = DEFAULT_ADDRESS) -> bytes:
    """Encode TS (tell positioner error and controller state)."""
    return _frame("TS", address)


def encode_position_query(address: int = DEFAULT_ADDRESS) -> bytes:
    """Encode TP (tell current position)."""
    return _frame("TP", address)


def encode_error_query(address: int = DEFAULT_ADDRESS) -> bytes:
    """Encode TE (tell last command error)."""
    return _frame("TE", address)


def encode_home(address: int = DEFAULT_ADDRESS) -> bytes:
    """Encode OR (execute home search)."""
    return _frame("OR", address)


def encode_identity_query(address: int = DEFAULT_ADDRESS) -> bytes:
    """Encode ID? (read stage identifier)."""
    return _frame("ID?", address)


def format_position(position: float, decimals: int = POSITION_DECIMALS) -> str:
    """
    Format a position with fixed precision.

    Raises:
        InvalidValueError: If position is NaN or infinite.
    """
    if not math.isfinite(position):
        raise InvalidValueError(f"Position must be finite, got {position}")
    return f"{position:.{decimals}f}"


def encode_move_absolute(position: float, address: int = DEFAULT_ADDRESS,
                         decimals: int = POSITION_DECIMALS) -> bytes:
    """
    Encode PA (move absolute).

    Args:
        position: Target position in device units.
        address: Controller address.
        decimals: Fixed number of decimal places.

    Returns:
        Frame bytes, e.g. b'1PA12.500000\\r\\n'.

    Raises:
        InvalidValueError: If position is NaN or infinite.
    """
    return _frame("PA", address, format_position(position, decimals))


def _text(reply: bytes) -> str:
    """Decode reply bytes, dropping the line terminator and padding."""
    return reply.decode("ascii", errors="replace").strip()


def _check_echo(text: str, command: str, reply: bytes) -> None:
    echo = text[1:1 + len(command)]
    if echo != command:
        raise MalformedReplyError(f"Expected {command} echo, got {text!r}", reply)


def decode_status(reply: bytes) -> StatusCode:
    """
    Decode a TS reply.

    Raises:
        TruncatedReplyError: If shorter than address + echo + 6 status digits.
        MalformedReplyError: If the echo is not TS or the error field is not hex.
    """
    text = _text(reply)
    if len(text) < STATUS_REPLY_LENGTH:
        raise TruncatedReplyError(f"Status reply too short: {text!r}", reply)

    _check_echo(text, "TS", reply)

    error_bits = text[3:7]
    state = text[7:9].upper()
    try:
        int(error_bits, 16)
    except ValueError:
        raise MalformedReplyError(f"Status error field is not hex: {text!r}", reply)

    return StatusCode(text[0], error_bits.upper(), state)


def decode_position(reply: bytes) -> float:
    """
    Decode a TP reply.

    Raises:
        TruncatedReplyError: If shorter than the 3-byte header.
        MalformedReplyError: If the echo is not TP or the value is not a number.
    """
    text = _text(reply)
    if len(text) < HEADER_LENGTH:
        raise TruncatedReplyError(f"Position reply too short: {text!r}", reply)

    _check_echo(text, "TP", reply)

    try:
        value = float(text[HEADER_LENGTH:])
    except ValueError:
        raise MalformedReplyError(f"Unparseable position: {text!r}", reply)

    if not math.isfinite(value):
        raise MalformedReplyError(f"Non-finite position: {text!r}", reply)
    return value


def decode_error(reply: bytes) -> DeviceErrorCode:
    """
    Decode a TE reply.

    Returns:
        DeviceErrorCode.NO_ERROR for '@', otherwise the reported code.

    Raises:
        TruncatedReplyError: If the status character is missing.
        MalformedReplyError: If the echo is not TE.
        UnknownErrorCodeError: If the status character is not a known code.
    """
    text = _text(reply)
    if len(text) <= ERROR_CHAR_OFFSET:
        raise TruncatedReplyError(f"Error reply too short: {text!r}", reply)

    _check_echo(text, "TE", reply)

    status_char = text[ERROR_CHAR_OFFSET]
    try:
        return DeviceErrorCode.from_char(status_char)
    except ValueError:
        raise UnknownErrorCodeError(
            f"Unknown error code {status_char!r} in {text!r}", reply, status_char
        )


def decode_identity(reply: bytes) -> str:
    """
    Decode an ID? reply into the stage identifier.

    Raises:
        TruncatedReplyError: If shorter than the 3-byte header.
        MalformedReplyError: If the echo is not ID.
    """
    text = _text(reply)
    if len(text) < HEADER_LENGTH:
        raise TruncatedReplyError(f"Identity reply too short: {text!r}", reply)

    _check_echo(text, "ID", reply)
    return text[HEADER_LENGTH:].strip()


def describe_frame(frame: bytes) -> str:
    """Human-readable description of an outgoing frame, for the protocol log."""
    text = _text(frame)
    command = text[1:3] if len(text) >= 3 else text
    descriptions = {
        "TS": "Query Status",
        "TP": "Query Position",
        "TE": "Query Last Error",
        "OR": "Home",
        "ID": "Query Stage ID",
    }
    if command == "PA":
        return f"Move to {text[3:]}"
    return descriptions.get(command, "Unknown command")
