"""
In-memory log of the frames exchanged with the controller.

Every TX frame, RX reply and link error is kept in a bounded buffer for the
/api/v1/protocol/log endpoint. Replies are decoded by their command echo and
paired with the preceding TX so the round-trip time of each query is visible.
"""

import threading
import time
from collections import Counter, deque
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from smc100cc_ctrl.protocol.codec import (
    decode_error,
    decode_identity,
    decode_position,
    decode_status,
    describe_frame,
)
from smc100cc_ctrl.utils.exceptions import DecodeError


@dataclass
class ProtocolMessage:
    """One logged frame."""
    timestamp: str
    direction: str              # TX, RX or ERR
    text: str
    raw_hex: str
    command: Optional[str] = None
    decoded: Optional[Dict[str, Any]] = None
    latency_ms: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _printable(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return "".join(chr(b) if 32 <= b < 127 else f"[{b:02X}]" for b in data)


def _command_of(frame: bytes) -> str:
    """Two-letter command after the single-digit address, e.g. 'TS'."""
    return frame[1:3].decode("ascii", errors="replace")


def decode_reply(data: bytes) -> Dict[str, Any]:
    """
    Decode a reply for display according to its command echo.

    Raises:
        DecodeError: If the reply does not decode.
    """
    command = _command_of(data)
    if command == "TS":
        status = decode_status(data)
        return {"error_bits": status.error_bits, "state": status.state,
                "description": status.description}
    if command == "TP":
        return {"position": decode_position(data)}
    if command == "TE":
        code = decode_error(data)
        return {"code": code.name, "description": code.description}
    if command == "ID":
        return {"stage_id": decode_identity(data)}
    return {}


class ProtocolLogger:
    """Thread-safe bounded frame log with per-command counters."""

    DEFAULT_MAX_MESSAGES = 500

    def __init__(self, max_messages: int = DEFAULT_MAX_MESSAGES, clock=time.monotonic):
        self._messages: deque = deque(maxlen=max_messages)
        self._lock = threading.Lock()
        self._clock = clock
        self.enabled = True
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._tx_count = 0
        self._rx_count = 0
        self._error_count = 0
        self._commands: Counter = Counter()
        self._last_tx_at: Optional[float] = None
        self._last_latency_ms: Optional[float] = None

    def _append(self, direction: str, data: Optional[bytes], **fields) -> None:
        self._messages.append(ProtocolMessage(
            timestamp=datetime.now().isoformat(timespec='milliseconds'),
            direction=direction,
            text=_printable(data),
            raw_hex=data.hex().upper() if data else "",
            **fields,
        ))

    def log_tx(self, data: bytes) -> None:
        if not self.enabled:
            return
        command = _command_of(data)
        with self._lock:
            self._tx_count += 1
            self._commands[command] += 1
            self._last_tx_at = self._clock()
            self._append("TX", data, command=command,
                         decoded={"description": describe_frame(data)})

    def log_rx(self, data: bytes) -> None:
        """Log a reply (terminator already stripped)."""
        if not self.enabled:
            return
        with self._lock:
            self._rx_count += 1
            latency = None
            if self._last_tx_at is not None:
                latency = round((self._clock() - self._last_tx_at) * 1000.0, 3)
                self._last_latency_ms = latency
                self._last_tx_at = None

            if not data:
                self._error_count += 1
                self._append("RX", data, latency_ms=latency, error="Empty response (timeout?)")
                return

            try:
                decoded, error = decode_reply(data), None
            except DecodeError as e:
                decoded, error = None, str(e)
                self._error_count += 1
            self._append("RX", data, command=_command_of(data), decoded=decoded,
                         latency_ms=latency, error=error)

    def log_error(self, error_msg: str, data: Optional[bytes] = None) -> None:
        """Log a link error (timeout, partial read, write failure)."""
        if not self.enabled:
            return
        with self._lock:
            self._error_count += 1
            self._last_tx_at = None
            self._append("ERR", data, error=error_msg)

    def get_messages(self, limit: int = 100) -> List[dict]:
        """Most recent `limit` messages, oldest first."""
        with self._lock:
            messages = list(self._messages)[-limit:]
        return [m.to_dict() for m in messages]

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "total_messages": len(self._messages),
                "tx_count": self._tx_count,
                "rx_count": self._rx_count,
                "error_count": self._error_count,
                "commands": dict(self._commands),
                "last_latency_ms": self._last_latency_ms,
                "max_messages": self._messages.maxlen,
                "enabled": self.enabled,
            }

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()
            self._reset_counters()


_logger: Optional[ProtocolLogger] = None


def get_protocol_logger() -> ProtocolLogger:
    """Process-wide frame log shared by the transports and the HTTP API."""
    global _logger
    if _logger is None:
        _logger = ProtocolLogger()
    return _logger
