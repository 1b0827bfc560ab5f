"""
Property bridge between the HTTP bus and the command dispatcher.

Holds the published `position` property (current, target) and the recent
fault history, and turns inbound target updates into dispatcher submissions.
"""

import logging
import threading
from collections import deque
from datetime import datetime
from typing import List, Optional

from smc100cc_ctrl.stage.dispatcher import CommandDispatcher
from smc100cc_ctrl.stage.state import FaultReport, MotionRequest, PropertyPublisher


logger = logging.getLogger(__name__)


class PropertyBridge(PropertyPublisher):
    """Published property store and inbound target handler."""

    DEFAULT_MAX_FAULTS = 200

    def __init__(self, dispatcher: CommandDispatcher, property_name: str = "position",
                 max_faults: int = DEFAULT_MAX_FAULTS):
        self._dispatcher = dispatcher
        self.property_name = property_name
        self._lock = threading.Lock()
        self._current: Optional[float] = None
        self._target: Optional[float] = None
        self._updated_at: Optional[datetime] = None
        self._faults: deque = deque(maxlen=max_faults)

    def _update_if_changed(self, current: Optional[float], target: Optional[float]) -> None:
        changed = False
        if current is not None and current != self._current:
            self._current = current
            changed = True
        if target is not None and target != self._target:
            self._target = target
            changed = True
        if changed:
            self._updated_at = datetime.now()

    def publish_position(self, current: float, target: Optional[float]) -> None:
        with self._lock:
            self._update_if_changed(current, target)

    def publish_fault(self, report: FaultReport) -> None:
        with self._lock:
            self._faults.append(report)

    def on_new_property(self, current: Optional[float] = None, target: Optional[float] = None,
                        timeout: Optional[float] = None) -> Optional[MotionRequest]:
        """
        Handle an inbound update of the position property.

        A missing target defaults to current. Targets <= 0 are ignored.

        Returns:
            The issued MotionRequest, or None if ignored or superseded.

        Raises:
            NotConnectedError, NotReadyError, DeviceFault, TransportFault:
                Propagated from the dispatcher.
        """
        if target is None:
            target = current

        if target is None or target <= 0:
            logger.debug(f"Ignoring {self.property_name} update with target {target}")
            return None

        with self._lock:
            self._update_if_changed(None, target)

        logger.info(f"New {self.property_name} target: {target}")
        return self._dispatcher.submit(target, timeout)

    def get_property(self) -> dict:
        with self._lock:
            return {
                "name": self.property_name,
                "current": self._current,
                "target": self._target,
                "timestamp": self._updated_at.isoformat(timespec='milliseconds') if self._updated_at else None,
            }

    def get_faults(self, limit: int = 50) -> List[dict]:
        """Recent faults, oldest first."""
        with self._lock:
            faults = list(self._faults)
        if len(faults) > limit:
            faults = faults[-limit:]
        return [f.to_dict() for f in faults]

    @property
    def last_fault(self) -> Optional[FaultReport]:
        with self._lock:
            return self._faults[-1] if self._faults else None
