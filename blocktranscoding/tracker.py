"""
Per-device latch: at most one stop command per offending playback.

A device's latch is set once a stop has been sent and cleared again when the
host reports a playback start or finish for that device.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict

log = logging.getLogger(__name__)


class SuppressionTracker:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        # device_id -> stop already issued for the current playback
        self._stopped: Dict[str, bool] = {}

    def should_dispatch(self, device_id: str) -> bool:
        with self._lock:
            return not self._stopped.get(device_id, False)

    def mark_dispatched(self, device_id: str) -> None:
        with self._lock:
            log.debug("Setting stop command state for device %s", device_id)
            self._stopped[device_id] = True

    def claim(self, device_id: str) -> bool:
        """
        Check-then-set in one step. True means the caller owns the stop for this episode.
        """
        with self._lock:
            if self._stopped.get(device_id, False):
                return False
            log.debug("Setting stop command state for device %s", device_id)
            self._stopped[device_id] = True
            return True

    def reset(self, device_id: str) -> None:
        with self._lock:
            log.debug("Resetting stop command state for device %s", device_id)
            self._stopped[device_id] = False

    def snapshot(self) -> Dict[str, bool]:
        with self._lock:
            return dict(self._stopped)
