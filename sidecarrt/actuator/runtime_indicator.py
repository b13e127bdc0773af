"""Readiness and liveness indicators of the runtime itself."""

from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Dict, Tuple

REASON_KEY = "reason"
REASON_VALUE_STARTING = "starting"


class HealthStatus(str, Enum):
    """Health states reported by indicators."""

    INIT = "INIT"
    UP = "UP"
    DOWN = "DOWN"

    def __str__(self) -> str:
        return self.value


class RuntimeIndicator:
    """Tracks whether the runtime has started and whether it is healthy."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started = False
        self._healthy = True
        self._reason = ""

    def report(self) -> Tuple[HealthStatus, Dict[str, Any]]:
        """Return the current status and its details."""
        with self._lock:
            if not self._healthy:
                return HealthStatus.DOWN, {REASON_KEY: self._reason}
            if not self._started:
                return HealthStatus.INIT, {REASON_KEY: REASON_VALUE_STARTING}
            return HealthStatus.UP, {REASON_KEY: self._reason}

    def set_unhealthy(self, reason: str) -> None:
        with self._lock:
            self._healthy = False
            self._reason = reason

    def set_healthy(self, reason: str) -> None:
        with self._lock:
            self._healthy = True
            self._reason = reason

    def set_started(self) -> None:
        with self._lock:
            self._started = True


_readiness = RuntimeIndicator()
_liveness = RuntimeIndicator()


def get_runtime_readiness_indicator() -> RuntimeIndicator:
    """The process-wide readiness indicator."""
    return _readiness


def get_runtime_liveness_indicator() -> RuntimeIndicator:
    """The process-wide liveness indicator."""
    return _liveness