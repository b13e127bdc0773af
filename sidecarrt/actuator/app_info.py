"""Process-wide information about the running application."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional


@dataclass
class AppInfo:
    """Name, version and build time of the program."""

    name: str = ""
    version: str = ""
    compiled: Optional[datetime] = None


_lock = threading.Lock()
_app_info = AppInfo()


def get_app_info_singleton() -> AppInfo:
    """Return a copy of the stored application info."""
    with _lock:
        return copy.copy(_app_info)


def set_app_info_singleton(info: Optional[AppInfo]) -> None:
    """Store a copy of ``info``; ``None`` resets it to empty values."""
    global _app_info
    stored = AppInfo() if info is None else copy.copy(info)
    with _lock:
        _app_info = stored


class _ContributorAdapter:
    """Contributes information produced by a function."""

    def __init__(self, producer: Callable[[], Any]) -> None:
        self._producer = producer

    def get_info(self) -> Any:
        return self._producer()


def get_app_contributor() -> _ContributorAdapter:
    """Return an info contributor that reports the application info."""
    return _ContributorAdapter(get_app_info_singleton)