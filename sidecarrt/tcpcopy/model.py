"""Data model of the traffic dump: business types and dump configuration."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

ALERT_DUMP_KEY = "DUMP"
LOG_DUMP_KEY = "[DUMP]"


class BusinessType(str, Enum):
    """The kind of business data a user reports."""

    RPC = "RPC"
    CONFIGURATION = "CONFIGURATION"
    STATE = "STATE"

    def __str__(self) -> str:
        return self.value


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON number: {name}")


def _as_str(field: str, raw: Any) -> str:
    if not isinstance(raw, str):
        raise ValueError(f"field {field!r} must be a string, got {raw!r}")
    return raw


def _as_int(field: str, raw: Any) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"field {field!r} must be an integer, got {raw!r}")
    return raw


def _as_float(field: str, raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"field {field!r} must be a number, got {raw!r}")
    return float(raw)


_FIELDS = {
    "switch": ("switch", _as_str),
    "interval": ("interval", _as_int),
    "duration": ("duration", _as_int),
    "cpu_max_rate": ("cpu_max_rate", _as_float),
    "mem_max_rate": ("mem_max_rate", _as_float),
}


@dataclass
class DumpConfig:
    """Dump settings; intervals and durations are in seconds, rates in percent."""

    switch: str = ""
    interval: int = 0
    duration: int = 0
    cpu_max_rate: float = 0.0
    mem_max_rate: float = 0.0

    @classmethod
    def from_json(cls, value: Union[str, bytes]) -> "DumpConfig":
        """Parse a JSON object; absent fields keep their zero values.

        Raises ValueError when the text is not a JSON object of the right shape.
        """
        try:
            data = json.loads(value, parse_constant=_reject_constant)
        except (TypeError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValueError(f"invalid dump config: {exc}") from exc
        config = cls()
        if data is None:
            return config
        if not isinstance(data, dict):
            raise ValueError(f"dump config must be a JSON object, got {data!r}")
        for key, raw in data.items():
            # Keys match case-insensitively; unknown keys are ignored.
            entry = _FIELDS.get(key.lower())
            if entry is None or raw is None:
                continue
            name, convert = entry
            setattr(config, name, convert(name, raw))
        return config


@dataclass(frozen=True)
class DumpUploadDynamicConfig:
    """One piece of sampled data waiting to be persisted."""

    unique_sample_window: str
    business_type: Union[BusinessType, str]
    port: str
    binary_flow_data: Union[bytes, None] = None
    portrait_data: str = ""