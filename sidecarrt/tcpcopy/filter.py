"""Network filter that samples TCP traffic, and upload of user portrait data."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional, Union

from sidecarrt.tcpcopy.model import ALERT_DUMP_KEY, LOG_DUMP_KEY, BusinessType, DumpUploadDynamicConfig
from sidecarrt.tcpcopy.persistence import WorkPool, get_dump_work_pool, is_persistence
from sidecarrt.tcpcopy.strategy import DumpStrategy, get_default_strategy

logger = logging.getLogger(__name__)


class InvalidConfigError(ValueError):
    """The tcpcopy filter was given an unusable configuration."""

    def __init__(self, message: str = "invalid config for tcpcopy") -> None:
        super().__init__(message)


class FilterStatus(Enum):
    """What the filter chain should do after a filter ran."""

    CONTINUE = "Continue"
    STOP = "Stop"


class TcpCopyFilter:
    """Read filter that hands received bytes to the dump work pool."""

    def __init__(
        self,
        port: str = "",
        strategy: Optional[DumpStrategy] = None,
        pool: Optional[WorkPool] = None,
    ) -> None:
        self.port = port
        self._strategy = strategy
        self._pool = pool

    @property
    def strategy(self) -> DumpStrategy:
        return self._strategy or get_default_strategy()

    @property
    def pool(self) -> WorkPool:
        return self._pool or get_dump_work_pool()

    def init(self, address: str) -> None:
        """Take the listener port from ``host:port``; raise InvalidConfigError if unusable."""
        host, sep, port_text = (address or "").rpartition(":")
        if not sep:
            logger.error("invalid server address info: %s", address)
            raise InvalidConfigError(f"invalid server address info: {address}")
        try:
            port = int(port_text) if port_text else 0
        except ValueError:
            logger.error("invalid server address info: %s", address)
            raise InvalidConfigError(f"invalid server address info: {address}") from None
        if not 0 <= port <= 65535:
            raise InvalidConfigError(f"invalid server address info: {address}")
        if port == 0:
            logger.error("invalid server address info: %s", address)
            raise InvalidConfigError()
        self.port = str(port)
        logger.debug("tcpcopy filter initialized success")

    def on_data(self, data: Optional[Union[bytes, bytearray, memoryview]]) -> FilterStatus:
        """Schedule the received bytes for persistence when sampling is active."""
        strategy = self.strategy
        if not is_persistence(strategy):
            return FilterStatus.CONTINUE
        payload = bytes(data) if data is not None else None
        record = DumpUploadDynamicConfig(strategy.sample_uuid, "", self.port, payload, "")
        self.pool.schedule(record)
        return FilterStatus.CONTINUE

    def on_new_connection(self) -> FilterStatus:
        return FilterStatus.CONTINUE


def create_tcpcopy_factory(config: Optional[Mapping[str, Any]]) -> TcpCopyFilter:
    """Build a tcpcopy filter; a ``strategy`` entry updates the app dump config."""
    if config and "strategy" in config:
        try:
            value = json.dumps(config["strategy"])
        except (TypeError, ValueError):
            logger.error("tcpcopy parse config error.%r", config["strategy"])
        else:
            get_default_strategy().update_app_dump_config(value)
    return TcpCopyFilter()


def is_handle(business_type: Union[BusinessType, str], strategy: Optional[DumpStrategy] = None) -> bool:
    """Whether a portrait report for ``business_type`` is accepted in this window."""
    strategy = strategy or get_default_strategy()
    if not is_persistence(strategy):
        return False
    # One report per business type per sampling window.
    previous = strategy.get_and_swap_business(business_type, 1)
    if previous == 0 and strategy.sample_flag != 0:
        return True
    logger.debug(
        "%s the business %s has already uploaded portrait data in the same sample duration.",
        LOG_DUMP_KEY, business_type,
    )
    return False


def upload_portrait_data(
    business_type: Union[BusinessType, str],
    data: Any,
    port: Union[int, str, None] = None,
    strategy: Optional[DumpStrategy] = None,
    pool: Optional[WorkPool] = None,
) -> bool:
    """Schedule user portrait data for persistence; return whether it was accepted."""
    try:
        strategy = strategy or get_default_strategy()
        if not is_handle(business_type, strategy):
            logger.debug("%s ignore uploaded portrait data, condition does not match.", LOG_DUMP_KEY)
            return False
        logger.debug("%s the uploaded portrait data is accepted.", LOG_DUMP_KEY)
        payload = dict(data) if isinstance(data, Mapping) else data
        try:
            text = json.dumps(payload)
        except (TypeError, ValueError):
            logger.error("%s the uploaded portrait data is not json object.", LOG_DUMP_KEY)
            return False
        port_text = "" if port is None else str(port)
        record = DumpUploadDynamicConfig(strategy.sample_uuid, business_type, port_text, None, text)
        (pool or get_dump_work_pool()).schedule(record)
        return True
    except Exception as exc:
        logger.error("%s Upload portrait data error. %s", ALERT_DUMP_KEY, exc)
        return False