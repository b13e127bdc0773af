"""Dump switch, sampling window and resource fuse of the traffic dump."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Callable, Dict, Optional, Tuple, Union

import psutil

from sidecarrt.tcpcopy.model import ALERT_DUMP_KEY, LOG_DUMP_KEY, BusinessType, DumpConfig

logger = logging.getLogger(__name__)

MIN_INTERVAL = 30
MAX_INTERVAL = 60 * 60

DEFAULT_CPU_MAX_RATE = 80.0
DEFAULT_MEM_MAX_RATE = 70.0
DEFAULT_DURATION = 1

KIND_ON = "ON"
KIND_OFF = "OFF"
KIND_FORCE_OFF = "FORCE_OFF"

UsageProbe = Callable[[], Tuple[float, float]]


def system_usage_rate() -> Tuple[float, float]:
    """Return the current CPU and memory usage of the host, in percent."""
    cpu = psutil.cpu_percent(interval=None)
    mem = psutil.virtual_memory().percent
    return float(cpu), float(mem)


def _default_config() -> DumpConfig:
    return DumpConfig(
        switch=KIND_OFF,
        interval=MIN_INTERVAL,
        duration=DEFAULT_DURATION,
        cpu_max_rate=DEFAULT_CPU_MAX_RATE,
        mem_max_rate=DEFAULT_MEM_MAX_RATE,
    )


class DumpStrategy:
    """Decides whether traffic is sampled, combining app and global settings.

    ``sample_flag`` is 1 inside a sampling window and 0 outside of it.
    """

    def __init__(self, usage_probe: Optional[UsageProbe] = None) -> None:
        self._usage_probe: UsageProbe = usage_probe or system_usage_rate
        self.app_config = _default_config()
        self.global_config = _default_config()

        self.dump_switch = True
        self.sample_flag = 0
        self.cpu_max_rate = DEFAULT_CPU_MAX_RATE
        self.mem_max_rate = DEFAULT_MEM_MAX_RATE
        self.interval = MIN_INTERVAL
        self.duration = DEFAULT_DURATION
        self.sample_uuid = "inituuid"
        self.business_cache: Dict[Union[BusinessType, str], int] = {}

        self._cache_lock = threading.Lock()
        self._sampler_lock = threading.Lock()
        self._sampler: Optional[threading.Thread] = None

    # configuration -------------------------------------------------------

    def update_app_dump_config(self, value: str) -> bool:
        """Replace the app-level config; return False if ``value`` is rejected."""
        config = self._parse(value, (KIND_ON, KIND_OFF), "app")
        if config is None:
            return False
        self.app_config = config
        self._apply()
        return True

    def update_global_dump_config(self, value: str) -> bool:
        """Replace the global config; return False if ``value`` is rejected."""
        config = self._parse(value, (KIND_ON, KIND_OFF, KIND_FORCE_OFF), "global")
        if config is None:
            return False
        self.global_config = config
        self._apply()
        return True

    @staticmethod
    def _parse(value: str, switches: Tuple[str, ...], level: str) -> Optional[DumpConfig]:
        if not value:
            return None
        logger.debug("[dumpConfig] update %s dump config, value=%s", level, value)
        try:
            config = DumpConfig.from_json(value)
        except ValueError:
            logger.error("[dumpConfig] update %s dump config failed, value=%s is illegal.", level, value)
            return None
        if config.switch not in switches:
            logger.error("[dumpConfig] update %s dump config failed, the switch is illegal, value=%s", level, value)
            return None
        if not MIN_INTERVAL <= config.interval <= MAX_INTERVAL:
            logger.error(
                "[dumpConfig] update %s dump config failed, the interval should be between %s and %s, value=%s",
                level, MIN_INTERVAL, MAX_INTERVAL, value,
            )
            return None
        if not 0 < config.duration < config.interval:
            logger.error(
                "[dumpConfig] update %s dump config failed, the duration should be between 0 and %s, value=%s",
                level, config.interval, value,
            )
            return None
        if not 0 < config.cpu_max_rate < 100:
            logger.error(
                "[dumpConfig] update %s dump config failed, the cpu_max_rate should be between 0 and 100, value=%s",
                level, value,
            )
            return None
        if not 0 < config.mem_max_rate < 100:
            logger.error(
                "[dumpConfig] update %s dump config failed, the mem_max_rate should be between 0 and 100, value=%s",
                level, value,
            )
            return None
        return config

    def _apply(self) -> None:
        self.dump_switch = self.is_dump_switch_open()
        forced_off = self.global_config.switch == KIND_FORCE_OFF
        effective = self.app_config if self.app_config.switch == KIND_ON else self.global_config
        if forced_off:
            self.cpu_max_rate = DEFAULT_CPU_MAX_RATE
            self.mem_max_rate = DEFAULT_MEM_MAX_RATE
            self.interval = MAX_INTERVAL
            self.duration = DEFAULT_DURATION
        else:
            self.cpu_max_rate = effective.cpu_max_rate
            self.mem_max_rate = effective.mem_max_rate
            self.interval = effective.interval
            self.duration = effective.duration
        if self.dump_switch:
            self.start_sampler()

    def is_dump_switch_open(self) -> bool:
        """Whether dumping is switched on by the combined configuration."""
        global_switch = self.global_config.switch
        if global_switch == KIND_FORCE_OFF:
            return False
        app_switch = self.app_config.switch
        if app_switch == KIND_OFF:
            return global_switch == KIND_ON
        return app_switch == KIND_ON

    # fuse ----------------------------------------------------------------

    def is_available(self) -> bool:
        """False when usage is unknown or above one of the maximum rates."""
        try:
            cpu_rate, mem_rate = self._usage_probe()
        except Exception:
            logger.error("%s failed to get system usage rate info.", ALERT_DUMP_KEY)
            return False
        if cpu_rate < self.cpu_max_rate and mem_rate < self.mem_max_rate:
            logger.debug(
                "%s cpuRate:%s memRate:%s below max rates %s, %s",
                LOG_DUMP_KEY, cpu_rate, mem_rate, self.cpu_max_rate, self.mem_max_rate,
            )
            return True
        logger.debug(
            "%s cpuRate:%s, memRate:%s, one or both exceed max rates %s, %s",
            LOG_DUMP_KEY, cpu_rate, mem_rate, self.cpu_max_rate, self.mem_max_rate,
        )
        return False

    # sampling ------------------------------------------------------------

    def sample_once(self, sleep: Callable[[float], None] = time.sleep) -> None:
        """Wait one interval, open a sampling window if resources allow, then close it."""
        sleep(self.interval)
        if self.is_available():
            logger.debug("%s open sample window", LOG_DUMP_KEY)
            self.sample_uuid = str(uuid.uuid4())
            self.sample_flag = 1
            sleep(self.duration)
        logger.debug("%s close sample window", LOG_DUMP_KEY)
        self.sample_flag = 0
        # Hand every business a fresh sampling token for the next window.
        with self._cache_lock:
            for key in self.business_cache:
                self.business_cache[key] = 0

    def start_sampler(self) -> None:
        """Start the background sampling loop, at most once."""
        with self._sampler_lock:
            if self._sampler is not None:
                return
            logger.debug("%s start updateSampleFlag.", LOG_DUMP_KEY)
            self._sampler = threading.Thread(
                target=self._sample_forever, name="dump-sampler", daemon=True
            )
            self._sampler.start()

    def _sample_forever(self) -> None:
        try:
            while True:
                self.sample_once()
        except Exception:
            logger.exception("%s sampling loop stopped", LOG_DUMP_KEY)

    def get_and_swap_business(self, business_type: Union[BusinessType, str], new: int) -> int:
        """Store ``new`` for the business and return the previous value (0 if none)."""
        with self._cache_lock:
            if business_type not in self.business_cache:
                self.business_cache[business_type] = new
                return 0
            old = self.business_cache[business_type]
            if old != new:
                self.business_cache[business_type] = new
            return old


_default_strategy = DumpStrategy()


def get_default_strategy() -> DumpStrategy:
    """The process-wide dump strategy."""
    return _default_strategy