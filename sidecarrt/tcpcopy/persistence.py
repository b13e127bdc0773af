"""Persistence of sampled traffic and portrait data, and the pool that schedules it."""

from __future__ import annotations

import hashlib
import logging
import os
import random
import threading
import time
from datetime import datetime
from typing import Callable, Dict, Optional, Union

from sidecarrt.tcpcopy.model import LOG_DUMP_KEY, DumpUploadDynamicConfig
from sidecarrt.tcpcopy.strategy import DumpStrategy, get_default_strategy

logger = logging.getLogger(__name__)

DUMP_BASE_PATH = "dump"
TCPCOPY_DUMP_FILE = os.path.join(DUMP_BASE_PATH, "dump_tcp_copy.log")
MEM_CONF_DUMP_FILE = os.path.join(DUMP_BASE_PATH, "dump_mem_dump.log")
STATIC_CONF_DUMP_FILE = os.path.join(DUMP_BASE_PATH, "dump_static_conf.log")
PORTRAIT_DATA_DUMP_FILE = os.path.join(DUMP_BASE_PATH, "dump_portrait_data.log")

INCREMENT_LOG = "no_change"
WORK_INTERVAL = 0.5
DEFAULT_POOL_SIZE = 20

ConfigDumper = Callable[[], Union[bytes, str]]


def _md5(data: Union[bytes, str, None]) -> str:
    if data is None:
        data = b""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.md5(data).hexdigest()


def _file_size(path: str) -> int:
    try:
        return os.path.getsize(path)
    except OSError:
        return 0


def is_persistence(strategy: Optional[DumpStrategy] = None) -> bool:
    """Whether sampled data should be persisted right now."""
    strategy = strategy or get_default_strategy()
    if not strategy.dump_switch:
        logger.debug("%s the dump switch is %s", LOG_DUMP_KEY, strategy.dump_switch)
        return False
    if strategy.sample_flag == 0:
        logger.debug("%s the dump sample flag is %d", LOG_DUMP_KEY, strategy.sample_flag)
        return False
    if not strategy.is_available():
        logger.debug("%s the system usages are beyond max rate.", LOG_DUMP_KEY)
        return False
    return True


class DumpPersistence:
    """Writes dump records to log files below ``log_dir``.

    ``config_dumper`` returns the current in-memory configuration; it is
    written only when it changed since the last record.
    """

    def __init__(self, log_dir: Optional[str] = None, config_dumper: Optional[ConfigDumper] = None) -> None:
        self.log_dir = log_dir if log_dir is not None else os.path.join(os.getcwd(), "logs", "mosn")
        self.config_dumper = config_dumper
        self.tcpcopy_path = os.path.join(self.log_dir, TCPCOPY_DUMP_FILE)
        self.mem_path = os.path.join(self.log_dir, MEM_CONF_DUMP_FILE)
        self.static_conf_path = os.path.join(self.log_dir, STATIC_CONF_DUMP_FILE)
        self.portrait_path = os.path.join(self.log_dir, PORTRAIT_DATA_DUMP_FILE)
        self._mem_md5 = ""
        self._lock = threading.Lock()

    def _write(self, path: str, message: str) -> None:
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S,%f")[:-3]
        with self._lock:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "a", encoding="utf-8") as handle:
                handle.write(f"{stamp} [INFO] {message}\n")

    def persist(self, config: DumpUploadDynamicConfig) -> None:
        """Write one sampled record to the matching dump files."""
        window = config.unique_sample_window
        if config.binary_flow_data is not None and config.port:
            hex_data = bytes(config.binary_flow_data).hex(" ")
            self._write(self.tcpcopy_path, f"[{window}][{config.port}]{hex_data}")
        business = str(config.business_type) if config.business_type else ""
        if not (config.portrait_data and business):
            return
        self._write(
            self.portrait_path,
            f"[{window}][{business}][{config.port}]{config.portrait_data}",
        )
        if self.config_dumper is None:
            return
        try:
            buf = self.config_dumper()
        except Exception:
            logger.debug("[dump] Failed to load config mem.")
            return
        text = buf.decode("utf-8", errors="replace") if isinstance(buf, bytes) else str(buf)
        digest = _md5(buf)
        if digest != self._mem_md5 or _file_size(self.mem_path) <= 0:
            self._mem_md5 = digest
            self._write(self.mem_path, f"[{window}]{text}")
        else:
            self._write(self.mem_path, f"[{window}]{INCREMENT_LOG}")


class Worker:
    """Collects tasks by key and persists them on a fixed tick."""

    def __init__(self, persistence: DumpPersistence) -> None:
        self.persistence = persistence
        self._tasks: Dict[str, DumpUploadDynamicConfig] = {}
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def add_task(self, key: str, data: DumpUploadDynamicConfig) -> None:
        """Queue ``data``; a newer task replaces an older one with the same key."""
        with self._lock:
            self._tasks[key] = data

    def work(self) -> int:
        """Persist every queued task and return how many were handled."""
        with self._lock:
            tasks = list(self._tasks.items())
        for key, data in tasks:
            try:
                self.persistence.persist(data)
            finally:
                with self._lock:
                    if self._tasks.get(key) is data:
                        del self._tasks[key]
        return len(tasks)

    def start(self) -> None:
        """Start the background loop, once."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="dump-worker", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while True:
            time.sleep(WORK_INTERVAL)
            try:
                self.work()
            except Exception:
                logger.exception("%s dump worker failed, continuing", LOG_DUMP_KEY)

    def pending(self) -> int:
        """Number of tasks not persisted yet."""
        with self._lock:
            return len(self._tasks)


class WorkPool:
    """Spreads dump tasks over up to ``size`` workers chosen at random."""

    def __init__(self, size: int, persistence: Optional[DumpPersistence] = None) -> None:
        if size <= 0:
            raise ValueError(f"work pool size must be positive, got {size}")
        self.size = size
        self.persistence = persistence or DumpPersistence()
        self._workers: Dict[int, Worker] = {}
        self._random = random.Random()
        self._lock = threading.Lock()

    def schedule(self, data: DumpUploadDynamicConfig) -> None:
        """Hand ``data`` to a randomly chosen worker, starting it if new."""
        business = str(data.business_type) if data.business_type else ""
        key = _md5(business) + _md5(data.binary_flow_data)
        with self._lock:
            index = self._random.randrange(self.size)
            worker = self._workers.get(index)
            created = worker is None
            if created:
                worker = Worker(self.persistence)
                self._workers[index] = worker
        worker.add_task(key, data)
        if created:
            worker.start()

    def pending(self) -> int:
        """Tasks waiting in all workers."""
        with self._lock:
            workers = list(self._workers.values())
        return sum(worker.pending() for worker in workers)


_pool_lock = threading.Lock()
_dump_work_pool: Optional[WorkPool] = None


def get_dump_work_pool() -> WorkPool:
    """The process-wide work pool."""
    global _dump_work_pool
    with _pool_lock:
        if _dump_work_pool is None:
            _dump_work_pool = WorkPool(DEFAULT_POOL_SIZE)
        return _dump_work_pool