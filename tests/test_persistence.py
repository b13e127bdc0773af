import os
import time

import pytest

from sidecarrt.tcpcopy.model import BusinessType, DumpUploadDynamicConfig
from sidecarrt.tcpcopy.persistence import (
    INCREMENT_LOG,
    DumpPersistence,
    Worker,
    WorkPool,
    get_dump_work_pool,
    is_persistence,
)
from sidecarrt.tcpcopy.strategy import DumpStrategy


def _strategy(cpu=10.0, mem=10.0):
    return DumpStrategy(usage_probe=lambda: (cpu, mem))


def _read(path):
    with open(path, encoding="utf-8") as handle:
        return handle.read().splitlines()


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


def test_is_persistence_switch_off():
    strategy = _strategy()
    strategy.dump_switch = False
    strategy.sample_flag = 1
    assert is_persistence(strategy) is False


def test_is_persistence_not_in_sample_duration():
    strategy = _strategy()
    strategy.dump_switch = True
    strategy.sample_flag = 0
    assert is_persistence(strategy) is False


def test_is_persistence_cpu_exceed_max_rate():
    strategy = _strategy()
    strategy.dump_switch = True
    strategy.sample_flag = 1
    strategy.cpu_max_rate = 0
    assert is_persistence(strategy) is False


def test_is_persistence_mem_exceed_max_rate():
    strategy = _strategy()
    strategy.dump_switch = True
    strategy.sample_flag = 1
    strategy.mem_max_rate = 0
    assert is_persistence(strategy) is False


def test_is_persistence_success():
    strategy = _strategy()
    strategy.dump_switch = True
    strategy.sample_flag = 1
    strategy.cpu_max_rate = 100
    strategy.mem_max_rate = 100
    assert is_persistence(strategy) is True


def test_is_persistence_probe_failure():
    def probe():
        raise OSError("no stats")

    strategy = DumpStrategy(usage_probe=probe)
    strategy.dump_switch = True
    strategy.sample_flag = 1
    assert is_persistence(strategy) is False


def test_persist_binary_data_as_hex(tmp_path):
    persistence = DumpPersistence(str(tmp_path))
    persistence.persist(DumpUploadDynamicConfig("uuid_1", "", "12220", b"test", ""))
    lines = _read(persistence.tcpcopy_path)
    assert len(lines) == 1
    assert lines[0].endswith("[uuid_1][12220]74 65 73 74")
    assert not os.path.exists(persistence.portrait_path)


def test_persist_skips_binary_without_port(tmp_path):
    persistence = DumpPersistence(str(tmp_path))
    persistence.persist(DumpUploadDynamicConfig("uuid_0", "", "", b"test", ""))
    persistence.persist(DumpUploadDynamicConfig("uuid_1", "", "12220", b"test", ""))
    lines = _read(persistence.tcpcopy_path)
    assert len(lines) == 1
    assert lines[0].endswith("[uuid_1][12220]74 65 73 74")


def test_persist_portrait_and_incremental_mem_dump(tmp_path):
    persistence = DumpPersistence(str(tmp_path), config_dumper=lambda: b'{"a":1}')
    record = DumpUploadDynamicConfig("uuid_1", BusinessType.RPC, "12200", None, "1s")
    persistence.persist(record)
    persistence.persist(record)
    assert _read(persistence.portrait_path)[0].endswith("[uuid_1][RPC][12200]1s")
    mem = _read(persistence.mem_path)
    assert mem[0].endswith('[uuid_1]{"a":1}')
    assert mem[1].endswith(f"[uuid_1]{INCREMENT_LOG}")


def test_persist_mem_dump_when_config_changes(tmp_path):
    values = iter([b"one", b"two"])
    persistence = DumpPersistence(str(tmp_path), config_dumper=lambda: next(values))
    record = DumpUploadDynamicConfig("w", BusinessType.STATE, "1", None, "data")
    persistence.persist(record)
    persistence.persist(record)
    mem = _read(persistence.mem_path)
    assert mem[0].endswith("[w]one")
    assert mem[1].endswith("[w]two")


def test_persist_mem_dump_failure_skips_mem_file(tmp_path):
    def dumper():
        raise RuntimeError("boom")

    persistence = DumpPersistence(str(tmp_path), config_dumper=dumper)
    persistence.persist(DumpUploadDynamicConfig("w", BusinessType.RPC, "1", None, "data"))
    assert len(_read(persistence.portrait_path)) == 1
    assert not os.path.exists(persistence.mem_path)


def test_worker_work_drains_tasks(tmp_path):
    worker = Worker(DumpPersistence(str(tmp_path)))
    worker.add_task("a", DumpUploadDynamicConfig("u1", BusinessType.RPC, "1", None, "x"))
    worker.add_task("a", DumpUploadDynamicConfig("u2", BusinessType.RPC, "1", None, "y"))
    worker.add_task("b", DumpUploadDynamicConfig("u3", BusinessType.RPC, "1", None, "z"))
    assert worker.pending() == 2
    assert worker.work() == 2
    assert worker.pending() == 0
    lines = _read(worker.persistence.portrait_path)
    assert len(lines) == 2
    assert lines[0].endswith("[u2][RPC][1]y")


def test_work_pool_persists_everything(tmp_path):
    pool = WorkPool(10, DumpPersistence(str(tmp_path)))
    for index in range(1, 10):
        business = BusinessType.CONFIGURATION if index >= 7 else BusinessType.RPC
        pool.schedule(
            DumpUploadDynamicConfig(f"uuid_{index}", business, "12200", None, f"{index}s")
        )
    assert _wait_until(lambda: pool.pending() == 0, timeout=3.0)
    assert len(_read(pool.persistence.portrait_path)) >= 1


def test_work_pool_rejects_non_positive_size():
    with pytest.raises(ValueError):
        WorkPool(0)


def test_default_work_pool_is_shared():
    pool = get_dump_work_pool()
    assert pool is get_dump_work_pool()
    assert pool.size == 20