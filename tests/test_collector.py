from __future__ import annotations

import asyncio
import time

import pytest

from pulsewatch.core.config import MonitorConfig
from pulsewatch.core.errors import PermissionDenied, RuntimeUnreachable
from pulsewatch.data import GpuBackend, GpuMonitor, NullContainerMonitor, sort_processes
from pulsewatch.data.gpu import DISABLED_MESSAGE as GPU_DISABLED_MESSAGE
from pulsewatch.models import (
    ContainerSample,
    GlobalUsage,
    GpuSample,
    NetworkSample,
    ProcessSample,
    SystemInfo,
    Temperatures,
)
from pulsewatch.runtime.collector import CONTAINER_TIMEOUT_MESSAGE, Collector, CycleParams


def _process(pid, cpu, read=0, write=0):
    return ProcessSample(
        pid=pid,
        name=f"proc{pid}",
        user="u",
        cpu_percent=cpu,
        memory_bytes=pid * 10,
        disk_read_rate=read,
        disk_write_rate=write,
        status="running",
    )


def _network(name, down, up):
    return NetworkSample(
        name=name,
        down_rate=down,
        up_rate=up,
        total_down=0,
        total_up=0,
        packets_rx=0,
        packets_tx=0,
        errors_rx=0,
        errors_tx=0,
    )


class FakeHost:
    def __init__(self, delay=0.0):
        self.delay = delay
        self.process_calls = []
        self.detail_calls = []
        self.network_calls = 0

    def refresh(self):
        if self.delay:
            time.sleep(self.delay)

    def total_memory(self):
        return 1000

    def list_processes(self, include_system=False, filter_text=""):
        self.process_calls.append((include_system, filter_text))
        return [_process(1, 5.0, read=100, write=10), _process(2, 20.0, read=50, write=30)]

    def sort_processes(self, processes, key, ascending=False, total_memory=None):
        return sort_processes(processes, key, ascending, total_memory or 0)

    def detailed_process(self, pid):
        self.detail_calls.append(pid)
        return None

    def cores(self):
        return []

    def disks(self):
        return []

    def networks(self):
        self.network_calls += 1
        return [_network("eth0", 100, 10), _network("wlan0", 200, 20)]

    def temperatures(self):
        return Temperatures(cpu_celsius=50.0)

    def sensors(self):
        return []

    def global_usage(self, net_down=0, net_up=0, disk_read=0, disk_write=0, gpu_util=None):
        return GlobalUsage(
            cpu=12.5,
            mem_used=250,
            mem_total=1000,
            gpu_util=gpu_util,
            net_down=net_down,
            net_up=net_up,
            disk_read=disk_read,
            disk_write=disk_write,
        )

    def system_info(self):
        return SystemInfo(
            os_name="Linux",
            kernel_version="6.1",
            hostname="box",
            cpu_model="CPU",
            physical_cores=4,
            logical_cores=8,
            total_memory_bytes=1000,
            boot_time=None,
            uptime_seconds=None,
            load_average=None,
        )


class _Backend(GpuBackend):
    name = "DRM"

    def __init__(self, utilization=40):
        self.utilization = utilization
        self.calls = 0

    def probe(self):
        self.calls += 1
        return [GpuSample(name="gpu", brand="Intel", utilization=self.utilization)]


class FakeContainers:
    def __init__(self, samples=None, delay=0.0, error=None, available=True, init_error=None):
        self.samples = samples or []
        self.delay = delay
        self.error = error
        self.available = available
        self.init_error = init_error
        self.list_calls = 0

    def is_available(self):
        return self.available

    async def list(self, total_timeout_ms):
        self.list_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.samples)

    async def health_check(self, timeout_ms=1000):
        return self.available


def _collector(config=None, host=None, gpu=None, containers=None):
    config = config or MonitorConfig.create(history_length=10)
    return Collector(
        config=config,
        host=host or FakeHost(),
        gpu=gpu or GpuMonitor(enabled=config.enable_gpu_monitoring, backends=[_Backend()]),
        containers=containers or FakeContainers(),
    )


def _run(collector, cycles, params=None):
    snapshot = None
    for _ in range(cycles):
        snapshot = asyncio.run(collector.collect(params))
    return snapshot


@pytest.mark.parametrize("cycles", [1, 3, 10, 14])
def test_history_length_is_bounded_and_equal(cycles):
    snapshot = _run(_collector(), cycles)
    usage = snapshot.global_usage
    expected = min(cycles, 10)
    for name in (
        "cpu_history",
        "mem_history",
        "net_down_history",
        "net_up_history",
        "disk_read_history",
        "disk_write_history",
        "gpu_history",
    ):
        assert len(getattr(usage, name)) == expected, name
    assert usage.mem_history[-1] == pytest.approx(25.0)
    assert usage.gpu_history[-1] == 40


def test_aggregates_are_sums():
    usage = _run(_collector(), 1).global_usage
    assert usage.net_down == 300
    assert usage.net_up == 30
    assert usage.disk_read == 150
    assert usage.disk_write == 40
    assert usage.gpu_util == 40


def test_processes_follow_cycle_params():
    host = FakeHost()
    params = CycleParams(selected_pid=2, include_system=True, filter_text="proc", sort_key="pid", ascending=True)
    snapshot = _run(_collector(host=host), 1, params)
    assert [p.pid for p in snapshot.processes] == [1, 2]
    assert host.process_calls == [(True, "proc")]
    assert host.detail_calls == [2]

    default = _run(_collector(), 1)
    assert [p.pid for p in default.processes] == [2, 1]


def test_gpu_disabled_is_reported_and_history_not_advanced():
    config = MonitorConfig.create(history_length=10, enable_gpu_monitoring=False)
    backend = _Backend()
    collector = _collector(config=config, gpu=GpuMonitor(enabled=False, backends=[backend]))
    snapshot = _run(collector, 3)
    assert snapshot.gpus == []
    assert snapshot.gpu_error == GPU_DISABLED_MESSAGE
    assert snapshot.global_usage.gpu_util is None
    assert snapshot.global_usage.gpu_history == []
    assert len(snapshot.global_usage.cpu_history) == 3
    assert backend.calls == 0


def test_gpu_unavailable_keeps_other_subsystems():
    class _Broken(GpuBackend):
        name = "NVIDIA"

        def probe(self):
            raise RuntimeUnreachable("nvidia-smi missing")

    collector = _collector(gpu=GpuMonitor(backends=[_Broken()]))
    snapshot = _run(collector, 1)
    assert snapshot.gpu_error == "No GPUs found. Errors: NVIDIA: nvidia-smi missing"
    assert len(snapshot.networks) == 2
    assert snapshot.global_usage.gpu_history == []


def test_container_timeout_is_contained():
    config = MonitorConfig.create(refresh_rate_ms=200, history_length=10)
    containers = FakeContainers(delay=1.0)
    snapshot = _run(_collector(config=config, containers=containers), 1)
    assert snapshot.containers == []
    assert snapshot.container_error == CONTAINER_TIMEOUT_MESSAGE
    assert len(snapshot.processes) == 2


def test_container_errors_become_messages():
    containers = FakeContainers(error=RuntimeUnreachable("Docker daemon is not running or not accessible"))
    snapshot = _run(_collector(containers=containers), 1)
    assert snapshot.container_error == "Docker daemon is not running or not accessible"


def test_unavailable_runtime_reports_init_error():
    containers = FakeContainers(available=False, init_error=PermissionDenied("Permission denied"))
    snapshot = _run(_collector(containers=containers), 2)
    assert snapshot.container_error == "Permission denied"
    assert containers.list_calls == 0


def test_containers_are_returned():
    sample = ContainerSample(id="abc", name="web", status="Up", image="web", ports="none")
    snapshot = _run(_collector(containers=FakeContainers(samples=[sample])), 1)
    assert snapshot.containers == [sample]
    assert snapshot.container_error is None


def test_docker_disabled_uses_null_monitor():
    config = MonitorConfig.create(history_length=10, enable_docker=False)
    collector = Collector(config=config, host=FakeHost(), gpu=GpuMonitor(backends=[_Backend()]))
    assert isinstance(collector.containers, NullContainerMonitor)
    snapshot = _run(collector, 1)
    assert snapshot.containers == []
    assert snapshot.container_error is None


def test_network_disabled_skips_probe():
    host = FakeHost()
    config = MonitorConfig.create(history_length=10, enable_network_monitoring=False)
    snapshot = _run(_collector(config=config, host=host), 2)
    assert snapshot.networks == []
    assert snapshot.global_usage.net_down == 0
    assert snapshot.global_usage.net_down_history == [0, 0]
    assert host.network_calls == 0


def test_previous_usage_seeds_history_once():
    collector = _collector()
    previous = GlobalUsage(cpu_history=[1.0, 2.0, 3.0], gpu_history=[7])
    first = asyncio.run(collector.collect(previous=previous))
    assert first.global_usage.cpu_history == [1.0, 2.0, 3.0, 12.5]
    assert first.global_usage.gpu_history == [7, 40]

    second = asyncio.run(collector.collect(previous=GlobalUsage(cpu_history=[99.0])))
    assert second.global_usage.cpu_history == [1.0, 2.0, 3.0, 12.5, 12.5]


def test_slow_cycle_is_flagged_not_failed():
    config = MonitorConfig.create(refresh_rate_ms=100, history_length=10)
    snapshot = _run(_collector(config=config, host=FakeHost(delay=0.08)), 1)
    assert snapshot.slow_collection
    assert snapshot.collection_seconds >= 0.05
    assert len(snapshot.processes) == 2


def test_system_info_mode_and_features():
    info = _collector().system_info()
    assert info.features == ["Docker", "GPU", "Network"]
    assert info.mode is None

    safe = Collector(
        config=MonitorConfig.create(safe_mode=True),
        host=FakeHost(),
        gpu=GpuMonitor(enabled=False, backends=[_Backend()]),
    )
    info = safe.system_info()
    assert info.mode == "Safe Mode"
    assert info.features == []
    assert ("Mode", "Safe Mode") in info.as_pairs()


def test_health_check_lists_enabled_subsystems():
    health = asyncio.run(_collector(containers=FakeContainers(available=False)).health_check())
    assert health == [("System", True), ("Docker", False), ("GPU", True), ("Network", True)]

    config = MonitorConfig.create(safe_mode=True)
    safe = Collector(config=config, host=FakeHost(), gpu=GpuMonitor(enabled=False, backends=[]))
    assert asyncio.run(safe.health_check()) == [("System", True)]
