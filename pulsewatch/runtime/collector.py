"""One collection cycle across every monitor."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any

from pulsewatch.core.config import MonitorConfig
from pulsewatch.core.errors import MonitorError
from pulsewatch.core.metrics import push_history, safe_percentage
from pulsewatch.data import ContainerMonitor, GpuMonitor, HostMonitor, NullContainerMonitor
from pulsewatch.data.gpu import DISABLED_MESSAGE as GPU_DISABLED_MESSAGE
from pulsewatch.models import ContainerSample, GlobalUsage, GpuSample, ProcessSortKey, Snapshot, SystemInfo

logger = logging.getLogger(__name__)

CONTAINER_TIMEOUT_MESSAGE = "Container collection timeout"

_HISTORY_FIELDS = (
    "cpu_history",
    "mem_history",
    "net_down_history",
    "net_up_history",
    "disk_read_history",
    "disk_write_history",
    "gpu_history",
)


@dataclass(frozen=True)
class CycleParams:
    """Consumer-controlled inputs for one cycle."""

    selected_pid: int | None = None
    include_system: bool = False
    filter_text: str = ""
    sort_key: ProcessSortKey = ProcessSortKey.CPU
    ascending: bool = False


class Collector:
    """Owns one instance of each monitor plus the cumulative history.

    :meth:`collect` never raises for a subsystem failure: GPU and container
    problems become ``gpu_error`` / ``container_error`` strings on the
    snapshot and host probes degrade to empty values.
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        host: HostMonitor | None = None,
        gpu: GpuMonitor | None = None,
        containers: ContainerMonitor | NullContainerMonitor | None = None,
    ) -> None:
        self.config = config or MonitorConfig()
        self.host = host or HostMonitor()
        self.gpu = gpu or GpuMonitor(enabled=self.config.enable_gpu_monitoring)
        if containers is None:
            containers = ContainerMonitor() if self.config.enable_docker else NullContainerMonitor()
        self.containers = containers
        self._history: dict[str, deque[Any]] = {name: deque() for name in _HISTORY_FIELDS}
        self._seeded = False

    def _seed_history(self, previous: GlobalUsage | None) -> None:
        if previous is None or self._seeded:
            return
        limit = self.config.history_length
        for name in _HISTORY_FIELDS:
            values = list(getattr(previous, name))[-limit:]
            self._history[name] = deque(values)
        self._seeded = True

    def _push(self, name: str, value: Any) -> None:
        push_history(self._history[name], value, self.config.history_length)

    async def _collect_containers(self) -> tuple[list[ContainerSample], str | None]:
        if not self.config.enable_docker:
            return [], None
        if not self.containers.is_available():
            error = self.containers.init_error
            return [], str(error) if error is not None else None

        timeout = self.config.operation_timeout
        try:
            containers = await asyncio.wait_for(
                self.containers.list(self.config.operation_timeout_ms), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning("%s after %.0f ms", CONTAINER_TIMEOUT_MESSAGE, timeout * 1000)
            return [], CONTAINER_TIMEOUT_MESSAGE
        except MonitorError as exc:
            logger.debug("Container collection failed: %s", exc)
            return [], str(exc)
        return containers, None

    def _collect_gpus(self) -> tuple[list[GpuSample], str | None]:
        if not self.config.enable_gpu_monitoring:
            return [], GPU_DISABLED_MESSAGE
        try:
            gpus = self.gpu.probe()
        except MonitorError as exc:
            return [], str(exc)
        self.gpu.record_history(gpus, self.config.history_length)
        return gpus, None

    async def collect(self, params: CycleParams | None = None, previous: GlobalUsage | None = None) -> Snapshot:
        """Run one cycle and return its snapshot.

        ``previous`` seeds the history buffers the first time it is given;
        afterwards the collector's own buffers are authoritative.
        """

        params = params or CycleParams()
        started = time.perf_counter()
        self._seed_history(previous)

        host = self.host
        host.refresh()
        total_memory = host.total_memory()
        processes = host.sort_processes(
            host.list_processes(params.include_system, params.filter_text),
            params.sort_key,
            params.ascending,
            total_memory,
        )
        detailed = host.detailed_process(params.selected_pid) if params.selected_pid is not None else None

        cores = host.cores()
        disks = host.disks()
        networks = host.networks() if self.config.enable_network_monitoring else []

        net_down = sum(net.down_rate for net in networks)
        net_up = sum(net.up_rate for net in networks)
        disk_read = sum(proc.disk_read_rate for proc in processes)
        disk_write = sum(proc.disk_write_rate for proc in processes)

        containers, container_error = await self._collect_containers()
        gpus, gpu_error = self._collect_gpus()
        gpu_util = self.gpu.primary_utilization(gpus) if gpu_error is None else None

        temperatures = host.temperatures()
        sensors = host.sensors()
        usage = host.global_usage(net_down, net_up, disk_read, disk_write, gpu_util)

        self._push("cpu_history", usage.cpu)
        self._push("mem_history", safe_percentage(usage.mem_used, usage.mem_total))
        self._push("net_down_history", net_down)
        self._push("net_up_history", net_up)
        self._push("disk_read_history", disk_read)
        self._push("disk_write_history", disk_write)
        if gpu_util is not None:
            self._push("gpu_history", gpu_util)
        for name in _HISTORY_FIELDS:
            setattr(usage, name, list(self._history[name]))

        elapsed = time.perf_counter() - started
        slow = elapsed > self.config.refresh_interval / 2
        if slow:
            logger.warning("Slow data collection: %.3fs", elapsed)

        return Snapshot(
            captured_at=time.time(),
            processes=processes,
            detailed_process=detailed,
            cores=cores,
            disks=disks,
            networks=networks,
            containers=containers,
            gpus=gpus,
            gpu_error=gpu_error,
            global_usage=usage,
            temperatures=temperatures,
            sensors=sensors,
            container_error=container_error,
            collection_seconds=elapsed,
            slow_collection=slow,
        )

    def system_info(self) -> SystemInfo | None:
        """Static host facts plus the mode and enabled-feature summary."""

        info = self.host.system_info()
        if info is None:
            return None
        if self.config.safe_mode:
            info.mode = "Safe Mode"
        features: list[str] = []
        if self.config.enable_docker and self.containers.is_available():
            features.append("Docker")
        if self.config.enable_gpu_monitoring and self.gpu.is_available():
            features.append("GPU")
        if self.config.enable_network_monitoring:
            features.append("Network")
        info.features = features
        return info

    async def health_check(self) -> list[tuple[str, bool]]:
        health = [("System", True)]
        if self.config.enable_docker:
            health.append(("Docker", await self.containers.health_check(1000)))
        if self.config.enable_gpu_monitoring:
            health.append(("GPU", self.gpu.is_available()))
        if self.config.enable_network_monitoring:
            health.append(("Network", True))
        return health
