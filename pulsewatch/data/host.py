"""Host telemetry: processes, cores, disks, networks, sensors and memory."""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable, TypeVar

import psutil

from pulsewatch.core.metrics import is_system_process
from pulsewatch.models import (
    CoreSample,
    DiskSample,
    GlobalUsage,
    MemoryDetails,
    NetworkSample,
    ProcessDetail,
    ProcessSample,
    ProcessSortKey,
    SensorSample,
    SystemInfo,
    Temperatures,
)

from .cpu import collect_cores
from .disk import DiskProbe
from .memory import MemoryDetailsProbe
from .network import NetworkProbe
from .processes import ProcessTable, SystemPredicate, detailed_process, sort_processes
from .sensors import Component, collect_sensors, collect_temperatures, read_components
from .sysfs import SYS_ROOT
from .system import collect_system_info

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HostMonitor:
    """Kernel-backed probes for everything that is not a GPU or a container.

    Each probe is independent: a failing probe is logged, counted and
    returns its empty value so the rest of the cycle still runs. Sensor
    components are read once per :meth:`refresh` and shared by the
    temperature, core, disk and memory probes of that cycle.
    """

    def __init__(
        self,
        system_predicate: SystemPredicate = is_system_process,
        sys_root: Path = SYS_ROOT,
        memory_probe: MemoryDetailsProbe | None = None,
    ) -> None:
        self._sys_root = sys_root
        self._processes = ProcessTable(system_predicate)
        self._disks = DiskProbe(sys_root)
        self._networks = NetworkProbe()
        self._memory = memory_probe or MemoryDetailsProbe(sys_root)
        self._components: list[Component] = []
        self.probe_failures: defaultdict[str, int] = defaultdict(int)
        # Prime the per-core and system-wide cpu_percent baselines so the first real sample is meaningful.
        self._guard("cpu", lambda: psutil.cpu_percent(interval=None, percpu=True), [])
        self._guard("cpu", lambda: psutil.cpu_percent(interval=None), 0.0)

    def _guard(self, key: str, fn: Callable[[], T], default: T) -> T:
        try:
            return fn()
        except Exception as exc:
            logger.debug("Host probe '%s' failed: %s", key, exc, exc_info=True)
            self.probe_failures[key] += 1
            return default

    def refresh(self) -> None:
        self._components = self._guard("components", read_components, [])

    @property
    def components(self) -> list[Component]:
        return list(self._components)

    def total_memory(self) -> int:
        return self._guard("memory", lambda: int(psutil.virtual_memory().total), 0)

    def list_processes(self, include_system: bool = False, filter_text: str = "") -> list[ProcessSample]:
        return self._guard(
            "processes", lambda: self._processes.list_processes(include_system, filter_text), []
        )

    def sort_processes(
        self,
        processes: list[ProcessSample],
        key: ProcessSortKey | str,
        ascending: bool = False,
        total_memory: int | None = None,
    ) -> list[ProcessSample]:
        if total_memory is None:
            total_memory = self.total_memory()
        return sort_processes(processes, key, ascending, total_memory)

    def detailed_process(self, pid: int) -> ProcessDetail | None:
        return self._guard("process_detail", lambda: detailed_process(pid), None)

    def cores(self) -> list[CoreSample]:
        return self._guard("cores", lambda: collect_cores(self._components, self._sys_root), [])

    def disks(self) -> list[DiskSample]:
        return self._guard("disks", lambda: self._disks.disks(self._components), [])

    def networks(self) -> list[NetworkSample]:
        return self._guard("networks", self._networks.networks, [])

    def temperatures(self) -> Temperatures:
        return self._guard(
            "temperatures",
            lambda: collect_temperatures(self._components, self._sys_root),
            Temperatures(),
        )

    def sensors(self) -> list[SensorSample]:
        return self._guard(
            "sensors", lambda: collect_sensors(self._components, self._sys_root), []
        )

    def memory_details(self) -> MemoryDetails:
        return self._guard("memory_details", lambda: self._memory.details(self._components), MemoryDetails())

    def system_info(self) -> SystemInfo | None:
        return self._guard("system", collect_system_info, None)

    def global_usage(
        self,
        net_down: int = 0,
        net_up: int = 0,
        disk_read: int = 0,
        disk_write: int = 0,
        gpu_util: int | None = None,
    ) -> GlobalUsage:
        """Aggregate host figures; the seven history buffers are left empty."""

        base: dict[str, Any] = self._guard("global", self._base_figures, {})
        return GlobalUsage(
            gpu_util=gpu_util,
            net_down=net_down,
            net_up=net_up,
            disk_read=disk_read,
            disk_write=disk_write,
            memory=self.memory_details(),
            **base,
        )

    def _base_figures(self) -> dict[str, Any]:
        memory = psutil.virtual_memory()
        swap = psutil.swap_memory()
        try:
            load = tuple(float(value) for value in psutil.getloadavg())
        except (AttributeError, OSError):  # pragma: no cover - platform specific
            load = (0.0, 0.0, 0.0)
        boot_time = int(psutil.boot_time())
        return {
            "cpu": float(psutil.cpu_percent(interval=None)),
            "mem_used": int(memory.used),
            "mem_total": int(memory.total),
            "mem_cached": max(int(memory.available) - int(memory.free), 0),
            "swap_used": int(swap.used),
            "swap_total": int(swap.total),
            "load_average": load,
            "uptime": max(int(time.time()) - boot_time, 0),
            "boot_time": boot_time,
        }
