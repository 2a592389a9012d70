"""Dataclasses representing one collection cycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pulsewatch.core.formatting import format_duration, format_load_average, format_size

from .process_info import ProcessDetail, ProcessSample


def _format_boot_time(boot_time: float | None) -> str:
    if not boot_time:
        return "Unknown"
    try:
        return datetime.fromtimestamp(boot_time).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return "Unknown"


@dataclass(slots=True)
class CoreSample:
    core_id: int
    usage_percent: float
    frequency_mhz: float
    temperature_celsius: float | None = None


@dataclass(slots=True)
class DiskSample:
    mountpoint: str
    device: str
    filesystem: str
    total_bytes: int
    used_bytes: int
    free_bytes: int
    read_rate: int = 0
    write_rate: int = 0
    read_ops: int = 0
    write_ops: int = 0
    is_ssd: bool | None = None
    is_nvme: bool = False
    temperature_celsius: float | None = None
    health_percent: int | None = None
    power_cycles: int | None = None


@dataclass(slots=True)
class NetworkSample:
    name: str
    down_rate: int
    up_rate: int
    total_down: int
    total_up: int
    packets_rx: int
    packets_tx: int
    errors_rx: int
    errors_tx: int
    interface_type: str = "Unknown"
    is_up: bool = True


@dataclass(slots=True)
class GpuSample:
    name: str
    brand: str
    utilization: int = 0
    memory_used: int = 0
    memory_total: int = 0
    temperature: int = 0
    power_usage_mw: int = 0
    graphics_clock_mhz: int = 0
    memory_clock_mhz: int = 0
    fan_speed: int | None = None
    driver_version: str = "Unknown"
    memory_temperature: int | None = None
    pci_link_gen: int | None = None
    pci_link_width: int | None = None
    utilization_history: list[int] = field(default_factory=list)
    memory_history: list[int] = field(default_factory=list)

    @property
    def memory_percent(self) -> int:
        if self.memory_total <= 0:
            return 0
        return int(self.memory_used / self.memory_total * 100)


@dataclass(slots=True)
class ContainerSample:
    id: str
    name: str
    status: str
    image: str
    ports: str
    cpu: str = "0.00%"
    mem: str = "0 B"
    net_down: str = "0 B/s"
    net_up: str = "0 B/s"
    disk_r: str = "0 B/s"
    disk_w: str = "0 B/s"
    cpu_percent: float = 0.0
    memory_bytes: int = 0
    net_down_rate: int = 0
    net_up_rate: int = 0
    disk_read_rate: int = 0
    disk_write_rate: int = 0


class SensorKind(str, Enum):
    TEMPERATURE = "temperature"
    FAN = "fan"
    VOLTAGE = "voltage"
    POWER = "power"
    CURRENT = "current"

    @property
    def order(self) -> int:
        return _SENSOR_ORDER[self]


_SENSOR_ORDER = {
    SensorKind.TEMPERATURE: 0,
    SensorKind.FAN: 1,
    SensorKind.VOLTAGE: 2,
    SensorKind.POWER: 3,
    SensorKind.CURRENT: 4,
}


@dataclass(slots=True)
class SensorSample:
    label: str
    chip: str
    kind: SensorKind
    value: float
    unit: str
    max: float | None = None
    critical: float | None = None


@dataclass(slots=True)
class Temperatures:
    cpu_celsius: float | None = None
    gpu_celsius: list[float] = field(default_factory=list)
    motherboard_celsius: float | None = None


@dataclass(slots=True)
class MemoryDetails:
    memory_type: str = "N/A"
    generation: str = "N/A"
    speed: str = "N/A"
    temperature_celsius: float | None = None


@dataclass(slots=True)
class GlobalUsage:
    cpu: float = 0.0
    mem_used: int = 0
    mem_total: int = 0
    mem_cached: int = 0
    swap_used: int = 0
    swap_total: int = 0
    gpu_util: int | None = None
    net_down: int = 0
    net_up: int = 0
    disk_read: int = 0
    disk_write: int = 0
    load_average: tuple[float, float, float] = (0.0, 0.0, 0.0)
    uptime: int = 0
    boot_time: int = 0
    memory: MemoryDetails = field(default_factory=MemoryDetails)
    cpu_history: list[float] = field(default_factory=list)
    mem_history: list[float] = field(default_factory=list)
    net_down_history: list[int] = field(default_factory=list)
    net_up_history: list[int] = field(default_factory=list)
    disk_read_history: list[int] = field(default_factory=list)
    disk_write_history: list[int] = field(default_factory=list)
    gpu_history: list[int] = field(default_factory=list)

    @property
    def mem_percent(self) -> float:
        if self.mem_total <= 0:
            return 0.0
        return self.mem_used / self.mem_total * 100.0


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Everything one cycle produced; handed to the state holder as-is."""

    captured_at: float
    processes: list[ProcessSample] = field(default_factory=list)
    detailed_process: ProcessDetail | None = None
    cores: list[CoreSample] = field(default_factory=list)
    disks: list[DiskSample] = field(default_factory=list)
    networks: list[NetworkSample] = field(default_factory=list)
    containers: list[ContainerSample] = field(default_factory=list)
    gpus: list[GpuSample] = field(default_factory=list)
    gpu_error: str | None = None
    global_usage: GlobalUsage = field(default_factory=GlobalUsage)
    temperatures: Temperatures = field(default_factory=Temperatures)
    sensors: list[SensorSample] = field(default_factory=list)
    container_error: str | None = None
    collection_seconds: float = 0.0
    slow_collection: bool = False


@dataclass(slots=True)
class SystemInfo:
    os_name: str | None
    kernel_version: str | None
    hostname: str | None
    cpu_model: str | None
    physical_cores: int | None
    logical_cores: int | None
    total_memory_bytes: int | None
    boot_time: float | None
    uptime_seconds: float | None
    load_average: tuple[float, float, float] | None
    architecture: str | None = None
    mode: str | None = None
    features: list[str] = field(default_factory=list)

    def as_pairs(self) -> list[tuple[str, str]]:
        """Label/value rows in display order."""

        rows = [
            ("OS", self.os_name or ""),
            ("Kernel", self.kernel_version or ""),
            ("Hostname", self.hostname or ""),
            ("CPU", self.cpu_model or "N/A"),
            ("Cores", f"{self.physical_cores or 0} Physical / {self.logical_cores or 0} Logical"),
            ("Total Memory", format_size(self.total_memory_bytes or 0)),
            ("Boot Time", _format_boot_time(self.boot_time)),
            ("Uptime", format_duration(int(self.uptime_seconds)) if self.uptime_seconds else "Unknown"),
            ("Load Average", format_load_average(self.load_average) if self.load_average else "N/A"),
        ]
        if self.mode:
            rows.append(("Mode", self.mode))
        if self.features:
            rows.append(("Features", ", ".join(self.features)))
        return rows
