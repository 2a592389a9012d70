"""Mounted filesystem sampling with block-device health and I/O rates."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path

import psutil

from pulsewatch.core.metrics import calculate_rate, first_available
from pulsewatch.models import DiskSample

from .sensors import Component
from .sysfs import SYS_ROOT, hwmon_dirs, iter_dir, read_float, read_int, read_text

logger = logging.getLogger(__name__)

_NVME_PARTITION = re.compile(r"^(nvme\d+n\d+)p\d+$")


def base_block_device(device: str) -> str:
    """Whole-disk name for a partition: ``/dev/nvme0n1p2`` -> ``nvme0n1``, ``sda1`` -> ``sda``."""

    name = device.rsplit("/", 1)[-1]
    if "nvme" in name:
        match = _NVME_PARTITION.match(name)
        return match.group(1) if match else name
    return name.rstrip("0123456789") or name


class DiskProbe:
    def __init__(self, root: Path = SYS_ROOT) -> None:
        self._root = root
        self._prev_counters: dict[str, tuple[int, int, int, int]] = {}
        self._last_update: float | None = None

    def _block_path(self, base: str) -> Path:
        return self._root / "block" / base

    def _component_temperature(self, components: list[Component], device: str) -> float | None:
        name = device.rsplit("/", 1)[-1]
        for component in components:
            label = component.full_label
            if component.current is not None and label and (name in label or label in device):
                return component.current
        return None

    def _nvme_hwmon_temperature(self) -> float | None:
        for hwmon in hwmon_dirs(self._root):
            if read_text(hwmon / "name") == "nvme":
                value = read_float(hwmon / "temp1_input", scale=1000.0)
                if value is not None:
                    return value
        return None

    def _device_hwmon_temperature(self, base: str) -> float | None:
        for hwmon in iter_dir(self._block_path(base) / "device" / "hwmon"):
            value = read_float(hwmon / "temp1_input", scale=1000.0)
            if value is not None:
                return value
        return None

    def temperature(self, components: list[Component], device: str) -> float | None:
        base = base_block_device(device)
        strategies = [lambda: self._component_temperature(components, device)]
        if base.startswith("nvme"):
            strategies.append(self._nvme_hwmon_temperature)
        strategies.append(lambda: self._device_hwmon_temperature(base))
        return first_available(strategies)

    def _io_rates(self, counters: dict, elapsed: float | None) -> dict[str, tuple[int, int, int, int]]:
        rates: dict[str, tuple[int, int, int, int]] = {}
        current: dict[str, tuple[int, int, int, int]] = {}
        for name, stats in counters.items():
            now = (
                int(stats.read_bytes),
                int(stats.write_bytes),
                int(stats.read_count),
                int(stats.write_count),
            )
            current[name] = now
            previous = self._prev_counters.get(name)
            if previous is None or elapsed is None:
                rates[name] = (0, 0, 0, 0)
            else:
                rates[name] = tuple(  # type: ignore[assignment]
                    calculate_rate(value, old, elapsed) for value, old in zip(now, previous)
                )
        self._prev_counters = current
        return rates

    def disks(self, components: list[Component]) -> list[DiskSample]:
        now = time.monotonic()
        elapsed = None if self._last_update is None else max(now - self._last_update, 0.1)
        self._last_update = now

        try:
            counters = psutil.disk_io_counters(perdisk=True) or {}
        except (OSError, RuntimeError) as exc:
            logger.debug("disk_io_counters failed: %s", exc)
            counters = {}
        rates = self._io_rates(counters, elapsed)

        samples: list[DiskSample] = []
        for partition in psutil.disk_partitions(all=False):
            try:
                usage = psutil.disk_usage(partition.mountpoint)
            except OSError as exc:
                logger.debug("disk_usage(%s) failed: %s", partition.mountpoint, exc)
                continue

            device = partition.device
            name = device.rsplit("/", 1)[-1]
            base = base_block_device(device)
            read_rate, write_rate, read_ops, write_ops = rates.get(name, rates.get(base, (0, 0, 0, 0)))
            block = self._block_path(base)
            is_nvme = base.startswith("nvme")

            health = cycles = None
            if is_nvme:
                used_pct = read_int(block / "device" / "percentage_used")
                if used_pct is not None:
                    health = max(100 - used_pct, 0)
                cycles = read_int(block / "device" / "power_cycles")

            rotational = read_int(block / "queue" / "rotational")
            samples.append(
                DiskSample(
                    mountpoint=partition.mountpoint,
                    device=device,
                    filesystem=partition.fstype,
                    total_bytes=int(usage.total),
                    used_bytes=int(usage.used),
                    free_bytes=int(usage.free),
                    read_rate=read_rate,
                    write_rate=write_rate,
                    read_ops=read_ops,
                    write_ops=write_ops,
                    is_ssd=None if rotational is None else rotational == 0,
                    is_nvme=is_nvme,
                    temperature_celsius=self.temperature(components, device),
                    health_percent=health,
                    power_cycles=cycles,
                )
            )
        return samples
