"""Hardware sensor collectors: temperatures, fans, voltages, power, current."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import psutil

from pulsewatch.core.metrics import first_available
from pulsewatch.models import SensorKind, SensorSample, Temperatures

from .sysfs import SYS_ROOT, hwmon_dirs, iter_dir, read_float, read_text

logger = logging.getLogger(__name__)

CPU_PACKAGE_MARKERS = ("tctl", "package", "tdie")
CPU_HWMON_CHIPS = ("k10temp", "coretemp", "k8temp", "zenpower")
GPU_LABEL_MARKERS = ("gpu", "radeon", "amdgpu", "edge", "junction")
MEMORY_LABEL_MARKERS = ("dimm", "dram", "memory")

_HWMON_FAMILIES = (
    # prefix, suffixes, kind, unit, divisor, fallback label
    ("fan", ("_input",), SensorKind.FAN, "RPM", 1.0, "Fan"),
    ("in", ("_input",), SensorKind.VOLTAGE, "V", 1000.0, "Voltage"),
    ("power", ("_input", "_average"), SensorKind.POWER, "W", 1_000_000.0, "Power"),
    ("curr", ("_input",), SensorKind.CURRENT, "A", 1000.0, "Current"),
)


@dataclass(slots=True)
class Component:
    """One temperature reading, labelled "<chip> <label>"."""

    chip: str
    label: str
    current: float | None
    high: float | None = None
    critical: float | None = None

    @property
    def full_label(self) -> str:
        return f"{self.chip} {self.label}".strip()


def _coerce(value: object) -> float | None:
    if value is None:
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def read_components() -> list[Component]:
    """Temperature readings exposed by psutil; empty where unsupported."""

    try:
        sensors = psutil.sensors_temperatures(fahrenheit=False)
    except (AttributeError, NotImplementedError, OSError):  # pragma: no cover - platform specific
        return []
    components: list[Component] = []
    for chip, entries in sensors.items():
        for entry in entries:
            components.append(
                Component(
                    chip=chip,
                    label=str(getattr(entry, "label", "") or ""),
                    current=_coerce(getattr(entry, "current", None)),
                    high=_coerce(getattr(entry, "high", None)),
                    critical=_coerce(getattr(entry, "critical", None)),
                )
            )
    return components


def _find_temperature(components: list[Component], *needles: str) -> float | None:
    for component in components:
        label = component.full_label.lower()
        if any(needle in label for needle in needles) and component.current is not None:
            return component.current
    return None


def core_label_temperature(components: list[Component], core_id: int) -> float | None:
    pattern = re.compile(rf"\bcore {core_id}\b")
    for component in components:
        if pattern.search(component.full_label.lower()) and component.current is not None:
            return component.current
    return None


def cpu_temperature_from_hwmon(root: Path = SYS_ROOT) -> float | None:
    for hwmon in hwmon_dirs(root):
        name = (read_text(hwmon / "name") or "").lower()
        if name in CPU_HWMON_CHIPS:
            value = read_float(hwmon / "temp1_input", scale=1000.0)
            if value is not None:
                return value
    return None


def cpu_temperature(components: list[Component], root: Path = SYS_ROOT) -> float | None:
    """Package sensor, then "core 0", then a known CPU hwmon chip."""

    return first_available(
        (
            lambda: _find_temperature(components, *CPU_PACKAGE_MARKERS),
            lambda: core_label_temperature(components, 0),
            lambda: cpu_temperature_from_hwmon(root),
        )
    )


def memory_temperature(components: list[Component]) -> float | None:
    return _find_temperature(components, *MEMORY_LABEL_MARKERS)


def collect_temperatures(components: list[Component], root: Path = SYS_ROOT) -> Temperatures:
    gpu_temps = [
        component.current
        for component in components
        if component.current is not None
        and any(marker in component.full_label.lower() for marker in GPU_LABEL_MARKERS)
    ]
    return Temperatures(
        cpu_celsius=cpu_temperature(components, root),
        gpu_celsius=gpu_temps,
        motherboard_celsius=None,
    )


def _hwmon_sensors(root: Path) -> list[SensorSample]:
    samples: list[SensorSample] = []
    for hwmon in hwmon_dirs(root):
        chip = read_text(hwmon / "name") or hwmon.name
        for path in iter_dir(hwmon):
            fname = path.name
            for prefix, suffixes, kind, unit, divisor, fallback in _HWMON_FAMILIES:
                suffix = next((s for s in suffixes if fname.endswith(s)), None)
                if suffix is None or not fname.startswith(prefix):
                    continue
                index = fname[len(prefix) : -len(suffix)]
                if not index.isdigit():
                    continue
                label = read_text(hwmon / f"{prefix}{index}_label") or f"{chip} {fallback} {index}"
                if kind is SensorKind.POWER and any(
                    s.kind is SensorKind.POWER and s.label == label for s in samples
                ):
                    continue
                value = read_float(path, scale=divisor if divisor != 1.0 else None)
                if value is None:
                    continue
                samples.append(SensorSample(label=label, chip=chip, kind=kind, value=value, unit=unit))
    return samples


def collect_sensors(components: list[Component], root: Path = SYS_ROOT) -> list[SensorSample]:
    """Every readable sensor, ordered by kind then label."""

    sensors = [
        SensorSample(
            label=component.full_label,
            chip=component.chip,
            kind=SensorKind.TEMPERATURE,
            value=component.current or 0.0,
            unit="°C",
            max=component.high,
            critical=component.critical,
        )
        for component in components
    ]
    try:
        sensors.extend(_hwmon_sensors(root))
    except OSError as exc:
        logger.debug("hwmon scan failed: %s", exc)
    sensors.sort(key=lambda s: (s.kind.order, s.label))
    return sensors
