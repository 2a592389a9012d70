"""GPU data provider with multiple backend support.

Backends are not a fallback chain: every backend runs each cycle and their
results are concatenated, so a host with an NVIDIA card and an Intel iGPU
reports both. Within one backend, fields are read through ordered probe
strategies because attribute names differ per driver and kernel.
"""

from __future__ import annotations

import logging
import re
import subprocess
from collections import deque
from pathlib import Path
from typing import Callable, Iterable, Iterator, Sequence

from pulsewatch.core.errors import MonitorError, ProbeParseError, SubsystemDisabled, SubsystemUnavailable
from pulsewatch.core.metrics import first_available
from pulsewatch.models import GpuSample

from .sysfs import SYS_ROOT, iter_dir, read_int, read_text

try:
    import pynvml  # type: ignore[import]
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    pynvml = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

DISABLED_MESSAGE = "GPU monitoring disabled by configuration"
NO_GPU_MESSAGE = "No supported GPUs found"

NVIDIA_SMI_QUERY = (
    "--query-gpu=name,utilization.gpu,memory.used,memory.total,temperature.gpu,"
    "power.draw,clocks.gr,clocks.mem,fan.speed,driver_version"
)

AMD_VENDOR_ID = "0x1002"
INTEL_VENDOR_ID = "0x8086"
_CARD_NAME = re.compile(r"^card\d+$")
_MIB = 1024 * 1024

AMD_UTILIZATION_FILES = (
    "gpu_busy_percent",
    "busy_percent",
    "device/gpu_busy_percent",
    "device/load",
)
AMD_NAME_FILES = ("product_name", "product_number", "device")
INTEL_CLOCK_FILES = (
    "gt/gt0/rps_act_freq_mhz",
    "gt/gt0/rps_cur_freq_mhz",
    "gt/gt0/gt_act_freq_mhz",
    "gt/gt0/gt_cur_freq_mhz",
    "gt_act_freq_mhz",
    "gt_cur_freq_mhz",
    "device/gt_act_freq_mhz",
    "device/gt_cur_freq_mhz",
)

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(float(value.strip()))
    except ValueError:
        return None


def parse_nvidia_smi_output(text: str) -> list[GpuSample]:
    """One sample per non-empty CSV line.

    Unparsable numeric fields ("[N/A]", "[Not Supported]") become 0, or
    None for the fan speed; a short line still yields a sample. A line that
    is not CSV at all raises :class:`ProbeParseError`.
    """

    gpus: list[GpuSample] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        if "," not in line:
            raise ProbeParseError(f"Unexpected nvidia-smi output: {line.strip()}")
        parts = [part.strip() for part in line.split(",")]

        def field(index: int) -> str | None:
            return parts[index] if index < len(parts) else None

        power_watts: float
        try:
            power_watts = float(field(5) or "")
        except ValueError:
            power_watts = 0.0

        gpus.append(
            GpuSample(
                name=parts[0] or "NVIDIA GPU",
                brand="NVIDIA",
                utilization=_parse_int(field(1)) or 0,
                memory_used=(_parse_int(field(2)) or 0) * _MIB,
                memory_total=(_parse_int(field(3)) or 0) * _MIB,
                temperature=_parse_int(field(4)) or 0,
                power_usage_mw=int(power_watts * 1000),
                graphics_clock_mhz=_parse_int(field(6)) or 0,
                memory_clock_mhz=_parse_int(field(7)) or 0,
                fan_speed=_parse_int(field(8)),
                driver_version=field(9) or "Unknown",
            )
        )
    return gpus


class GpuBackend:
    """One vendor probe; raises :class:`MonitorError` when it cannot run."""

    name = "GPU"

    def probe(self) -> list[GpuSample]:  # pragma: no cover - interface
        raise NotImplementedError


class NvidiaBackend(GpuBackend):
    """``nvidia-smi`` first, NVML through ``pynvml`` when the tool is unusable."""

    name = "NVIDIA"

    def __init__(self, runner: Runner = subprocess.run, nvml: object | None = pynvml, timeout: float = 5.0) -> None:
        self._run = runner
        self._nvml = nvml
        self._timeout = timeout

    def _from_smi(self) -> list[GpuSample]:
        cmd = ["nvidia-smi", NVIDIA_SMI_QUERY, "--format=csv,noheader,nounits"]
        try:
            result = self._run(cmd, capture_output=True, text=True, timeout=self._timeout)
        except (OSError, subprocess.SubprocessError) as exc:
            raise SubsystemUnavailable(str(exc)) from exc
        if result.returncode != 0:
            raise SubsystemUnavailable(f"nvidia-smi failed: {(result.stderr or '').strip()}")
        return parse_nvidia_smi_output(result.stdout or "")

    def _iter_nvml_handles(self) -> Iterator[object]:
        nvml = self._nvml
        count = nvml.nvmlDeviceGetCount()  # type: ignore[union-attr]
        for index in range(count):
            yield nvml.nvmlDeviceGetHandleByIndex(index)  # type: ignore[union-attr]

    def _from_nvml(self) -> list[GpuSample]:
        nvml = self._nvml
        if nvml is None:
            raise SubsystemUnavailable("pynvml not installed")

        def optional(getter: Callable[[], object]) -> object | None:
            try:
                return getter()
            except nvml.NVMLError:  # type: ignore[union-attr]
                return None

        gpus: list[GpuSample] = []
        try:
            nvml.nvmlInit()  # type: ignore[union-attr]
        except nvml.NVMLError as exc:  # type: ignore[union-attr]
            raise SubsystemUnavailable(f"NVML init failed: {exc}") from exc
        try:
            driver = optional(nvml.nvmlSystemGetDriverVersion)  # type: ignore[union-attr]
            for handle in self._iter_nvml_handles():
                name = nvml.nvmlDeviceGetName(handle)  # type: ignore[union-attr]
                if isinstance(name, bytes):
                    name = name.decode("utf-8", errors="replace")
                memory = nvml.nvmlDeviceGetMemoryInfo(handle)  # type: ignore[union-attr]
                util = optional(lambda: nvml.nvmlDeviceGetUtilizationRates(handle))  # type: ignore[union-attr]
                temperature = optional(
                    lambda: nvml.nvmlDeviceGetTemperature(handle, nvml.NVML_TEMPERATURE_GPU)  # type: ignore[union-attr]
                )
                power = optional(lambda: nvml.nvmlDeviceGetPowerUsage(handle))  # type: ignore[union-attr]
                graphics = optional(
                    lambda: nvml.nvmlDeviceGetClockInfo(handle, nvml.NVML_CLOCK_GRAPHICS)  # type: ignore[union-attr]
                )
                mem_clock = optional(
                    lambda: nvml.nvmlDeviceGetClockInfo(handle, nvml.NVML_CLOCK_MEM)  # type: ignore[union-attr]
                )
                fan = optional(lambda: nvml.nvmlDeviceGetFanSpeed(handle))  # type: ignore[union-attr]
                if isinstance(driver, bytes):
                    driver = driver.decode("utf-8", errors="replace")
                gpus.append(
                    GpuSample(
                        name=str(name),
                        brand="NVIDIA",
                        utilization=int(getattr(util, "gpu", 0) or 0),
                        memory_used=int(memory.used),
                        memory_total=int(memory.total),
                        temperature=int(temperature or 0),
                        power_usage_mw=int(power or 0),
                        graphics_clock_mhz=int(graphics or 0),
                        memory_clock_mhz=int(mem_clock or 0),
                        fan_speed=None if fan is None else int(fan),
                        driver_version=str(driver or "Unknown"),
                    )
                )
        except nvml.NVMLError as exc:  # type: ignore[union-attr]
            raise SubsystemUnavailable(f"NVML query failed: {exc}") from exc
        finally:
            try:
                nvml.nvmlShutdown()  # type: ignore[union-attr]
            except nvml.NVMLError:  # type: ignore[union-attr]
                pass
        return gpus

    def probe(self) -> list[GpuSample]:
        try:
            return self._from_smi()
        except (SubsystemUnavailable, ProbeParseError) as smi_error:
            logger.debug("nvidia-smi unusable, trying NVML: %s", smi_error)
            try:
                return self._from_nvml()
            except SubsystemUnavailable as nvml_error:
                raise SubsystemUnavailable(f"{smi_error}; {nvml_error}") from nvml_error


def _hwmon_first(device: Path, prefix: str, suffixes: tuple[str, ...], divisor: int) -> int | None:
    for hwmon in iter_dir(device / "hwmon"):
        for path in iter_dir(hwmon):
            fname = path.name
            if fname.startswith(prefix) and fname.endswith(suffixes):
                value = read_int(path)
                if value is not None:
                    return value // divisor
    return None


def hwmon_temperature(device: Path) -> int | None:
    """First ``temp*_input`` under the device's hwmon, in whole °C."""
    return _hwmon_first(device, "temp", ("_input",), 1000)


def hwmon_power_mw(device: Path) -> int | None:
    """First ``power*_average``/``power*_input`` under the device's hwmon, in mW."""
    return _hwmon_first(device, "power", ("_average", "_input"), 1000)


def hwmon_clock_mhz(device: Path, filename: str) -> int | None:
    for hwmon in iter_dir(device / "hwmon"):
        value = read_int(hwmon / filename)
        if value is not None:
            return value // 1_000_000
        if filename.startswith("freq"):
            for index in range(1, 4):
                alt = read_int(hwmon / f"freq{index}_input")
                if alt is not None and alt // 1_000_000 > 100:
                    return alt // 1_000_000
    return None


def dpm_clock_mhz(device: Path, filename: str) -> int | None:
    """Active level of a ``pp_dpm_*`` table, e.g. ``1: 1800Mhz *``."""

    content = read_text(device / filename)
    if not content:
        return None
    for line in content.splitlines():
        if "*" not in line:
            continue
        for part in line.split():
            if part.endswith("Mhz"):
                return _parse_int(part[:-3])
    return None


def _nonzero(value: int | None) -> int | None:
    return value if value else None


class DrmBackend(GpuBackend):
    """AMD and Intel cards under ``/sys/class/drm``."""

    name = "DRM"

    def __init__(self, root: Path = SYS_ROOT) -> None:
        self._drm = root / "class" / "drm"

    def probe(self) -> list[GpuSample]:
        if not self._drm.is_dir():
            raise SubsystemUnavailable(f"{self._drm} not found")
        gpus: list[GpuSample] = []
        for card in iter_dir(self._drm):
            if not _CARD_NAME.match(card.name):
                continue
            device = card / "device"
            vendor = read_text(device / "vendor")
            if vendor == AMD_VENDOR_ID:
                gpus.append(self._amd(device, card.name))
            elif vendor == INTEL_VENDOR_ID:
                gpus.append(self._intel(card, device, card.name))
        return gpus

    def _amd(self, device: Path, card_name: str) -> GpuSample:
        name = first_available(lambda f=f: read_text(device / f) for f in AMD_NAME_FILES)
        utilization = first_available(lambda f=f: read_int(device / f) for f in AMD_UTILIZATION_FILES)
        graphics = first_available(
            (
                lambda: _nonzero(dpm_clock_mhz(device, "pp_dpm_sclk")),
                lambda: _nonzero(hwmon_clock_mhz(device, "freq1_input")),
                lambda: _nonzero(hwmon_clock_mhz(device, "freq0_input")),
            )
        )
        memory_clock = first_available(
            (
                lambda: _nonzero(dpm_clock_mhz(device, "pp_dpm_mclk")),
                lambda: _nonzero(hwmon_clock_mhz(device, "freq2_input")),
            )
        )
        return GpuSample(
            name=name or f"AMD GPU ({card_name})",
            brand="AMD",
            utilization=utilization or 0,
            memory_used=read_int(device / "mem_info_vram_used") or 0,
            memory_total=read_int(device / "mem_info_vram_total") or 0,
            temperature=hwmon_temperature(device) or 0,
            power_usage_mw=hwmon_power_mw(device) or 0,
            graphics_clock_mhz=graphics or 0,
            memory_clock_mhz=memory_clock or 0,
            driver_version="amdgpu",
        )

    def _intel(self, card: Path, device: Path, card_name: str) -> GpuSample:
        device_id = read_text(device / "device")
        name = f"Intel Graphics ({device_id})" if device_id else f"Intel GPU ({card_name})"
        return GpuSample(
            name=name,
            brand="Intel",
            temperature=hwmon_temperature(device) or 0,
            power_usage_mw=hwmon_power_mw(device) or 0,
            graphics_clock_mhz=intel_clock_mhz(card),
            driver_version="i915",
        )


def intel_clock_mhz(card: Path) -> int:
    """First nonzero reading in priority order; a zero is kept only as last resort."""

    clock = 0
    seen = False
    for relative in INTEL_CLOCK_FILES:
        value = read_int(card / relative)
        if value is None:
            continue
        if not seen:
            clock, seen = value, True
        if value > 0:
            return value
    return clock


class GpuMonitor:
    """Unions every backend and keeps per-index utilization/memory history."""

    def __init__(self, enabled: bool = True, backends: Sequence[GpuBackend] | None = None) -> None:
        self._enabled = enabled
        self._backends = list(backends) if backends is not None else [NvidiaBackend(), DrmBackend()]
        self._utilization_history: deque[list[int]] = deque()
        self._memory_history: deque[list[int]] = deque()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def is_available(self) -> bool:
        return self._enabled and bool(self._backends)

    def probe(self) -> list[GpuSample]:
        """Samples from every backend that succeeded.

        Raises :class:`SubsystemDisabled` when turned off and
        :class:`SubsystemUnavailable` when no backend produced a GPU.
        """

        if not self._enabled:
            raise SubsystemDisabled(DISABLED_MESSAGE)

        gpus: list[GpuSample] = []
        errors: list[str] = []
        for backend in self._backends:
            try:
                gpus.extend(backend.probe())
            except (MonitorError, OSError) as exc:
                logger.debug("GPU backend %s failed: %s", backend.name, exc)
                errors.append(f"{backend.name}: {exc}")

        if not gpus:
            if errors:
                raise SubsystemUnavailable(f"No GPUs found. Errors: {', '.join(errors)}")
            raise SubsystemUnavailable(NO_GPU_MESSAGE)

        self._attach_history(gpus)
        return gpus

    def _attach_history(self, gpus: Iterable[GpuSample]) -> None:
        for index, gpu in enumerate(gpus):
            gpu.utilization_history = [frame[index] for frame in self._utilization_history if index < len(frame)]
            gpu.memory_history = [frame[index] for frame in self._memory_history if index < len(frame)]

    def record_history(self, gpus: Sequence[GpuSample], max_len: int) -> None:
        """Push one frame per call and refresh the samples' history views."""

        self._utilization_history.append([gpu.utilization for gpu in gpus])
        self._memory_history.append([gpu.memory_percent for gpu in gpus])
        while len(self._utilization_history) > max_len:
            self._utilization_history.popleft()
        while len(self._memory_history) > max_len:
            self._memory_history.popleft()
        self._attach_history(gpus)

    def history_flat(self) -> list[int]:
        return [max(frame, default=0) for frame in self._utilization_history]

    @staticmethod
    def primary_utilization(gpus: Sequence[GpuSample]) -> int | None:
        if not gpus:
            return None
        return max(gpu.utilization for gpu in gpus)
