"""Static host facts, read once at startup."""

from __future__ import annotations

import logging
import platform
import socket
import time
from pathlib import Path

import psutil

from pulsewatch.models import SystemInfo

from .sysfs import read_text

logger = logging.getLogger(__name__)

_CPUINFO = Path("/proc/cpuinfo")


def _cpu_model(cpuinfo: Path = _CPUINFO) -> str | None:
    text = read_text(cpuinfo)
    if text:
        for line in text.splitlines():
            key, _, value = line.partition(":")
            if key.strip() == "model name" and value.strip():
                return value.strip()
    return platform.processor() or None


def _load_average() -> tuple[float, float, float] | None:
    try:
        one, five, fifteen = psutil.getloadavg()
    except (AttributeError, OSError):  # pragma: no cover - platform specific
        return None
    return (float(one), float(five), float(fifteen))


def collect_system_info(cpuinfo: Path = _CPUINFO) -> SystemInfo:
    timestamp = time.time()
    uname = platform.uname()
    hostname = getattr(uname, "node", None) or socket.gethostname()

    try:
        total_memory_bytes: int | None = int(psutil.virtual_memory().total)
    except OSError:  # pragma: no cover - should not happen
        total_memory_bytes = None

    boot_time: float | None
    try:
        boot_time = float(psutil.boot_time())
    except (OSError, RuntimeError):  # pragma: no cover - psutil fallback
        boot_time = None

    uptime_seconds = None
    if boot_time:
        uptime_seconds = max(0.0, timestamp - boot_time)

    return SystemInfo(
        os_name=_os_name() or platform.system() or None,
        kernel_version=getattr(uname, "release", None),
        hostname=hostname,
        cpu_model=_cpu_model(cpuinfo),
        physical_cores=psutil.cpu_count(logical=False),
        logical_cores=psutil.cpu_count(logical=True),
        total_memory_bytes=total_memory_bytes,
        boot_time=boot_time,
        uptime_seconds=uptime_seconds,
        load_average=_load_average(),
        architecture=getattr(uname, "machine", None),
    )


def _os_name() -> str | None:
    try:
        release = platform.freedesktop_os_release()
    except OSError:
        return None
    return release.get("PRETTY_NAME") or release.get("NAME")
