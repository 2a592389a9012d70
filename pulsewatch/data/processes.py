"""Process table sampling with per-process disk I/O rates."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable, Iterable

import psutil

from pulsewatch.core.formatting import format_rate, format_size
from pulsewatch.core.metrics import (
    calculate_rate,
    is_system_process,
    matches_filter,
    normalize_cpu,
    safe_percentage,
)
from pulsewatch.models import ProcessDetail, ProcessSample, ProcessSortKey

logger = logging.getLogger(__name__)

_ATTRS = ["pid", "name", "username", "status", "cpu_percent", "memory_info", "io_counters"]

SystemPredicate = Callable[[str], bool]


class ProcessTable:
    """Lists processes and keeps the previous cycle's I/O counters per pid.

    The counter map is replaced wholesale every call: a pid missing from one
    cycle loses its baseline and reports a zero rate when it reappears.
    """

    def __init__(
        self,
        system_predicate: SystemPredicate = is_system_process,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._is_system = system_predicate
        self._clock = clock
        self._prev_io: dict[int, tuple[int, int]] = {}
        self._last_update = clock()

    def list_processes(self, include_system: bool = False, filter_text: str = "") -> list[ProcessSample]:
        now = self._clock()
        elapsed = max(now - self._last_update, 0.1)
        self._last_update = now

        cores = psutil.cpu_count(logical=True) or 1
        current_io: dict[int, tuple[int, int]] = {}
        samples: list[ProcessSample] = []

        for proc in psutil.process_iter(attrs=_ATTRS, ad_value=None):
            info = proc.info
            pid = int(info.get("pid") or proc.pid)
            name = info.get("name") or ""

            # baselines are kept for hidden processes too, so toggling a filter keeps rates
            io = info.get("io_counters")
            read_total = int(getattr(io, "read_bytes", 0) or 0)
            write_total = int(getattr(io, "write_bytes", 0) or 0)
            current_io[pid] = (read_total, write_total)

            if not include_system and self._is_system(name):
                continue
            if filter_text and not matches_filter(f"{name} {pid}", filter_text):
                continue

            previous = self._prev_io.get(pid)
            if previous is not None:
                read_rate = calculate_rate(read_total, previous[0], elapsed)
                write_rate = calculate_rate(write_total, previous[1], elapsed)
            else:
                read_rate = write_rate = 0

            memory = info.get("memory_info")
            memory_bytes = int(getattr(memory, "rss", 0) or 0)
            cpu = normalize_cpu(info.get("cpu_percent") or 0.0, cores)

            samples.append(
                ProcessSample(
                    pid=pid,
                    name=name,
                    user=info.get("username") or "N/A",
                    cpu_percent=cpu,
                    memory_bytes=memory_bytes,
                    disk_read_rate=read_rate,
                    disk_write_rate=write_rate,
                    status=str(info.get("status") or "unknown"),
                    cpu_display=f"{cpu:.2f}%",
                    memory_display=format_size(memory_bytes),
                    disk_read_display=format_rate(read_rate),
                    disk_write_display=format_rate(write_rate),
                )
            )

        self._prev_io = current_io
        return samples


def sort_processes(
    processes: Iterable[ProcessSample],
    key: ProcessSortKey | str,
    ascending: bool = False,
    total_memory: int = 0,
) -> list[ProcessSample]:
    """Stable sort; entries that compare equal keep their input order."""

    key = ProcessSortKey(key)
    if key is ProcessSortKey.CPU:
        sort_key: Callable[[ProcessSample], object] = lambda p: p.cpu_percent
    elif key is ProcessSortKey.MEMORY:
        sort_key = lambda p: p.memory_bytes
    elif key is ProcessSortKey.NAME:
        sort_key = lambda p: p.name
    elif key is ProcessSortKey.PID:
        sort_key = lambda p: p.pid
    elif key is ProcessSortKey.DISK_READ:
        sort_key = lambda p: p.disk_read_rate
    elif key is ProcessSortKey.DISK_WRITE:
        sort_key = lambda p: p.disk_write_rate
    else:
        sort_key = lambda p: p.cpu_percent + safe_percentage(p.memory_bytes, total_memory)
    return sorted(processes, key=sort_key, reverse=not ascending)


def _format_start_time(create_time: float | None) -> str:
    if create_time is None:
        return "Invalid time"
    try:
        return datetime.fromtimestamp(create_time).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return "Invalid time"


def detailed_process(pid: int) -> ProcessDetail | None:
    """Full record for one pid, or None when it does not exist.

    Fields the caller may not read (environ, fds, cwd of another user's
    process) come back empty instead of failing the whole record.
    """

    try:
        proc = psutil.Process(pid)
    except (psutil.NoSuchProcess, ValueError):
        return None

    def attempt(getter: Callable[[], object], default: object = None) -> object:
        try:
            return getter()
        except (psutil.AccessDenied, psutil.ZombieProcess, OSError):
            return default

    try:
        with proc.oneshot():
            memory = attempt(proc.memory_info)
            cores = psutil.cpu_count(logical=True) or 1
            environ = attempt(proc.environ, {}) or {}
            return ProcessDetail(
                pid=proc.pid,
                name=str(attempt(proc.name, "") or ""),
                user=str(attempt(proc.username, "N/A") or "N/A"),
                status=str(attempt(proc.status, "unknown")),
                cpu_percent=normalize_cpu(float(attempt(proc.cpu_percent, 0.0) or 0.0), cores),
                memory_rss=int(getattr(memory, "rss", 0) or 0),
                memory_vms=int(getattr(memory, "vms", 0) or 0),
                command=" ".join(attempt(proc.cmdline, []) or []),
                start_time=_format_start_time(attempt(proc.create_time)),  # type: ignore[arg-type]
                parent=attempt(proc.ppid),  # type: ignore[arg-type]
                environ=[f"{name}={value}" for name, value in environ.items()],  # type: ignore[union-attr]
                threads=int(attempt(proc.num_threads, 0) or 0),
                file_descriptors=attempt(proc.num_fds),  # type: ignore[arg-type]
                cwd=attempt(proc.cwd),  # type: ignore[arg-type]
            )
    except psutil.NoSuchProcess:
        logger.debug("Process %s exited while being inspected", pid)
        return None
