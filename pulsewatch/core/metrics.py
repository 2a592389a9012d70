"""Rate, history and summary helpers used by every monitor."""

from __future__ import annotations

from collections import deque
from typing import Callable, Iterable, Sequence, TypeVar

T = TypeVar("T")

SYSTEM_PROCESS_PREFIXES = (
    "kthreadd",
    "migration",
    "rcu_",
    "watchdog",
    "systemd",
    "kernel",
    "kworker",
    "ksoftirqd",
    "init",
    "swapper",
    "[",
    "dbus",
    "NetworkManager",
    "systemd-",
)

_PROBE_ERRORS = (OSError, ValueError, TypeError, IndexError)


def calculate_rate(current: int, previous: int, elapsed_seconds: float) -> int:
    """Per-second rate between two absolute counter readings.

    The delta saturates at zero, so a counter that went backwards (service
    restart, wrapped interface) reports 0 for that cycle.
    """

    if elapsed_seconds <= 0:
        return 0
    diff = max(int(current) - int(previous), 0)
    return int(diff / elapsed_seconds)


def push_history(buffer: deque[T], value: T, max_len: int) -> None:
    buffer.append(value)
    while len(buffer) > max_len:
        buffer.popleft()


def normalize_cpu(raw_percent: float, logical_cores: int) -> float:
    cores = max(int(logical_cores), 1)
    return clamp(float(raw_percent) / cores, 0.0, 100.0)


def clamp(value: float, lower: float, upper: float) -> float:
    if value < lower:
        return lower
    if value > upper:
        return upper
    return value


def safe_percentage(used: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return used / total * 100.0


def matches_filter(text: str, needle: str) -> bool:
    if not needle:
        return True
    return needle.lower() in text.lower()


def is_system_process(name: str) -> bool:
    """Name-prefix heuristic for kernel threads and core system daemons."""

    return any(name.startswith(prefix) for prefix in SYSTEM_PROCESS_PREFIXES)


def first_available(strategies: Iterable[Callable[[], T | None]]) -> T | None:
    """Run probe strategies in order and return the first usable value.

    Order is part of the contract: sysfs attribute names and sensor labels
    differ per driver and kernel, and earlier entries are preferred.
    """

    for strategy in strategies:
        try:
            value = strategy()
        except _PROBE_ERRORS:
            continue
        if value is not None:
            return value
    return None


def count_process_states(statuses: Iterable[str]) -> tuple[int, int, int, int]:
    """Return (running, sleeping, zombie, other) counts."""

    running = sleeping = zombie = other = 0
    for status in statuses:
        lowered = status.lower()
        if lowered in ("running", "r"):
            running += 1
        elif lowered in ("sleeping", "s"):
            sleeping += 1
        elif lowered in ("zombie", "z"):
            zombie += 1
        else:
            other += 1
    return running, sleeping, zombie, other


def top_processes(processes: Sequence[object], top_n: int) -> list[str]:
    ordered = sorted(processes, key=lambda p: getattr(p, "cpu_percent"), reverse=True)
    return [f"{p.name}: {p.cpu_percent:.1f}%" for p in ordered[:top_n]]  # type: ignore[attr-defined]


def top_memory_consumers(processes: Sequence[object], top_n: int) -> list[str]:
    ordered = sorted(processes, key=lambda p: getattr(p, "memory_bytes"), reverse=True)
    return [f"{p.name}: {p.memory_display}" for p in ordered[:top_n]]  # type: ignore[attr-defined]


def memory_availability(mem_used: int, mem_total: int) -> tuple[int, str]:
    available = max(mem_total - mem_used, 0)
    percent_free = safe_percentage(available, mem_total)
    if percent_free >= 40.0:
        level = "COMFORTABLE"
    elif percent_free >= 20.0:
        level = "MODERATE"
    elif percent_free >= 10.0:
        level = "TIGHT"
    else:
        level = "CRITICAL"
    return available, level


def system_health(load_avg: float, cpu_cores: int, mem_used: int, mem_total: int) -> str:
    """Coarse "[LOAD/MEMORY]" health label."""

    load_per_core = load_avg / cpu_cores if cpu_cores > 0 else 0.0
    mem_percent = safe_percentage(mem_used, mem_total)

    if load_per_core >= 2.0:
        load_status = "CRITICAL"
    elif load_per_core >= 1.5:
        load_status = "OVERLOAD"
    elif load_per_core >= 1.0:
        load_status = "HIGH"
    elif load_per_core >= 0.5:
        load_status = "NORMAL"
    else:
        load_status = "IDLE"

    if mem_percent >= 90.0:
        mem_status = "CRITICAL"
    elif mem_percent >= 80.0:
        mem_status = "HIGH"
    elif mem_percent >= 60.0:
        mem_status = "MODERATE"
    else:
        mem_status = "HEALTHY"

    return f"[{load_status}/{mem_status}]"
