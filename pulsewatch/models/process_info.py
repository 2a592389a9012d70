"""Process data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ProcessSortKey(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"
    NAME = "name"
    PID = "pid"
    DISK_READ = "disk_read"
    DISK_WRITE = "disk_write"
    GENERAL = "general"


@dataclass(slots=True)
class ProcessSample:
    pid: int
    name: str
    user: str
    cpu_percent: float
    memory_bytes: int
    disk_read_rate: int
    disk_write_rate: int
    status: str
    cpu_display: str = ""
    memory_display: str = ""
    disk_read_display: str = ""
    disk_write_display: str = ""


@dataclass(slots=True)
class ProcessDetail:
    pid: int
    name: str
    user: str
    status: str
    cpu_percent: float
    memory_rss: int
    memory_vms: int
    command: str
    start_time: str
    parent: int | None = None
    environ: list[str] = field(default_factory=list)
    threads: int = 0
    file_descriptors: int | None = None
    cwd: str | None = None
