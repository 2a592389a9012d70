"""Data models for pulsewatch."""

from .process_info import ProcessDetail, ProcessSample, ProcessSortKey
from .resource_snapshot import (
    ContainerSample,
    CoreSample,
    DiskSample,
    GlobalUsage,
    GpuSample,
    MemoryDetails,
    NetworkSample,
    SensorKind,
    SensorSample,
    Snapshot,
    SystemInfo,
    Temperatures,
)

__all__ = [
    "ContainerSample",
    "CoreSample",
    "DiskSample",
    "GlobalUsage",
    "GpuSample",
    "MemoryDetails",
    "NetworkSample",
    "ProcessDetail",
    "ProcessSample",
    "ProcessSortKey",
    "SensorKind",
    "SensorSample",
    "Snapshot",
    "SystemInfo",
    "Temperatures",
]
