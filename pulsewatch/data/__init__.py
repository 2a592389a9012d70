"""Telemetry providers for pulsewatch."""

from .containers import ConnectionState, ContainerMonitor, NullContainerMonitor
from .disk import base_block_device
from .gpu import DrmBackend, GpuBackend, GpuMonitor, NvidiaBackend, parse_nvidia_smi_output
from .host import HostMonitor
from .processes import sort_processes

__all__ = [
    "ConnectionState",
    "ContainerMonitor",
    "DrmBackend",
    "GpuBackend",
    "GpuMonitor",
    "HostMonitor",
    "NullContainerMonitor",
    "NvidiaBackend",
    "base_block_device",
    "parse_nvidia_smi_output",
    "sort_processes",
]
