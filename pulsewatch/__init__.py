"""pulsewatch telemetry collection package."""

from __future__ import annotations

__all__ = [
    "Collector",
    "CollectionLoop",
    "MonitorConfig",
    "StateHolder",
    "configure_logging",
    "core",
    "data",
    "models",
    "runtime",
]

from .core import MonitorConfig, configure_logging  # noqa: E402
from .runtime import CollectionLoop, Collector, StateHolder  # noqa: E402
