"""Per-core CPU sampling."""

from __future__ import annotations

from pathlib import Path

import psutil

from pulsewatch.models import CoreSample

from .sensors import Component, core_label_temperature, cpu_temperature
from .sysfs import SYS_ROOT


def collect_cores(components: list[Component], root: Path = SYS_ROOT) -> list[CoreSample]:
    """Usage and frequency per logical core.

    A core without its own "core N" sensor inherits the package temperature.
    """

    usages = psutil.cpu_percent(interval=None, percpu=True)
    try:
        freqs = psutil.cpu_freq(percpu=True) or []
    except (AttributeError, NotImplementedError, OSError):  # pragma: no cover - platform specific
        freqs = []

    package_temp = cpu_temperature(components, root)
    cores: list[CoreSample] = []
    for index, usage in enumerate(usages):
        if index < len(freqs):
            freq = freqs[index].current
        elif len(freqs) == 1:
            freq = freqs[0].current
        else:
            freq = 0.0
        temp = core_label_temperature(components, index)
        cores.append(
            CoreSample(
                core_id=index,
                usage_percent=float(usage),
                frequency_mhz=float(freq or 0.0),
                temperature_celsius=temp if temp is not None else package_temp,
            )
        )
    return cores
