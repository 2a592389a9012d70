"""Memory technology details (type, generation, speed, temperature)."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable

from pulsewatch.models import MemoryDetails

from .sensors import Component, memory_temperature
from .sysfs import SYS_ROOT, read_text

logger = logging.getLogger(__name__)

_GENERATION_HINTS = (
    (("adl", "raptor"), "DDR5"),
    (("tgl", "cml"), "DDR4"),
)


def parse_dmidecode(text: str) -> tuple[str, str]:
    """Return (type, speed) from ``dmidecode -t memory`` output; last module wins."""

    mem_type = "N/A"
    speed = "N/A"
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("Type:"):
            mem_type = line[len("Type:") :].strip()
        elif line.startswith("Speed:") and "Unknown" not in line:
            speed = line[len("Speed:") :].strip()
    return mem_type, speed


def guess_generation(board_name: str | None) -> str:
    if not board_name:
        return "N/A"
    lowered = board_name.lower()
    for needles, generation in _GENERATION_HINTS:
        if any(needle in lowered for needle in needles):
            return generation
    return "N/A"


def _run_dmidecode() -> str | None:
    try:
        result = subprocess.run(
            ["dmidecode", "-t", "memory"], capture_output=True, text=True, timeout=5
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("dmidecode failed: %s", exc)
        return None
    if result.returncode != 0:
        return None
    return result.stdout


class MemoryDetailsProbe:
    """Caches the slow hardware facts; the temperature is re-read every call."""

    def __init__(
        self,
        root: Path = SYS_ROOT,
        dmidecode: Callable[[], str | None] = _run_dmidecode,
        is_root: Callable[[], bool] | None = None,
    ) -> None:
        self._root = root
        self._dmidecode = dmidecode
        self._is_root = is_root or (lambda: os.geteuid() == 0)
        self._cache: tuple[str, str, str] | None = None

    def _probe(self) -> tuple[str, str, str]:
        mem_type = speed = "N/A"
        if self._is_root():
            output = self._dmidecode()
            if output:
                mem_type, speed = parse_dmidecode(output)
        generation = guess_generation(read_text(self._root / "class" / "dmi" / "id" / "board_name"))
        return mem_type, generation, speed

    def details(self, components: list[Component]) -> MemoryDetails:
        if self._cache is None:
            self._cache = self._probe()
        mem_type, generation, speed = self._cache
        return MemoryDetails(
            memory_type=mem_type,
            generation=generation,
            speed=speed,
            temperature_celsius=memory_temperature(components),
        )
