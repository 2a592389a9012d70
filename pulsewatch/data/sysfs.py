"""Small readers for kernel-exposed attribute files."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

SYS_ROOT = Path("/sys")


def read_text(path: Path) -> str | None:
    try:
        value = path.read_text(encoding="utf-8", errors="replace").strip()
    except OSError:
        return None
    return value or None


def read_int(path: Path) -> int | None:
    text = read_text(path)
    if text is None:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def read_float(path: Path, scale: float | None = None) -> float | None:
    text = read_text(path)
    if text is None:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if scale:
        value /= scale
    return value


def iter_dir(path: Path) -> Iterator[Path]:
    """Sorted directory entries; an unreadable or missing directory is empty."""

    try:
        entries = sorted(path.iterdir())
    except OSError:
        return iter(())
    return iter(entries)


def hwmon_dirs(root: Path = SYS_ROOT) -> list[Path]:
    return [entry for entry in iter_dir(root / "class" / "hwmon")]
