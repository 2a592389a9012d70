"""Human-readable formatting for sizes, rates and durations."""

from __future__ import annotations

_SIZE_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")
_RATE_UNITS = ("B/s", "KB/s", "MB/s", "GB/s", "TB/s")


def _scaled(value: int, units: tuple[str, ...], threshold: float) -> str:
    if value <= 0:
        return f"0 {units[0]}"
    scaled = float(value)
    index = 0
    while scaled >= threshold and index < len(units) - 1:
        scaled /= threshold
        index += 1
    if index == 0:
        return f"{int(value)} {units[0]}"
    return f"{scaled:.1f} {units[index]}"


def format_size(num_bytes: int) -> str:
    """Binary units: ``format_size(1536) == "1.5 KiB"``."""
    return _scaled(num_bytes, _SIZE_UNITS, 1024.0)


def format_rate(bytes_per_sec: int) -> str:
    """Decimal units: ``format_rate(1000) == "1.0 KB/s"``."""
    return _scaled(bytes_per_sec, _RATE_UNITS, 1000.0)


def format_frequency(mhz: float) -> str:
    if mhz >= 1000:
        return f"{mhz / 1000:.2f} GHz"
    return f"{mhz:.0f} MHz"


def format_duration(seconds: int) -> str:
    days, rem = divmod(int(seconds), 86400)
    hours, rem = divmod(rem, 3600)
    mins, secs = divmod(rem, 60)
    if days:
        return f"{days}d {hours}h {mins}m"
    if hours:
        return f"{hours}h {mins}m {secs}s"
    if mins:
        return f"{mins}m {secs}s"
    return f"{secs}s"


def format_uptime(seconds: int) -> str:
    days, rem = divmod(int(seconds), 86400)
    if days:
        hours, rem = divmod(rem, 3600)
        mins, secs = divmod(rem, 60)
        return f"{days}d {hours}h {mins}m {secs}s"
    return format_duration(seconds)


def format_percentage(value: float) -> str:
    return f"{value:.1f}%"


def format_temperature(celsius: float) -> str:
    return f"{celsius:.1f}°C"


def format_load_average(load: tuple[float, float, float]) -> str:
    return " ".join(f"{value:.2f}" for value in load)
