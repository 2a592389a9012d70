"""Network interface throughput sampling."""

from __future__ import annotations

import logging
import time

import psutil

from pulsewatch.core.metrics import calculate_rate
from pulsewatch.models import NetworkSample

logger = logging.getLogger(__name__)

_TYPE_PREFIXES = (
    (("eth", "en"), "Ethernet"),
    (("wl", "wlan"), "Wireless"),
    (("docker", "br-", "veth", "virbr", "vnet", "cni", "flannel"), "Virtual"),
    (("tun", "tap", "wg", "ppp"), "VPN"),
)


def classify_interface(name: str) -> str:
    if name == "lo":
        return "Loopback"
    for prefixes, label in _TYPE_PREFIXES:
        if name.startswith(prefixes):
            return label
    return "Unknown"


class NetworkProbe:
    def __init__(self) -> None:
        self._prev: dict[str, tuple[int, int]] = {}
        self._last_update = time.monotonic()

    def networks(self) -> list[NetworkSample]:
        now = time.monotonic()
        elapsed = max(now - self._last_update, 0.1)
        self._last_update = now

        counters = psutil.net_io_counters(pernic=True) or {}
        try:
            stats = psutil.net_if_stats()
        except OSError as exc:
            logger.debug("net_if_stats failed: %s", exc)
            stats = {}

        current: dict[str, tuple[int, int]] = {}
        samples: list[NetworkSample] = []
        for name, data in counters.items():
            rx, tx = int(data.bytes_recv), int(data.bytes_sent)
            previous = self._prev.get(name)
            if previous is not None:
                down = calculate_rate(rx, previous[0], elapsed)
                up = calculate_rate(tx, previous[1], elapsed)
            else:
                down = up = 0
            current[name] = (rx, tx)
            iface = stats.get(name)
            samples.append(
                NetworkSample(
                    name=name,
                    down_rate=down,
                    up_rate=up,
                    total_down=rx,
                    total_up=tx,
                    packets_rx=int(data.packets_recv),
                    packets_tx=int(data.packets_sent),
                    errors_rx=int(data.errin),
                    errors_tx=int(data.errout),
                    interface_type=classify_interface(name),
                    is_up=bool(iface.isup) if iface is not None else True,
                )
            )
        self._prev = current
        samples.sort(key=lambda sample: sample.name)
        return samples
