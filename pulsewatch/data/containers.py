"""Container runtime monitor over the Docker Engine API.

The docker SDK is blocking, so every API call runs in a worker thread and
is bounded by ``asyncio.wait_for``. A cycle splits its budget into a ping
(a quarter), the container listing (a half) and the per-container stats
fetches (a quarter each, run concurrently).
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

import requests

from pulsewatch.core.errors import (
    CollectionTimeout,
    MonitorError,
    PermissionDenied,
    RuntimeApiError,
    RuntimeUnreachable,
    SubsystemDisabled,
    SubsystemUnavailable,
    SupportNotInstalled,
)
from pulsewatch.core.formatting import format_rate, format_size
from pulsewatch.core.metrics import calculate_rate
from pulsewatch.models import ContainerSample

try:
    import docker  # type: ignore[import]
except ImportError:  # pragma: no cover - optional dependency
    docker = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

DOCKER_SOCKET = Path("/var/run/docker.sock")
DOCKER_SOCKET_URL = "unix://var/run/docker.sock"
LOG_TAIL = 50
SHORT_ID_LENGTH = 12

PERMISSION_MESSAGE = "Permission denied accessing /var/run/docker.sock. Add user to 'docker' group."
NOT_FOUND_MESSAGE = "Docker daemon not found or connection failed."
NOT_RESPONDING_MESSAGE = "Docker daemon not responding (timeout)"
NOT_RUNNING_MESSAGE = "Docker daemon is not running or not accessible"
NOT_INSTALLED_MESSAGE = "Docker support not installed"
DISABLED_MESSAGE = "Docker monitoring disabled by configuration"

_TRANSPORT_ERRORS = (requests.exceptions.ConnectionError, ConnectionError, FileNotFoundError)
_API_ERRORS: tuple[type[BaseException], ...] = (requests.exceptions.RequestException, OSError)
if docker is not None:
    _API_ERRORS += (docker.errors.DockerException,)


class ConnectionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTED = "connected"
    UNAVAILABLE = "unavailable"


def container_cpu_percent(stats: Mapping[str, Any]) -> float:
    """CPU% the way ``docker stats`` computes it from its own two readings.

    Zero unless both the container and the system counters advanced.
    """

    cpu_stats = stats.get("cpu_stats") or {}
    precpu_stats = stats.get("precpu_stats") or {}
    cpu_total = (cpu_stats.get("cpu_usage") or {}).get("total_usage") or 0
    pre_cpu_total = (precpu_stats.get("cpu_usage") or {}).get("total_usage") or 0
    system_total = cpu_stats.get("system_cpu_usage") or 0
    pre_system_total = precpu_stats.get("system_cpu_usage") or 0

    cpu_delta = max(cpu_total - pre_cpu_total, 0)
    system_delta = max(system_total - pre_system_total, 0)
    online_cpus = cpu_stats.get("online_cpus") or 1
    if cpu_delta > 0 and system_delta > 0:
        return cpu_delta / system_delta * online_cpus * 100.0
    return 0.0


def aggregate_network_bytes(stats: Mapping[str, Any]) -> tuple[int, int]:
    rx = tx = 0
    for values in (stats.get("networks") or {}).values():
        rx += int(values.get("rx_bytes") or 0)
        tx += int(values.get("tx_bytes") or 0)
    return rx, tx


def aggregate_blkio_bytes(stats: Mapping[str, Any]) -> tuple[int, int]:
    read = write = 0
    entries = (stats.get("blkio_stats") or {}).get("io_service_bytes_recursive") or []
    for entry in entries:
        op = (entry.get("op") or "").lower()
        value = int(entry.get("value") or 0)
        if op == "read":
            read += value
        elif op == "write":
            write += value
    return read, write


def format_ports(ports: Sequence[Mapping[str, Any]] | None) -> str:
    """``"8080:80, 443"``; ``"none"`` when nothing is exposed."""

    rendered: list[str] = []
    for port in ports or ():
        private = port.get("PrivatePort")
        public = port.get("PublicPort")
        rendered.append(f"{public}:{private}" if public else f"{private}")
    return ", ".join(rendered) if rendered else "none"


def _container_name(entry: Mapping[str, Any]) -> str:
    names = entry.get("Names") or []
    if not names:
        return "unnamed"
    return str(names[0]).lstrip("/")


def _short_id(full_id: str) -> str:
    return full_id[:SHORT_ID_LENGTH] if len(full_id) >= SHORT_ID_LENGTH else "N/A"


def _connect_default() -> Any:
    """Low-level API client: environment defaults first, then the unix socket."""

    if docker is None:
        raise SupportNotInstalled(NOT_INSTALLED_MESSAGE)
    attempts: list[Callable[[], Any]] = [
        docker.from_env,
        lambda: docker.DockerClient(base_url=DOCKER_SOCKET_URL),
    ]
    for attempt in attempts:
        try:
            return attempt().api
        except _API_ERRORS as exc:
            logger.debug("Docker connection attempt failed: %s", exc)
    return None


class ContainerMonitor:
    """Lists containers with per-container resource rates.

    ``Unavailable`` is terminal: once the first connection attempt fails the
    monitor never retries, and :meth:`is_available` stays False.
    """

    def __init__(
        self,
        api: Any | None = None,
        connector: Callable[[], Any] = _connect_default,
        socket_path: Path = DOCKER_SOCKET,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api = api
        self._connector = connector
        self._socket_path = socket_path
        self._clock = clock
        self._state = ConnectionState.CONNECTED if api is not None else ConnectionState.UNINITIALIZED
        self.init_error: MonitorError | None = None
        self._prev_io: dict[str, tuple[int, int, int, int]] = {}
        self._last_update = clock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    def connect(self) -> ConnectionState:
        if self._state is not ConnectionState.UNINITIALIZED:
            return self._state
        try:
            api = self._connector()
        except MonitorError as exc:
            api = None
            self.init_error = exc
        if api is not None:
            self._api = api
            self._state = ConnectionState.CONNECTED
            return self._state
        if self.init_error is None:
            if self._socket_path.exists():
                self.init_error = PermissionDenied(PERMISSION_MESSAGE)
            else:
                self.init_error = RuntimeUnreachable(NOT_FOUND_MESSAGE)
        logger.info("Container monitoring unavailable: %s", self.init_error)
        self._state = ConnectionState.UNAVAILABLE
        return self._state

    def is_available(self) -> bool:
        return self.connect() is ConnectionState.CONNECTED

    def _require_api(self) -> Any:
        if not self.is_available():
            raise self.init_error or SubsystemUnavailable("Docker not available")
        return self._api

    async def _call(self, fn: Callable[..., Any], timeout: float, *args: Any, **kwargs: Any) -> Any:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=timeout)

    async def _ping(self, api: Any, timeout: float) -> None:
        try:
            await self._call(api.ping, timeout)
        except asyncio.TimeoutError as exc:
            raise RuntimeUnreachable(NOT_RESPONDING_MESSAGE) from exc
        except _TRANSPORT_ERRORS as exc:
            raise RuntimeUnreachable(NOT_RUNNING_MESSAGE) from exc
        except _API_ERRORS as exc:
            raise RuntimeApiError(str(exc)) from exc

    async def _fetch_stats(self, api: Any, container_id: str, timeout: float) -> dict[str, Any] | None:
        try:
            stats = await self._call(api.stats, timeout, container_id, stream=False)
        except asyncio.TimeoutError:
            logger.warning("Timeout getting stats for container %s", container_id[:SHORT_ID_LENGTH])
            return None
        except _API_ERRORS as exc:
            logger.warning("Failed to get stats for container %s: %s", container_id[:SHORT_ID_LENGTH], exc)
            return None
        return stats or None

    async def list(self, total_timeout_ms: int) -> list[ContainerSample]:
        """Every container the runtime reports, stats fetched concurrently.

        A container whose stats call fails or times out is still returned,
        with zeroed metrics; only the ping and the listing can fail the call.
        """

        api = self._require_api()
        now = self._clock()
        # the baseline time only moves together with the baseline counters
        elapsed = max(now - self._last_update, 0.1)

        quarter = total_timeout_ms / 4 / 1000.0
        await self._ping(api, quarter)

        try:
            entries = await self._call(api.containers, total_timeout_ms / 2 / 1000.0)
        except asyncio.TimeoutError as exc:
            raise CollectionTimeout("Container list timeout") from exc
        except _API_ERRORS as exc:
            raise RuntimeApiError(str(exc)) from exc

        if not entries:
            self._prev_io = {}
            self._last_update = now
            return []

        ids = [str(entry.get("Id") or "") for entry in entries]
        stats_list = await asyncio.gather(
            *(self._fetch_stats(api, container_id, quarter) for container_id in ids if container_id)
        )
        stats_by_id = dict(zip([cid for cid in ids if cid], stats_list))

        current_io: dict[str, tuple[int, int, int, int]] = {}
        samples: list[ContainerSample] = []
        for container_id, entry in zip(ids, entries):
            sample = ContainerSample(
                id=_short_id(container_id),
                name=_container_name(entry),
                status=str(entry.get("Status") or "unknown"),
                image=str(entry.get("Image") or "unknown"),
                ports=format_ports(entry.get("Ports")),
            )
            stats = stats_by_id.get(container_id)
            if stats is not None:
                self._apply_stats(sample, container_id, stats, elapsed, current_io)
            samples.append(sample)

        self._prev_io = current_io
        self._last_update = now
        return samples

    def _apply_stats(
        self,
        sample: ContainerSample,
        container_id: str,
        stats: Mapping[str, Any],
        elapsed: float,
        current_io: dict[str, tuple[int, int, int, int]],
    ) -> None:
        net_rx, net_tx = aggregate_network_bytes(stats)
        disk_r, disk_w = aggregate_blkio_bytes(stats)
        current_io[container_id] = (net_rx, net_tx, disk_r, disk_w)
        # first sighting has no baseline: rates stay at zero
        prev = self._prev_io.get(container_id, current_io[container_id])

        sample.cpu_percent = container_cpu_percent(stats)
        sample.memory_bytes = int((stats.get("memory_stats") or {}).get("usage") or 0)
        sample.net_down_rate = calculate_rate(net_rx, prev[0], elapsed)
        sample.net_up_rate = calculate_rate(net_tx, prev[1], elapsed)
        sample.disk_read_rate = calculate_rate(disk_r, prev[2], elapsed)
        sample.disk_write_rate = calculate_rate(disk_w, prev[3], elapsed)

        sample.cpu = f"{sample.cpu_percent:.2f}%"
        sample.mem = format_size(sample.memory_bytes)
        sample.net_down = format_rate(sample.net_down_rate)
        sample.net_up = format_rate(sample.net_up_rate)
        sample.disk_r = format_rate(sample.disk_read_rate)
        sample.disk_w = format_rate(sample.disk_write_rate)

    async def health_check(self, timeout_ms: int = 1000) -> bool:
        if not self.is_available():
            return False
        try:
            await self._ping(self._api, timeout_ms / 1000.0)
        except MonitorError:
            return False
        return True

    async def runtime_info(self, timeout_ms: int = 1000) -> str | None:
        if not self.is_available():
            return None
        try:
            version = await self._call(self._api.version, timeout_ms / 1000.0)
        except (asyncio.TimeoutError, *_API_ERRORS) as exc:
            logger.debug("Docker version query failed: %s", exc)
            return None
        return f"Docker {version.get('Version') or 'unknown'} (API {version.get('ApiVersion') or 'unknown'})"

    async def logs(self, container_id: str, tail: int = LOG_TAIL, timeout_ms: int = 5000) -> list[str]:
        api = self._require_api()
        try:
            raw = await self._call(
                api.logs, timeout_ms / 1000.0, container_id, stdout=True, stderr=True, tail=tail
            )
        except asyncio.TimeoutError as exc:
            raise CollectionTimeout(f"Timeout fetching logs for {container_id}") from exc
        except _API_ERRORS as exc:
            raise RuntimeApiError(str(exc)) from exc
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8", errors="replace")
        return str(raw or "").splitlines()


class NullContainerMonitor:
    """Stand-in used when container monitoring is switched off."""

    init_error: MonitorError | None = None
    state = ConnectionState.UNAVAILABLE

    def is_available(self) -> bool:
        return False

    async def list(self, total_timeout_ms: int) -> list[ContainerSample]:
        raise SubsystemDisabled(DISABLED_MESSAGE)

    async def health_check(self, timeout_ms: int = 1000) -> bool:
        return False

    async def runtime_info(self, timeout_ms: int = 1000) -> str | None:
        return None

    async def logs(self, container_id: str, tail: int = LOG_TAIL, timeout_ms: int = 5000) -> list[str]:
        raise SubsystemDisabled(DISABLED_MESSAGE)
