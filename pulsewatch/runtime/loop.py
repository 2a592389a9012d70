"""Fixed-interval collection loop and the shared state it publishes into."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Any

from pulsewatch.models import ProcessSortKey, Snapshot

from .collector import Collector, CycleParams

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    snapshot: Snapshot | None = None
    paused: bool = False
    selected_pid: int | None = None
    include_system: bool = False
    filter_text: str = ""
    sort_key: ProcessSortKey = ProcessSortKey.CPU
    ascending: bool = False
    cycles: int = 0
    extra: dict[str, Any] = field(default_factory=dict)


class StateHolder:
    """Lock-guarded state shared between the loop and its consumers."""

    def __init__(self, state: AppState | None = None) -> None:
        self._lock = threading.Lock()
        self._state = state or AppState()

    def read(self) -> AppState:
        with self._lock:
            return replace(self._state)

    def update(self, **changes: Any) -> None:
        with self._lock:
            for name, value in changes.items():
                if not hasattr(self._state, name):
                    raise AttributeError(f"AppState has no field {name!r}")
                setattr(self._state, name, value)

    def params(self) -> tuple[bool, CycleParams]:
        """(paused, parameters) read under one lock acquisition."""

        with self._lock:
            state = self._state
            return state.paused, CycleParams(
                selected_pid=state.selected_pid,
                include_system=state.include_system,
                filter_text=state.filter_text,
                sort_key=state.sort_key,
                ascending=state.ascending,
            )

    def publish(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._state.snapshot = snapshot
            self._state.cycles += 1

    @property
    def snapshot(self) -> Snapshot | None:
        with self._lock:
            return self._state.snapshot


class CollectionLoop:
    """Drives :class:`Collector` cycles on a fixed cadence.

    Sleeps ``max(0, interval - cost)`` between cycles and skips paused cycles
    without probing anything.
    """

    def __init__(self, collector: Collector, state: StateHolder | None = None, interval: float | None = None) -> None:
        self.collector = collector
        self.state = state or StateHolder()
        self._interval = interval if interval is not None else collector.config.refresh_interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.RLock()
        self._diagnostics: dict[str, Any] = {
            "last_run_started": None,
            "last_run_duration": 0.0,
            "last_success_at": None,
            "consecutive_failures": 0,
            "last_error": None,
            "skipped_cycles": 0,
            "slow_cycles": 0,
        }
        self._failures: defaultdict[str, int] = defaultdict(int)

    async def run_once(self) -> Snapshot | None:
        """One tick: returns the published snapshot, or None when paused."""

        paused, params = self.state.params()
        if paused:
            with self._lock:
                self._diagnostics["skipped_cycles"] += 1
            return None

        previous = self.state.snapshot
        start_time = time.perf_counter()
        try:
            snapshot = await self.collector.collect(
                params, previous.global_usage if previous is not None else None
            )
        except Exception as exc:
            logger.exception("Unexpected error during metrics collection")
            self._update_diagnostics(success=False, duration=time.perf_counter() - start_time, error=exc)
            return None
        self.state.publish(snapshot)
        self._update_diagnostics(success=True, duration=time.perf_counter() - start_time, slow=snapshot.slow_collection)
        return snapshot

    async def run(self, max_cycles: int | None = None) -> None:
        cycles = 0
        while not self._stop.is_set():
            started = time.perf_counter()
            await self.run_once()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            delay = max(0.0, self._interval - (time.perf_counter() - started))
            await asyncio.to_thread(self._stop.wait, delay)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=lambda: asyncio.run(self.run()), name="CollectionLoop", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread and thread.is_alive():
            thread.join(timeout=timeout)
        self._thread = None

    def diagnostics(self) -> dict[str, Any]:
        with self._lock:
            return {**self._diagnostics, "failures": dict(self._failures)}

    def _update_diagnostics(
        self, *, success: bool, duration: float, error: Exception | None = None, slow: bool = False
    ) -> None:
        now = time.time()
        with self._lock:
            self._diagnostics["last_run_started"] = now - duration
            self._diagnostics["last_run_duration"] = duration
            if success:
                self._diagnostics["last_success_at"] = now
                self._diagnostics["consecutive_failures"] = 0
                if slow:
                    self._diagnostics["slow_cycles"] += 1
            else:
                self._diagnostics["consecutive_failures"] += 1
                self._failures[error.__class__.__name__ if error else "UnknownException"] += 1
                self._diagnostics["last_error"] = {
                    "message": str(error) if error else "unknown",
                    "type": error.__class__.__name__ if error else "UnknownException",
                    "timestamp": now,
                }
