"""Runs the collection loop for a few seconds and prints what it saw."""

from __future__ import annotations

import sys
import time
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pulsewatch import CollectionLoop, Collector, MonitorConfig, configure_logging
from pulsewatch.core.config import PerformanceProfile
from pulsewatch.core.formatting import (
    format_percentage,
    format_rate,
    format_size,
    format_temperature,
    format_uptime,
)
from pulsewatch.core.metrics import (
    count_process_states,
    memory_availability,
    system_health,
    top_memory_consumers,
    top_processes,
)


def main(duration: float = 3.0) -> None:
    configure_logging(verbose="-v" in sys.argv)
    config = MonitorConfig.from_env()
    if "--auto" in sys.argv:
        profile = PerformanceProfile.safe_mode() if config.safe_mode else PerformanceProfile.detect()
        config = config.with_profile(profile)
    collector = Collector(config)

    info = collector.system_info()
    if info is not None:
        for label, value in info.as_pairs():
            print(f"{label:>14}: {value}")

    loop = CollectionLoop(collector)
    print(f"Collecting every {config.refresh_rate_ms} ms for {duration:.0f}s")
    loop.start()
    try:
        time.sleep(duration)
    finally:
        loop.stop(timeout=config.refresh_interval * 2)

    snapshot = loop.state.snapshot
    if snapshot is None:
        print("No snapshot collected")
        return

    usage = snapshot.global_usage
    health = system_health(usage.load_average[0], len(snapshot.cores), usage.mem_used, usage.mem_total)
    _, availability = memory_availability(usage.mem_used, usage.mem_total)
    print(f"Health {health}  uptime {format_uptime(usage.uptime)}")
    print(
        f"CPU {format_percentage(usage.cpu)}  MEM {format_size(usage.mem_used)} / "
        f"{format_size(usage.mem_total)} ({availability})"
    )
    if snapshot.temperatures.cpu_celsius is not None:
        print(f"CPU temperature {format_temperature(snapshot.temperatures.cpu_celsius)}")
    print(f"NET down {format_rate(usage.net_down)} up {format_rate(usage.net_up)}")
    running, sleeping, zombie, other = count_process_states(p.status for p in snapshot.processes)
    print(
        f"Processes: {len(snapshot.processes)} ({running} running, {sleeping} sleeping, "
        f"{zombie} zombie, {other} other)  Cores: {len(snapshot.cores)}  Disks: {len(snapshot.disks)}"
    )
    for line in top_processes(snapshot.processes, 5):
        print(f"  cpu  {line}")
    for line in top_memory_consumers(snapshot.processes, 3):
        print(f"  mem  {line}")
    for gpu in snapshot.gpus:
        print(f"GPU {gpu.brand} {gpu.name}: {gpu.utilization}%")
    if snapshot.gpu_error:
        print(f"GPU: {snapshot.gpu_error}")
    print(f"Containers: {len(snapshot.containers)}")
    if snapshot.container_error:
        print(f"Containers: {snapshot.container_error}")
    print(f"History length: {len(usage.cpu_history)}  diagnostics: {loop.diagnostics()}")


if __name__ == "__main__":
    main()
