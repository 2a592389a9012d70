from __future__ import annotations

import logging
from collections import deque

import pytest

from pulsewatch.core.config import MonitorConfig, PerformanceProfile
from pulsewatch.core.formatting import (
    format_duration,
    format_frequency,
    format_percentage,
    format_rate,
    format_size,
    format_temperature,
    format_uptime,
)
from pulsewatch.core.logging_setup import configure_logging
from pulsewatch.core.metrics import (
    calculate_rate,
    count_process_states,
    first_available,
    is_system_process,
    matches_filter,
    memory_availability,
    normalize_cpu,
    push_history,
    system_health,
    top_memory_consumers,
    top_processes,
)
from pulsewatch.models import ProcessSample


@pytest.mark.parametrize(
    ("current", "previous", "elapsed", "expected"),
    [
        (2000, 1000, 1.0, 1000),
        (2000, 1000, 2.0, 500),
        (100, 100, 3.0, 0),
        (5, 100, 1.0, 0),
        (100, 5, 0.0, 0),
        (100, 5, -1.0, 0),
    ],
)
def test_calculate_rate(current, previous, elapsed, expected):
    assert calculate_rate(current, previous, elapsed) == expected


def test_rate_is_never_negative():
    for current in (0, 1, 10, 10_000):
        for previous in (0, 5, 10_000, 2**40):
            assert calculate_rate(current, previous, 0.5) >= 0


def test_history_is_bounded_and_keeps_newest():
    buffer: deque[int] = deque()
    for value in range(5):
        push_history(buffer, value, 3)
    assert list(buffer) == [2, 3, 4]


def test_history_grows_until_limit():
    buffer: deque[int] = deque()
    push_history(buffer, 1, 10)
    push_history(buffer, 2, 10)
    assert list(buffer) == [1, 2]


def test_normalize_cpu_clamps():
    assert normalize_cpu(850.0, 8) == 100.0
    assert normalize_cpu(400.0, 8) == 50.0
    assert normalize_cpu(-3.0, 4) == 0.0
    assert normalize_cpu(50.0, 0) == 50.0


def test_format_helpers():
    assert format_size(1536) == "1.5 KiB"
    assert format_size(0) == "0 B"
    assert format_size(512) == "512 B"
    assert format_rate(1000) == "1.0 KB/s"
    assert format_rate(0) == "0 B/s"
    assert format_frequency(2400) == "2.40 GHz"
    assert format_frequency(800) == "800 MHz"
    assert format_duration(3725) == "1h 2m 5s"


def test_format_is_deterministic():
    assert format_size(123456789) == format_size(123456789)


def test_is_system_process_prefixes():
    assert is_system_process("kworker/0:1")
    assert is_system_process("[kthreadd]")
    assert is_system_process("systemd-journald")
    assert not is_system_process("python3")
    assert not is_system_process("firefox")


def test_matches_filter_is_case_insensitive():
    assert matches_filter("Firefox 1234", "fire")
    assert matches_filter("Firefox 1234", "123")
    assert matches_filter("anything", "")
    assert not matches_filter("bash 1", "zsh")


def test_first_available_order_and_errors():
    calls: list[str] = []

    def failing():
        calls.append("failing")
        raise OSError("no such file")

    def empty():
        calls.append("empty")
        return None

    def found():
        calls.append("found")
        return 42

    def never():
        calls.append("never")
        return 7

    assert first_available([failing, empty, found, never]) == 42
    assert calls == ["failing", "empty", "found"]
    assert first_available([empty]) is None


def test_system_health_label():
    assert system_health(0.1, 4, 10, 100) == "[IDLE/HEALTHY]"
    assert system_health(8.0, 4, 95, 100) == "[CRITICAL/CRITICAL]"


def test_config_clamps_and_safe_mode():
    low = MonitorConfig.create(refresh_rate_ms=10, history_length=1)
    assert low.refresh_rate_ms == 100
    assert low.history_length == 10

    high = MonitorConfig.create(refresh_rate_ms=60_000, history_length=5_000)
    assert high.refresh_rate_ms == 10_000
    assert high.history_length == 300

    safe = MonitorConfig.create(safe_mode=True)
    assert not safe.enable_docker
    assert not safe.enable_gpu_monitoring
    assert not safe.enable_network_monitoring
    assert not safe.is_feature_enabled("gpu")


def test_operation_timeout_is_half_refresh():
    config = MonitorConfig.create(refresh_rate_ms=1000)
    assert config.operation_timeout_ms == 500
    assert config.operation_timeout == pytest.approx(0.5)


def test_config_from_env():
    config = MonitorConfig.from_env({"PULSEWATCH_REFRESH_MS": "250", "PULSEWATCH_NO_DOCKER": "yes"})
    assert config.refresh_rate_ms == 250
    assert not config.enable_docker
    assert config.enable_gpu_monitoring

    fallback = MonitorConfig.from_env({"PULSEWATCH_HISTORY": "not-a-number"})
    assert fallback.history_length == 60


def test_process_summaries():
    processes = [
        ProcessSample(pid=1, name="a", user="u", cpu_percent=5.0, memory_bytes=2048, disk_read_rate=0,
                      disk_write_rate=0, status="running", memory_display="2.0 KiB"),
        ProcessSample(pid=2, name="b", user="u", cpu_percent=50.0, memory_bytes=10, disk_read_rate=0,
                      disk_write_rate=0, status="sleeping", memory_display="10 B"),
        ProcessSample(pid=3, name="c", user="u", cpu_percent=1.0, memory_bytes=0, disk_read_rate=0,
                      disk_write_rate=0, status="zombie"),
    ]
    assert count_process_states(p.status for p in processes) == (1, 1, 1, 0)
    assert top_processes(processes, 2) == ["b: 50.0%", "a: 5.0%"]
    assert top_memory_consumers(processes, 1) == ["a: 2.0 KiB"]


def test_memory_availability_levels():
    assert memory_availability(500, 1000) == (500, "COMFORTABLE")
    assert memory_availability(700, 1000) == (300, "MODERATE")
    assert memory_availability(950, 1000) == (50, "CRITICAL")


def test_misc_formatters():
    assert format_uptime(90061) == "1d 1h 1m 1s"
    assert format_uptime(61) == "1m 1s"
    assert format_percentage(12.345) == "12.3%"
    assert format_temperature(41.86) == "41.9°C"


def test_performance_profile_applies_to_config():
    config = MonitorConfig().with_profile(PerformanceProfile.safe_mode())
    assert config.refresh_rate_ms == 2000
    assert config.history_length == 30


def test_configure_logging_is_idempotent():
    logger = configure_logging()
    handlers = list(logger.handlers)
    assert configure_logging(verbose=True) is logger
    assert logger.handlers == handlers
    assert logger.level == logging.DEBUG
