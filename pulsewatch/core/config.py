"""Global configuration values for the pulsewatch collection engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping

import psutil

APP_NAME = "pulsewatch"

MIN_REFRESH_MS = 100
MAX_REFRESH_MS = 10_000
MIN_HISTORY = 10
MAX_HISTORY = 300

_ENV_PREFIX = "PULSEWATCH_"
_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(_ENV_PREFIX + name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(_ENV_PREFIX + name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class MonitorConfig:
    """Settings consumed by the collector; produced by the caller."""

    refresh_rate_ms: int = 1000
    history_length: int = 60
    enable_docker: bool = True
    enable_gpu_monitoring: bool = True
    enable_network_monitoring: bool = True
    safe_mode: bool = False

    @classmethod
    def create(
        cls,
        *,
        refresh_rate_ms: int = 1000,
        history_length: int = 60,
        enable_docker: bool = True,
        enable_gpu_monitoring: bool = True,
        enable_network_monitoring: bool = True,
        safe_mode: bool = False,
    ) -> "MonitorConfig":
        """Build a config with values clamped to the supported ranges.

        Safe mode turns every optional subsystem off.
        """

        return cls(
            refresh_rate_ms=max(MIN_REFRESH_MS, min(MAX_REFRESH_MS, int(refresh_rate_ms))),
            history_length=max(MIN_HISTORY, min(MAX_HISTORY, int(history_length))),
            enable_docker=enable_docker and not safe_mode,
            enable_gpu_monitoring=enable_gpu_monitoring and not safe_mode,
            enable_network_monitoring=enable_network_monitoring and not safe_mode,
            safe_mode=safe_mode,
        )

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "MonitorConfig":
        env = os.environ if env is None else env
        return cls.create(
            refresh_rate_ms=_env_int(env, "REFRESH_MS", 1000),
            history_length=_env_int(env, "HISTORY", 60),
            enable_docker=not _env_flag(env, "NO_DOCKER", False),
            enable_gpu_monitoring=not _env_flag(env, "NO_GPU", False),
            enable_network_monitoring=not _env_flag(env, "NO_NETWORK", False),
            safe_mode=_env_flag(env, "SAFE", False),
        )

    @property
    def refresh_interval(self) -> float:
        """Cycle interval in seconds."""
        return self.refresh_rate_ms / 1000.0

    @property
    def operation_timeout(self) -> float:
        """Budget in seconds for timeout-bounded subsystem calls."""
        return (self.refresh_rate_ms // 2) / 1000.0

    @property
    def operation_timeout_ms(self) -> int:
        return self.refresh_rate_ms // 2

    def is_feature_enabled(self, feature: str) -> bool:
        if feature == "docker":
            return self.enable_docker
        if feature == "gpu":
            return self.enable_gpu_monitoring
        if feature == "network":
            return self.enable_network_monitoring
        return True

    def with_profile(self, profile: "PerformanceProfile") -> "MonitorConfig":
        return replace(
            self,
            refresh_rate_ms=profile.update_interval_ms,
            history_length=profile.history_size,
        )


@dataclass(frozen=True)
class PerformanceProfile:
    """Refresh cadence and history sizing suggested for the host."""

    update_interval_ms: int
    history_size: int
    enable_expensive_ops: bool

    @classmethod
    def detect(cls) -> "PerformanceProfile":
        total_gb = psutil.virtual_memory().total // (1024**3)
        if total_gb >= 16:
            return cls(update_interval_ms=500, history_size=120, enable_expensive_ops=True)
        if total_gb >= 8:
            return cls(update_interval_ms=1000, history_size=60, enable_expensive_ops=True)
        return cls(update_interval_ms=2000, history_size=30, enable_expensive_ops=False)

    @classmethod
    def safe_mode(cls) -> "PerformanceProfile":
        return cls(update_interval_ms=2000, history_size=30, enable_expensive_ops=False)


DEFAULT_CONFIG = MonitorConfig()
