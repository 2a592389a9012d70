"""Core utilities for pulsewatch."""

from __future__ import annotations

from .config import APP_NAME, DEFAULT_CONFIG, MonitorConfig, PerformanceProfile
from .errors import (
    CollectionTimeout,
    ErrorKind,
    MonitorError,
    PermissionDenied,
    ProbeParseError,
    RuntimeApiError,
    RuntimeUnreachable,
    SubsystemDisabled,
    SubsystemUnavailable,
    SupportNotInstalled,
)
from .logging_setup import configure_logging

__all__ = [
    "APP_NAME",
    "DEFAULT_CONFIG",
    "MonitorConfig",
    "PerformanceProfile",
    "CollectionTimeout",
    "ErrorKind",
    "MonitorError",
    "PermissionDenied",
    "ProbeParseError",
    "RuntimeApiError",
    "RuntimeUnreachable",
    "SubsystemDisabled",
    "SubsystemUnavailable",
    "SupportNotInstalled",
    "configure_logging",
]
