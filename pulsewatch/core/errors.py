"""Failure taxonomy shared by the monitors and the collector.

Every subsystem failure is contained by the collector: it becomes an error
string on the snapshot (or an empty list), never an aborted cycle. The
messages are meant to be shown as-is, so "GPU monitoring disabled" and "no
GPU detected" read differently.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UNAVAILABLE = "unavailable"
    DISABLED = "disabled"
    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    API_ERROR = "api_error"


class MonitorError(Exception):
    kind: ErrorKind = ErrorKind.UNAVAILABLE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class SubsystemUnavailable(MonitorError):
    """Hardware or daemon is absent."""

    kind = ErrorKind.UNAVAILABLE


class SupportNotInstalled(SubsystemUnavailable):
    """The client library for a subsystem is not importable."""


class RuntimeUnreachable(SubsystemUnavailable):
    """The container runtime did not answer its health check."""


class SubsystemDisabled(MonitorError):
    kind = ErrorKind.DISABLED


class PermissionDenied(MonitorError):
    kind = ErrorKind.PERMISSION_DENIED


class CollectionTimeout(MonitorError):
    kind = ErrorKind.TIMEOUT


class ProbeParseError(MonitorError):
    """External tool produced output that could not be interpreted."""

    kind = ErrorKind.PARSE_ERROR


class RuntimeApiError(MonitorError):
    kind = ErrorKind.API_ERROR

    def __init__(self, detail: str) -> None:
        super().__init__(f"Docker: {detail}")
        self.detail = detail
