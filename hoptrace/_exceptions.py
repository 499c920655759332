"""Exception types raised by hoptrace."""

from __future__ import annotations


class HoptraceError(Exception):
    """Base class for every error raised by hoptrace."""


class ResolutionError(HoptraceError):
    """Raised when the session target cannot be resolved to an IP address."""

    def __init__(self, target: str) -> None:
        super().__init__(f"Could not resolve hostname: {target}")
        self.target = target


class TracerouteParseError(HoptraceError):
    """Raised when a multi-hop traceroute produced output nobody could parse."""


class SessionStateError(HoptraceError):
    """Raised when an operation is not allowed in the current session state."""


class UnknownHopError(HoptraceError, KeyError):
    """Raised when a query names a hop the session does not know."""

    def __init__(self, hop_number: int) -> None:
        super().__init__(f"Hop {hop_number} not found")
        self.hop_number = hop_number

    def __str__(self) -> str:
        return self.args[0]


class UnknownIntervalError(HoptraceError, ValueError):
    """Raised for an aggregation interval name that is not recognised."""


class PersistenceError(HoptraceError):
    """Base class for session file load/save failures."""


class UnsupportedVersionError(PersistenceError):
    """The file is well formed but carries a format version we cannot read."""

    def __init__(self, version: str) -> None:
        super().__init__(f"Unsupported file version: {version}")
        self.version = version


class MalformedSessionError(PersistenceError):
    """The file is not a structurally valid session snapshot."""
