from ._aggregate import INTERVALS, AggregatedBucket, aggregate
from ._codec import LoadedSession, SessionCodec
from ._config import EngineSettings, SessionConfig, TickPolicy
from ._events import (
    EventChannel,
    HopDiscovered,
    HopUpdated,
    PingResult,
    Progress,
    SessionComplete,
    SessionError,
)
from ._hop import Hop, HopSnapshot, HopStatistics, PingEvent
from ._platform import Platform, get_platform, parse_ping_rtt, parse_traceroute
from ._resolver import HostnameResolver
from ._runner import CommandResult, CommandRunner
from ._session import SessionController, SessionState

from ._exceptions import (
    HoptraceError,
    MalformedSessionError,
    PersistenceError,
    ResolutionError,
    SessionStateError,
    TracerouteParseError,
    UnknownHopError,
    UnknownIntervalError,
    UnsupportedVersionError,
)

__all__ = [
    "SessionController",
    "SessionState",
    "SessionConfig",
    "EngineSettings",
    "TickPolicy",
    "Hop",
    "HopSnapshot",
    "HopStatistics",
    "PingEvent",
    "AggregatedBucket",
    "INTERVALS",
    "aggregate",
    "SessionCodec",
    "LoadedSession",
    "CommandRunner",
    "CommandResult",
    "HostnameResolver",
    "Platform",
    "get_platform",
    "parse_traceroute",
    "parse_ping_rtt",
    "EventChannel",
    "HopDiscovered",
    "HopUpdated",
    "PingResult",
    "Progress",
    "SessionComplete",
    "SessionError",
    "HoptraceError",
    "ResolutionError",
    "TracerouteParseError",
    "SessionStateError",
    "UnknownHopError",
    "UnknownIntervalError",
    "PersistenceError",
    "UnsupportedVersionError",
    "MalformedSessionError",
]
