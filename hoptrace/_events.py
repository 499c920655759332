"""Notification records delivered to the session's external sink."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Union

from ._log import logger

if TYPE_CHECKING:
    from ._hop import HopSnapshot, PingEvent

PHASE_DISCOVERY = "discovery"
PHASE_PROBING = "probing"


@dataclass(frozen=True)
class HopDiscovered:
    hop: "HopSnapshot"

    kind: ClassVar[str] = "hop-discovered"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "hop": self.hop.to_dict()}


@dataclass(frozen=True)
class HopUpdated:
    """The hostname or the reachability of a hop changed."""

    hop: "HopSnapshot"

    kind: ClassVar[str] = "hop-updated"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "hop": self.hop.to_dict()}


@dataclass(frozen=True)
class PingResult:
    hop_number: int
    target_ip: str
    event: "PingEvent"

    kind: ClassVar[str] = "ping-result"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "hopNumber": self.hop_number,
            "targetIp": self.target_ip,
            "sentTimestamp": self.event.sent_at,
            "responseTimestamp": self.event.responded_at,
            "responseTime": self.event.round_trip_ms,
            "isSuccessful": self.event.succeeded,
        }


@dataclass(frozen=True)
class Progress:
    current_hop: int
    max_hops: int
    current_ip: str
    phase: str

    kind: ClassVar[str] = "progress"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "currentHop": self.current_hop,
            "maxHops": self.max_hops,
            "currentIp": self.current_ip,
            "phase": self.phase,
        }


@dataclass(frozen=True)
class SessionComplete:
    kind: ClassVar[str] = "session-complete"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind}


@dataclass(frozen=True)
class SessionError:
    message: str

    kind: ClassVar[str] = "session-error"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "message": self.message}


Event = Union[HopDiscovered, HopUpdated, PingResult, Progress, SessionComplete, SessionError]
EventSink = Callable[[Event], None]


class EventChannel:
    """Output channel between the engine and its sinks.

    Once closed, every further event is dropped; this is what makes "no
    notification after stop" hold even for work that finishes late.
    """

    def __init__(self, *sinks: EventSink) -> None:
        self._sinks: list[EventSink] = list(sinks)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, sink: EventSink) -> Callable[[], None]:
        self._sinks.append(sink)

        def unsubscribe() -> None:
            if sink in self._sinks:
                self._sinks.remove(sink)

        return unsubscribe

    def emit(self, event: Event) -> bool:
        if self._closed:
            logger.debug("Dropping %s after channel close", event.kind)
            return False
        for sink in list(self._sinks):
            try:
                sink(event)
            except Exception:
                logger.exception("Event sink failed while handling %s", event.kind)
        return True

    def close(self) -> None:
        self._closed = True
        self._sinks.clear()
