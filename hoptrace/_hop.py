"""Per-hop state: identity, hostname and the append-only ping history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ._events import HopUpdated
from ._exceptions import SessionStateError


@dataclass(frozen=True)
class PingEvent:
    """One probe. Timestamps are epoch milliseconds.

    ``responded_at`` is ``None`` for a failed probe; the round trip time is
    always derived from the two timestamps and never stored on its own.
    """

    sent_at: float
    responded_at: Optional[float] = None

    def __post_init__(self) -> None:
        if self.responded_at is not None and self.responded_at < self.sent_at:
            raise ValueError(
                f"responded_at ({self.responded_at}) precedes sent_at ({self.sent_at})"
            )

    @classmethod
    def success(cls, sent_at: float, rtt_ms: float) -> "PingEvent":
        return cls(sent_at=sent_at, responded_at=sent_at + rtt_ms)

    @classmethod
    def failure(cls, sent_at: float) -> "PingEvent":
        return cls(sent_at=sent_at, responded_at=None)

    @property
    def succeeded(self) -> bool:
        return self.responded_at is not None

    @property
    def round_trip_ms(self) -> Optional[float]:
        if self.responded_at is None:
            return None
        return self.responded_at - self.sent_at

    def to_compact(self) -> dict[str, Any]:
        return {"s": self.sent_at, "e": self.responded_at}

    def __str__(self) -> str:
        if self.round_trip_ms is None:
            return "Request timed out.\n"
        return f"Reply in {self.round_trip_ms:.2f} ms\n"


@dataclass(frozen=True)
class HopStatistics:
    sent: int
    received: int
    lost: int
    loss_percent: float
    rtt_min: Optional[float]
    rtt_avg: Optional[float]
    rtt_max: Optional[float]
    rtt_last: Optional[float]


def summarize(events: Iterable[PingEvent]) -> HopStatistics:
    """Counters over a whole history, recomputed from scratch on every call."""
    sent = 0
    rtts: list[float] = []
    last: Optional[float] = None
    for event in events:
        sent += 1
        last = event.round_trip_ms
        if last is not None:
            rtts.append(last)
    received = len(rtts)
    lost = sent - received
    return HopStatistics(
        sent=sent,
        received=received,
        lost=lost,
        loss_percent=(lost / sent) * 100 if sent else 0.0,
        rtt_min=min(rtts) if rtts else None,
        rtt_avg=(sum(rtts) / received) if rtts else None,
        rtt_max=max(rtts) if rtts else None,
        rtt_last=last,
    )


@dataclass(frozen=True)
class HopSnapshot:
    hop_number: int
    ip: str
    hostname: Optional[str]
    is_reachable: bool
    stats: HopStatistics

    @property
    def successful_pings(self) -> int:
        return self.stats.received

    @property
    def failed_pings(self) -> int:
        return self.stats.lost

    @property
    def average_response_time(self) -> Optional[float]:
        return self.stats.rtt_avg

    def to_dict(self) -> dict[str, Any]:
        return {
            "hopNumber": self.hop_number,
            "ip": self.ip,
            "hostname": self.hostname,
            "isReachable": self.is_reachable,
            "averageResponseTime": self.average_response_time,
            "successfulPings": self.successful_pings,
            "failedPings": self.failed_pings,
        }


class Hop:
    """A router seen at a fixed TTL.

    Mutators return the :class:`HopUpdated` notification they cause (or
    ``None``) instead of calling listeners; the caller forwards it to the
    session's event channel. After :meth:`close` the hop is terminal.
    """

    def __init__(self, hop_number: int, ip: str, hostname: Optional[str] = None) -> None:
        if hop_number < 1:
            raise ValueError(f"hop_number must be positive, got {hop_number}")
        self._hop_number = hop_number
        self._ip = ip
        self._hostname = hostname
        self._reachable = False
        self._history: list[PingEvent] = []
        self._closed = False

    @property
    def hop_number(self) -> int:
        return self._hop_number

    @property
    def ip(self) -> str:
        return self._ip

    @property
    def hostname(self) -> Optional[str]:
        return self._hostname

    @property
    def is_reachable(self) -> bool:
        return self._reachable

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def history(self) -> tuple[PingEvent, ...]:
        return tuple(self._history)

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionStateError(f"Hop {self._hop_number} is closed")

    def record_ping(self, event: PingEvent) -> Optional[HopUpdated]:
        """Append one probe outcome; reports a change when the hop first answers."""
        self._ensure_open()
        if self._history and event.sent_at < self._history[-1].sent_at:
            raise ValueError(
                f"Hop {self._hop_number}: ping sent at {event.sent_at} is older "
                f"than the last recorded one"
            )
        self._history.append(event)
        if event.succeeded and not self._reachable:
            self._reachable = True
            return HopUpdated(self.snapshot())
        return None

    def replay(self, events: Iterable[PingEvent]) -> None:
        """Rebuild history through the same path live probes take."""
        for event in events:
            self.record_ping(event)

    def set_hostname(self, hostname: Optional[str]) -> Optional[HopUpdated]:
        self._ensure_open()
        if not hostname or hostname == self._hostname:
            return None
        self._hostname = hostname
        return HopUpdated(self.snapshot())

    @property
    def successful_pings(self) -> int:
        return sum(1 for event in self._history if event.succeeded)

    @property
    def failed_pings(self) -> int:
        return sum(1 for event in self._history if not event.succeeded)

    @property
    def total_pings(self) -> int:
        return len(self._history)

    @property
    def loss_percent(self) -> float:
        return self.statistics().loss_percent

    @property
    def average_response_time(self) -> Optional[float]:
        return self.statistics().rtt_avg

    @property
    def min_response_time(self) -> Optional[float]:
        return self.statistics().rtt_min

    @property
    def max_response_time(self) -> Optional[float]:
        return self.statistics().rtt_max

    @property
    def last_response_time(self) -> Optional[float]:
        """Round trip of the newest ping; ``None`` when that ping was lost."""
        return self.statistics().rtt_last

    def statistics(self) -> HopStatistics:
        return summarize(self._history)

    def snapshot(self) -> HopSnapshot:
        return HopSnapshot(
            hop_number=self._hop_number,
            ip=self._ip,
            hostname=self._hostname,
            is_reachable=self._reachable,
            stats=self.statistics(),
        )

    def compact_history(self) -> list[dict[str, Any]]:
        return [event.to_compact() for event in self._history]

    def close(self) -> None:
        self._history.clear()
        self._closed = True

    def __repr__(self) -> str:
        return f"Hop({self._hop_number}, {self._ip!r}, hostname={self._hostname!r})"
