"""Fixed-width time buckets over a hop's ping history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from ._exceptions import UnknownIntervalError
from ._hop import PingEvent

INTERVALS: dict[str, int] = {
    "second": 1_000,
    "minute": 60_000,
    "5min": 300_000,
    "15min": 900_000,
    "30min": 1_800_000,
    "hour": 3_600_000,
    "2hour": 7_200_000,
}

# display-density guard for the finest resolution only
MAX_SECOND_BUCKETS = 120


@dataclass(frozen=True)
class AggregatedBucket:
    bucket_start: int
    avg_rtt: Optional[float]
    min_rtt: Optional[float]
    max_rtt: Optional[float]
    success_count: int
    failure_count: int
    total_count: int
    had_any_timeout: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.bucket_start,
            "averageResponseTime": self.avg_rtt,
            "minResponseTime": self.min_rtt,
            "maxResponseTime": self.max_rtt,
            "successfulPings": self.success_count,
            "failedPings": self.failure_count,
            "totalPings": self.total_count,
            "hasAnyTimeout": self.had_any_timeout,
        }


def interval_width(interval: Union[str, int]) -> int:
    """Width in milliseconds for an interval name, or a positive width passed through."""
    if isinstance(interval, bool):
        raise UnknownIntervalError(f"Unknown interval: {interval!r}")
    if isinstance(interval, int):
        if interval <= 0:
            raise UnknownIntervalError(f"Interval width must be positive, got {interval}")
        return interval
    try:
        return INTERVALS[interval]
    except KeyError:
        known = ", ".join(INTERVALS)
        raise UnknownIntervalError(
            f"Unknown interval: {interval!r} (expected one of {known})"
        ) from None


def bucket_start(sent_at: float, width: int) -> int:
    return int(sent_at // width) * width


def aggregate(
    events: Iterable[PingEvent], interval: Union[str, int]
) -> list[AggregatedBucket]:
    """Group ``events`` into ascending buckets of the given interval.

    Every event lands in exactly one bucket. Averages, minima and maxima only
    look at successful probes and are ``None`` for a bucket without any. For
    the ``second`` interval only the most recent 120 buckets are returned.
    """
    width = interval_width(interval)
    grouped: dict[int, list[PingEvent]] = {}
    for event in events:
        grouped.setdefault(bucket_start(event.sent_at, width), []).append(event)

    buckets: list[AggregatedBucket] = []
    for start in sorted(grouped):
        members = grouped[start]
        rtts = [e.round_trip_ms for e in members if e.round_trip_ms is not None]
        failures = len(members) - len(rtts)
        buckets.append(
            AggregatedBucket(
                bucket_start=start,
                avg_rtt=(sum(rtts) / len(rtts)) if rtts else None,
                min_rtt=min(rtts) if rtts else None,
                max_rtt=max(rtts) if rtts else None,
                success_count=len(rtts),
                failure_count=failures,
                total_count=len(members),
                had_any_timeout=failures > 0,
            )
        )

    if width == INTERVALS["second"] and len(buckets) > MAX_SECOND_BUCKETS:
        buckets = buckets[-MAX_SECOND_BUCKETS:]
    return buckets
