"""Continuous per-hop latency probing."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Iterable, Optional

from ._config import EngineSettings, SessionConfig, TickPolicy
from ._events import PHASE_PROBING, EventChannel, PingResult, Progress
from ._hop import Hop, PingEvent
from ._log import logger
from ._platform import Platform
from ._runner import CommandRunner


def now_ms() -> int:
    return int(time.time() * 1000)


class ContinuousProber:
    """Ping every hop once per tick until stopped.

    With :attr:`TickPolicy.OVERLAP` a tick starts on schedule even if earlier
    ones are still waiting on slow probes; appends for one hop are still
    chained so its history stays ordered by send time. With
    :attr:`TickPolicy.SKIP` a tick is dropped while the previous one runs.
    """

    def __init__(
        self,
        config: SessionConfig,
        hops: Iterable[Hop],
        runner: CommandRunner,
        platform: Platform,
        channel: EventChannel,
        *,
        settings: Optional[EngineSettings] = None,
        is_running: Callable[[], bool] = lambda: True,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config
        self.hops = sorted(hops, key=lambda hop: hop.hop_number)
        self.runner = runner
        self.platform = platform
        self.channel = channel
        self.settings = settings or EngineSettings()
        self._is_running = is_running
        self._clock = clock

        self.ticks = 0
        self.skipped_ticks = 0
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: set[asyncio.Task] = set()
        self._tails: dict[int, asyncio.Task] = {}
        self._current_tick: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> asyncio.Task:
        if self.running:
            raise RuntimeError("Prober already started")
        logger.info(
            "Starting continuous ping of %d hops every %.1fs (%s)",
            len(self.hops),
            self.settings.probe_interval,
            self.settings.tick_policy.value,
        )
        self.channel.emit(
            Progress(0, len(self.hops), "Starting continuous ping...", PHASE_PROBING)
        )
        self._timer = asyncio.create_task(self._run_timer(), name="hoptrace-prober")
        return self._timer

    async def _run_timer(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self.settings.probe_interval
        next_due = loop.time()
        while self._is_running():
            self._schedule_tick()
            next_due += interval
            await asyncio.sleep(max(0.0, next_due - loop.time()))

    def _schedule_tick(self) -> None:
        busy = self._current_tick is not None and not self._current_tick.done()
        if busy and self.settings.tick_policy is TickPolicy.SKIP:
            self.skipped_ticks += 1
            logger.debug("Skipping tick, previous one still in flight")
            return
        self.ticks += 1
        tick = asyncio.create_task(self.tick())
        self._current_tick = tick
        self._track(tick)

    def _track(self, task: asyncio.Task) -> None:
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def tick(self) -> None:
        """Probe every live hop once, concurrently."""
        probes: list[tuple[Hop, asyncio.Task]] = []
        for hop in self.hops:
            if not self._is_running():
                break
            if hop.closed:
                continue
            previous = self._tails.get(hop.hop_number)
            probe = asyncio.create_task(self._probe_hop(hop, previous))
            self._tails[hop.hop_number] = probe
            self._track(probe)
            probes.append((hop, probe))
        results = await asyncio.gather(
            *(probe for _, probe in probes), return_exceptions=True
        )
        for (hop, _), outcome in zip(probes, results):
            if isinstance(outcome, Exception):
                logger.error("Probe of hop %d failed: %s", hop.hop_number, outcome)

    async def _probe_hop(self, hop: Hop, previous: Optional[asyncio.Task]) -> None:
        sent_at = self._clock()
        rtt = await self.ping(hop.ip)
        if previous is not None and not previous.done():
            # keep this hop's history ordered by send time
            await asyncio.wait([previous])

        if hop.closed or not self._is_running():
            return
        event = PingEvent.failure(sent_at) if rtt is None else PingEvent.success(sent_at, rtt)
        update = hop.record_ping(event)
        self.channel.emit(PingResult(hop.hop_number, hop.ip, event))
        if update is not None:
            self.channel.emit(update)

    async def ping(self, ip: str) -> Optional[float]:
        """One ping; the RTT in ms or ``None`` on timeout or error."""
        timeout = self.config.timeout
        result = await self.runner.run(
            self.platform.ping_binary,
            self.platform.ping_command(ip, timeout),
            self.platform.ping_timeout_ms(timeout),
        )
        if result.failed or result.exit_code != 0:
            logger.debug("ping %s: %s", ip, "timeout" if result.timed_out else f"exit {result.exit_code}")
            return None
        rtt = self.platform.parse_ping_rtt(result.stdout)
        if rtt is None:
            # reply arrived but the time could not be read; approximate it
            rtt = result.elapsed_ms
            logger.debug("ping %s: no time in output, using %.1f ms elapsed", ip, rtt)
        return rtt

    async def stop(self) -> None:
        """Cancel the timer right away, then any probes still in flight."""
        if self._timer is not None:
            self._timer.cancel()
        pending = list(self._in_flight)
        for task in pending:
            task.cancel()
        waiting = [t for t in (self._timer, *pending) if t is not None]
        await asyncio.gather(*waiting, return_exceptions=True)
        self._timer = None
        self._current_tick = None
        self._tails.clear()
        logger.info(
            "Prober stopped after %d ticks (%d skipped)", self.ticks, self.skipped_ticks
        )
