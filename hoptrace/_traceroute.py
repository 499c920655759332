"""Hop discovery driven by the platform traceroute utility."""

from __future__ import annotations

import asyncio
import enum
from typing import Callable, Optional

from ._config import DISCOVERY_AGGREGATE, EngineSettings, SessionConfig
from ._events import PHASE_DISCOVERY, EventChannel, HopDiscovered, Progress
from ._exceptions import SessionStateError, TracerouteParseError
from ._hop import Hop
from ._log import logger
from ._platform import Platform
from ._resolver import HostnameResolver
from ._runner import CommandRunner


class DiscoveryState(str, enum.Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    DONE = "done"
    ABORTED = "aborted"


class TracerouteOrchestrator:
    """Find the hops towards ``config.target``, which must already be an IP.

    TTLs are probed concurrently in batches. Results are consumed as they
    complete, but hops are announced strictly in ascending TTL order: a hop is
    only handed to the channel once every lower TTL has been settled.
    """

    def __init__(
        self,
        config: SessionConfig,
        runner: CommandRunner,
        platform: Platform,
        resolver: HostnameResolver,
        channel: EventChannel,
        *,
        settings: Optional[EngineSettings] = None,
        is_running: Callable[[], bool] = lambda: True,
    ) -> None:
        self.config = config
        self.target_ip = config.target
        self.runner = runner
        self.platform = platform
        self.resolver = resolver
        self.channel = channel
        self.settings = settings or EngineSettings()
        self._is_running = is_running

        self.state = DiscoveryState.IDLE
        self.hops: dict[int, Hop] = {}
        self._consecutive_failures = 0
        self._dns_tasks: set[asyncio.Task] = set()

    async def discover(self) -> list[Hop]:
        if self.state is not DiscoveryState.IDLE:
            raise SessionStateError(f"Discovery already {self.state.value}")
        self.state = DiscoveryState.DISCOVERING
        logger.info(
            "Starting traceroute to %s max_hops=%d batch=%d",
            self.target_ip,
            self.config.max_hops,
            self.settings.batch_size,
        )
        self.channel.emit(
            Progress(0, self.config.max_hops, self.target_ip, PHASE_DISCOVERY)
        )

        try:
            if self.settings.discovery_mode == DISCOVERY_AGGREGATE:
                await self._discover_aggregate()
            else:
                await self._discover_batched()
        except TracerouteParseError:
            self.state = DiscoveryState.ABORTED
            raise

        if self.state is DiscoveryState.DISCOVERING:
            self.state = DiscoveryState.DONE
        logger.info(
            "Discovery %s with %d hops", self.state.value, len(self.hops)
        )
        return [self.hops[ttl] for ttl in sorted(self.hops)]

    async def _probe_ttl(self, ttl: int) -> tuple[int, Optional[str]]:
        result = await self.runner.run(
            self.platform.traceroute_binary,
            self.platform.traceroute_command(self.target_ip, ttl, self.config),
            self.platform.traceroute_timeout_ms(ttl, self.config),
        )
        if result.failed:
            logger.debug("  ttl %d: %s", ttl, "timeout" if result.timed_out else result.error)
            return ttl, None
        for entry in self.platform.parse_traceroute(result.stdout):
            if entry.hop_number == ttl:
                return ttl, entry.ip
        return ttl, None

    async def _discover_batched(self) -> None:
        size = self.settings.batch_size
        for first in range(1, self.config.max_hops + 1, size):
            if not self._is_running():
                self.state = DiscoveryState.ABORTED
                return
            batch = range(first, min(first + size, self.config.max_hops + 1))
            logger.debug("Probing TTL %d-%d", batch[0], batch[-1])
            if await self._run_batch(batch):
                return

    async def _run_batch(self, batch: range) -> bool:
        """Probe one batch; True once discovery must not continue."""
        tasks: list[asyncio.Task] = []
        for ttl in batch:
            if not self._is_running():
                break
            tasks.append(asyncio.create_task(self._probe_ttl(ttl)))

        settled: dict[int, Optional[str]] = {}
        next_ttl = batch[0]
        try:
            for next_done in asyncio.as_completed(tasks):
                ttl, ip = await next_done
                settled[ttl] = ip
                while next_ttl in settled:
                    if self._consume(next_ttl, settled.pop(next_ttl)):
                        return True
                    next_ttl += 1
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        if len(tasks) < len(batch):
            self.state = DiscoveryState.ABORTED
            return True
        return False

    async def _discover_aggregate(self) -> None:
        result = await self.runner.run(
            self.platform.traceroute_binary,
            self.platform.full_traceroute_command(self.target_ip, self.config),
            self.platform.full_traceroute_timeout_ms(self.config),
        )
        if result.failed:
            reason = "timed out" if result.timed_out else result.error
            raise TracerouteParseError(f"traceroute to {self.target_ip} {reason}")

        entries = self.platform.parse_traceroute(result.stdout)
        if not entries:
            logger.error("Could not parse traceroute output: %r", result.stdout[:200])
            raise TracerouteParseError(
                f"Unrecognised traceroute output for {self.target_ip}"
            )

        found = {entry.hop_number: entry.ip for entry in entries}
        last = min(max(found), self.config.max_hops)
        for ttl in range(1, last + 1):
            if self._consume(ttl, found.get(ttl)):
                return

    def _consume(self, ttl: int, ip: Optional[str]) -> bool:
        """Settle one TTL in order. Returns True when discovery should halt."""
        if not self._is_running():
            self.state = DiscoveryState.ABORTED
            return True

        if ip is None:
            self._consecutive_failures += 1
            logger.warning("  ttl %d: no response", ttl)
            self.channel.emit(
                Progress(ttl, self.config.max_hops, "unknown", PHASE_DISCOVERY)
            )
            if self._consecutive_failures >= self.settings.max_consecutive_failures:
                logger.warning(
                    "No answer from %d consecutive hops, stopping at TTL %d",
                    self._consecutive_failures,
                    ttl,
                )
                return True
            return False

        self._consecutive_failures = 0
        self._add_hop(ttl, ip)
        self.channel.emit(Progress(ttl, self.config.max_hops, ip, PHASE_DISCOVERY))
        if ip == self.target_ip:
            logger.info("Destination reached at TTL %d", ttl)
            return True
        return False

    def _add_hop(self, ttl: int, ip: str) -> Hop:
        hop = Hop(ttl, ip)
        self.hops[ttl] = hop
        logger.info("  ttl %d: %s", ttl, ip)
        self.channel.emit(HopDiscovered(hop.snapshot()))

        task = asyncio.create_task(self._resolve_hostname(hop))
        self._dns_tasks.add(task)
        task.add_done_callback(self._dns_tasks.discard)
        return hop

    async def _resolve_hostname(self, hop: Hop) -> None:
        try:
            hostname = await self.resolver.resolve(hop.ip)
        except Exception as exc:
            logger.warning("Could not resolve hostname for %s: %s", hop.ip, exc)
            return
        if hostname is None or hop.closed or not self._is_running():
            return
        update = hop.set_hostname(hostname)
        if update is not None:
            logger.debug("Hostname for hop %d: %s", hop.hop_number, hostname)
            self.channel.emit(update)

    async def cancel_pending(self) -> None:
        """Cancel hostname lookups that have not finished yet."""
        tasks = list(self._dns_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._dns_tasks.clear()
