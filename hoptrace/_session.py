"""Session lifecycle: resolve, discover, then probe until stopped."""

from __future__ import annotations

import asyncio
import enum
from typing import Any, Callable, Optional, Union

from ._aggregate import AggregatedBucket, aggregate
from ._codec import LoadedSession, SessionCodec
from ._config import EngineSettings, SessionConfig
from ._events import EventChannel, EventSink, SessionComplete, SessionError
from ._exceptions import (
    HoptraceError,
    SessionStateError,
    UnknownHopError,
)
from ._hop import Hop, HopSnapshot, PingEvent
from ._log import logger
from ._platform import Platform, get_platform
from ._prober import ContinuousProber
from ._resolver import HostnameResolver
from ._runner import CommandRunner
from ._traceroute import TracerouteOrchestrator


class SessionState(str, enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    DISCOVERING = "discovering"
    PROBING = "probing"
    STOPPED = "stopped"
    FAILED = "failed"
    LOADED = "loaded"


class SessionController:
    """One discovery-plus-probing run against a single target.

    A controller runs at most once: :meth:`start` is only accepted from
    ``IDLE`` and :meth:`stop` leaves it in a terminal state. Create a new
    controller for the next run.
    """

    def __init__(
        self,
        sink: Optional[EventSink] = None,
        *,
        runner: Optional[CommandRunner] = None,
        platform: Optional[Platform] = None,
        settings: Optional[EngineSettings] = None,
        resolver: Optional[HostnameResolver] = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.runner = runner or CommandRunner()
        self.platform = platform or get_platform(self.settings.platform)
        self.resolver = resolver or HostnameResolver(
            self.runner, self.platform, self.settings
        )
        self.channel = EventChannel(*([sink] if sink is not None else []))

        self.state = SessionState.IDLE
        self.config: Optional[SessionConfig] = None
        self.requested_target: Optional[str] = None
        self._hops: dict[int, Hop] = {}
        self._running = False
        self._orchestrator: Optional[TracerouteOrchestrator] = None
        self._prober: Optional[ContinuousProber] = None
        self._stopped = asyncio.Event()

    # ------------------------------------------------------------------ state

    @property
    def is_running(self) -> bool:
        return self._running

    def _check_running(self) -> bool:
        return self._running

    @property
    def hops(self) -> list[Hop]:
        return [self._hops[n] for n in sorted(self._hops)]

    def get_hop(self, hop_number: int) -> Hop:
        try:
            return self._hops[hop_number]
        except KeyError:
            raise UnknownHopError(hop_number) from None

    def subscribe(self, sink: EventSink) -> Callable[[], None]:
        return self.channel.subscribe(sink)

    # ------------------------------------------------------------- lifecycle

    async def start(self, config: SessionConfig) -> None:
        """Resolve the target, discover hops, then begin continuous probing.

        Returns once probing is under way; call :meth:`wait` to block until
        the session is stopped. Fatal errors emit a ``session-error`` event,
        leave the controller ``FAILED`` and are re-raised.
        """
        if self.state is not SessionState.IDLE:
            raise SessionStateError(f"Session is {self.state.value}, cannot start")
        self._running = True
        self.requested_target = config.target
        self.config = config

        try:
            self.state = SessionState.RESOLVING
            target_ip = await self.resolver.resolve_target(config.target)
            if not self._running:
                return
            self.config = config.with_target(target_ip)

            self.state = SessionState.DISCOVERING
            self._orchestrator = TracerouteOrchestrator(
                self.config,
                self.runner,
                self.platform,
                self.resolver,
                self.channel,
                settings=self.settings,
                is_running=self._check_running,
            )
            # shared so hops can be queried while discovery is still going
            self._hops = self._orchestrator.hops
            await self._orchestrator.discover()
        except HoptraceError as exc:
            if self._running:
                await self._fail(exc)
            raise

        if not self._running:
            return

        self.state = SessionState.PROBING
        self._prober = ContinuousProber(
            self.config,
            self.hops,
            self.runner,
            self.platform,
            self.channel,
            settings=self.settings,
            is_running=self._check_running,
        )
        self._prober.start()

    async def run(self, config: SessionConfig, duration: Optional[float] = None) -> None:
        """Start, keep probing for ``duration`` seconds (or until stopped), then stop."""
        await self.start(config)
        try:
            if duration is None:
                await self.wait()
            else:
                await asyncio.wait_for(self.wait(), timeout=duration)
        except asyncio.TimeoutError:
            pass
        finally:
            await self.stop()

    async def wait(self) -> None:
        await self._stopped.wait()

    async def _fail(self, exc: Exception) -> None:
        logger.error("Session failed: %s", exc)
        self.channel.emit(SessionError(str(exc)))
        await self._teardown()
        self.state = SessionState.FAILED

    async def stop(self) -> None:
        """Cancel probing and tear the session down.

        After this returns no timer is active, no further event reaches the
        sink and every hop is closed.
        """
        if self.state in (SessionState.STOPPED, SessionState.FAILED):
            return
        was_active = self.state is not SessionState.IDLE
        logger.info("Stopping session to %s", self.config.target if self.config else "-")
        if was_active:
            self.channel.emit(SessionComplete())
        await self._teardown()
        self.state = SessionState.STOPPED

    async def _teardown(self) -> None:
        self._running = False
        if self._prober is not None:
            await self._prober.stop()
        if self._orchestrator is not None:
            await self._orchestrator.cancel_pending()
        self.channel.close()
        for hop in self._hops.values():
            hop.close()
        self._stopped.set()

    # ---------------------------------------------------------------- queries

    def query_aggregated(
        self, hop_number: int, interval: Union[str, int]
    ) -> list[AggregatedBucket]:
        return aggregate(self.get_hop(hop_number).history, interval)

    def query_history(self, hop_number: int) -> list[PingEvent]:
        return list(self.get_hop(hop_number).history)

    def snapshots(self) -> list[HopSnapshot]:
        return [hop.snapshot() for hop in self.hops]

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "isRunning": self._running,
            "target": self.config.target if self.config else None,
            "hopCount": len(self._hops),
            "pingCount": sum(len(hop.history) for hop in self._hops.values()),
        }

    # ------------------------------------------------------------ persistence

    def export(self) -> bytes:
        """Serialize the current config and hop histories."""
        if self.config is None:
            raise SessionStateError("Nothing to export, the session never started")
        if self.state in (SessionState.STOPPED, SessionState.FAILED):
            raise SessionStateError("Export before stopping, histories are released on stop")
        return SessionCodec().serialize(self.config, self.hops)

    @classmethod
    def from_snapshot(
        cls, loaded: LoadedSession, sink: Optional[EventSink] = None, **kwargs: Any
    ) -> "SessionController":
        """A read-only controller owning the hops of a loaded session."""
        controller = cls(sink, **kwargs)
        controller.config = loaded.config
        controller.requested_target = loaded.config.target
        controller._hops = {hop.hop_number: hop for hop in loaded.hops}
        controller.state = SessionState.LOADED
        return controller
