"""
Shared fakes for the hoptrace tests.

Nothing here spawns a process or touches the network: the command runner and
the resolver are replaced by scripted stand-ins.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

import pytest

from hoptrace import (
    CommandResult,
    EngineSettings,
    EventChannel,
    ResolutionError,
    get_platform,
)


@dataclass
class Reply:
    stdout: str = ""
    exit_code: Optional[int] = 0
    delay: float = 0.0
    timed_out: bool = False
    error: Optional[str] = None
    elapsed_ms: float = 5.0


class FakeRunner:
    """Answers each call from ``handler(command, args)``."""

    def __init__(self, handler: Callable[[str, list[str]], Reply]) -> None:
        self.handler = handler
        self.calls: list[tuple[str, list[str]]] = []
        self.cancelled = 0
        self.active = 0

    async def run(self, command: str, args, timeout_ms: float) -> CommandResult:
        args = list(args)
        self.calls.append((command, args))
        reply = self.handler(command, args)
        self.active += 1
        try:
            if reply.delay:
                await asyncio.sleep(reply.delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.active -= 1
        return CommandResult(
            command=" ".join([command, *args]),
            stdout=reply.stdout,
            stderr="",
            exit_code=None if reply.timed_out or reply.error else reply.exit_code,
            elapsed_ms=reply.elapsed_ms,
            timed_out=reply.timed_out,
            error=reply.error,
        )


def unix_hop_line(ttl: int, ip: Optional[str]) -> str:
    if ip is None:
        return f" {ttl}  * * *\n"
    return f" {ttl}  {ip}  1.234 ms  1.100 ms  1.300 ms\n"


def ttl_from_args(args: list[str]) -> int:
    return int(args[args.index("-m") + 1])


def unix_route_handler(
    route: dict[int, Optional[str]],
    *,
    delays: Optional[dict[int, float]] = None,
    ping: Optional[Callable[[str], Reply]] = None,
) -> Callable[[str, list[str]], Reply]:
    """Traceroute answers from ``route`` (ttl -> ip or None), pings from ``ping``."""
    delays = delays or {}

    def handler(command: str, args: list[str]) -> Reply:
        if command == "traceroute":
            ttl = ttl_from_args(args)
            return Reply(stdout=unix_hop_line(ttl, route.get(ttl)), delay=delays.get(ttl, 0.0))
        if command == "ping":
            if ping is not None:
                return ping(args[-1])
            return Reply(stdout=f"64 bytes from {args[-1]}: icmp_seq=1 ttl=60 time=10.5 ms\n")
        return Reply(exit_code=1)

    return handler


class FakeResolver:
    def __init__(self, names: Optional[dict[str, str]] = None, targets: Optional[dict[str, str]] = None):
        self.names = names or {}
        self.targets = targets or {}
        self.lookups: list[str] = []

    async def resolve(self, ip: str) -> Optional[str]:
        self.lookups.append(ip)
        await asyncio.sleep(0)
        return self.names.get(ip)

    async def resolve_target(self, target: str) -> str:
        if target in self.targets:
            return self.targets[target]
        if target.replace(".", "").isdigit():
            return target
        raise ResolutionError(target)


class Recorder:
    """Event sink that keeps everything it receives."""

    def __init__(self) -> None:
        self.events: list = []

    def __call__(self, event) -> None:
        self.events.append(event)

    def of(self, kind: str) -> list:
        return [event for event in self.events if event.kind == kind]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def channel(recorder: Recorder) -> EventChannel:
    return EventChannel(recorder)


@pytest.fixture
def unix():
    return get_platform("unix")


@pytest.fixture
def fast_settings() -> EngineSettings:
    return EngineSettings(probe_interval=0.01, platform="unix")
