"""Command lines and output parsers for the OS route/ping utilities.

One :class:`Platform` instance is picked per session by :func:`get_platform`
and passed to whoever needs to build a command or read its output, so the
platform is never re-checked on each call.
"""

from __future__ import annotations

import ipaddress
import math
import re
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ._config import SessionConfig


@dataclass(frozen=True)
class TracerouteEntry:
    hop_number: int
    ip: str


_HOP_LINE = re.compile(r"^\s*(\d+)\s+(.*)$")
_NSLOOKUP_NAME = re.compile(r"(?:name\s*=|^\s*name:)\s*(\S+)", re.IGNORECASE | re.MULTILINE)


def _as_ip(token: str) -> Optional[str]:
    candidate = token.strip("()[],")
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def normalize_ip(value: str) -> str:
    return str(ipaddress.ip_address(value.strip()))


class Platform:
    """Base strategy; subclasses decide command syntax and line formats."""

    name = "generic"
    traceroute_binary = "traceroute"
    ping_binary = "ping"
    nslookup_binary = "nslookup"

    # --- commands -----------------------------------------------------------

    def traceroute_command(
        self, target: str, ttl: int, config: "SessionConfig"
    ) -> list[str]:
        raise NotImplementedError

    def full_traceroute_command(self, target: str, config: "SessionConfig") -> list[str]:
        raise NotImplementedError

    def traceroute_timeout_ms(self, ttl: int, config: "SessionConfig") -> int:
        raise NotImplementedError

    def full_traceroute_timeout_ms(self, config: "SessionConfig") -> int:
        raise NotImplementedError

    def ping_command(self, ip: str, timeout_ms: int) -> list[str]:
        raise NotImplementedError

    def ping_timeout_ms(self, timeout_ms: int) -> int:
        return timeout_ms + 500

    def nslookup_command(self, ip: str, server: str) -> list[str]:
        return [ip, server]

    # --- parsers ------------------------------------------------------------

    def _hop_ip(self, rest: str) -> Optional[str]:
        raise NotImplementedError

    def parse_traceroute(self, text: str) -> list[TracerouteEntry]:
        """Return ``(hop, ip)`` entries, first match per hop, ascending."""
        found: dict[int, str] = {}
        for line in text.splitlines():
            match = _HOP_LINE.match(line)
            if not match:
                continue
            hop_number = int(match.group(1))
            if hop_number < 1 or hop_number in found:
                continue
            ip = self._hop_ip(match.group(2))
            if ip is not None:
                found[hop_number] = ip
        return [TracerouteEntry(hop, found[hop]) for hop in sorted(found)]

    def parse_ping_rtt(self, text: str) -> Optional[float]:
        raise NotImplementedError

    def parse_nslookup(self, text: str, ip: str) -> Optional[str]:
        for match in _NSLOOKUP_NAME.finditer(text):
            hostname = match.group(1).strip().rstrip(".")
            if hostname and hostname != ip and not is_ip_address(hostname):
                return hostname
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


def _wait_seconds(timeout_ms: int) -> int:
    return max(1, math.ceil(timeout_ms / 1000))


class UnixPlatform(Platform):
    """Linux style ``traceroute -n`` / ``ping -c 1`` output.

    Hop lines are dense: ``" 1  192.168.1.1  1.234 ms  1.123 ms  1.345 ms"``.
    With name resolution on, the address appears as ``host (ip)``.
    """

    name = "unix"
    _PING_TIME = re.compile(r"time\s*[=<]\s*(\d+(?:\.\d+)?)\s*ms", re.IGNORECASE)

    def traceroute_command(
        self, target: str, ttl: int, config: "SessionConfig"
    ) -> list[str]:
        return [
            "-n",
            "-w", str(_wait_seconds(config.timeout)),
            "-q", str(config.probes_per_hop),
            "-f", str(ttl),
            "-m", str(ttl),
            target,
        ]

    def full_traceroute_command(self, target: str, config: "SessionConfig") -> list[str]:
        return [
            "-n",
            "-w", str(_wait_seconds(config.timeout)),
            "-q", str(config.probes_per_hop),
            "-m", str(config.max_hops),
            target,
        ]

    def traceroute_timeout_ms(self, ttl: int, config: "SessionConfig") -> int:
        return _wait_seconds(config.timeout) * 1000 * config.probes_per_hop + 1000

    def full_traceroute_timeout_ms(self, config: "SessionConfig") -> int:
        per_hop = _wait_seconds(config.timeout) * 1000 * config.probes_per_hop
        return per_hop * config.max_hops + 1000

    def ping_command(self, ip: str, timeout_ms: int) -> list[str]:
        return ["-n", "-c", "1", "-W", str(_wait_seconds(timeout_ms)), ip]

    def ping_timeout_ms(self, timeout_ms: int) -> int:
        return _wait_seconds(timeout_ms) * 1000 + 500

    def _hop_ip(self, rest: str) -> Optional[str]:
        for token in rest.split():
            ip = _as_ip(token)
            if ip is not None:
                return ip
        return None

    def parse_ping_rtt(self, text: str) -> Optional[float]:
        match = self._PING_TIME.search(text)
        return float(match.group(1)) if match else None


class DarwinPlatform(UnixPlatform):
    """macOS: like Linux, except ``ping -W`` takes milliseconds."""

    name = "darwin"

    def ping_command(self, ip: str, timeout_ms: int) -> list[str]:
        return ["-n", "-c", "1", "-W", str(int(timeout_ms)), ip]

    def ping_timeout_ms(self, timeout_ms: int) -> int:
        return int(timeout_ms) + 500


class WindowsPlatform(Platform):
    """Windows ``tracert -d`` / ``ping -n 1`` output.

    Hop lines are columnar with literal ``<1 ms`` tokens and the address last:
    ``"  1    <1 ms    <1 ms    <1 ms  192.168.1.1"``. Timed-out rows carry
    localized text instead of an address and are skipped.
    """

    name = "windows"
    traceroute_binary = "tracert"
    _PING_TIME = re.compile(r"[=<]\s*(\d+(?:[.,]\d+)?)\s*ms\b", re.IGNORECASE)

    def traceroute_command(
        self, target: str, ttl: int, config: "SessionConfig"
    ) -> list[str]:
        return ["-d", "-h", str(ttl), "-w", str(config.timeout), target]

    def full_traceroute_command(self, target: str, config: "SessionConfig") -> list[str]:
        return ["-d", "-h", str(config.max_hops), "-w", str(config.timeout), target]

    def traceroute_timeout_ms(self, ttl: int, config: "SessionConfig") -> int:
        # tracert has no first-hop option, so it walks every TTL up to ``ttl``
        return ttl * 3 * config.timeout + 1000

    def full_traceroute_timeout_ms(self, config: "SessionConfig") -> int:
        return self.traceroute_timeout_ms(config.max_hops, config)

    def ping_command(self, ip: str, timeout_ms: int) -> list[str]:
        return ["-n", "1", "-w", str(int(timeout_ms)), ip]

    def _hop_ip(self, rest: str) -> Optional[str]:
        for token in reversed(rest.split()):
            ip = _as_ip(token)
            if ip is not None:
                return ip
        return None

    def parse_ping_rtt(self, text: str) -> Optional[float]:
        match = self._PING_TIME.search(text)
        if not match:
            return None
        return float(match.group(1).replace(",", "."))


_PLATFORMS: dict[str, type[Platform]] = {
    "unix": UnixPlatform,
    "linux": UnixPlatform,
    "darwin": DarwinPlatform,
    "windows": WindowsPlatform,
    "win32": WindowsPlatform,
}


def get_platform(name: Optional[str] = None) -> Platform:
    """Pick the strategy for ``name`` or for the running interpreter."""
    if name is None:
        if sys.platform.startswith("win"):
            name = "windows"
        elif sys.platform == "darwin":
            name = "darwin"
        else:
            name = "unix"
    try:
        return _PLATFORMS[name.lower()]()
    except KeyError:
        raise ValueError(f"Unknown platform: {name}") from None


def parse_traceroute(text: str, platform: Platform) -> list[TracerouteEntry]:
    return platform.parse_traceroute(text)


def parse_ping_rtt(text: str, platform: Platform) -> Optional[float]:
    return platform.parse_ping_rtt(text)
