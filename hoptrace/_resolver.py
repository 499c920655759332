"""Forward and reverse DNS helpers."""

from __future__ import annotations

import asyncio
import socket
from typing import Optional

from ._config import EngineSettings
from ._exceptions import ResolutionError
from ._log import logger
from ._platform import Platform, is_ip_address, normalize_ip
from ._runner import CommandRunner


class HostnameResolver:
    """Reverse lookups with a fallback through ``nslookup`` against a public server.

    The primary path is the system resolver. The fallback only runs when the
    primary fails, times out, or answers with the address itself.
    """

    def __init__(
        self,
        runner: CommandRunner,
        platform: Platform,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self.runner = runner
        self.platform = platform
        self.settings = settings or EngineSettings()
        self._cache: dict[str, Optional[str]] = {}

    @staticmethod
    def _gethostbyaddr(ip: str) -> str:
        return socket.gethostbyaddr(ip)[0]

    @staticmethod
    def _getaddrinfo(host: str) -> str:
        infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
        # prefer IPv4 like the ping/traceroute defaults do
        infos.sort(key=lambda info: info[0] != socket.AF_INET)
        return infos[0][4][0]

    async def _primary(self, ip: str) -> Optional[str]:
        loop = asyncio.get_running_loop()
        try:
            hostname = await asyncio.wait_for(
                loop.run_in_executor(None, self._gethostbyaddr, ip),
                timeout=self.settings.dns_timeout,
            )
        except asyncio.TimeoutError:
            logger.debug("Reverse lookup for %s timed out", ip)
            return None
        except OSError as exc:
            logger.debug("Reverse lookup for %s failed: %s", ip, exc)
            return None
        if not hostname or hostname == ip:
            return None
        return hostname

    async def _fallback(self, ip: str) -> Optional[str]:
        server = self.settings.fallback_dns_server
        result = await self.runner.run(
            self.platform.nslookup_binary,
            self.platform.nslookup_command(ip, server),
            self.settings.fallback_dns_timeout_ms,
        )
        if result.failed:
            logger.debug("nslookup for %s via %s failed: %s", ip, server, result)
            return None
        return self.platform.parse_nslookup(result.stdout, ip)

    async def resolve(self, ip: str) -> Optional[str]:
        """Return the hostname for ``ip`` or ``None`` when nothing real is known."""
        if ip in self._cache:
            return self._cache[ip]

        hostname = await self._primary(ip)
        if hostname is None:
            hostname = await self._fallback(ip)
            if hostname:
                logger.debug("Fallback DNS resolved %s to %s", ip, hostname)
        else:
            logger.debug("Resolved %s to %s", ip, hostname)

        self._cache[ip] = hostname
        return hostname

    async def resolve_target(self, target: str) -> str:
        """Turn the session target into a literal IP address.

        Raises :class:`ResolutionError` when the name cannot be resolved.
        """
        target = target.strip()
        if is_ip_address(target):
            return normalize_ip(target)

        loop = asyncio.get_running_loop()
        try:
            address = await asyncio.wait_for(
                loop.run_in_executor(None, self._getaddrinfo, target),
                timeout=self.settings.dns_timeout,
            )
        except (asyncio.TimeoutError, OSError, UnicodeError, IndexError) as exc:
            logger.error("Resolve error %s: %s", target, str(exc) or "timeout")
            raise ResolutionError(target) from exc
        logger.info("Resolved %s to %s", target, address)
        return normalize_ip(address)
