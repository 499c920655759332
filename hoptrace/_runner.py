"""Run external route and ping utilities with a bounded timeout."""

from __future__ import annotations

import asyncio
import shlex
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from ._log import logger


@dataclass
class CommandResult:
    command: str
    stdout: str
    stderr: str
    exit_code: Optional[int]
    elapsed_ms: float
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        """True for a timeout or a spawn failure. A non-zero exit is not a failure."""
        return self.timed_out or self.error is not None

    def __str__(self) -> str:
        if self.timed_out:
            return f"{self.command}: timed out after {self.elapsed_ms:.0f} ms\n"
        if self.error:
            return f"{self.command}: {self.error}\n"
        return f"{self.command}: exit {self.exit_code} in {self.elapsed_ms:.0f} ms\n"

    def __rich__(self) -> str:  # pragma: no cover - rich display helper
        return self.__str__()


async def _reap(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


class CommandRunner:
    """Spawn one external process per call and collect its output.

    The child is always killed if the timeout expires or if the awaiting task
    is cancelled.
    """

    encoding = "utf-8"

    async def run(
        self, command: str, args: Sequence[str], timeout_ms: float
    ) -> CommandResult:
        argv = [command, *[str(arg) for arg in args]]
        cmd_str = " ".join(shlex.quote(part) for part in argv)
        started = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError, OSError) as exc:
            logger.warning("Could not start %s: %s", command, exc)
            return CommandResult(
                command=cmd_str,
                stdout="",
                stderr="",
                exit_code=None,
                elapsed_ms=(time.monotonic() - started) * 1000,
                error=str(exc),
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            await _reap(process)
            elapsed = (time.monotonic() - started) * 1000
            logger.debug("%s timed out after %.0f ms", cmd_str, elapsed)
            return CommandResult(
                command=cmd_str,
                stdout="",
                stderr="",
                exit_code=process.returncode,
                elapsed_ms=elapsed,
                timed_out=True,
            )
        except asyncio.CancelledError:
            await asyncio.shield(_reap(process))
            raise

        elapsed = (time.monotonic() - started) * 1000
        return CommandResult(
            command=cmd_str,
            stdout=stdout.decode(self.encoding, errors="ignore"),
            stderr=stderr.decode(self.encoding, errors="ignore"),
            exit_code=process.returncode,
            elapsed_ms=elapsed,
        )
