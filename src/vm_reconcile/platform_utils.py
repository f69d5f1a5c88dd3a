"""Cross-platform OS detection and process utilities.

Uses psutil's built-in OS detection constants for platform identification
(the ping/arp probes take different flags on Linux and macOS).
Provides a PID-reuse safe wrapper around asyncio subprocesses.
"""

import asyncio
import contextlib
from enum import Enum, auto
from functools import cache

import psutil


class HostOS(Enum):
    """Supported host operating systems."""

    LINUX = auto()
    """Linux (iputils ping, net-tools arp)."""

    MACOS = auto()
    """macOS (BSD ping and arp)."""

    UNKNOWN = auto()
    """Unsupported or unrecognized OS."""


@cache
def detect_host_os() -> HostOS:
    """Detect current host operating system using psutil constants.

    Returns:
        HostOS enum indicating current platform
    """
    if psutil.LINUX:
        return HostOS.LINUX
    if psutil.MACOS:
        return HostOS.MACOS
    return HostOS.UNKNOWN


class ProcessWrapper:
    """asyncio subprocess paired with a psutil handle.

    Signals go through psutil, which checks the process creation time, so a
    child that exited and had its PID recycled is never signalled by mistake.
    """

    def __init__(self, async_proc: asyncio.subprocess.Process) -> None:
        self.async_proc = async_proc
        self.psutil_proc: psutil.Process | None = None
        if async_proc.pid:
            with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
                self.psutil_proc = psutil.Process(async_proc.pid)

    @property
    def pid(self) -> int | None:
        return self.async_proc.pid

    @property
    def returncode(self) -> int | None:
        """Exit status, None while running."""
        return self.async_proc.returncode

    async def communicate(self) -> tuple[bytes, bytes]:
        return await self.async_proc.communicate()

    async def terminate(self) -> None:
        """SIGTERM."""
        await self._signal("terminate")

    async def kill(self) -> None:
        """SIGKILL."""
        await self._signal("kill")

    async def _signal(self, method: str) -> None:
        if self.psutil_proc is None:
            getattr(self.async_proc, method)()
            return
        with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
            await asyncio.to_thread(getattr(self.psutil_proc, method))

    async def wait_with_timeout(self, timeout: float) -> int | None:
        """Wait for exit while draining the pipes.

        Raises:
            TimeoutError: Still running after ``timeout`` seconds
        """
        try:
            await asyncio.wait_for(self.async_proc.communicate(), timeout=timeout)
        except RuntimeError:
            # Pipes already being read elsewhere
            await asyncio.wait_for(self.async_proc.wait(), timeout=timeout)
        return self.returncode
