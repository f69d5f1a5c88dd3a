"""Liveness prober: is a VM's hypervisor process actually running?

Two tiers, short-circuiting on the first positive answer:

1. PID check: the PID recorded in ``qemu.pid`` is present in the process table.
2. Pattern fallback: some process command line matches ``qemu.*-name <vm>``.

PID files go stale after crashes or external process management; the
pattern scan recovers those cases. Each tier runs psutil in a worker thread
under a timeout, and any probe error counts as "not found".
"""

from __future__ import annotations

import asyncio
import re

import psutil

from vm_reconcile import constants
from vm_reconcile._logging import get_logger
from vm_reconcile.models import VmRecord

logger = get_logger(__name__)


def pid_is_alive(pid: int) -> bool:
    """Check the process table for ``pid``.

    Zombies count as dead. A process we may not inspect (AccessDenied)
    exists, so it counts as alive.
    """
    try:
        proc = psutil.Process(pid)
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:  # includes ZombieProcess
        return False
    except psutil.AccessDenied:
        return True


def hypervisor_cmdline_pattern(name: str) -> re.Pattern[str]:
    """Regex matching the hypervisor command line of VM ``name``.

    The name must be followed by whitespace, a comma or the end of the
    command line, so "web1" does not match a VM started as "web10".
    """
    return re.compile(constants.HYPERVISOR_CMDLINE_TEMPLATE.format(name=re.escape(name)))


def find_hypervisor_pids(name: str) -> list[int]:
    """Scan the process table for hypervisor processes of VM ``name``."""
    pattern = hypervisor_cmdline_pattern(name)
    pids: list[int] = []
    for proc in psutil.process_iter(["pid", "cmdline"]):
        cmdline = proc.info.get("cmdline") or []
        if pattern.search(" ".join(cmdline)):
            pids.append(proc.info["pid"])
    return pids


class LivenessProber:
    """Determine whether a VM record's backing process is running.

    Args:
        probe_timeout: Ceiling in seconds for each tier
    """

    def __init__(self, probe_timeout: float = constants.DEFAULT_PROBE_TIMEOUT_SECONDS) -> None:
        self.probe_timeout = probe_timeout

    async def is_running(self, record: VmRecord) -> bool:
        """True if the PID check or the command-line scan finds the VM. Never raises."""
        if await self.check_pid(record):
            return True
        return await self.scan_cmdline(record)

    async def check_pid(self, record: VmRecord) -> bool:
        """Tier 1: recorded PID present in the process table."""
        pid = record.process_id
        if pid is None or pid <= 0:
            return False
        try:
            alive = await asyncio.wait_for(asyncio.to_thread(pid_is_alive, pid), timeout=self.probe_timeout)
        except (psutil.Error, OSError, TimeoutError) as e:
            logger.debug(
                "PID probe failed",
                extra={"vm_name": record.name, "pid": pid, "error": str(e), "tier": "pid"},
            )
            return False

        if not alive:
            logger.debug("Stale PID file", extra={"vm_name": record.name, "pid": pid})
        return alive

    async def scan_cmdline(self, record: VmRecord) -> bool:
        """Tier 2: hypervisor command line mentioning the VM name."""
        try:
            pids = await asyncio.wait_for(
                asyncio.to_thread(find_hypervisor_pids, record.name),
                timeout=self.probe_timeout,
            )
        except (psutil.Error, OSError, TimeoutError) as e:
            logger.debug(
                "Process table scan failed",
                extra={"vm_name": record.name, "error": str(e), "tier": "cmdline"},
            )
            return False

        if pids:
            logger.debug(
                "VM found by command-line scan",
                extra={"vm_name": record.name, "pids": pids, "recorded_pid": record.process_id},
            )
        return bool(pids)
