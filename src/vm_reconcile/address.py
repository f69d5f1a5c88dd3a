"""Address resolver: find a running VM's current reachable address.

Resolution order:
    stopped VM          -> None (no probing)
    forwarded VM        -> 127.0.0.1 (port-forwarded VMs are reached via localhost)
    bridged VM, first hit wins:
        1. cached   -- ssh.host / static_ip from the metadata, unless a sentinel
        2. ping     -- one ICMP echo to <name>.local; address taken from ping's banner
        3. arp      -- ARP table rows naming <name>.local

Bridged VMs get a DHCP lease the host never sees directly, so the address
is rediscovered on every query. Every tier swallows its own failure.
"""

from __future__ import annotations

import ipaddress
import re
from collections.abc import Awaitable, Callable

from vm_reconcile import constants
from vm_reconcile._logging import get_logger
from vm_reconcile.exceptions import ReconcileError
from vm_reconcile.models import FailureKind, NetworkMode, VmRecord
from vm_reconcile.platform_utils import HostOS, detect_host_os
from vm_reconcile.subprocess_utils import run_command

logger = get_logger(__name__)


def is_usable_address(value: str | None) -> bool:
    """True for a persisted IPv4 address that is not a sentinel placeholder."""
    if not value or value.strip() in constants.ADDRESS_SENTINELS:
        return False
    try:
        address = ipaddress.IPv4Address(value.strip())
    except ValueError:
        return False
    return not (address.is_loopback or address.is_unspecified)


def cached_address(record: VmRecord) -> str | None:
    """Last persisted address of a record (ssh.host first, then static_ip)."""
    for candidate in (record.ssh_host, record.static_ip):
        if is_usable_address(candidate):
            return candidate.strip()  # type: ignore[union-attr]
    return None


def build_ping_command(hostname: str, host_os: HostOS) -> list[str]:
    """Single echo with a short deadline; the deadline flag differs per OS."""
    deadline = str(constants.PING_DEADLINE_SECONDS)
    if host_os == HostOS.MACOS:
        return ["ping", "-c", "1", "-t", deadline, hostname]
    return ["ping", "-c", "1", "-W", deadline, hostname]


def parse_ping_output(output: str) -> str | None:
    """Address from ping's banner, e.g. 'PING web1.local (192.168.1.77): 56 data bytes'."""
    match = constants.PING_ADDRESS_PATTERN.search(output)
    if match and is_usable_address(match.group(1)):
        return match.group(1)
    return None


def parse_arp_output(output: str, hostname: str) -> str | None:
    """First address on an ARP row naming ``hostname`` (``oldweb1.local`` is not ``web1.local``)."""
    needle = re.compile(rf"(?<![\w.-]){re.escape(hostname)}\b", re.IGNORECASE)
    for line in output.splitlines():
        if not needle.search(line):
            continue
        match = constants.IPV4_PATTERN.search(line)
        if match and is_usable_address(match.group(1)):
            return match.group(1)
    return None


class AddressResolver:
    """Resolve addresses through the cached → ping → arp chain.

    Args:
        probe_timeout: Ceiling in seconds for each external probe
        host_os: Host platform (auto-detected if None); selects ping flags
    """

    def __init__(
        self,
        probe_timeout: float = constants.DEFAULT_PROBE_TIMEOUT_SECONDS,
        host_os: HostOS | None = None,
    ) -> None:
        self.probe_timeout = probe_timeout
        self.host_os = host_os or detect_host_os()

    async def resolve(self, record: VmRecord, running: bool) -> str | None:
        """Current address of ``record``, or None if unknown. Never raises."""
        if not running:
            return None
        if record.network_mode is NetworkMode.FORWARDED:
            return constants.LOOPBACK_ADDRESS

        tiers: tuple[tuple[str, Callable[[VmRecord], Awaitable[str | None]]], ...] = (
            ("cached", self.from_cache),
            ("ping", self.from_ping),
            ("arp", self.from_arp),
        )
        for tier, probe in tiers:
            try:
                address = await probe(record)
            except (ReconcileError, OSError, ValueError) as e:
                logger.debug(
                    "Address tier failed",
                    extra={"vm_name": record.name, "tier": tier, "error": str(e)},
                )
                continue
            if address:
                logger.debug("Address resolved", extra={"vm_name": record.name, "tier": tier, "address": address})
                return address

        logger.debug("Address unresolved", extra={"vm_name": record.name})
        return None

    async def from_cache(self, record: VmRecord) -> str | None:
        return cached_address(record)

    async def from_ping(self, record: VmRecord) -> str | None:
        # ping exits non-zero when the echo is lost, but the banner still
        # carries the resolved address, so stdout is parsed regardless
        result = await run_command(build_ping_command(record.hostname, self.host_os), timeout=self.probe_timeout)
        if result.failure_kind is FailureKind.SCRIPT_NOT_FOUND:
            return None
        return parse_ping_output(result.stdout)

    async def from_arp(self, record: VmRecord) -> str | None:
        result = await run_command(["arp", "-a"], timeout=self.probe_timeout)
        if not result.exit_succeeded:
            return None
        return parse_arp_output(result.stdout, record.hostname)
