"""Boot progress from a VM's serial console capture (``console.log``).

cloud-init prints a network table (``ci-info: | enp0s1 | True | 192.168.64.5 | ...``)
and the guest's user-data echoes ``CLOUD-INIT-READY`` once provisioning is done.
"""

from __future__ import annotations

import ipaddress
from pathlib import Path

import aiofiles

from vm_reconcile import constants
from vm_reconcile._logging import get_logger
from vm_reconcile.models import BootStatus

logger = get_logger(__name__)


def _guest_address(line: str) -> str | None:
    for field in line.replace("|", " ").split():
        if not field.startswith(constants.GUEST_ADDRESS_PREFIXES):
            continue
        try:
            ipaddress.IPv4Address(field)
        except ValueError:
            continue
        return field
    return None


def parse_console_log(text: str) -> BootStatus:
    """Scan console output. The last network table line with an address wins."""
    status = BootStatus(console_log_present=True)
    for line in text.splitlines():
        if constants.CLOUD_INIT_READY_MARKER in line:
            status.cloud_init_ready = True
        if constants.CLOUD_INIT_NET_MARKER in line and constants.GUEST_NIC_NAME in line:
            status.network_configured = True
            if address := _guest_address(line):
                status.address = address
    return status


async def read_boot_status(vm_dir: Path) -> BootStatus:
    """Boot status of the VM stored in ``vm_dir``.

    A missing console log means the VM never started; an unreadable one is
    logged and reported the same way.
    """
    console_log = vm_dir / constants.CONSOLE_LOG_FILENAME
    try:
        async with aiofiles.open(console_log, encoding="utf-8", errors="replace") as f:
            text = await f.read()
    except FileNotFoundError:
        return BootStatus()
    except OSError as e:
        logger.warning("Cannot read console log", extra={"path": str(console_log), "error": str(e)})
        return BootStatus()
    return parse_console_log(text)
