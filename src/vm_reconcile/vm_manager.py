"""VM manager: reconciled listings and script-backed VM actions.

The manager is the one object a presentation layer talks to. Reads
(``list_vms``, ``get_address``, ``boot_status``) are best-effort and never
raise for probe or parse problems. Mutating actions (``create_vm``,
``start_vm``, ``stop_vm``, ``delete_vm``) go through the provisioning
script and raise typed ScriptError subclasses on failure.

Listing flow:
    registry.load_records()          sorted snapshots of every valid VM
      └─ per record (bounded by max_concurrent_probes):
           liveness.is_running()     PID check, then command-line scan
           resolver.resolve()        cached → ping → arp (bridged only)
      └─ list[VmStateView]           same order as the records
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiofiles.os

from vm_reconcile._logging import get_logger
from vm_reconcile.address import AddressResolver
from vm_reconcile.boot_status import read_boot_status
from vm_reconcile.config import EngineConfig
from vm_reconcile.liveness import LivenessProber
from vm_reconcile.models import BootStatus, VmCreateOptions, VmRecord, VmStateView, VmStatus
from vm_reconcile.poller import AddressPoller, SleepFn
from vm_reconcile.registry import RegistryLoader
from vm_reconcile.vm_script import VmScript

logger = get_logger(__name__)


class VmManager:
    """Reconciliation engine facade.

    Args:
        config: Engine configuration (defaults from environment if None)
        sleep: Awaitable sleep used by the post-action poller (fake clock in tests)

    Example:
        ```python
        manager = VmManager(EngineConfig(vms_dir=Path("~/.vm/vms")))
        for view in await manager.list_vms():
            print(view.name, view.status.value, view.resolved_address)

        address = await manager.start_vm("web1")  # waits for the lease
        ```
    """

    def __init__(self, config: EngineConfig | None = None, *, sleep: SleepFn = asyncio.sleep) -> None:
        self.config = config or EngineConfig.from_settings()
        self.vms_dir: Path = self.config.get_vms_dir()

        self.script = VmScript(self.config.script_path, timeout_seconds=self.config.command_timeout_seconds)
        self.registry = RegistryLoader(self.vms_dir)
        self.liveness = LivenessProber(self.config.probe_timeout_seconds)
        self.resolver = AddressResolver(self.config.probe_timeout_seconds)
        self.poller = AddressPoller(
            self.registry,
            self.liveness,
            self.resolver,
            interval=self.config.poll_interval_seconds,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def list_vms(self) -> list[VmStateView]:
        """Reconcile every persisted VM against the live system.

        Returns views in record order (sorted by name). Probe failures
        degrade a view to STOPPED / no address; they never abort the listing.
        """
        records = await self.registry.load_records()
        if not records:
            return []

        semaphore = asyncio.Semaphore(self.config.max_concurrent_probes)

        async def reconcile_bounded(record: VmRecord) -> VmStateView:
            async with semaphore:
                return await self.reconcile(record)

        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(reconcile_bounded(record)) for record in records]

        views = [task.result() for task in tasks]
        logger.debug(
            "Listed VMs",
            extra={"count": len(views), "running": sum(1 for view in views if view.is_running)},
        )
        return views

    async def reconcile(self, record: VmRecord) -> VmStateView:
        """Derive status and current address of one record."""
        running = await self.liveness.is_running(record)
        address = await self.resolver.resolve(record, running)
        return VmStateView.from_record(
            record,
            status=VmStatus.RUNNING if running else VmStatus.STOPPED,
            resolved_address=address,
        )

    async def get_vm(self, name: str) -> VmStateView | None:
        """Reconciled view of a single VM, or None if it has no valid record."""
        record = await self.registry.find_record(name)
        if record is None:
            return None
        return await self.reconcile(record)

    async def get_address(self, name: str) -> str | None:
        """Address of ``name`` as reported by the script's ``ip`` subcommand.

        Port-forwarded VMs report ``127.0.0.1:<port>``. If the script knows
        nothing, the VM is reconciled locally instead. None means unknown.
        """
        if address := await self.script.ip(name):
            return address
        view = await self.get_vm(name)
        return view.resolved_address if view else None

    async def wait_for_address(self, name: str, max_attempts: int | None = None) -> str | None:
        """Poll for the address of ``name`` (see AddressPoller)."""
        return await self.poller.wait_for_address(name, max_attempts or self.config.poll_attempts)

    async def boot_status(self, name: str) -> BootStatus:
        """Cloud-init progress of ``name`` from its console log."""
        return await read_boot_status(self.vms_dir / name)

    async def check_script_available(self) -> bool:
        """True if the provisioning script runs. Never raises."""
        return await self.script.is_available()

    # ------------------------------------------------------------------
    # Mutating actions
    # ------------------------------------------------------------------

    async def create_vm(self, options: VmCreateOptions | None = None, *, wait: bool = True) -> str | None:
        """Create a VM and, if ``wait``, poll for its address.

        Returns:
            The new VM's address, or None if not known yet / not waited for

        Raises:
            ScriptError: The script failed (typed by failure kind)
        """
        options = options or VmCreateOptions()
        existing = await self._vm_dir_names()
        await self.script.create(options)

        name = options.name or await self._created_name(existing)
        logger.info("VM created", extra={"vm_name": name})
        if not wait or name is None:
            return None
        return await self.wait_for_address(name)

    async def start_vm(self, name: str, *, wait: bool = True) -> str | None:
        """Start ``name`` and, if ``wait``, poll for its address.

        Raises:
            ScriptError: The script failed (typed by failure kind)
        """
        await self.script.start(name)
        logger.info("VM started", extra={"vm_name": name})
        if not wait:
            return None
        return await self.wait_for_address(name)

    async def stop_vm(self, name: str) -> None:
        """Stop ``name``.

        Raises:
            ScriptError: The script failed; bridged VMs may need elevated rights
        """
        await self.script.stop(name)
        logger.info("VM stopped", extra={"vm_name": name})

    async def delete_vm(self, name: str) -> None:
        """Delete ``name`` without confirmation.

        Raises:
            ScriptError: The script failed
        """
        await self.script.delete(name)
        logger.info("VM deleted", extra={"vm_name": name})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _vm_dir_names(self) -> set[str]:
        if not await aiofiles.os.path.isdir(self.vms_dir):
            return set()
        return set(await aiofiles.os.listdir(self.vms_dir))

    async def _created_name(self, before: set[str]) -> str | None:
        """Name picked by the script when none was requested: the one new directory."""
        added = sorted((await self._vm_dir_names()) - before)
        if len(added) == 1:
            return added[0]
        logger.warning(
            "Cannot tell which VM was created; skipping address polling",
            extra={"new_entries": added},
        )
        return None
