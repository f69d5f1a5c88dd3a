"""vm-reconcile: VM state reconciliation and discovery for script-provisioned VMs.

Reads the VM records a provisioning script (``vm``) persists under
``~/.vm/vms``, cross-checks them against the live process table and the
local network, and wraps the script's mutating subcommands.

Quick Start (listing):
    ```python
    from vm_reconcile import VmManager

    manager = VmManager()
    for view in await manager.list_vms():
        print(view.name, view.status.value, view.resolved_address or "-")
    ```

Actions:
    ```python
    from vm_reconcile import VmCreateOptions, VmManager

    manager = VmManager()
    address = await manager.create_vm(VmCreateOptions(name="web1", image="debian13"))
    await manager.stop_vm("web1")
    ```

With Configuration:
    ```python
    from vm_reconcile import EngineConfig, VmManager

    config = EngineConfig(script_path="/opt/vm/vm", vms_dir=Path("/srv/vms"), poll_attempts=30)
    manager = VmManager(config)
    ```

Requirements:
    - The ``vm`` provisioning script on PATH (or configured)
    - ``ping`` and ``arp`` for bridged address discovery
    - Python 3.12+
"""

from vm_reconcile.config import EngineConfig
from vm_reconcile.exceptions import (
    ConfigError,
    ElevatedPrivilegeError,
    RecordParseError,
    ReconcileError,
    ScriptCommandError,
    ScriptError,
    ScriptNotFoundError,
)
from vm_reconcile.models import (
    BootStatus,
    CommandResult,
    FailureKind,
    NetworkMode,
    VmCreateOptions,
    VmRecord,
    VmStateView,
    VmStatus,
)
from vm_reconcile.vm_manager import VmManager

__all__ = [
    "BootStatus",
    "CommandResult",
    "ConfigError",
    "ElevatedPrivilegeError",
    "EngineConfig",
    "FailureKind",
    "NetworkMode",
    "RecordParseError",
    "ReconcileError",
    "ScriptCommandError",
    "ScriptError",
    "ScriptNotFoundError",
    "VmCreateOptions",
    "VmManager",
    "VmRecord",
    "VmStateView",
    "VmStatus",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("vm-reconcile")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
