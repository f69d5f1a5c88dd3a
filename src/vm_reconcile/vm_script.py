"""Client for the external provisioning script.

The script owns VM creation, disks and hypervisor invocation; this module
only builds its command lines and interprets exit status and stdout.
Mutating subcommands raise typed ScriptError subclasses; read helpers
(``ip``, ``--version``) degrade to None/False.
"""

from __future__ import annotations

from vm_reconcile import constants
from vm_reconcile._logging import get_logger
from vm_reconcile.models import CommandResult, VmCreateOptions
from vm_reconcile.subprocess_utils import run_command

logger = get_logger(__name__)


def parse_ip_output(output: str) -> str | None:
    """Extract an address from the script's ``ip`` output.

    Two formats are understood:
        "VM 'web1' IP Address: 192.168.105.20"  -> "192.168.105.20"
        "ssh user01@127.0.0.1 -p 2222"          -> "127.0.0.1:2222"
    """
    if match := constants.SCRIPT_IP_PATTERN.search(output):
        return match.group(1)
    if match := constants.SCRIPT_PORT_FORWARD_PATTERN.search(output):
        return f"{constants.LOOPBACK_ADDRESS}:{match.group(1)}"
    return None


class VmScript:
    """The configured provisioning executable.

    Args:
        script_path: Executable path, or a bare name resolved via PATH
        timeout_seconds: Ceiling applied to every invocation
    """

    def __init__(
        self,
        script_path: str = constants.DEFAULT_SCRIPT_PATH,
        *,
        timeout_seconds: float = constants.DEFAULT_COMMAND_TIMEOUT_SECONDS,
    ) -> None:
        self.script_path = script_path
        self.timeout_seconds = timeout_seconds

    async def run(self, *args: str, timeout: float | None = None) -> CommandResult:
        """Invoke the script with ``args`` and return the classified result."""
        return await run_command(
            [self.script_path, *args],
            timeout=timeout if timeout is not None else self.timeout_seconds,
        )

    async def _run_checked(self, operation: str, *args: str) -> CommandResult:
        logger.info(f"Running vm {operation}", extra={"operation": operation, "args": list(args)})
        result = await self.run(*args)
        result.raise_for_failure(operation)
        return result

    async def is_available(self) -> bool:
        """True if ``--version`` runs successfully. Never raises."""
        result = await self.run("--version", timeout=constants.VERSION_CHECK_TIMEOUT_SECONDS)
        if not result.exit_succeeded:
            logger.debug(
                "VM script unavailable",
                extra={"script_path": self.script_path, "failure_kind": result.failure_kind.value},
            )
        return result.exit_succeeded

    async def version(self) -> str | None:
        """Script version string, or None if the script cannot be run."""
        result = await self.run("--version", timeout=constants.VERSION_CHECK_TIMEOUT_SECONDS)
        if not result.exit_succeeded:
            return None
        return result.stdout or None

    async def list_output(self) -> str:
        """Raw ``list`` output (the script's own table)."""
        return (await self._run_checked("list", "list")).stdout

    async def create(self, options: VmCreateOptions | None = None) -> CommandResult:
        options = options or VmCreateOptions()
        return await self._run_checked("create", "create", *options.to_args())

    async def start(self, name: str) -> CommandResult:
        return await self._run_checked("start", "start", name)

    async def stop(self, name: str) -> CommandResult:
        return await self._run_checked("stop", "stop", name)

    async def delete(self, name: str) -> CommandResult:
        return await self._run_checked("delete", "delete", name, "--force")

    async def ip(self, name: str) -> str | None:
        """Address reported by ``ip <name>``; None if unknown or the call failed."""
        result = await self.run("ip", name)
        if not result.exit_succeeded:
            logger.debug(
                "ip subcommand failed",
                extra={"vm_name": name, "failure_kind": result.failure_kind.value},
            )
            return None
        return parse_ip_output(result.stdout)
