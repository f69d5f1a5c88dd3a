"""Process invoker: run one external command and classify its outcome.

- run_command: spawn, capture stdout/stderr, enforce a timeout, classify failures
- classify_failure: map error text / spawn errors to a FailureKind

No retries happen here; retry policy belongs to callers (see poller.py).
"""

from __future__ import annotations

import asyncio
import errno
from collections.abc import Sequence

from vm_reconcile import constants
from vm_reconcile._logging import get_logger
from vm_reconcile.models import CommandResult, FailureKind
from vm_reconcile.platform_utils import ProcessWrapper
from vm_reconcile.resource_cleanup import cleanup_process

logger = get_logger(__name__)


def classify_failure(text: str, error: BaseException | None = None) -> FailureKind:
    """Classify a failed invocation from its spawn error and output text.

    Spawn errors win over text: a missing executable surfaces as
    FileNotFoundError (ENOENT) before any output exists.

    Args:
        text: Combined stderr/stdout of the failed command
        error: Exception raised while spawning, if any

    Returns:
        SCRIPT_NOT_FOUND, REQUIRES_ELEVATED_PRIVILEGE or GENERIC
    """
    if isinstance(error, FileNotFoundError) or getattr(error, "errno", None) == errno.ENOENT:
        return FailureKind.SCRIPT_NOT_FOUND
    lowered = text.lower()
    if any(marker in lowered for marker in constants.NOT_FOUND_MARKERS):
        return FailureKind.SCRIPT_NOT_FOUND
    if any(marker in lowered for marker in constants.PRIVILEGE_MARKERS):
        return FailureKind.REQUIRES_ELEVATED_PRIVILEGE
    return FailureKind.GENERIC


async def run_command(
    argv: Sequence[str],
    *,
    timeout: float = constants.DEFAULT_COMMAND_TIMEOUT_SECONDS,
) -> CommandResult:
    """Run an external command and return its classified result.

    Arguments are passed to exec directly (no shell); the caller is
    responsible for well-formed values. Stderr output alone is not a failure:
    only a non-zero exit status, a spawn error or a timeout is.

    Args:
        argv: Executable followed by its arguments
        timeout: Ceiling in seconds; the child is terminated on expiry

    Returns:
        CommandResult with trimmed stdout/stderr. Never raises for process
        failures; inspect ``exit_succeeded`` / ``failure_kind``.
    """
    args = [str(arg) for arg in argv]

    try:
        async_proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        kind = classify_failure(str(e), e)
        logger.debug(
            "Command spawn failed",
            extra={"argv": args, "error": str(e), "failure_kind": kind.value},
        )
        return CommandResult(argv=args, stderr=str(e), exit_succeeded=False, failure_kind=kind)

    proc = ProcessWrapper(async_proc)
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        logger.warning("Command timed out", extra={"argv": args, "timeout": timeout})
        await cleanup_process(proc, args[0])
        return CommandResult(
            argv=args,
            stderr=f"Command timed out after {timeout}s",
            returncode=proc.returncode,
            exit_succeeded=False,
            failure_kind=FailureKind.GENERIC,
        )
    except asyncio.CancelledError:
        await cleanup_process(proc, args[0])
        raise

    stdout = stdout_bytes.decode(errors="replace").strip()
    stderr = stderr_bytes.decode(errors="replace").strip()
    returncode = proc.returncode

    if returncode == 0:
        return CommandResult(argv=args, stdout=stdout, stderr=stderr, returncode=0, exit_succeeded=True)

    kind = classify_failure("\n".join(part for part in (stderr, stdout) if part))
    logger.debug(
        "Command failed",
        extra={"argv": args, "returncode": returncode, "failure_kind": kind.value},
    )
    return CommandResult(
        argv=args,
        stdout=stdout,
        stderr=stderr,
        returncode=returncode,
        exit_succeeded=False,
        failure_kind=kind,
    )
