"""Stopping a child process that outlived its timeout.

Runs on the error path of a probe or script invocation, so it logs
problems instead of raising them.
"""

import asyncio

from vm_reconcile import constants
from vm_reconcile._logging import get_logger
from vm_reconcile.platform_utils import ProcessWrapper

logger = get_logger(__name__)


async def cleanup_process(
    proc: ProcessWrapper | None,
    name: str,
    term_timeout: float = constants.CLEANUP_TERM_TIMEOUT_SECONDS,
    kill_timeout: float = constants.CLEANUP_KILL_TIMEOUT_SECONDS,
) -> bool:
    """Escalate SIGTERM → SIGKILL until ``proc`` exits, reaping it each time.

    Args:
        proc: Process to stop; None is a no-op
        name: Executable name for log messages (e.g. "vm", "ping")
        term_timeout: Grace period after SIGTERM
        kill_timeout: Grace period after SIGKILL

    Returns:
        True once the process is gone, False if it survived both signals
        or could not be signalled
    """
    if proc is None or proc.returncode is not None:
        return True

    phases = (
        ("SIGTERM", proc.terminate, term_timeout),
        ("SIGKILL", proc.kill, kill_timeout),
    )
    try:
        for signal_name, send, grace in phases:
            await send()
            try:
                await proc.wait_with_timeout(grace)
            except TimeoutError:
                logger.warning(
                    f"{name} still running after {signal_name}",
                    extra={"pid": proc.pid, "grace_seconds": grace},
                )
                continue
            logger.debug(f"{name} exited after {signal_name}", extra={"pid": proc.pid, "returncode": proc.returncode})
            return True

    except ProcessLookupError:
        return True
    except (OSError, RuntimeError, asyncio.InvalidStateError) as e:
        logger.error(
            f"Cannot stop {name}",
            extra={"pid": proc.pid, "error": str(e), "error_type": type(e).__name__},
            exc_info=True,
        )
        return False

    logger.error(f"{name} survived SIGKILL", extra={"pid": proc.pid})
    return False
