"""Exception hierarchy for vm-reconcile.

All exceptions inherit from ReconcileError.

Hierarchy:
    ReconcileError (base)
    ├── ScriptError (external script invocation failed)
    │   ├── ScriptNotFoundError      ← executable missing/unresolvable
    │   ├── ElevatedPrivilegeError   ← operation needs sudo
    │   └── ScriptCommandError       ← any other non-zero exit
    ├── RecordParseError             ← malformed per-VM metadata (read path, contained)
    └── ConfigError                  ← invalid engine configuration

An unresolved address is not an error: resolvers return None.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

    from vm_reconcile.models import CommandResult


class ReconcileError(Exception):
    """Base exception for all vm-reconcile errors with structured context.

    Attributes:
        message: Human-readable error message
        context: Dictionary of structured error context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ScriptError(ReconcileError):
    """External script invocation failed.

    Raised by mutating operations (create/start/stop/delete) so the
    presentation layer can react to the failure kind. Read paths never
    raise this; they degrade to absent values instead.

    Attributes:
        result: The classified CommandResult of the failed invocation
        operation: Script subcommand that failed (e.g. "start")
    """

    def __init__(
        self,
        message: str,
        result: CommandResult,
        *,
        operation: str,
        context: dict[str, Any] | None = None,
    ):
        ctx = context or {}
        ctx.update(
            {
                "operation": operation,
                "returncode": result.returncode,
                "failure_kind": result.failure_kind.value,
            }
        )
        super().__init__(message, ctx)
        self.result = result
        self.operation = operation


class ScriptNotFoundError(ScriptError):
    """The configured script path does not resolve to an executable.

    Surfaced distinctly so a caller can prompt for reconfiguration.
    """


class ElevatedPrivilegeError(ScriptError):
    """The script reported that the operation needs elevated rights.

    Typical for bridged networking helpers that need passwordless sudo.
    """


class ScriptCommandError(ScriptError):
    """The script exited non-zero for any other reason.

    The combined stderr/stdout is kept in ``result.diagnostic``.
    """


class RecordParseError(ReconcileError):
    """A VM metadata record could not be read or parsed.

    Contained by the registry: the single entry is logged and skipped.

    Attributes:
        path: Metadata file that failed to parse
    """

    def __init__(self, message: str, path: Path, context: dict[str, Any] | None = None):
        ctx = context or {}
        ctx["path"] = str(path)
        super().__init__(message, ctx)
        self.path = path


class ConfigError(ReconcileError):
    """Invalid engine configuration.

    Raised when a configured path exists but cannot be used (e.g. the VM
    storage root is a regular file).
    """
