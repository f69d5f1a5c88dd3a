"""Data models for vm-reconcile."""

from enum import Enum
from pathlib import Path
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vm_reconcile.constants import DISCOVERY_DOMAIN, UNKNOWN
from vm_reconcile.exceptions import (
    ElevatedPrivilegeError,
    ScriptCommandError,
    ScriptNotFoundError,
)


class NetworkMode(str, Enum):
    """How a VM is attached to the host network."""

    BRIDGE = "bridge"
    FORWARDED = "forwarded"


class VmStatus(str, Enum):
    """Derived liveness of a VM."""

    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


class FailureKind(str, Enum):
    """Classification of an external invocation outcome."""

    NONE = "none"
    SCRIPT_NOT_FOUND = "script_not_found"
    REQUIRES_ELEVATED_PRIVILEGE = "requires_elevated_privilege"
    GENERIC = "generic"


# ============================================================================
# On-disk metadata (info.json)
# ============================================================================


class SshInfo(BaseModel):
    """``ssh`` block of the metadata file."""

    model_config = ConfigDict(extra="ignore")

    host: str = ""
    port: int | None = Field(default=None, ge=0, le=65535)

    @field_validator("host", mode="before")
    @classmethod
    def _null_host(cls, value: object) -> object:
        return "" if value is None else value


class VmMetadata(BaseModel):
    """Schema of ``info.json`` as written by the provisioning script.

    Unknown keys are ignored so newer script versions stay readable. A JSON
    null in a text field reads the same as a missing key.
    """

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    arch: str = ""
    image: str = ""
    username: str = ""
    password: str = ""
    net_type: NetworkMode = NetworkMode.FORWARDED
    virt_type: str = ""
    static_ip: str | None = None
    ssh: SshInfo = Field(default_factory=SshInfo)

    @field_validator("name", "arch", "image", "username", "password", "virt_type", mode="before")
    @classmethod
    def _null_text(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("net_type", mode="before")
    @classmethod
    def _normalize_net_type(cls, value: object) -> object:
        # Older scripts wrote "portfwd" (or nothing) for user-mode networking
        if value in (None, "", "portfwd"):
            return NetworkMode.FORWARDED
        return value

    @field_validator("ssh", mode="before")
    @classmethod
    def _null_ssh(cls, value: object) -> object:
        return {} if value is None else value


# ============================================================================
# Engine records
# ============================================================================


class VmRecord(BaseModel):
    """One persisted VM, as read from its directory.

    Read-only from the engine's perspective: the provisioning script owns
    the files, the engine only snapshots them.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="VM name, also the directory key")
    architecture: str = Field(default=UNKNOWN, description="Guest architecture (informational)")
    image: str = Field(default=UNKNOWN, description="Base image (informational)")
    network_mode: NetworkMode = Field(default=NetworkMode.FORWARDED)
    username: str = Field(default=UNKNOWN)
    password: str = Field(default=UNKNOWN)
    ssh_host: str | None = Field(default=None, description="Last persisted SSH host")
    ssh_port: int | None = Field(default=None, description="Last persisted SSH port")
    static_ip: str | None = Field(default=None, description="Address pinned at creation, if any")
    virt_type: str | None = Field(default=None)
    process_id: int | None = Field(default=None, description="PID from the PID file, if parsable")
    directory: Path

    @classmethod
    def from_metadata(cls, metadata: VmMetadata, directory: Path, process_id: int | None = None) -> Self:
        """Build a record from parsed metadata, filling sentinels for absent values."""
        return cls(
            name=metadata.name or directory.name,
            architecture=metadata.arch or UNKNOWN,
            image=metadata.image or UNKNOWN,
            network_mode=metadata.net_type,
            username=metadata.username or UNKNOWN,
            password=metadata.password or UNKNOWN,
            ssh_host=metadata.ssh.host or None,
            ssh_port=metadata.ssh.port,
            static_ip=metadata.static_ip or None,
            virt_type=metadata.virt_type or None,
            process_id=process_id,
            directory=directory,
        )

    @property
    def hostname(self) -> str:
        """Local discovery hostname (underscores are not valid in hostnames)."""
        return f"{self.name.replace('_', '-')}.{DISCOVERY_DOMAIN}"

    @property
    def credentials(self) -> str:
        """``"user / pass"``, or ``"unknown"`` when no username was recorded."""
        if self.username == UNKNOWN:
            return UNKNOWN
        return f"{self.username} / {self.password}"


class VmStateView(VmRecord):
    """Reconciled state of one VM for a single listing pass. Never persisted."""

    status: VmStatus
    resolved_address: str | None = None

    @classmethod
    def from_record(cls, record: VmRecord, *, status: VmStatus, resolved_address: str | None) -> Self:
        return cls(**record.model_dump(), status=status, resolved_address=resolved_address)

    @property
    def is_running(self) -> bool:
        return self.status is VmStatus.RUNNING


class CommandResult(BaseModel):
    """Outcome of one external invocation."""

    argv: list[str] = Field(default_factory=list)
    stdout: str = Field(default="", description="Trimmed standard output")
    stderr: str = Field(default="", description="Trimmed standard error")
    returncode: int | None = Field(default=None, description="Exit status (None if never spawned)")
    exit_succeeded: bool = False
    failure_kind: FailureKind = FailureKind.NONE

    @property
    def diagnostic(self) -> str:
        """Combined stderr/stdout text for error reporting."""
        return "\n".join(part for part in (self.stderr, self.stdout) if part)

    def raise_for_failure(self, operation: str) -> None:
        """Raise the typed ScriptError matching this result's failure kind.

        Does nothing for successful results.
        """
        if self.exit_succeeded:
            return
        detail = self.diagnostic or f"exit status {self.returncode}"
        match self.failure_kind:
            case FailureKind.SCRIPT_NOT_FOUND:
                raise ScriptNotFoundError(
                    f"VM script not found: {self.argv[0] if self.argv else '?'}",
                    self,
                    operation=operation,
                )
            case FailureKind.REQUIRES_ELEVATED_PRIVILEGE:
                raise ElevatedPrivilegeError(
                    f"'{operation}' requires elevated privileges: {detail}",
                    self,
                    operation=operation,
                )
            case _:
                raise ScriptCommandError(f"'{operation}' failed: {detail}", self, operation=operation)


class VmCreateOptions(BaseModel):
    """Options forwarded to the script's ``create`` subcommand.

    Every field is optional; the script picks defaults for anything omitted.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str | None = None
    arch: Literal["arm64", "amd64"] | None = None
    user: str | None = None
    password: str | None = None
    memory: str | None = Field(default=None, description="e.g. '2G'")
    cpus: str | None = None
    disk: str | None = Field(default=None, description="e.g. '10G'")
    image: str | None = Field(default=None, description="e.g. 'debian13'")

    def to_args(self) -> list[str]:
        """Render as ``create`` flags, skipping unset and empty values."""
        flags = (
            ("--name", self.name),
            ("--arch", self.arch),
            ("--user", self.user),
            ("--pass", self.password),
            ("--memory", self.memory),
            ("--cpus", self.cpus),
            ("--disk", self.disk),
            ("--image", self.image),
        )
        args: list[str] = []
        for flag, value in flags:
            if value:
                args.extend([flag, value])
        return args


class BootStatus(BaseModel):
    """Boot progress scraped from a VM's serial console log."""

    console_log_present: bool = False
    cloud_init_ready: bool = False
    network_configured: bool = False
    address: str | None = None
