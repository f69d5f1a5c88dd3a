"""Engine configuration for vm-reconcile.

EngineConfig holds the per-instance options of a VmManager: the script
path, the VM storage root, timeouts, probe concurrency and polling policy.

Example:
    ```python
    from vm_reconcile import EngineConfig, VmManager

    # Defaults (environment variables honoured)
    manager = VmManager()

    # Explicit configuration, e.g. a fake script in tests
    config = EngineConfig(script_path="/opt/vm/vm", vms_dir=Path("/tmp/vms"))
    manager = VmManager(config)
    views = await manager.list_vms()
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Self

from pydantic import BaseModel, ConfigDict, Field

from vm_reconcile import constants
from vm_reconcile.exceptions import ConfigError
from vm_reconcile.settings import Settings


class EngineConfig(BaseModel):
    """Configuration for VmManager.

    Attributes:
        script_path: Provisioning executable. A bare name is resolved via PATH.
        vms_dir: VM storage root. If None, resolved from Settings
            (VM_RECONCILE_VMS_DIR, else ~/.vm/vms).
        command_timeout_seconds: Ceiling for script invocations. Default: 600.
        probe_timeout_seconds: Ceiling for each liveness/address probe. Default: 2.
        max_concurrent_probes: Records reconciled in parallel. Default: 8.
        poll_attempts: Post-action poller attempts. Default: 10.
        poll_interval_seconds: Wait before each poller attempt. Default: 2.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    script_path: str = Field(
        default=constants.DEFAULT_SCRIPT_PATH,
        min_length=1,
        description="Provisioning executable (path or name on PATH)",
    )
    vms_dir: Path | None = Field(
        default=None,
        description="VM storage root (auto-detect if None)",
    )

    command_timeout_seconds: float = Field(
        default=constants.DEFAULT_COMMAND_TIMEOUT_SECONDS,
        gt=0,
        le=3600,
        description="Timeout for script invocations",
    )
    probe_timeout_seconds: float = Field(
        default=constants.DEFAULT_PROBE_TIMEOUT_SECONDS,
        gt=0,
        le=60,
        description="Timeout for each liveness/address probe",
    )
    max_concurrent_probes: int = Field(
        default=constants.DEFAULT_MAX_CONCURRENT_PROBES,
        ge=1,
        le=64,
        description="Records reconciled concurrently during a listing",
    )
    poll_attempts: int = Field(
        default=constants.DEFAULT_POLL_ATTEMPTS,
        ge=1,
        le=1000,
        description="Attempts made by the post-action poller",
    )
    poll_interval_seconds: float = Field(
        default=constants.DEFAULT_POLL_INTERVAL_SECONDS,
        ge=0,
        le=300,
        description="Wait before each poller attempt",
    )

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides: object) -> Self:
        """Build a config from environment-backed Settings plus explicit overrides."""
        settings = settings or Settings()
        values: dict[str, object] = {
            "script_path": settings.script_path,
            "vms_dir": settings.get_vms_dir(),
            "command_timeout_seconds": settings.command_timeout_seconds,
            "probe_timeout_seconds": settings.probe_timeout_seconds,
            "max_concurrent_probes": settings.max_concurrent_probes,
            "poll_attempts": settings.poll_attempts,
            "poll_interval_seconds": settings.poll_interval_seconds,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)

    def get_vms_dir(self) -> Path:
        """Get the VM storage root, resolving it if not configured.

        Detection order:
        1. Explicit vms_dir from config
        2. VM_RECONCILE_VMS_DIR / VM_RECONCILE_WORK_ROOT environment variables
        3. ~/.vm/vms

        A root that does not exist yet is returned as-is (first-run state).

        Raises:
            ConfigError: The path exists but is not a directory
        """
        path = self.vms_dir.expanduser() if self.vms_dir is not None else Settings().get_vms_dir()
        if path.exists() and not path.is_dir():
            raise ConfigError(f"VM storage root is not a directory: {path}", context={"vms_dir": str(path)})
        return path
