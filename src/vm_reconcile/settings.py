"""Runtime configuration from environment variables."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from vm_reconcile import constants


class Settings(BaseSettings):
    """Runtime configuration from environment variables.

    All settings can be overridden via environment variables with VM_RECONCILE_ prefix.
    Example: VM_RECONCILE_SCRIPT_PATH=/usr/local/bin/vm
    """

    model_config = SettingsConfigDict(
        env_prefix="VM_RECONCILE_",
        extra="ignore",
    )

    # External provisioning script
    script_path: str = constants.DEFAULT_SCRIPT_PATH

    # Storage layout
    work_root: Path = Field(default_factory=lambda: Path.home() / constants.DEFAULT_WORK_ROOT_NAME)
    vms_dir: Path | None = None  # None = <work_root>/vms

    # Timeouts
    command_timeout_seconds: float = constants.DEFAULT_COMMAND_TIMEOUT_SECONDS
    probe_timeout_seconds: float = constants.DEFAULT_PROBE_TIMEOUT_SECONDS

    # Reconciliation
    max_concurrent_probes: int = constants.DEFAULT_MAX_CONCURRENT_PROBES

    # Post-action polling
    poll_attempts: int = constants.DEFAULT_POLL_ATTEMPTS
    poll_interval_seconds: float = constants.DEFAULT_POLL_INTERVAL_SECONDS

    def get_vms_dir(self) -> Path:
        """VM storage root: explicit vms_dir, else <work_root>/vms."""
        if self.vms_dir is not None:
            return self.vms_dir.expanduser()
        return self.work_root.expanduser() / constants.VMS_DIR_NAME
