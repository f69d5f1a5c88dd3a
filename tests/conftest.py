"""Shared pytest fixtures for vm-reconcile tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from vm_reconcile import constants
from vm_reconcile.config import EngineConfig

# ============================================================================
# Environment isolation
# ============================================================================


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's VM_RECONCILE_* variables out of the tests."""
    for var in (
        "VM_RECONCILE_SCRIPT_PATH",
        "VM_RECONCILE_WORK_ROOT",
        "VM_RECONCILE_VMS_DIR",
        "VM_RECONCILE_COMMAND_TIMEOUT_SECONDS",
        "VM_RECONCILE_PROBE_TIMEOUT_SECONDS",
        "VM_RECONCILE_MAX_CONCURRENT_PROBES",
        "VM_RECONCILE_POLL_ATTEMPTS",
        "VM_RECONCILE_POLL_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(var, raising=False)


# ============================================================================
# VM storage root
# ============================================================================


@pytest.fixture
def vms_dir(tmp_path: Path) -> Path:
    """Empty VM storage root."""
    path = tmp_path / "vms"
    path.mkdir()
    return path


@pytest.fixture
def write_vm(vms_dir: Path) -> Callable[..., Path]:
    """Write a VM directory the way the provisioning script lays it out.

    Usage:
        write_vm("web1", net_type="bridge", ssh={"host": "dhcp-assigned", "port": 22}, pid=4242)
        write_vm("broken", raw_metadata="{not json")
        write_vm("empty", metadata=False)
    """

    def _write(
        name: str,
        /,
        *,
        metadata: bool = True,
        raw_metadata: str | None = None,
        pid: int | str | None = None,
        console: str | None = None,
        **fields: Any,
    ) -> Path:
        vm_dir = vms_dir / name
        vm_dir.mkdir(parents=True, exist_ok=True)

        if raw_metadata is not None:
            (vm_dir / constants.METADATA_FILENAME).write_text(raw_metadata)
        elif metadata:
            record: dict[str, Any] = {
                "name": name,
                "arch": "arm64",
                "image": "debian13",
                "username": "user01",
                "password": "secret",
                "net_type": "portfwd",
                "ssh": {"host": "127.0.0.1", "port": 2222},
            }
            record.update(fields)
            (vm_dir / constants.METADATA_FILENAME).write_text(json.dumps(record))

        if pid is not None:
            (vm_dir / constants.PID_FILENAME).write_text(f"{pid}\n")
        if console is not None:
            (vm_dir / constants.CONSOLE_LOG_FILENAME).write_text(console)
        return vm_dir

    return _write


# ============================================================================
# Fake provisioning script
# ============================================================================


@pytest.fixture
def make_script(tmp_path: Path) -> Callable[[str], Path]:
    """Create an executable /bin/sh script with the given body.

    Each invocation appends its arguments to ``<script>.calls`` so tests can
    assert on the command lines the engine built.
    """

    def _make(body: str, name: str = "vm") -> Path:
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir(exist_ok=True)
        path = bin_dir / name
        calls = bin_dir / f"{name}.calls"
        path.write_text(f'#!/bin/sh\necho "$*" >> "{calls}"\n{body}\n')
        path.chmod(0o755)
        return path

    return _make


@pytest.fixture
def script_calls() -> Callable[[Path], list[str]]:
    """Argument lines recorded by a make_script script, one per invocation."""

    def _read(script: Path) -> list[str]:
        calls = script.with_name(f"{script.name}.calls")
        if not calls.exists():
            return []
        return calls.read_text().splitlines()

    return _read


# ============================================================================
# Fake clock
# ============================================================================


class FakeSleep:
    """Awaitable sleep that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def elapsed(self) -> float:
        return sum(self.calls)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def engine_config(vms_dir: Path) -> EngineConfig:
    """Config pointing at the temporary storage root with a missing script."""
    return EngineConfig(
        script_path=str(vms_dir.parent / "no-such-vm-script"),
        vms_dir=vms_dir,
        probe_timeout_seconds=1.0,
        poll_attempts=3,
    )
