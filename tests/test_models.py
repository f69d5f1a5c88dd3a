"""Tests for vm-reconcile data models."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from vm_reconcile.constants import UNKNOWN
from vm_reconcile.exceptions import ElevatedPrivilegeError, ScriptCommandError, ScriptNotFoundError
from vm_reconcile.models import (
    CommandResult,
    FailureKind,
    NetworkMode,
    VmCreateOptions,
    VmMetadata,
    VmRecord,
    VmStateView,
    VmStatus,
)


class TestVmMetadata:
    """Parsing of info.json as the provisioning script writes it."""

    def test_full_record(self) -> None:
        metadata = VmMetadata.model_validate_json(
            '{"name": "web1", "arch": "arm64", "image": "debian13", "username": "user01",'
            ' "password": "pw", "net_type": "bridge", "virt_type": "hvf",'
            ' "ssh": {"host": "dhcp-assigned", "port": 22}}'
        )

        assert metadata.net_type is NetworkMode.BRIDGE
        assert metadata.ssh.host == "dhcp-assigned"
        assert metadata.ssh.port == 22

    @pytest.mark.parametrize("net_type", ["portfwd", "", None])
    def test_legacy_net_types_are_forwarded(self, net_type: str | None) -> None:
        metadata = VmMetadata.model_validate({"name": "db1", "net_type": net_type})
        assert metadata.net_type is NetworkMode.FORWARDED

    def test_unknown_keys_ignored(self) -> None:
        metadata = VmMetadata.model_validate({"name": "db1", "created_at": "2026-01-01", "disk": "10G"})
        assert metadata.name == "db1"

    def test_null_ssh_block(self) -> None:
        assert VmMetadata.model_validate({"ssh": None}).ssh.host == ""

    def test_unknown_net_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            VmMetadata.model_validate({"net_type": "tap"})


class TestVmRecord:
    def test_from_metadata_fills_sentinels(self, tmp_path: Path) -> None:
        record = VmRecord.from_metadata(VmMetadata(), tmp_path / "bare", process_id=None)

        assert record.name == "bare"
        assert record.architecture == UNKNOWN
        assert record.username == UNKNOWN
        assert record.ssh_host is None
        assert record.credentials == UNKNOWN

    def test_credentials(self, tmp_path: Path) -> None:
        record = VmRecord(name="web1", username="user01", password="pw", directory=tmp_path)
        assert record.credentials == "user01 / pw"

    def test_hostname_replaces_underscores(self, tmp_path: Path) -> None:
        assert VmRecord(name="my_vm", directory=tmp_path).hostname == "my-vm.local"

    def test_frozen(self, tmp_path: Path) -> None:
        record = VmRecord(name="web1", directory=tmp_path)
        with pytest.raises(ValidationError):
            record.name = "web2"  # type: ignore[misc]

    def test_state_view_copies_record(self, tmp_path: Path) -> None:
        record = VmRecord(name="web1", process_id=42, directory=tmp_path)

        view = VmStateView.from_record(record, status=VmStatus.RUNNING, resolved_address="192.168.1.5")

        assert view.name == "web1"
        assert view.process_id == 42
        assert view.is_running is True


class TestCommandResult:
    def test_success_does_not_raise(self) -> None:
        CommandResult(argv=["vm"], returncode=0, exit_succeeded=True).raise_for_failure("start")

    @pytest.mark.parametrize(
        ("kind", "error_type"),
        [
            (FailureKind.SCRIPT_NOT_FOUND, ScriptNotFoundError),
            (FailureKind.REQUIRES_ELEVATED_PRIVILEGE, ElevatedPrivilegeError),
            (FailureKind.GENERIC, ScriptCommandError),
        ],
    )
    def test_failure_kind_selects_exception(self, kind: FailureKind, error_type: type[Exception]) -> None:
        result = CommandResult(argv=["vm", "stop", "web1"], stderr="nope", returncode=1, failure_kind=kind)

        with pytest.raises(error_type):
            result.raise_for_failure("stop")

    def test_diagnostic_combines_streams(self) -> None:
        result = CommandResult(stdout="out", stderr="err")
        assert result.diagnostic == "err\nout"


class TestVmCreateOptions:
    def test_empty_renders_nothing(self) -> None:
        assert VmCreateOptions().to_args() == []

    def test_password_flag(self) -> None:
        assert VmCreateOptions(password="pw").to_args() == ["--pass", "pw"]

    def test_rejects_unknown_arch(self) -> None:
        with pytest.raises(ValidationError):
            VmCreateOptions(arch="riscv64")  # type: ignore[arg-type]

    def test_rejects_unknown_field(self) -> None:
        with pytest.raises(ValidationError):
            VmCreateOptions(ram="2G")  # type: ignore[call-arg]
