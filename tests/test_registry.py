"""Tests for the registry loader (real filesystem via tmp_path)."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from vm_reconcile.exceptions import RecordParseError
from vm_reconcile.models import NetworkMode
from vm_reconcile.registry import RegistryLoader, read_metadata, read_pid_file


class TestReadPidFile:
    async def test_valid(self, tmp_path: Path) -> None:
        path = tmp_path / "qemu.pid"
        path.write_text("4242\n")
        assert await read_pid_file(path) == 4242

    async def test_missing(self, tmp_path: Path) -> None:
        assert await read_pid_file(tmp_path / "qemu.pid") is None

    @pytest.mark.parametrize("content", ["", "abc", "0", "-5"])
    async def test_unusable_content(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "qemu.pid"
        path.write_text(content)
        assert await read_pid_file(path) is None


class TestReadMetadata:
    async def test_malformed_json(self, tmp_path: Path) -> None:
        path = tmp_path / "info.json"
        path.write_text("{not json")

        with pytest.raises(RecordParseError) as exc_info:
            await read_metadata(path)

        assert exc_info.value.path == path
        assert exc_info.value.context["path"] == str(path)


class TestRegistryLoader:
    """Enumeration of VM directories."""

    async def test_missing_root_is_empty(self, tmp_path: Path) -> None:
        assert await RegistryLoader(tmp_path / "nope").load_records() == []

    async def test_sorted_by_name(self, vms_dir: Path, write_vm: Callable[..., Path]) -> None:
        for name in ("zeta", "alpha", "mid"):
            write_vm(name)

        records = await RegistryLoader(vms_dir).load_records()

        assert [record.name for record in records] == ["alpha", "mid", "zeta"]

    async def test_directory_without_metadata_excluded(self, vms_dir: Path, write_vm: Callable[..., Path]) -> None:
        write_vm("web1")
        write_vm("half-created", metadata=False)

        records = await RegistryLoader(vms_dir).load_records()

        assert [record.name for record in records] == ["web1"]

    async def test_stray_files_ignored(self, vms_dir: Path, write_vm: Callable[..., Path]) -> None:
        write_vm("web1")
        (vms_dir / ".DS_Store").write_text("")

        records = await RegistryLoader(vms_dir).load_records()

        assert [record.name for record in records] == ["web1"]

    async def test_corrupt_record_skipped_with_warning(
        self,
        vms_dir: Path,
        write_vm: Callable[..., Path],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        write_vm("web1")
        write_vm("broken", raw_metadata="{not json")

        with caplog.at_level(logging.WARNING, logger="vm_reconcile"):
            records = await RegistryLoader(vms_dir).load_records()

        assert [record.name for record in records] == ["web1"]
        assert "Skipping corrupt VM record" in caplog.text

    async def test_record_fields(self, vms_dir: Path, write_vm: Callable[..., Path]) -> None:
        write_vm(
            "web1",
            net_type="bridge",
            ssh={"host": "dhcp-assigned", "port": 22},
            static_ip="192.168.1.60",
            pid=4242,
        )

        (record,) = await RegistryLoader(vms_dir).load_records()

        assert record.network_mode is NetworkMode.BRIDGE
        assert record.ssh_host == "dhcp-assigned"
        assert record.static_ip == "192.168.1.60"
        assert record.process_id == 4242
        assert record.directory == vms_dir / "web1"

    async def test_find_record(self, vms_dir: Path, write_vm: Callable[..., Path]) -> None:
        write_vm("db1")
        registry = RegistryLoader(vms_dir)

        assert (await registry.find_record("db1")).name == "db1"  # type: ignore[union-attr]
        assert await registry.find_record("ghost") is None

    async def test_find_corrupt_record(self, vms_dir: Path, write_vm: Callable[..., Path]) -> None:
        write_vm("broken", raw_metadata="[]")

        assert await RegistryLoader(vms_dir).find_record("broken") is None

    async def test_unreadable_root_is_empty(
        self,
        vms_dir: Path,
        write_vm: Callable[..., Path],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        write_vm("web1")
        denied = AsyncMock(side_effect=PermissionError(13, "Permission denied"))

        with (
            patch("vm_reconcile.registry.aiofiles.os.listdir", denied),
            caplog.at_level(logging.WARNING, logger="vm_reconcile"),
        ):
            records = await RegistryLoader(vms_dir).load_records()

        assert records == []
        assert "Cannot read VM storage root" in caplog.text


class TestPartialRecords:
    """Absent and null metadata values fall back instead of dropping the VM."""

    async def test_null_fields(self, vms_dir: Path, write_vm: Callable[..., Path]) -> None:
        write_vm(
            "beta",
            arch=None,
            image=None,
            username=None,
            password=None,
            virt_type=None,
            ssh={"host": None, "port": 22},
        )

        (record,) = await RegistryLoader(vms_dir).load_records()

        assert record.name == "beta"
        assert record.architecture == "unknown"
        assert record.image == "unknown"
        assert record.username == "unknown"
        assert record.password == "unknown"
        assert record.credentials == "unknown"
        assert record.virt_type is None
        assert record.ssh_host is None
        assert record.ssh_port == 22

    async def test_null_name_uses_directory(self, vms_dir: Path, write_vm: Callable[..., Path]) -> None:
        write_vm("gamma", name=None)

        (record,) = await RegistryLoader(vms_dir).load_records()

        assert record.name == "gamma"

    async def test_missing_keys(self, vms_dir: Path, write_vm: Callable[..., Path]) -> None:
        write_vm("delta", raw_metadata='{"name": "delta", "net_type": "bridge"}')

        (record,) = await RegistryLoader(vms_dir).load_records()

        assert record.network_mode is NetworkMode.BRIDGE
        assert record.credentials == "unknown"
        assert record.ssh_host is None
        assert record.ssh_port is None

    async def test_null_ssh_block(self, vms_dir: Path, write_vm: Callable[..., Path]) -> None:
        write_vm("epsilon", ssh=None)

        (record,) = await RegistryLoader(vms_dir).load_records()

        assert record.ssh_host is None
        assert record.username == "user01"
