"""Tests for the vmr command-line interface (click CliRunner)."""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner

from vm_reconcile.cli import (
    EXIT_CLI_ERROR,
    EXIT_FAILURE,
    EXIT_PRIVILEGE_REQUIRED,
    EXIT_SCRIPT_ERROR,
    EXIT_SCRIPT_NOT_FOUND,
    EXIT_SUCCESS,
    format_error,
    main,
)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def invoke(runner: CliRunner, vms_dir: Path, tmp_path: Path) -> Callable[..., object]:
    """Invoke vmr against the temporary storage root (missing script by default)."""

    def _invoke(*args: str, script: Path | None = None):
        script_path = str(script) if script else str(tmp_path / "no-such-vm-script")
        return runner.invoke(main, ["-q", "--vms-dir", str(vms_dir), "--script", script_path, *args])

    return _invoke


class TestFormatError:
    def test_what_why_fix(self) -> None:
        text = format_error("VM script not found", "vm is not on PATH", ["Install it"])

        assert "Error: VM script not found" in text
        assert "vm is not on PATH" in text
        assert "Suggestions:" in text
        assert "Install it" in text


class TestList:
    def test_table(self, invoke: Callable[..., object], write_vm: Callable[..., Path]) -> None:
        write_vm("db1", pid=os.getpid())

        result = invoke("list")

        assert result.exit_code == EXIT_SUCCESS, result.output
        header, row = result.stdout.splitlines()
        assert header.split() == ["NAME", "STATUS", "ADDRESS", "NETWORK", "ARCH", "CREDENTIALS"]
        assert row.split()[:5] == ["db1", "RUNNING", "127.0.0.1", "forwarded", "arm64"]
        assert "user01 / secret" in row

    def test_json(self, invoke: Callable[..., object], write_vm: Callable[..., Path]) -> None:
        write_vm("db1", pid=os.getpid())

        result = invoke("list", "--json")

        assert result.exit_code == EXIT_SUCCESS, result.output
        (entry,) = json.loads(result.stdout)
        assert entry["name"] == "db1"
        assert entry["status"] == "RUNNING"
        assert entry["resolved_address"] == "127.0.0.1"
        assert entry["hostname"] == "db1.local"

    def test_empty(self, invoke: Callable[..., object]) -> None:
        result = invoke("list")

        assert result.exit_code == EXIT_SUCCESS
        assert "No VMs found" in result.output


class TestActions:
    def test_missing_script(self, invoke: Callable[..., object]) -> None:
        result = invoke("start", "web1", "--no-wait")

        assert result.exit_code == EXIT_SCRIPT_NOT_FOUND
        assert "VM script not found" in result.output

    def test_privilege_required(self, invoke: Callable[..., object], make_script: Callable[[str], Path]) -> None:
        script = make_script('echo "Failed to send stop signal (requires sudo)" >&2\nexit 1')

        result = invoke("stop", "web1", script=script)

        assert result.exit_code == EXIT_PRIVILEGE_REQUIRED
        assert "needs elevated privileges" in result.output

    def test_generic_failure(self, invoke: Callable[..., object], make_script: Callable[[str], Path]) -> None:
        script = make_script('echo "Error: VM web1 does not exist" >&2\nexit 1')

        result = invoke("delete", "web1", script=script)

        assert result.exit_code == EXIT_SCRIPT_ERROR
        assert "does not exist" in result.output

    def test_stop(
        self,
        invoke: Callable[..., object],
        make_script: Callable[[str], Path],
        script_calls: Callable[[Path], list[str]],
    ) -> None:
        script = make_script("exit 0")

        result = invoke("stop", "web1", script=script)

        assert result.exit_code == EXIT_SUCCESS
        assert "web1: stopped" in result.stdout
        assert script_calls(script) == ["stop web1"]

    def test_create_no_wait(
        self,
        invoke: Callable[..., object],
        make_script: Callable[[str], Path],
        script_calls: Callable[[Path], list[str]],
    ) -> None:
        script = make_script("exit 0")

        result = invoke("create", "--name", "web1", "--arch", "amd64", "--pass", "pw", "--no-wait", script=script)

        assert result.exit_code == EXIT_SUCCESS, result.output
        assert script_calls(script) == ["create --name web1 --arch amd64 --pass pw"]

    def test_create_rejects_unknown_arch(self, invoke: Callable[..., object]) -> None:
        result = invoke("create", "--arch", "riscv64")

        assert result.exit_code == EXIT_CLI_ERROR


class TestReads:
    def test_ip(self, invoke: Callable[..., object], make_script: Callable[[str], Path]) -> None:
        script = make_script("echo \"VM 'web1' IP Address: 192.168.105.20\"")

        result = invoke("ip", "web1", script=script)

        assert result.exit_code == EXIT_SUCCESS
        assert result.stdout.strip() == "192.168.105.20"

    def test_ip_unknown(self, invoke: Callable[..., object]) -> None:
        result = invoke("ip", "ghost")

        assert result.exit_code == EXIT_FAILURE
        assert "address unknown" in result.output

    def test_status(self, invoke: Callable[..., object], write_vm: Callable[..., Path]) -> None:
        write_vm(
            "web1",
            console="ci-info: | enp0s1 | True | 192.168.64.5 | 255.255.255.0 | global | . |\nCLOUD-INIT-READY\n",
        )

        result = invoke("status", "web1")

        assert result.exit_code == EXIT_SUCCESS
        assert "Cloud-init: ready" in result.stdout
        assert "Address: 192.168.64.5" in result.stdout

    def test_status_not_started(self, invoke: Callable[..., object], write_vm: Callable[..., Path]) -> None:
        write_vm("web1")

        result = invoke("status", "web1")

        assert result.exit_code == EXIT_FAILURE
        assert "not started yet" in result.output


class TestGlobalOptions:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == EXIT_SUCCESS
        assert "vmr" in result.output

    def test_vms_dir_must_not_be_a_file(self, runner: CliRunner, tmp_path: Path) -> None:
        regular_file = tmp_path / "vms-file"
        regular_file.write_text("")

        result = runner.invoke(main, ["--vms-dir", str(regular_file), "list"])

        assert result.exit_code == EXIT_CLI_ERROR
