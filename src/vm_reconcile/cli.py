"""Command-line interface for vm-reconcile.

Usage:
    vmr list                       # Reconciled table of all VMs
    vmr list --json | jq .         # Same, as JSON
    vmr create --name web1 --image debian13
    vmr start web1                 # Start and wait for the address
    vmr ip web1
    vmr status web1                # cloud-init progress from the console log
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, NoReturn

import click

from vm_reconcile import (
    ConfigError,
    ElevatedPrivilegeError,
    EngineConfig,
    ReconcileError,
    ScriptError,
    ScriptNotFoundError,
    VmCreateOptions,
    VmManager,
    VmStateView,
    __version__,
)
from vm_reconcile._logging import configure_logging

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CLI_ERROR = 2
EXIT_SCRIPT_NOT_FOUND = 3
EXIT_PRIVILEGE_REQUIRED = 4
EXIT_SCRIPT_ERROR = 125

_TABLE_COLUMNS = ("NAME", "STATUS", "ADDRESS", "NETWORK", "ARCH", "CREDENTIALS")


def format_error(title: str, message: str, suggestions: list[str] | None = None) -> str:
    """Format an error message following What → Why → Fix pattern.

    Args:
        title: Short error title
        message: Detailed explanation
        suggestions: Optional list of suggestions to fix the issue

    Returns:
        Formatted error string
    """
    lines = [
        click.style(f"Error: {title}", fg="red", bold=True),
        "",
        f"  {message}",
    ]

    if suggestions:
        lines.extend(["", "  Suggestions:"])
        lines.extend(f"    • {suggestion}" for suggestion in suggestions)

    return "\n".join(lines)


def format_table(views: list[VmStateView]) -> str:
    """Render views as a left-aligned text table."""
    rows = [_TABLE_COLUMNS]
    rows.extend(
        (
            view.name,
            view.status.value,
            view.resolved_address or "-",
            view.network_mode.value,
            view.architecture,
            view.credentials,
        )
        for view in views
    )
    widths = [max(len(row[i]) for row in rows) for i in range(len(_TABLE_COLUMNS))]
    lines = ("  ".join(cell.ljust(width) for cell, width in zip(row, widths, strict=True)) for row in rows)
    return "\n".join(line.rstrip() for line in lines)


def format_views_json(views: list[VmStateView]) -> str:
    """Format views as JSON (one object per VM, plus derived fields)."""
    output = [
        {
            **view.model_dump(mode="json"),
            "hostname": view.hostname,
            "credentials": view.credentials,
        }
        for view in views
    ]
    return json.dumps(output, indent=2)


def handle_errors(manager: VmManager, action: Callable[[], Awaitable[int]]) -> int:
    """Run ``action`` and map engine errors to exit codes."""
    try:
        return asyncio.run(action())

    except ScriptNotFoundError as e:
        click.echo(
            format_error(
                "VM script not found",
                e.message,
                [
                    f"Install the vm script or put it on PATH (configured: {manager.config.script_path})",
                    "Point to it with --script or VM_RECONCILE_SCRIPT_PATH",
                ],
            ),
            err=True,
        )
        return EXIT_SCRIPT_NOT_FOUND

    except ElevatedPrivilegeError as e:
        click.echo(
            format_error(
                f"'{e.operation}' needs elevated privileges",
                e.message,
                [
                    "Bridged networking needs passwordless sudo for the vm script",
                    "Re-run the action with sudo, or configure NOPASSWD for the helper",
                ],
            ),
            err=True,
        )
        return EXIT_PRIVILEGE_REQUIRED

    except ScriptError as e:
        click.echo(format_error(f"'{e.operation}' failed", e.message), err=True)
        return EXIT_SCRIPT_ERROR

    except ReconcileError as e:
        click.echo(format_error("vm-reconcile error", e.message), err=True)
        return EXIT_SCRIPT_ERROR


def _address_message(name: str, address: str | None) -> str:
    if address:
        return f"{name}: {address}"
    return f"{name}: address not known yet (try 'vmr ip {name}' later)"


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--script",
    "script_path",
    envvar="VM_RECONCILE_SCRIPT_PATH",
    help="Provisioning script (default: 'vm' on PATH)",
)
@click.option(
    "--vms-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="VM_RECONCILE_VMS_DIR",
    help="VM storage root (default: ~/.vm/vms)",
)
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
@click.option("-v", "--verbose", is_flag=True, help="Log probe details")
@click.version_option(__version__, "-V", "--version", prog_name="vmr")
@click.pass_context
def main(ctx: click.Context, script_path: str | None, vms_dir: Path | None, quiet: bool, verbose: bool) -> None:
    """Reconcile and manage script-provisioned VMs.

    Examples:

    \b
      vmr list                          # Status and address of every VM
      vmr --vms-dir /srv/vms list --json
      vmr create --name web1 --no-wait
      vmr start web1                    # Waits for the DHCP lease
    """
    configure_logging(level=logging.DEBUG if verbose else None, quiet=quiet)
    try:
        config = EngineConfig.from_settings(script_path=script_path, vms_dir=vms_dir)
        ctx.obj = VmManager(config)
    except ConfigError as e:
        click.echo(format_error("Invalid configuration", e.message, ["Check --vms-dir"]), err=True)
        ctx.exit(EXIT_CLI_ERROR)


@main.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_obj
def list_command(manager: VmManager, json_output: bool) -> NoReturn:
    """List VMs with live status and address."""

    async def action() -> int:
        views = await manager.list_vms()
        if json_output:
            click.echo(format_views_json(views))
        elif views:
            click.echo(format_table(views))
        else:
            click.echo(f"No VMs found in {manager.vms_dir}", err=True)
        return EXIT_SUCCESS

    sys.exit(handle_errors(manager, action))


@main.command()
@click.option("--name", help="VM name (the script picks one if omitted)")
@click.option("--arch", type=click.Choice(["arm64", "amd64"]), help="Guest architecture")
@click.option("--user", help="Login user")
@click.option("--pass", "password", help="Login password")
@click.option("--memory", help="Memory, e.g. 2G")
@click.option("--cpus", help="vCPU count")
@click.option("--disk", help="Disk size, e.g. 10G")
@click.option("--image", help="Base image, e.g. debian13")
@click.option("--wait/--no-wait", default=True, show_default=True, help="Poll for the new VM's address")
@click.pass_obj
def create(manager: VmManager, wait: bool, **fields: Any) -> NoReturn:
    """Create a VM."""
    options = VmCreateOptions(**fields)

    async def action() -> int:
        address = await manager.create_vm(options, wait=wait)
        label = options.name or "VM"
        click.echo(_address_message(label, address) if wait else f"{label}: created")
        return EXIT_SUCCESS

    sys.exit(handle_errors(manager, action))


@main.command()
@click.argument("name")
@click.option("--wait/--no-wait", default=True, show_default=True, help="Poll for the VM's address")
@click.pass_obj
def start(manager: VmManager, name: str, wait: bool) -> NoReturn:
    """Start VM NAME."""

    async def action() -> int:
        address = await manager.start_vm(name, wait=wait)
        click.echo(_address_message(name, address) if wait else f"{name}: started")
        return EXIT_SUCCESS

    sys.exit(handle_errors(manager, action))


@main.command()
@click.argument("name")
@click.pass_obj
def stop(manager: VmManager, name: str) -> NoReturn:
    """Stop VM NAME."""

    async def action() -> int:
        await manager.stop_vm(name)
        click.echo(f"{name}: stopped")
        return EXIT_SUCCESS

    sys.exit(handle_errors(manager, action))


@main.command()
@click.argument("name")
@click.pass_obj
def delete(manager: VmManager, name: str) -> NoReturn:
    """Delete VM NAME (no confirmation)."""

    async def action() -> int:
        await manager.delete_vm(name)
        click.echo(f"{name}: deleted")
        return EXIT_SUCCESS

    sys.exit(handle_errors(manager, action))


@main.command()
@click.argument("name")
@click.pass_obj
def ip(manager: VmManager, name: str) -> NoReturn:
    """Print the address of VM NAME."""

    async def action() -> int:
        address = await manager.get_address(name)
        if address is None:
            click.echo(f"{name}: address unknown", err=True)
            return EXIT_FAILURE
        click.echo(address)
        return EXIT_SUCCESS

    sys.exit(handle_errors(manager, action))


@main.command()
@click.argument("name")
@click.pass_obj
def status(manager: VmManager, name: str) -> NoReturn:
    """Show cloud-init boot progress of VM NAME."""

    async def action() -> int:
        boot = await manager.boot_status(name)
        if not boot.console_log_present:
            click.echo(f"{name}: not started yet (no console log)")
            return EXIT_FAILURE
        click.echo(f"VM: {name}")
        click.echo(f"Cloud-init: {'ready' if boot.cloud_init_ready else 'in progress'}")
        click.echo(f"Network: {'configured' if boot.network_configured else 'pending'}")
        if boot.address:
            click.echo(f"Address: {boot.address}")
        return EXIT_SUCCESS

    sys.exit(handle_errors(manager, action))


if __name__ == "__main__":
    main()
