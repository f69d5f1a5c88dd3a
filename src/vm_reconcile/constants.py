"""Constants for vm-reconcile configuration, file layout and probe parsing."""

import re
from typing import Final

# ============================================================================
# On-disk VM layout
# ============================================================================

DEFAULT_WORK_ROOT_NAME: Final[str] = ".vm"
"""Work root directory under the user's home (~/.vm)."""

VMS_DIR_NAME: Final[str] = "vms"
"""VM storage root under the work root (~/.vm/vms)."""

METADATA_FILENAME: Final[str] = "info.json"
"""Per-VM metadata record written by the provisioning script."""

PID_FILENAME: Final[str] = "qemu.pid"
"""Per-VM PID file holding the hypervisor process id."""

CONSOLE_LOG_FILENAME: Final[str] = "console.log"
"""Serial console capture, scanned for cloud-init progress."""

# ============================================================================
# External script
# ============================================================================

DEFAULT_SCRIPT_PATH: Final[str] = "vm"
"""Provisioning executable, resolved via PATH unless configured."""

# ============================================================================
# Sentinels
# ============================================================================

UNKNOWN: Final[str] = "unknown"
"""Placeholder for absent informational fields and secrets."""

LOOPBACK_ADDRESS: Final[str] = "127.0.0.1"
"""Address of every port-forwarded VM."""

DHCP_ASSIGNED: Final[str] = "dhcp-assigned"
"""Persisted ssh.host value for bridged VMs before the lease is known."""

ADDRESS_SENTINELS: Final[frozenset[str]] = frozenset({"", "-", DHCP_ASSIGNED, LOOPBACK_ADDRESS, "localhost"})
"""Persisted host values that never count as a cached address."""

DISCOVERY_DOMAIN: Final[str] = "local"
"""mDNS suffix for the VM discovery hostname (<name>.local)."""

# ============================================================================
# Timeouts and limits
# ============================================================================

DEFAULT_COMMAND_TIMEOUT_SECONDS: Final[float] = 600.0
"""Ceiling for script invocations (create downloads images, so it is long)."""

DEFAULT_PROBE_TIMEOUT_SECONDS: Final[float] = 2.0
"""Ceiling for every liveness/address probe."""

VERSION_CHECK_TIMEOUT_SECONDS: Final[float] = 10.0
"""Ceiling for the script's --version availability check."""

PING_DEADLINE_SECONDS: Final[int] = 1
"""Deadline passed to the single ICMP echo."""

DEFAULT_MAX_CONCURRENT_PROBES: Final[int] = 8
"""Records reconciled in parallel during a listing."""

DEFAULT_POLL_ATTEMPTS: Final[int] = 10
"""Post-action poller attempts."""

DEFAULT_POLL_INTERVAL_SECONDS: Final[float] = 2.0
"""Wait before each post-action poller attempt."""

CLEANUP_TERM_TIMEOUT_SECONDS: Final[float] = 3.0
"""Grace period after SIGTERM for a timed-out child."""

CLEANUP_KILL_TIMEOUT_SECONDS: Final[float] = 2.0
"""Grace period after SIGKILL for a timed-out child."""

# ============================================================================
# Output parsing
# ============================================================================

IPV4_PATTERN: Final[re.Pattern[str]] = re.compile(r"\b(\d{1,3}(?:\.\d{1,3}){3})\b")
"""Any dotted quad (ARP table rows)."""

PING_ADDRESS_PATTERN: Final[re.Pattern[str]] = re.compile(r"\((\d{1,3}(?:\.\d{1,3}){3})\)")
"""Resolved address in ping's banner: 'PING web1.local (192.168.1.77): 56 data bytes'."""

SCRIPT_IP_PATTERN: Final[re.Pattern[str]] = re.compile(r"IP Address: (\d{1,3}(?:\.\d{1,3}){3})")
"""'ip' subcommand output for bridged VMs."""

SCRIPT_PORT_FORWARD_PATTERN: Final[re.Pattern[str]] = re.compile(r"ssh.*@127\.0\.0\.1.*-p\s+(\d+)")
"""'ip' subcommand output for port-forwarded VMs."""

HYPERVISOR_CMDLINE_TEMPLATE: Final[str] = r"qemu.*-name {name}(?:\s|,|$)"
"""Command-line pattern of a VM's hypervisor process (regex, name escaped)."""

CLOUD_INIT_READY_MARKER: Final[str] = "CLOUD-INIT-READY"
"""Console line written by the guest when cloud-init finishes."""

CLOUD_INIT_NET_MARKER: Final[str] = "ci-info"
"""cloud-init network table prefix."""

GUEST_NIC_NAME: Final[str] = "enp0s1"
"""Guest interface reported in the cloud-init network table."""

GUEST_ADDRESS_PREFIXES: Final[tuple[str, ...]] = ("192.168.", "10.")
"""Private ranges the guest NIC is expected to lease from."""

# ============================================================================
# Failure classification
# ============================================================================

NOT_FOUND_MARKERS: Final[tuple[str, ...]] = ("command not found", "no such file or directory", "enoent")
"""Text patterns meaning the executable could not be resolved."""

PRIVILEGE_MARKERS: Final[tuple[str, ...]] = ("requires sudo", "nopasswd", "failed to send stop signal")
"""Text patterns meaning the operation needs elevated rights."""
