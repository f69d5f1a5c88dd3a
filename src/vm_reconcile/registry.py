"""Registry loader: enumerate persisted VM records from the storage root.

Layout (owned by the provisioning script):
    <vms_dir>/
        web1/
            info.json    metadata record
            qemu.pid     hypervisor PID (optional)
            console.log  serial console capture (optional)

The registry is a pure read path. A corrupt record is logged and skipped;
it never aborts the listing.
"""

from __future__ import annotations

from pathlib import Path

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from vm_reconcile import constants
from vm_reconcile._logging import get_logger
from vm_reconcile.exceptions import RecordParseError
from vm_reconcile.models import VmMetadata, VmRecord

logger = get_logger(__name__)


async def read_pid_file(path: Path) -> int | None:
    """Read a PID file. Missing, unreadable or non-positive contents yield None."""
    try:
        async with aiofiles.open(path) as f:
            content = (await f.read()).strip()
    except (FileNotFoundError, NotADirectoryError):
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Unreadable PID file", extra={"path": str(path), "error": str(e)})
        return None

    try:
        pid = int(content)
    except ValueError:
        logger.debug("Unparsable PID file", extra={"path": str(path), "content": content[:32]})
        return None
    return pid if pid > 0 else None


async def read_metadata(path: Path) -> VmMetadata:
    """Parse a metadata file.

    Raises:
        RecordParseError: File unreadable, not JSON, or not a valid record
    """
    try:
        async with aiofiles.open(path, encoding="utf-8") as f:
            raw = await f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise RecordParseError(f"Cannot read VM metadata: {e}", path) from e

    try:
        return VmMetadata.model_validate_json(raw)
    except ValidationError as e:
        raise RecordParseError(
            f"Invalid VM metadata ({e.error_count()} error(s))",
            path,
            context={"errors": e.errors(include_url=False)},
        ) from e


class RegistryLoader:
    """Reads VM directories under ``vms_dir`` into VmRecord snapshots.

    Args:
        vms_dir: VM storage root. It may not exist yet (first run).
    """

    def __init__(self, vms_dir: Path) -> None:
        self.vms_dir = vms_dir

    async def load_record(self, directory: Path) -> VmRecord | None:
        """Load one VM directory.

        Returns:
            The record, or None if the directory has no metadata file

        Raises:
            RecordParseError: The metadata file exists but is malformed
        """
        metadata_path = directory / constants.METADATA_FILENAME
        if not await aiofiles.os.path.isfile(metadata_path):
            return None

        metadata = await read_metadata(metadata_path)
        process_id = await read_pid_file(directory / constants.PID_FILENAME)
        return VmRecord.from_metadata(metadata, directory, process_id)

    async def find_record(self, name: str) -> VmRecord | None:
        """Load the record stored under ``<vms_dir>/<name>``.

        Missing and corrupt records both yield None (corruption is logged).
        """
        directory = self.vms_dir / name
        if not await aiofiles.os.path.isdir(directory):
            return None
        try:
            return await self.load_record(directory)
        except RecordParseError as e:
            logger.warning(
                "Skipping corrupt VM record",
                extra={"vm_name": name, "error": e.message, **e.context},
            )
            return None

    async def load_records(self) -> list[VmRecord]:
        """Load every valid record, sorted by name (case-sensitive).

        Non-directories, directories without metadata and corrupt records
        are skipped. A missing or unreadable root yields an empty list.
        """
        if not await aiofiles.os.path.isdir(self.vms_dir):
            logger.debug("VM storage root does not exist", extra={"vms_dir": str(self.vms_dir)})
            return []

        try:
            entries = await aiofiles.os.listdir(self.vms_dir)
        except OSError as e:
            logger.warning("Cannot read VM storage root", extra={"vms_dir": str(self.vms_dir), "error": str(e)})
            return []

        records: list[VmRecord] = []
        for entry in entries:
            directory = self.vms_dir / entry
            if not await aiofiles.os.path.isdir(directory):
                continue
            try:
                record = await self.load_record(directory)
            except RecordParseError as e:
                logger.warning(
                    "Skipping corrupt VM record",
                    extra={"directory": str(directory), "error": e.message, **e.context},
                )
                continue
            if record is None:
                logger.debug("Skipping directory without metadata", extra={"directory": str(directory)})
                continue
            records.append(record)

        records.sort(key=lambda record: record.name)
        return records
