"""
Deterministic Archive Writer

Serializes a FileTree into a USDZ-compliant zip container:
- every entry uses method 0 (STORE)
- the stage entry is the first record in the archive
- sizes and CRC-32 come from the final payload bytes
- file data is padded to a fixed alignment (64 bytes for USDZ)

Zip records are written by hand with struct: no data descriptors, no
ZIP64, padding carried in a local-header extra field.
"""

import io
import os
import struct
import tempfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, List, Tuple

from rich.console import Console

from utils.paths import external_attr_for, to_dos_datetime

from .errors import ArchiveIOError, InvariantViolationError
from .tree import Entry, FileTree
from .variant import TemplateDescriptor

console = Console()

LOCAL_HEADER_SIG = 0x04034B50
CENTRAL_HEADER_SIG = 0x02014B50
END_OF_CENTRAL_DIR_SIG = 0x06054B50

LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")
CENTRAL_HEADER = struct.Struct("<IHHHHHHIIIHHHHHII")
END_OF_CENTRAL_DIR = struct.Struct("<IHHHHIIH")

METHOD_STORED = 0
VERSION_STORED = 10
VERSION_DIRECTORY = 20
# upper byte 3 = Unix, so readers honor external_attr permission bits
VERSION_MADE_BY = (3 << 8) | 20
FLAG_UTF8 = 0x0800
PADDING_EXTRA_ID = 0x1986

MAX_UINT16 = 0xFFFF
MAX_UINT32 = 0xFFFFFFFF

TIER_STAGE = 0
TIER_DIRECTORY = 1
TIER_FILE = 2


@dataclass
class CentralRecord:
    """Everything the central directory needs about a written entry."""
    name: bytes
    flags: int
    version_needed: int
    dos_time: int
    dos_date: int
    crc: int
    size: int
    external_attr: int
    offset: int


def checksum(payload: bytes) -> Tuple[int, int]:
    """Return (size, crc32) of the payload as written."""
    return len(payload), zlib.crc32(payload) & MAX_UINT32


def sort_key(entry: Entry, stage_entry_name: str) -> Tuple[int, str]:
    """Root-level ordering: stage entry, then directories, then files."""
    if entry.name == stage_entry_name and not entry.is_dir:
        return TIER_STAGE, entry.name
    if entry.is_dir:
        return TIER_DIRECTORY, entry.name
    return TIER_FILE, entry.name


def nested_sort_key(entry: Entry) -> str:
    return entry.name


def ordered_entries(tree: FileTree, descriptor: TemplateDescriptor) -> List[Entry]:
    """
    Pre-order walk of the tree in container order.

    Raises:
        InvariantViolationError: The stage entry is missing from the root
    """
    stage_name = descriptor.stage_entry_name
    stage = tree.get(stage_name)
    if stage is None or stage.parent != "":
        raise InvariantViolationError(
            f"Stage entry {stage_name} not found at the root of the container"
        )
    if stage.is_dir:
        raise InvariantViolationError(f"Stage entry {stage_name} is a directory")

    children: Dict[str, List[Entry]] = {}
    for entry in tree:
        children.setdefault(entry.parent, []).append(entry)

    ordered: List[Entry] = []

    def visit(parent: str) -> None:
        siblings = children.get(parent, [])
        if parent == "":
            siblings = sorted(siblings, key=lambda e: sort_key(e, stage_name))
        else:
            siblings = sorted(siblings, key=nested_sort_key)
        for entry in siblings:
            ordered.append(entry)
            if entry.is_dir:
                visit(entry.path)

    visit("")
    if len(ordered) != len(tree):
        orphans = sorted(set(tree.paths()) - {e.path for e in ordered})
        raise InvariantViolationError(f"Entries without a parent directory: {orphans[:5]}")
    return ordered


def _padding_extra(header_offset: int, name_length: int, alignment: int) -> bytes:
    """Extra field that pushes the payload start onto an alignment boundary."""
    if alignment <= 1:
        return b""
    data_offset = header_offset + LOCAL_HEADER.size + name_length
    pad = -data_offset % alignment
    if pad == 0:
        return b""
    # an extra field needs at least its 4 byte header
    while pad < 4:
        pad += alignment
    return struct.pack("<HH", PADDING_EXTRA_ID, pad - 4) + b"\x00" * (pad - 4)


def _write_local(fp: BinaryIO, entry: Entry, offset: int, alignment: int) -> Tuple[CentralRecord, int]:
    if entry.is_dir:
        arcname = entry.path + "/"
        payload = b""
        version_needed = VERSION_DIRECTORY
    else:
        arcname = entry.path
        payload = entry.payload if entry.payload is not None else b""
        version_needed = VERSION_STORED

    name = arcname.encode("utf-8")
    flags = 0 if arcname.isascii() else FLAG_UTF8
    if len(name) > MAX_UINT16:
        raise InvariantViolationError(f"Entry name too long: {arcname[:64]}...")

    size, crc = checksum(payload)
    if size >= MAX_UINT32 or offset >= MAX_UINT32:
        raise InvariantViolationError(f"{arcname} needs ZIP64, which is not supported")

    dos_time, dos_date = to_dos_datetime(entry.modified_time)
    extra = b"" if entry.is_dir else _padding_extra(offset, len(name), alignment)

    fp.write(LOCAL_HEADER.pack(
        LOCAL_HEADER_SIG, version_needed, flags, METHOD_STORED,
        dos_time, dos_date, crc, size, size, len(name), len(extra),
    ))
    fp.write(name)
    fp.write(extra)
    fp.write(payload)

    record = CentralRecord(
        name=name,
        flags=flags,
        version_needed=version_needed,
        dos_time=dos_time,
        dos_date=dos_date,
        crc=crc,
        size=size,
        external_attr=external_attr_for(entry.is_dir, entry.permission_bits),
        offset=offset,
    )
    written = LOCAL_HEADER.size + len(name) + len(extra) + size
    return record, written


def _write_central(fp: BinaryIO, records: List[CentralRecord], offset: int) -> int:
    cd_start = offset
    for record in records:
        fp.write(CENTRAL_HEADER.pack(
            CENTRAL_HEADER_SIG, VERSION_MADE_BY, record.version_needed,
            record.flags, METHOD_STORED, record.dos_time, record.dos_date,
            record.crc, record.size, record.size, len(record.name),
            0, 0, 0, 0, record.external_attr, record.offset,
        ))
        fp.write(record.name)
        offset += CENTRAL_HEADER.size + len(record.name)

    cd_size = offset - cd_start
    if cd_start >= MAX_UINT32 or cd_size >= MAX_UINT32:
        raise InvariantViolationError("Central directory needs ZIP64, which is not supported")

    fp.write(END_OF_CENTRAL_DIR.pack(
        END_OF_CENTRAL_DIR_SIG, 0, 0, len(records), len(records), cd_size, cd_start, 0,
    ))
    return offset + END_OF_CENTRAL_DIR.size


def write_entries(
    fp: BinaryIO,
    entries: List[Entry],
    alignment: int = 64,
    directory_entries: bool = True,
) -> int:
    """
    Write entries, in the given order, as a complete zip stream.

    Returns:
        Number of bytes written
    """
    if not directory_entries:
        entries = [e for e in entries if not e.is_dir]
    if len(entries) > MAX_UINT16:
        raise InvariantViolationError(f"{len(entries)} entries need ZIP64, which is not supported")

    offset = 0
    records = []
    for entry in entries:
        record, written = _write_local(fp, entry, offset, alignment)
        records.append(record)
        offset += written

    return _write_central(fp, records, offset)


def serialize(
    tree: FileTree,
    descriptor: TemplateDescriptor,
    alignment: int = 64,
    directory_entries: bool = True,
) -> bytes:
    """Serialize the tree into container bytes."""
    entries = ordered_entries(tree, descriptor)
    buffer = io.BytesIO()
    write_entries(buffer, entries, alignment, directory_entries)
    return buffer.getvalue()


def write_container(
    tree: FileTree,
    descriptor: TemplateDescriptor,
    destination: Path,
    alignment: int = 64,
    directory_entries: bool = True,
) -> Path:
    """
    Write the container to ``destination``.

    Data goes to a temporary file in the destination directory which is
    renamed over the destination only after it is complete, so a failed
    write never leaves a file at ``destination``.

    Args:
        tree: File tree to serialize
        descriptor: Template descriptor naming the stage entry
        destination: Output path for the container
        alignment: Payload alignment in bytes (0 or 1 disables padding)
        directory_entries: Emit zero-length "dir/" entries

    Returns:
        Path to the written container
    """
    destination = Path(destination)
    entries = ordered_entries(tree, descriptor)

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            mode="wb",
            dir=destination.parent,
            prefix=f".{destination.name}.",
            suffix=".tmp",
            delete=False,
        )
    except OSError as e:
        raise ArchiveIOError(f"Cannot create output in {destination.parent}: {e}") from e

    tmp_path = Path(handle.name)
    try:
        with handle:
            total = write_entries(handle, entries, alignment, directory_entries)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, destination)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise ArchiveIOError(f"Failed to write {destination}: {e}") from e
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    console.print(f"[green]Wrote {destination.name}: {len(entries)} entries, "
                  f"{total / 1024:.1f} KB[/green]")
    return destination
