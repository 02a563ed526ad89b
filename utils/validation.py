"""Validation utilities for written stage containers."""

import struct
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

LOCAL_HEADER_SIZE = 30
LOCAL_HEADER_SIG = b"PK\x03\x04"
STAGE_EXTENSIONS = (".usda", ".usdc", ".usd")


def inspect_container(container_path: Path) -> List[Dict]:
    """
    Describe every entry of a container in archive order.

    Returns:
        List of dicts with name, is_dir, method, size, compressed_size,
        crc, header_offset and data_offset
    """
    entries = []
    with zipfile.ZipFile(container_path, "r") as zf, open(container_path, "rb") as raw:
        for info in zf.infolist():
            raw.seek(info.header_offset)
            header = raw.read(LOCAL_HEADER_SIZE)
            data_offset = None
            if len(header) == LOCAL_HEADER_SIZE and header[:4] == LOCAL_HEADER_SIG:
                name_len, extra_len = struct.unpack("<HH", header[26:30])
                data_offset = info.header_offset + LOCAL_HEADER_SIZE + name_len + extra_len

            entries.append({
                "name": info.filename,
                "is_dir": info.is_dir(),
                "method": info.compress_type,
                "size": info.file_size,
                "compressed_size": info.compress_size,
                "crc": info.CRC,
                "header_offset": info.header_offset,
                "data_offset": data_offset,
            })
    return entries


def validate_container(
    container_path: Path,
    stage_entry_name: Optional[str] = None,
    alignment: int = 64,
) -> List[str]:
    """
    Check a container against the layout AR viewers require.

    Checks:
    - Container is a readable zip with valid CRCs
    - Every entry is stored uncompressed
    - First entry is the stage (by name, or by USD extension)
    - Root directories precede root files, apart from the stage
    - File data starts on an ``alignment`` boundary

    Returns:
        List of validation errors (empty if valid)
    """
    container_path = Path(container_path)
    if not container_path.exists():
        return [f"Container does not exist: {container_path}"]
    if not zipfile.is_zipfile(container_path):
        return [f"Not a valid zip container: {container_path}"]

    errors = []

    try:
        with zipfile.ZipFile(container_path, "r") as zf:
            bad = zf.testzip()
            if bad is not None:
                errors.append(f"CRC mismatch in {bad}")
    except (zipfile.BadZipFile, NotImplementedError, RuntimeError) as e:
        return [f"Unreadable container: {e}"]

    entries = inspect_container(container_path)
    if not entries:
        return errors + ["Container is empty"]

    for entry in entries:
        if entry["method"] != zipfile.ZIP_STORED:
            errors.append(f"{entry['name']} is compressed (method {entry['method']})")

    first = entries[0]
    if stage_entry_name is not None:
        if first["name"] != stage_entry_name:
            errors.append(f"First entry is {first['name']}, expected {stage_entry_name}")
    elif first["is_dir"] or not first["name"].lower().endswith(STAGE_EXTENSIONS):
        errors.append(f"First entry {first['name']} is not a USD stage")

    root = [e for e in entries[1:] if "/" not in e["name"].rstrip("/")]
    seen_file = False
    for entry in root:
        if entry["is_dir"] and seen_file:
            errors.append(f"Directory {entry['name']} comes after a root-level file")
        if not entry["is_dir"]:
            seen_file = True

    if alignment > 1:
        for entry in entries:
            if entry["is_dir"] or entry["data_offset"] is None:
                continue
            if entry["data_offset"] % alignment:
                errors.append(
                    f"{entry['name']} data at offset {entry['data_offset']} "
                    f"is not {alignment}-byte aligned"
                )

    return errors
