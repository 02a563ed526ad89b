"""
Archive Reader

Decodes an existing container into a FileTree with every payload fully
materialized.
"""

import io
import lzma
import zipfile
import zlib
from pathlib import Path
from typing import BinaryIO, Union

from rich.console import Console

from utils.paths import normalize_entry_name, unix_mode_from_external_attr

from .errors import ArchiveIOError, InvariantViolationError, MalformedArchiveError, NotFoundError
from .tree import FileTree

console = Console()

# ZipInfo.create_system value for Unix
UNIX_SYSTEM = 3


def _load_tree(source: Union[Path, BinaryIO], label: str) -> FileTree:
    tree = FileTree()
    seen = set()

    try:
        with zipfile.ZipFile(source, "r") as zf:
            for info in zf.infolist():
                try:
                    path = normalize_entry_name(info.filename)
                except ValueError as e:
                    raise MalformedArchiveError(f"{label}: {e}") from e

                if not path:
                    # "./" style root markers carry nothing
                    continue
                if path in seen:
                    raise MalformedArchiveError(f"{label}: duplicate entry {path}")
                seen.add(path)

                permission_bits = None
                if info.create_system == UNIX_SYSTEM:
                    permission_bits = unix_mode_from_external_attr(info.external_attr)

                if info.is_dir():
                    tree.add_directory(path, info.date_time, permission_bits)
                    continue

                # ZipFile.read checks the stored CRC-32 and raises BadZipFile on mismatch
                try:
                    payload = zf.read(info)
                except (zlib.error, lzma.LZMAError, OSError, EOFError) as e:
                    # corrupt DEFLATE/LZMA data; bz2 reports it as OSError
                    raise MalformedArchiveError(f"{label}: unreadable entry {path}: {e}") from e
                if len(payload) != info.file_size:
                    raise MalformedArchiveError(
                        f"{label}: {path} is {len(payload)} bytes, header says {info.file_size}"
                    )
                tree.add_file(path, payload, info.date_time, permission_bits)
    except zipfile.BadZipFile as e:
        raise MalformedArchiveError(f"{label}: {e}") from e
    except InvariantViolationError as e:
        # a name used both as a file and as a directory
        raise MalformedArchiveError(f"{label}: {e}") from e
    except (NotImplementedError, RuntimeError, EOFError, zlib.error, lzma.LZMAError,
            zipfile.LargeZipFile) as e:
        # unsupported compression, encrypted entries, truncated data
        raise MalformedArchiveError(f"{label}: unreadable entry: {e}") from e
    except OSError as e:
        raise ArchiveIOError(f"Failed to read {label}: {e}") from e

    return tree


def read_archive(archive_path: Path) -> FileTree:
    """
    Read a container from disk into a FileTree.

    Args:
        archive_path: Path to the .usdz/.zip container

    Returns:
        FileTree with every entry of the archive

    Raises:
        NotFoundError: The archive does not exist
        MalformedArchiveError: The archive is corrupt or has unsafe names
    """
    archive_path = Path(archive_path)
    if not archive_path.is_file():
        raise NotFoundError(f"Template archive not found: {archive_path}")

    if not zipfile.is_zipfile(archive_path):
        raise MalformedArchiveError(f"Not a valid zip container: {archive_path}")

    tree = _load_tree(archive_path, archive_path.name)
    console.print(f"[green]Read {archive_path.name}: {len(tree.files())} files, "
                  f"{len(tree.directories())} directories[/green]")
    return tree


def read_archive_bytes(data: bytes) -> FileTree:
    """Read a container held in memory."""
    return _load_tree(io.BytesIO(data), "<memory>")
