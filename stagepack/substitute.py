"""
Asset Substitution Stage

Overwrites (or creates) file entries in a FileTree with caller-supplied
payloads, typically replacement texture images.
"""

import os
from pathlib import Path
from typing import List, Mapping, Optional, Union

from rich.console import Console

from utils.paths import DEFAULT_FILE_MODE, DOS_EPOCH, normalize_entry_name

from .errors import ArchiveIOError, InvariantViolationError, NotFoundError
from .tree import FileTree

console = Console()

PayloadSource = Union[bytes, bytearray, memoryview, str, os.PathLike]
SubstitutionMap = Mapping[str, Optional[PayloadSource]]


def resolve_payload(source) -> bytes:
    """
    Turn a substitution source into bytes.

    Accepts raw bytes, a filesystem path, or a binary file object.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)

    if isinstance(source, (str, os.PathLike)):
        path = Path(source)
        if not path.is_file():
            raise NotFoundError(f"Replacement payload not found: {path}")
        try:
            return path.read_bytes()
        except OSError as e:
            raise ArchiveIOError(f"Failed to read replacement payload {path}: {e}") from e

    read = getattr(source, "read", None)
    if callable(read):
        try:
            data = read()
        except OSError as e:
            raise ArchiveIOError(f"Failed to read replacement stream: {e}") from e
        if not isinstance(data, (bytes, bytearray)):
            raise ArchiveIOError("Replacement stream must be opened in binary mode")
        return bytes(data)

    raise TypeError(f"Unsupported payload source: {type(source).__name__}")


def _put_file(tree: FileTree, path: str, payload: bytes) -> bool:
    """Write payload at path, keeping existing metadata. Returns True if created."""
    try:
        path = normalize_entry_name(path)
    except ValueError as e:
        raise InvariantViolationError(f"Invalid substitution target: {e}") from e

    existing = tree.get(path)
    if existing is not None and existing.is_dir:
        raise InvariantViolationError(f"Substitution target is a directory: {path}")

    if existing is not None:
        existing.payload = payload
        return False

    tree.add_file(path, payload, DOS_EPOCH, DEFAULT_FILE_MODE)
    return True


def apply_substitutions(tree: FileTree, substitutions: SubstitutionMap) -> List[str]:
    """
    Apply a path -> payload mapping onto the tree.

    Entries are applied in the mapping's iteration order, so when two keys
    normalize to the same path the later one wins. Keys mapped to None are
    skipped.

    Args:
        tree: Tree to mutate
        substitutions: Mapping of relative entry path to payload source

    Returns:
        Normalized paths that were replaced or created, in application order
    """
    applied = []
    for target, source in substitutions.items():
        if source is None:
            continue

        payload = resolve_payload(source)
        created = _put_file(tree, target, payload)
        path = normalize_entry_name(target)
        applied.append(path)

        action = "Created" if created else "Replaced"
        console.print(f"  {action} {path} ({len(payload) / 1024:.1f} KB)")

    return applied


def add_marker(tree: FileTree, name: str, content: Union[str, bytes]) -> str:
    """
    Drop a cache-busting marker file (e.g. version.txt) into the tree.
    """
    payload = content.encode("utf-8") if isinstance(content, str) else bytes(content)
    _put_file(tree, name, payload)
    return normalize_entry_name(name)
