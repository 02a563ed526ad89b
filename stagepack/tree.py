"""In-memory file tree for a container being rebuilt."""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from utils.paths import DOS_EPOCH, normalize_entry_name, parent_paths, split_path

from .errors import InvariantViolationError

FILE = "file"
DIRECTORY = "directory"


@dataclass
class Entry:
    """One archive member: a file with its payload, or a directory marker."""
    path: str
    kind: str = FILE
    payload: Optional[bytes] = None
    modified_time: Tuple[int, int, int, int, int, int] = DOS_EPOCH
    permission_bits: Optional[int] = None

    @property
    def is_dir(self) -> bool:
        return self.kind == DIRECTORY

    @property
    def name(self) -> str:
        return split_path(self.path)[1]

    @property
    def parent(self) -> str:
        return split_path(self.path)[0]


@dataclass
class FileTree:
    """
    Mapping of normalized path to Entry, rooted at "".

    Every file added through ``add_file`` gets its ancestor directories
    materialized as explicit directory entries.
    """
    entries: Dict[str, Entry] = field(default_factory=dict)

    def __contains__(self, path: str) -> bool:
        return path in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries.values())

    def get(self, path: str) -> Optional[Entry]:
        return self.entries.get(path)

    def paths(self) -> List[str]:
        return sorted(self.entries)

    def files(self) -> List[Entry]:
        return [e for e in self.entries.values() if not e.is_dir]

    def directories(self) -> List[Entry]:
        return [e for e in self.entries.values() if e.is_dir]

    def children(self, path: str = "") -> List[Entry]:
        """Direct children of the directory at ``path`` ("" for the root)."""
        return [e for e in self.entries.values() if e.parent == path]

    def ensure_parents(self, path: str) -> None:
        for parent in parent_paths(path):
            existing = self.entries.get(parent)
            if existing is None:
                self.entries[parent] = Entry(path=parent, kind=DIRECTORY)
            elif not existing.is_dir:
                raise InvariantViolationError(
                    f"Cannot place {path}: {parent} is a file"
                )

    def add_directory(
        self,
        path: str,
        modified_time: Tuple[int, int, int, int, int, int] = DOS_EPOCH,
        permission_bits: Optional[int] = None,
    ) -> Entry:
        path = normalize_entry_name(path)
        if not path:
            raise InvariantViolationError("The tree root cannot be stored as an entry")

        existing = self.entries.get(path)
        if existing is not None:
            if not existing.is_dir:
                raise InvariantViolationError(f"{path} already exists as a file")
            existing.modified_time = modified_time
            existing.permission_bits = permission_bits
            return existing

        self.ensure_parents(path)
        entry = Entry(
            path=path,
            kind=DIRECTORY,
            modified_time=modified_time,
            permission_bits=permission_bits,
        )
        self.entries[path] = entry
        return entry

    def add_file(
        self,
        path: str,
        payload: bytes,
        modified_time: Tuple[int, int, int, int, int, int] = DOS_EPOCH,
        permission_bits: Optional[int] = None,
    ) -> Entry:
        path = normalize_entry_name(path)
        if not path:
            raise InvariantViolationError("A file needs a non-empty path")

        existing = self.entries.get(path)
        if existing is not None and existing.is_dir:
            raise InvariantViolationError(f"{path} already exists as a directory")

        self.ensure_parents(path)
        entry = Entry(
            path=path,
            kind=FILE,
            payload=bytes(payload),
            modified_time=modified_time,
            permission_bits=permission_bits,
        )
        self.entries[path] = entry
        return entry
