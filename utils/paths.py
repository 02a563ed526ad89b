"""Entry name and metadata helpers for zip containers."""

import re
import stat
from typing import List, Optional, Tuple

DOS_EPOCH = (1980, 1, 1, 0, 0, 0)
DEFAULT_FILE_MODE = 0o644
DEFAULT_DIR_MODE = 0o755

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def normalize_entry_name(name: str) -> str:
    """
    Normalize an archive entry name to a relative forward-slash path.

    Backslashes become forward slashes, empty and "." segments are dropped
    and ".." segments are resolved against earlier segments. A trailing
    slash (directory marker) is not preserved.

    Raises:
        ValueError: If the name is absolute, carries a drive letter or
            resolves outside the archive root.
    """
    cleaned = name.replace("\\", "/")
    if cleaned.startswith("/") or _DRIVE_RE.match(cleaned):
        raise ValueError(f"Absolute entry name: {name!r}")

    parts: List[str] = []
    for segment in cleaned.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                raise ValueError(f"Entry name escapes archive root: {name!r}")
            parts.pop()
            continue
        parts.append(segment)

    return "/".join(parts)


def parent_paths(path: str) -> List[str]:
    """Return every ancestor directory of ``path``, outermost first."""
    parts = path.split("/")[:-1]
    return ["/".join(parts[:i]) for i in range(1, len(parts) + 1)]


def split_path(path: str) -> Tuple[str, str]:
    """Split a normalized path into (parent, name)."""
    if "/" not in path:
        return "", path
    parent, _, name = path.rpartition("/")
    return parent, name


def clamp_date_time(date_time: Optional[Tuple[int, ...]]) -> Tuple[int, int, int, int, int, int]:
    """Clamp a timestamp tuple into the range DOS timestamps can represent."""
    if not date_time:
        return DOS_EPOCH
    values = tuple(int(v) for v in date_time[:6])
    if len(values) < 6 or values[0] < 1980:
        return DOS_EPOCH
    if values[0] > 2107:
        return (2107, 12, 31, 23, 59, 58)
    return values  # type: ignore[return-value]


def to_dos_datetime(date_time: Optional[Tuple[int, ...]]) -> Tuple[int, int]:
    """Pack a (Y, M, D, h, m, s) tuple into DOS (time, date) words."""
    year, month, day, hour, minute, second = clamp_date_time(date_time)
    dos_date = ((year - 1980) << 9) | (month << 5) | day
    dos_time = (hour << 11) | (minute << 5) | (second // 2)
    return dos_time, dos_date


def unix_mode_from_external_attr(external_attr: int) -> Optional[int]:
    """Extract permission bits stored in the high word of external_attr."""
    mode = (external_attr >> 16) & 0xFFFF
    if not mode:
        return None
    return stat.S_IMODE(mode)


def external_attr_for(is_dir: bool, permission_bits: Optional[int]) -> int:
    """Build an external_attr value carrying Unix type and permission bits."""
    if is_dir:
        mode = stat.S_IFDIR | (permission_bits if permission_bits is not None else DEFAULT_DIR_MODE)
        # MS-DOS directory flag in the low byte
        return (mode << 16) | 0x10
    mode = stat.S_IFREG | (permission_bits if permission_bits is not None else DEFAULT_FILE_MODE)
    return mode << 16
