"""
Stage Package Builder

Rebuilds USDZ stage containers by swapping embedded texture images while
keeping the layout AR Quick Look expects: the root stage entry first and
every entry stored uncompressed.

Pipeline stages:
1. Select - Pick a template variant from request labels
2. Read - Unpack the template container into a file tree
3. Substitute - Drop replacement textures into the tree
4. Write - Re-serialize the tree as a STORE-only container
"""

from .errors import (
    StagePackError,
    NotFoundError,
    MalformedArchiveError,
    InvariantViolationError,
    ArchiveIOError,
    ConfigError,
)
from .tree import Entry, FileTree
from .reader import read_archive, read_archive_bytes
from .substitute import apply_substitutions, add_marker
from .variant import Variant, TemplateDescriptor, select_variant
from .writer import checksum, serialize, write_container
from .assemble import assemble_container, AssemblyResult

__version__ = "0.1.0"

__all__ = [
    "StagePackError",
    "NotFoundError",
    "MalformedArchiveError",
    "InvariantViolationError",
    "ArchiveIOError",
    "ConfigError",
    "Entry",
    "FileTree",
    "read_archive",
    "read_archive_bytes",
    "apply_substitutions",
    "add_marker",
    "Variant",
    "TemplateDescriptor",
    "select_variant",
    "checksum",
    "serialize",
    "write_container",
    "assemble_container",
    "AssemblyResult",
]
