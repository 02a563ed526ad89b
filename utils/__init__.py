"""Utility functions for the stage package builder."""

from .paths import (
    normalize_entry_name,
    parent_paths,
    to_dos_datetime,
    external_attr_for,
)
from .validation import (
    inspect_container,
    validate_container,
)

__all__ = [
    "normalize_entry_name",
    "parent_paths",
    "to_dos_datetime",
    "external_attr_for",
    "inspect_container",
    "validate_container",
]
