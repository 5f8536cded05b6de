"""Filesystem and archive helpers for BottleDeploy.

Re-exports the archive expander and the naming helpers so callers can import
them from one place.
"""

from .expander import ArchiveEntry, Expander, ExpansionPlan
from .filesystem import find_available_name, validate_member_path, working_directory

__all__ = [
    "ArchiveEntry",
    "Expander",
    "ExpansionPlan",
    "find_available_name",
    "validate_member_path",
    "working_directory",
]
