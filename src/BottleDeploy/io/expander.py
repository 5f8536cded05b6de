# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy.io.expander",
#   "purpose": "Expand build artifact zips without overwriting files or scattering top-level entries",
#   "sections": [
#     {"id": "entries", "name": "ArchiveEntry & ExpansionPlan", "anchor": "ENT", "kind": "class"},
#     {"id": "zip-metadata", "name": "Zip Metadata Helpers", "anchor": "ZIP", "kind": "helpers"},
#     {"id": "expander", "name": "Expander", "anchor": "class-expander", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Archive expansion for downloaded build artifacts.

An artifact zip either wraps everything in one root entry (usually a
directory) or is a "bomb" with several top-level entries.  Bombs are expanded
inside a synthetic wrapper directory named after the archive; single roots are
expanded in place under a collision-free name.  In both cases nothing already
on disk is overwritten and the caller receives the directory to work in next.

Extraction restores each entry's permission bits and modification time.  Times
are applied in a final pass after all content exists, because creating a child
would otherwise bump the directory's mtime again.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import struct
import time
import zipfile
from dataclasses import dataclass, replace
from pathlib import Path, PurePosixPath
from typing import List, Optional, Sequence, Tuple, Union

from ..errors import UnsafeArchiveError
from .filesystem import find_available_name, validate_member_path, working_directory

__all__ = ["ArchiveEntry", "ExpansionPlan", "Expander"]

LOGGER = logging.getLogger("BottleDeploy.io.expander")

_UNIX_SYSTEM = 3
_EXTENDED_TIMESTAMP_ID = 0x5455
_OWNER_RWX = stat.S_IRWXU


@dataclass(frozen=True)
class ArchiveEntry:
    """One member of an archive as it will be written to disk.

    ``path`` is POSIX-style and ends with ``/`` for directories.  ``member`` is
    the name inside the zip and stays fixed when ``path`` is rewritten; it is
    ``None`` for directories the archive only implies.
    """

    path: str
    is_dir: bool
    mode: Optional[int] = None
    modified: Optional[float] = None
    member: Optional[str] = None

    @property
    def top_level(self) -> str:
        return self.path.split("/", 1)[0]

    @property
    def is_top_level(self) -> bool:
        return "/" not in self.path.rstrip("/")


@dataclass(frozen=True)
class ExpansionPlan:
    """How an archive will be laid out; exactly one of the optional fields is set."""

    is_bomb: bool
    root_entry: Optional[ArchiveEntry] = None
    wrap_directory: Optional[str] = None


# --- Zip Metadata Helpers ------------------------------------------------------


def _extended_mtime(extra: bytes) -> Optional[int]:
    """Return the UTC mtime from an extended-timestamp extra field, if present."""

    offset = 0
    while offset + 4 <= len(extra):
        header_id, size = struct.unpack_from("<HH", extra, offset)
        data = extra[offset + 4 : offset + 4 + size]
        if header_id == _EXTENDED_TIMESTAMP_ID and len(data) >= 5 and data[0] & 0x01:
            return struct.unpack_from("<i", data, 1)[0]
        offset += 4 + size
    return None


def _entry_timestamp(info: zipfile.ZipInfo) -> float:
    extended = _extended_mtime(info.extra)
    if extended is not None:
        return float(extended)
    return time.mktime(info.date_time + (0, 0, -1))


def _entry_mode(info: zipfile.ZipInfo) -> Optional[int]:
    mode = (info.external_attr >> 16) & 0xFFFF
    if info.create_system != _UNIX_SYSTEM or not mode:
        return None
    if stat.S_ISLNK(mode):
        raise UnsafeArchiveError(f"Unsafe link detected in archive: {info.filename}")
    return stat.S_IMODE(mode)


def _entry_from_info(info: zipfile.ZipInfo) -> ArchiveEntry:
    relative = validate_member_path(info.filename)
    is_dir = info.is_dir()
    path = relative.as_posix() + ("/" if is_dir else "")
    return ArchiveEntry(
        path=path,
        is_dir=is_dir,
        mode=_entry_mode(info),
        modified=_entry_timestamp(info),
        member=info.filename,
    )


def _as_posix(name: str) -> str:
    return name.replace(os.sep, "/")


def _plan_expansion(
    archive_path: Path, entries: Sequence[ArchiveEntry]
) -> Tuple[ExpansionPlan, List[ArchiveEntry]]:
    """Classify ``entries`` and return the plan plus the entries to extract."""

    top_names: List[str] = []
    for entry in entries:
        if entry.top_level not in top_names:
            top_names.append(entry.top_level)

    if len(top_names) > 1:
        return ExpansionPlan(is_bomb=True, wrap_directory=archive_path.stem), list(entries)
    if not top_names:
        return ExpansionPlan(is_bomb=False), []

    for entry in entries:
        if entry.is_top_level:
            return ExpansionPlan(is_bomb=False, root_entry=entry), list(entries)

    # The zip only implies its root directory through nested members.
    implied = ArchiveEntry(path=f"{top_names[0]}/", is_dir=True)
    return ExpansionPlan(is_bomb=False, root_entry=implied), [implied, *entries]


def _rename_root(entries: Sequence[ArchiveEntry], old: str, new: str) -> List[ArchiveEntry]:
    renamed: List[ArchiveEntry] = []
    for entry in entries:
        if entry.path == old or (old.endswith("/") and entry.path.startswith(old)):
            entry = replace(entry, path=new + entry.path[len(old) :])
        renamed.append(entry)
    return renamed


class Expander:
    """Expand one zip archive into the current working directory.

    Attributes:
        archive_path: Archive being expanded.
        entries: Members in archive order, including any implied root directory.
        plan: Bomb/root classification computed at construction.
    """

    DEFAULT_EXPAND_TO = Path(".")

    def __init__(self, archive_path: Union[str, os.PathLike], entries: Sequence[ArchiveEntry]):
        self.archive_path = Path(archive_path).resolve()
        self.plan, self.entries = _plan_expansion(self.archive_path, entries)

    @classmethod
    def from_path(cls, archive_path: Union[str, os.PathLike]) -> "Expander":
        """Read the member listing of ``archive_path`` and build an expander."""

        with zipfile.ZipFile(archive_path) as archive:
            entries = [_entry_from_info(info) for info in archive.infolist()]
        return cls(archive_path, entries)

    @property
    def is_bomb(self) -> bool:
        return self.plan.is_bomb

    def expand(self) -> Path:
        """Extract every entry and return the directory to treat as the new root.

        Returns:
            The wrapper directory for bombs, otherwise the (possibly renamed)
            root entry.  An empty archive yields :attr:`DEFAULT_EXPAND_TO`.
        """

        entries = self.entries
        expand_to = self.DEFAULT_EXPAND_TO

        if self.plan.is_bomb:
            wrap = find_available_name(f"{self.plan.wrap_directory}{os.sep}")
            expand_to = Path(wrap)
            expand_to.mkdir()
            LOGGER.info(
                "archive has multiple top-level entries; wrapping",
                extra={"stage": "expand", "archive": str(self.archive_path), "wrapper": str(expand_to)},
            )
            with working_directory(expand_to):
                self._extract(entries)
            return expand_to

        root = self.plan.root_entry
        if root is None:
            LOGGER.warning(
                "archive is empty",
                extra={"stage": "expand", "archive": str(self.archive_path)},
            )
            return expand_to

        new_name = _as_posix(find_available_name(root.path))
        if new_name != root.path:
            entries = _rename_root(entries, root.path, new_name)
        expand_to = Path(new_name)
        self._extract(entries)
        LOGGER.info(
            "expanded archive",
            extra={
                "stage": "expand",
                "archive": str(self.archive_path),
                "root": str(expand_to),
                "entries": len(entries),
            },
        )
        return expand_to

    def _extract(self, entries: Sequence[ArchiveEntry]) -> None:
        finalize: List[Tuple[Path, ArchiveEntry]] = []
        with zipfile.ZipFile(self.archive_path) as archive:
            for entry in entries:
                target = Path(*PurePosixPath(entry.path).parts)
                if entry.is_dir:
                    target.mkdir(parents=True, exist_ok=True)
                    # Stay writable until children exist; exact bits are applied last.
                    if entry.mode is not None:
                        os.chmod(target, entry.mode | _OWNER_RWX)
                else:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(entry.member, "r") as source, target.open("wb") as sink:
                        shutil.copyfileobj(source, sink)
                    if entry.mode is not None:
                        os.chmod(target, entry.mode)
                finalize.append((target, entry))

        # Files before directories.
        for target, entry in sorted(finalize, key=lambda item: item[1].is_dir):
            if entry.is_dir and entry.mode is not None:
                os.chmod(target, entry.mode)
            if entry.modified is not None:
                os.utime(target, (entry.modified, entry.modified))
