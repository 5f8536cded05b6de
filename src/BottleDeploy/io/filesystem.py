# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy.io.filesystem",
#   "purpose": "Filesystem helpers for collision-free naming, scoped chdir, and member path checks",
#   "sections": [
#     {"id": "naming", "name": "Collision-free Naming", "anchor": "NAM", "kind": "helpers"},
#     {"id": "cwd", "name": "Scoped Working Directory", "anchor": "CWD", "kind": "helpers"},
#     {"id": "members", "name": "Archive Member Validation", "anchor": "MEM", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Filesystem helpers used while downloading and expanding build artifacts.

Nothing fetched from the build service is allowed to overwrite an existing
file: downloads, wrapper directories, and archive roots all receive a
collision-free name from :func:`find_available_name`.  Expansion of archives
with many top-level entries happens inside a wrapper directory entered through
:func:`working_directory`, which always restores the caller's directory.
"""

from __future__ import annotations

import contextlib
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Iterator, Union

from ..errors import UnsafeArchiveError

__all__ = ["find_available_name", "working_directory", "validate_member_path"]

LOGGER = logging.getLogger("BottleDeploy.io")

_SEPARATORS = tuple({os.sep, "/"})


def find_available_name(name: str) -> str:
    """Return ``name`` or the first ``stem-N.ext`` variant that does not exist yet.

    A trailing separator marks a directory request and is kept on every
    generated candidate, so ``"drop/"`` may become ``"drop-1/"``.

    Examples:
        >>> find_available_name("definitely-missing.zip")
        'definitely-missing.zip'
    """

    is_dir = name.endswith(_SEPARATORS)
    bare = name.rstrip("".join(_SEPARATORS)) if is_dir else name
    parent, base = os.path.split(bare)
    stem, ext = os.path.splitext(base)
    suffix = os.sep if is_dir else ""

    candidate, probe = name, bare
    index = 1
    while os.path.lexists(probe):
        probe = os.path.join(parent, f"{stem}-{index}{ext}")
        candidate = probe + suffix
        index += 1
    if candidate != name:
        LOGGER.debug(
            "renamed to avoid collision",
            extra={"stage": "naming", "requested": name, "chosen": candidate},
        )
    return candidate


@contextlib.contextmanager
def working_directory(path: Union[str, os.PathLike]) -> Iterator[Path]:
    """Temporarily change the process working directory to ``path``."""

    previous = os.getcwd()
    os.chdir(path)
    try:
        yield Path(os.getcwd())
    finally:
        os.chdir(previous)


def validate_member_path(member_name: str) -> PurePosixPath:
    """Validate an archive member name to prevent traversal out of the target."""

    normalized = member_name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute() or normalized.startswith("/"):
        raise UnsafeArchiveError(f"Unsafe absolute path detected in archive: {member_name}")
    if not relative.parts:
        raise UnsafeArchiveError(f"Empty path detected in archive: {member_name}")
    if any(part in {"", ".", ".."} for part in relative.parts):
        raise UnsafeArchiveError(f"Unsafe path detected in archive: {member_name}")
    return relative
