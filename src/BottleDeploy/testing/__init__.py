"""Testing utilities for exercising deployments without tools or network.

Provides :class:`RecordingRunner`, a scripted stand-in for
:class:`~BottleDeploy.publish.commands.SubprocessRunner`, and helpers that
build HTTPX clients on top of ``httpx.MockTransport``.
"""

from __future__ import annotations

import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from ..errors import ExternalToolError
from ..publish.commands import ExitStatus

__all__ = [
    "CommandCall",
    "RecordingRunner",
    "mock_http_client",
    "write_zip",
]

Response = Union[str, int, ExitStatus, Exception]


@dataclass(frozen=True)
class CommandCall:
    """One invocation observed by :class:`RecordingRunner`."""

    kind: str
    argv: Tuple[str, ...]
    cwd: Optional[str] = None
    env: Optional[Mapping[str, str]] = None

    @property
    def command(self) -> str:
        return " ".join(self.argv)


@dataclass
class RecordingRunner:
    """Fake command runner that records calls and replays scripted responses.

    ``responses`` maps a command prefix (the joined argv, matched with
    ``startswith``) to the outcome: a string is captured stdout, an integer is
    an exit code, an :class:`ExitStatus` is returned as-is, and an exception is
    raised.  Unscripted ``system`` calls succeed and unscripted ``capture``
    calls return an empty string.
    """

    responses: Dict[str, Response] = field(default_factory=dict)
    calls: List[CommandCall] = field(default_factory=list)

    def _lookup(self, argv: Sequence[str]) -> Optional[Response]:
        joined = " ".join(argv)
        best: Optional[str] = None
        for prefix in self.responses:
            if joined.startswith(prefix) and (best is None or len(prefix) > len(best)):
                best = prefix
        return self.responses[best] if best is not None else None

    def system(self, argv, *, cwd=None, env=None) -> ExitStatus:
        self.calls.append(CommandCall("system", tuple(argv), str(cwd) if cwd else None, env))
        outcome = self._lookup(argv)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, ExitStatus):
            return outcome
        if isinstance(outcome, int):
            return ExitStatus(returncode=outcome)
        return ExitStatus(returncode=0)

    def capture(self, argv, *, cwd=None, env=None) -> str:
        self.calls.append(CommandCall("capture", tuple(argv), str(cwd) if cwd else None, env))
        outcome = self._lookup(argv)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int) and outcome != 0:
            raise ExternalToolError(argv, returncode=outcome)
        if isinstance(outcome, str):
            return outcome
        return ""

    def commands(self, kind: Optional[str] = None) -> List[str]:
        return [call.command for call in self.calls if kind is None or call.kind == kind]


def mock_http_client(
    handler: Callable[[httpx.Request], httpx.Response],
    **kwargs,
) -> httpx.Client:
    """Return an ``httpx.Client`` whose requests are answered by ``handler``."""

    return httpx.Client(transport=httpx.MockTransport(handler), **kwargs)


def write_zip(
    path: Path,
    members: Sequence[Tuple[str, Union[bytes, str, None]]],
    *,
    mode: int = 0o644,
    dir_mode: int = 0o755,
    date_time: Tuple[int, int, int, int, int, int] = (2020, 5, 17, 12, 30, 42),
) -> Path:
    """Write a zip whose members carry Unix permissions and a fixed timestamp.

    Members whose content is ``None`` are written as directory entries.
    """

    with zipfile.ZipFile(path, "w") as archive:
        for name, content in members:
            info = zipfile.ZipInfo(name, date_time=date_time)
            info.create_system = 3
            if content is None:
                info.external_attr = (0o040000 | dir_mode) << 16
                archive.writestr(info, b"")
            else:
                info.external_attr = (0o100000 | mode) << 16
                info.compress_type = zipfile.ZIP_DEFLATED
                archive.writestr(info, content)
    return path
