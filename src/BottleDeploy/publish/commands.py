# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy.publish.commands",
#   "purpose": "Run delegated brew/git commands and translate their exit status",
#   "sections": [
#     {"id": "exitstatus", "name": "ExitStatus", "anchor": "class-exitstatus", "kind": "class"},
#     {"id": "runner", "name": "CommandRunner & SubprocessRunner", "anchor": "class-subprocessrunner", "kind": "class"},
#     {"id": "safe-system", "name": "safe_system", "anchor": "function-safe-system", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Subprocess execution for the publish pipeline.

Commands come in two flavours.  :meth:`CommandRunner.system` runs a tool with
the caller's standard streams so its output is visible live, and reports the
outcome as an :class:`ExitStatus`.  :meth:`CommandRunner.capture` runs a
read-only query and returns its stripped stdout, raising
:class:`~BottleDeploy.errors.ExternalToolError` on failure.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence, Union

from ..errors import ExternalToolError

__all__ = [
    "HOMEBREW_BIN",
    "GIT_BIN",
    "ExitStatus",
    "CommandRunner",
    "SubprocessRunner",
    "format_command",
    "safe_system",
]

LOGGER = logging.getLogger("BottleDeploy.publish.commands")

HOMEBREW_BIN = "brew"
GIT_BIN = "git"

PathLike = Union[str, Path]


def format_command(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(arg)) for arg in argv)


@dataclass(frozen=True)
class ExitStatus:
    """Outcome of a delegated process: a return code, a signal, or a spawn error."""

    returncode: Optional[int] = None
    signal: Optional[int] = None
    error: Optional[OSError] = None

    @property
    def is_success(self) -> bool:
        return self.error is None and self.signal is None and self.returncode == 0

    def __bool__(self) -> bool:
        return self.is_success


class CommandRunner(Protocol):
    """Executor for delegated commands; tests substitute a recording fake."""

    def system(
        self,
        argv: Sequence[str],
        *,
        cwd: Optional[PathLike] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ExitStatus:
        ...

    def capture(
        self,
        argv: Sequence[str],
        *,
        cwd: Optional[PathLike] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> str:
        ...


class SubprocessRunner:
    """:class:`CommandRunner` backed by :func:`subprocess.run` without timeouts."""

    def system(
        self,
        argv: Sequence[str],
        *,
        cwd: Optional[PathLike] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ExitStatus:
        LOGGER.info(format_command(argv), extra={"stage": "command"})
        try:
            completed = subprocess.run(  # noqa: PLW1510 - status handled by caller
                list(argv),
                cwd=cwd,
                env=dict(env) if env is not None else None,
                check=False,
            )
        except OSError as exc:
            return ExitStatus(error=exc)
        if completed.returncode < 0:
            return ExitStatus(signal=-completed.returncode)
        return ExitStatus(returncode=completed.returncode)

    def capture(
        self,
        argv: Sequence[str],
        *,
        cwd: Optional[PathLike] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> str:
        LOGGER.debug(format_command(argv), extra={"stage": "command"})
        try:
            completed = subprocess.run(
                list(argv),
                cwd=cwd,
                env=dict(env) if env is not None else None,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise ExternalToolError(argv, cause=exc) from exc
        if completed.returncode != 0:
            LOGGER.debug(
                "command failed",
                extra={"stage": "command", "stderr": completed.stderr.strip()},
            )
            raise ExternalToolError(argv, returncode=completed.returncode)
        return completed.stdout.strip()


def safe_system(
    runner: CommandRunner,
    argv: Sequence[str],
    *,
    cwd: Optional[PathLike] = None,
    env: Optional[Mapping[str, str]] = None,
) -> None:
    """Run ``argv`` and raise :class:`ExternalToolError` unless it succeeds."""

    status = runner.system(argv, cwd=cwd, env=env)
    if status.is_success:
        return
    if status.error is not None:
        raise ExternalToolError(argv, cause=status.error) from status.error
    raise ExternalToolError(argv, returncode=status.returncode, signal=status.signal)
