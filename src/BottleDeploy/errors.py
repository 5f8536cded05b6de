"""Exception hierarchy shared across artifact fetching, expansion, and publishing.

A deployment run touches configuration, a remote build service, the local
filesystem, delegated command-line tools, and a remote object store.  This
module groups those failure modes into a small closed hierarchy so the command
line boundary can map any of them to a process exit code, while callers that
care about specifics (for example, the exit status of a failed ``git``
invocation) can still reach the attributes of the concrete subclass.
"""

from __future__ import annotations

from typing import Optional, Sequence

__all__ = [
    "BottleDeployError",
    "ConfigurationError",
    "MissingConfigError",
    "UserConfigError",
    "ConfigError",
    "NotFoundError",
    "ArtifactNotFoundError",
    "NoBottlesFoundError",
    "UnsafeArchiveError",
    "ArtifactDownloadError",
    "UploadError",
    "ExternalToolError",
    "AlreadyPublishedError",
]


class BottleDeployError(RuntimeError):
    """Base exception for every failure surfaced by a deployment run."""

    exit_code: int = 1


class ConfigurationError(BottleDeployError):
    """Raised when configuration inputs are missing or malformed."""


class MissingConfigError(ConfigurationError):
    """Raised when a required configuration value has not been provided."""

    def __init__(self, key: str) -> None:
        super().__init__(f"{key} env var not set")
        self.key = key


class UserConfigError(ConfigurationError):
    """Raised when command-line arguments or the secrets file are invalid."""


# Shorter alias used by the CLI and settings helpers.
ConfigError = UserConfigError


class NotFoundError(BottleDeployError):
    """Raised when an expected input does not exist."""


class ArtifactNotFoundError(NotFoundError):
    """Raised when a build has no downloadable artifact with the requested name."""


class NoBottlesFoundError(NotFoundError):
    """Raised when the working directory holds no bottle descriptor files."""


class UnsafeArchiveError(BottleDeployError):
    """Raised when an archive member would escape the extraction root."""


class ArtifactDownloadError(BottleDeployError):
    """Raised when the build service refuses or fails an artifact request."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UploadError(BottleDeployError):
    """Raised when the object store rejects an upload or package record."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExternalToolError(BottleDeployError):
    """Raised when a delegated process exits non-zero or cannot be spawned.

    The tool's own exit status is kept as :attr:`exit_code` so the command line
    boundary can pass it through unchanged.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        returncode: Optional[int] = None,
        cause: Optional[BaseException] = None,
        signal: Optional[int] = None,
    ) -> None:
        rendered = " ".join(command)
        if cause is not None:
            message = f"Failed to run {rendered}: {cause}"
        elif signal is not None:
            message = f"{rendered} was terminated by signal {signal}"
        else:
            message = f"{rendered} exited with status {returncode}"
        super().__init__(message)
        self.command = tuple(command)
        self.returncode = returncode
        self.cause = cause
        self.signal = signal
        if returncode:
            self.exit_code = returncode


class AlreadyPublishedError(BottleDeployError):
    """Raised when a payload already exists at its final remote URL."""

    def __init__(self, filename: str, url: str) -> None:
        super().__init__(
            f"{filename} is already published. Please remove it manually from\n  {url}"
        )
        self.filename = filename
        self.url = url


# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy.errors",
#   "purpose": "Define the exception hierarchy used across fetching, expansion, and publishing",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "configuration", "name": "Configuration Errors", "anchor": "CFG", "kind": "api"},
#     {"id": "not-found", "name": "Not-Found Errors", "anchor": "NFD", "kind": "api"},
#     {"id": "transfer", "name": "Transfer & Tool Failures", "anchor": "TRN", "kind": "api"},
#     {"id": "conflict", "name": "Publish Conflicts", "anchor": "CON", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
