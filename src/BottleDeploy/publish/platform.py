"""Local platform probing: bottle tags and the User-Agent sent to the object store."""

from __future__ import annotations

import logging
import platform as _platform
from typing import Optional

from ..errors import ExternalToolError
from .commands import GIT_BIN, HOMEBREW_BIN, CommandRunner

__all__ = ["UNKNOWN_TAG", "MACOS_SYMBOLS", "macos_version", "macos_tag", "platform_tag", "user_agent"]

LOGGER = logging.getLogger("BottleDeploy.publish.platform")

UNKNOWN_TAG = "dunno"
SW_VERS = "/usr/bin/sw_vers"

# Newest first; majors from Big Sur on, major.minor before that.
MACOS_SYMBOLS = {
    "sequoia": "15",
    "sonoma": "14",
    "ventura": "13",
    "monterey": "12",
    "big_sur": "11",
    "catalina": "10.15",
    "mojave": "10.14",
    "high_sierra": "10.13",
    "sierra": "10.12",
    "el_capitan": "10.11",
    "yosemite": "10.10",
    "mavericks": "10.9",
}


def macos_version(runner: CommandRunner) -> str:
    return runner.capture([SW_VERS, "-productVersion"])


def macos_tag(version: str) -> str:
    """Map a macOS product version such as ``14.4.1`` to its bottle symbol."""

    parts = version.strip().split(".")
    for symbol, release in MACOS_SYMBOLS.items():
        width = release.count(".") + 1
        if ".".join(parts[:width]) == release:
            return symbol
    return UNKNOWN_TAG


def platform_tag(runner: CommandRunner, *, system: Optional[str] = None, machine: Optional[str] = None) -> str:
    """Return the bottle tag for the machine running the deployment."""

    system = system or _platform.system()
    machine = machine or _platform.machine()
    if system == "Darwin":
        tag = macos_tag(macos_version(runner))
        if tag != UNKNOWN_TAG and machine == "arm64":
            return f"arm64_{tag}"
        return tag
    if system == "Linux":
        return f"{machine}_linux"
    return UNKNOWN_TAG


def user_agent(runner: CommandRunner, *, system: Optional[str] = None, machine: Optional[str] = None) -> str:
    """Build a Homebrew-style User-Agent such as ``Homebrew/4.2.0 (Macintosh; Intel Mac OS X 14.4)``."""

    system = system or _platform.system()
    processor = machine or _platform.machine()

    if system == "Darwin":
        product = "Homebrew"
        os_name = "Macintosh"
        if processor in ("x86_64", "i386"):
            processor = "Intel"
        os_version = f"Mac OS X {macos_version(runner)}"
    else:
        product = f"{system}brew"
        os_name = system
        os_version = _platform.release()
        if system == "Linux":
            try:
                os_version = runner.capture(["lsb_release", "-sd"]) or os_version
            except ExternalToolError:
                LOGGER.debug("lsb_release unavailable", extra={"stage": "platform"})

    try:
        brew_repo = runner.capture([HOMEBREW_BIN, "--repository"])
        brew_version = runner.capture(
            [GIT_BIN, "-C", brew_repo, "describe", "--tags", "--dirty", "--abbrev=7"]
        )
    except ExternalToolError as exc:
        LOGGER.warning(
            "unable to determine Homebrew version",
            extra={"stage": "platform", "error": str(exc)},
        )
        brew_version = "unknown"
    return f"{product}/{brew_version} ({os_name}; {processor} {os_version})"
