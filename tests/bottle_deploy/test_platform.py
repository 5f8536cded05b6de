"""Bottle tag and User-Agent probing tests."""

from __future__ import annotations

import pytest

from BottleDeploy.publish.platform import macos_tag, platform_tag, user_agent
from BottleDeploy.testing import RecordingRunner


@pytest.mark.parametrize(
    ("version", "tag"),
    [
        ("14.4.1", "sonoma"),
        ("11.7", "big_sur"),
        ("10.15.7", "catalina"),
        ("10.9.5", "mavericks"),
        ("10.8", "dunno"),
    ],
)
def test_macos_tag(version: str, tag: str) -> None:
    assert macos_tag(version) == tag


def test_platform_tag_prefixes_apple_silicon() -> None:
    runner = RecordingRunner({"/usr/bin/sw_vers -productVersion": "14.4"})

    assert platform_tag(runner, system="Darwin", machine="arm64") == "arm64_sonoma"
    assert platform_tag(runner, system="Darwin", machine="x86_64") == "sonoma"


def test_platform_tag_for_linux_uses_machine() -> None:
    runner = RecordingRunner()

    assert platform_tag(runner, system="Linux", machine="x86_64") == "x86_64_linux"
    assert runner.calls == []


def test_user_agent_on_macos() -> None:
    runner = RecordingRunner(
        {
            "/usr/bin/sw_vers": "14.4",
            "brew --repository": "/usr/local/Homebrew",
            "git -C /usr/local/Homebrew describe": "4.2.0-12-gabcdef1",
        }
    )

    agent = user_agent(runner, system="Darwin", machine="x86_64")

    assert agent == "Homebrew/4.2.0-12-gabcdef1 (Macintosh; Intel Mac OS X 14.4)"


def test_user_agent_on_linux() -> None:
    runner = RecordingRunner(
        {
            "lsb_release -sd": "Ubuntu 22.04.4 LTS",
            "brew --repository": "/home/linuxbrew/.linuxbrew/Homebrew",
            "git -C /home/linuxbrew/.linuxbrew/Homebrew describe": "4.2.0",
        }
    )

    agent = user_agent(runner, system="Linux", machine="x86_64")

    assert agent == "Linuxbrew/4.2.0 (Linux; x86_64 Ubuntu 22.04.4 LTS)"


def test_user_agent_survives_missing_homebrew() -> None:
    runner = RecordingRunner({"brew --repository": 1, "lsb_release": 127})

    agent = user_agent(runner, system="Linux", machine="aarch64")

    assert agent.startswith("Linuxbrew/unknown (Linux; aarch64 ")
