# === NAVMAP v1 ===
# {
#   "module": "tests.bottle_deploy.conftest",
#   "purpose": "Shared fixtures isolating deployment tests from the host environment.",
#   "sections": [
#     {"id": "isolation", "name": "Environment Isolation", "anchor": "ISO", "kind": "fixture"},
#     {"id": "builders", "name": "Descriptor & Store Builders", "anchor": "BLD", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Shared fixtures for the BottleDeploy test-suite.

Every test runs inside its own temporary working directory with deployment
environment variables scrubbed, so artifacts, wrapper directories, and log
files never leak between tests or into the checkout.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

import httpx
import pytest

from BottleDeploy.publish.object_store import ObjectStore
from BottleDeploy.settings import DeploySettings
from BottleDeploy.testing import RecordingRunner

TAP = "alice/bottles"
IDENTITY = "alice/bottles/widget"
ROOT_URL = "https://dl.example.test/bottles"
PACKAGE_API = "https://api.example.test/packages/alice/bottles"
TAGS = ("sonoma", "x86_64_linux")


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Run each test in a scratch directory with no deployment configuration."""

    for field in DeploySettings.model_fields.values():
        if field.alias:
            monkeypatch.delenv(field.alias, raising=False)
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.setenv("BOTTLE_DEPLOY_LOG_DIR", str(tmp_path / "logs"))
    yield workdir

    logger = logging.getLogger("BottleDeploy")
    for handler in list(logger.handlers):
        if getattr(handler, "_bottle_deploy_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def settings() -> DeploySettings:
    return DeploySettings(
        HOMEBREW_BINTRAY_USER="alice",
        HOMEBREW_BINTRAY_KEY="s3cret-key",
        HOMEBREW_GIT_NAME="CI Bot",
        HOMEBREW_GIT_EMAIL="ci@example.test",
    )


def bottle_filename(tag: str) -> str:
    return f"widget-1.0.0.{tag}.bottle.tar.gz"


def bottle_url(tag: str) -> str:
    return f"{ROOT_URL}/{bottle_filename(tag)}"


def descriptor_payload(tag: str, *, identity: str = IDENTITY, root_url: str = ROOT_URL) -> Dict:
    """Return one ``*.bottle.json`` document as written by ``brew bottle --json``."""

    bottle: Dict = {
        "rebuild": 0,
        "cellar": ":any_skip_relocation",
        "tags": {
            tag: {
                "filename": bottle_filename(tag),
                "local_filename": f"widget--1.0.0.{tag}.bottle.tar.gz",
                "sha256": "ab" * 32,
            }
        },
    }
    if root_url:
        bottle["root_url"] = root_url
    return {
        identity: {
            "formula": {"pkg_version": "1.0.0", "path": "Formula/widget.rb"},
            "bottle": bottle,
        }
    }


def write_bottles(directory: Path, tags: Iterable[str] = TAGS, **kwargs) -> List[Path]:
    """Write a descriptor plus a fake bottle tarball for each tag into ``directory``."""

    directory.mkdir(parents=True, exist_ok=True)
    written = []
    for tag in tags:
        descriptor = directory / f"widget--1.0.0.{tag}.bottle.json"
        descriptor.write_text(json.dumps(descriptor_payload(tag, **kwargs)), encoding="utf-8")
        (directory / f"widget--1.0.0.{tag}.bottle.tar.gz").write_bytes(f"bottle-{tag}".encode())
        written.append(descriptor)
    return written


class StoreServer:
    """In-memory object store answering requests through ``httpx.MockTransport``."""

    def __init__(self, published: Iterable[str] = ()) -> None:
        self.published = set(published)
        self.requests: List[Tuple[str, str]] = []
        self.bodies: Dict[str, bytes] = {}
        self.package_bodies: List[Dict] = []
        self.agents: List[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append((request.method, url))
        if request.method == "HEAD":
            return httpx.Response(200 if url in self.published else 404)
        if request.method == "PUT":
            self.published.add(url)
            self.bodies[url] = request.content
            return httpx.Response(201)
        if request.method == "POST":
            body = json.loads(request.content)
            self.package_bodies.append(body)
            self.published.add(f"{url}/{body['name']}")
            return httpx.Response(201)
        return httpx.Response(405)

    def factory(self, settings: DeploySettings, agent: str) -> ObjectStore:
        self.agents.append(agent)
        return ObjectStore.from_settings(
            settings, user_agent=agent, transport=httpx.MockTransport(self.handler)
        )

    def methods(self) -> List[str]:
        return [method for method, _ in self.requests]


@pytest.fixture
def store_server() -> StoreServer:
    return StoreServer()


@pytest.fixture
def tap_path(tmp_path: Path) -> Path:
    path = tmp_path / "Taps" / "alice" / "homebrew-bottles"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def runner(tap_path: Path) -> RecordingRunner:
    return RecordingRunner(
        {
            f"brew --repository {TAP}": str(tap_path),
            f"git -C {tap_path} symbolic-ref": "origin/main",
            "brew --repository": "/opt/homebrew",
            "git -C /opt/homebrew describe": "4.2.0",
        }
    )
