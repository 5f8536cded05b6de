"""Object store client tests against ``httpx.MockTransport``."""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import List

import httpx
import pytest

from BottleDeploy.errors import MissingConfigError, UploadError
from BottleDeploy.publish.object_store import ObjectStore, package_name
from BottleDeploy.settings import DeploySettings
from tests.bottle_deploy.conftest import PACKAGE_API, bottle_url

AGENT = "Homebrew/4.2.0 (Macintosh; Intel Mac OS X 14.4)"


def _store(settings: DeploySettings, handler, **overrides) -> ObjectStore:
    if overrides:
        settings = settings.model_copy(update=overrides)
    return ObjectStore.from_settings(settings, user_agent=AGENT, transport=httpx.MockTransport(handler))


@pytest.mark.parametrize(("status", "expected"), [(200, True), (204, True), (404, False), (500, False)])
def test_exists_is_true_only_for_success(settings: DeploySettings, status: int, expected: bool) -> None:
    store = _store(settings, lambda request: httpx.Response(status))

    assert store.exists(bottle_url("sonoma")) is expected


def test_exists_treats_transport_failure_as_missing(settings: DeploySettings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert _store(settings, handler).exists(bottle_url("sonoma")) is False


def test_upload_puts_file_with_credentials_and_agent(settings: DeploySettings, tmp_path: Path) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    bottle = tmp_path / "widget--1.0.0.sonoma.bottle.tar.gz"
    bottle.write_bytes(b"bottle-bytes")

    _store(settings, handler).upload(bottle, bottle_url("sonoma"))

    (request,) = seen
    assert request.method == "PUT"
    assert str(request.url) == bottle_url("sonoma")
    assert request.content == b"bottle-bytes"
    assert request.headers["User-Agent"] == AGENT
    expected = base64.b64encode(b"alice:s3cret-key").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"


def test_upload_rejection_raises(settings: DeploySettings, tmp_path: Path) -> None:
    bottle = tmp_path / "widget.tar.gz"
    bottle.write_bytes(b"x")
    store = _store(settings, lambda request: httpx.Response(409))

    with pytest.raises(UploadError) as excinfo:
        store.upload(bottle, bottle_url("sonoma"))

    assert excinfo.value.status_code == 409


def test_package_records_are_skipped_without_endpoint(settings: DeploySettings) -> None:
    requests: List[httpx.Request] = []
    store = _store(settings, lambda request: requests.append(request) or httpx.Response(200))

    assert not store.models_packages
    assert store.package_exists("alice/bottles/widget") is False
    store.create_package("alice/bottles/widget", licenses=["MIT"], vcs_url="https://example.test")
    assert requests == []


def test_create_package_posts_record(settings: DeploySettings) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(404 if request.method == "HEAD" else 201)

    store = _store(settings, handler, package_api_url=PACKAGE_API)

    assert store.package_exists("alice/bottles/widget") is False
    store.create_package(
        "alice/bottles/widget",
        licenses=["BSD-2-Clause"],
        vcs_url="https://github.com/alice/homebrew-bottles",
    )

    head, post = seen
    assert str(head.url) == f"{PACKAGE_API}/widget"
    assert post.method == "POST"
    assert json.loads(post.content) == {
        "name": "widget",
        "public_download_numbers": True,
        "licenses": ["BSD-2-Clause"],
        "vcs_url": "https://github.com/alice/homebrew-bottles",
    }


def test_from_settings_requires_credentials() -> None:
    with pytest.raises(MissingConfigError, match="HOMEBREW_BINTRAY_USER env var not set"):
        ObjectStore.from_settings(DeploySettings(), user_agent=AGENT)


def test_package_name_is_last_segment() -> None:
    assert package_name("alice/bottles/widget") == "widget"
