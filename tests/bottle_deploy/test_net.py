"""HTTP client construction tests."""

from __future__ import annotations

import logging

import httpx

from BottleDeploy.net import build_http_client
from BottleDeploy.settings import DeploySettings


def test_client_has_no_timeout_by_default() -> None:
    with build_http_client(transport=httpx.MockTransport(lambda request: httpx.Response(200))) as client:
        assert client.timeout == httpx.Timeout(None)
        assert client.headers["User-Agent"] == "BottleDeploy"


def test_client_applies_configured_timeout_and_agent() -> None:
    settings = DeploySettings(BOTTLE_HTTP_TIMEOUT=30)

    with build_http_client(
        settings,
        user_agent="Homebrew/4.2.0 (Linux; x86_64 Ubuntu)",
        transport=httpx.MockTransport(lambda request: httpx.Response(200)),
    ) as client:
        assert client.timeout == httpx.Timeout(30.0)
        assert client.headers["User-Agent"] == "Homebrew/4.2.0 (Linux; x86_64 Ubuntu)"


def test_responses_are_logged_at_debug(caplog) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(204))

    with caplog.at_level(logging.DEBUG, logger="BottleDeploy.net"):
        with build_http_client(transport=transport) as client:
            client.head("https://dl.example.test/widget.tar.gz")

    (record,) = [r for r in caplog.records if r.getMessage() == "http-response"]
    assert record.status == 204
    assert record.method == "HEAD"
    assert record.elapsed_sec is not None
