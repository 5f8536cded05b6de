# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy.net",
#   "purpose": "Construct HTTPX clients for the build service and the object store",
#   "sections": [
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX client construction shared by the artifact provider and object store."""

from __future__ import annotations

import logging
import ssl
import time
from typing import Mapping, MutableMapping, Optional, Tuple

import certifi
import httpx

from .settings import DeploySettings

LOGGER = logging.getLogger("BottleDeploy.net")

DEFAULT_USER_AGENT = "BottleDeploy"

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _timeout_for(settings: Optional[DeploySettings]) -> httpx.Timeout:
    seconds = settings.http_timeout if settings is not None else None
    return httpx.Timeout(seconds)


def _request_hook(request: httpx.Request) -> None:
    meta: MutableMapping[str, object] = request.extensions.setdefault("bottle_meta", {})  # type: ignore[assignment]
    meta["start_time"] = time.perf_counter()


def _response_hook(response: httpx.Response) -> None:
    meta = response.request.extensions.get("bottle_meta") or {}
    start = meta.get("start_time") if isinstance(meta, Mapping) else None
    elapsed = time.perf_counter() - start if isinstance(start, (int, float)) else None
    LOGGER.debug(
        "http-response",
        extra={
            "stage": "http",
            "method": response.request.method,
            "url": str(response.request.url),
            "status": response.status_code,
            "elapsed_sec": elapsed,
        },
    )


# --- Public API ----------------------------------------------------------------


def build_http_client(
    settings: Optional[DeploySettings] = None,
    *,
    user_agent: str = DEFAULT_USER_AGENT,
    auth: Optional[Tuple[str, str]] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Return an ``httpx.Client`` configured for deployment traffic.

    Args:
        settings: Source of the request timeout; requests never time out when
            the settings carry no timeout.
        user_agent: Value of the ``User-Agent`` header.
        auth: Optional basic-auth credential pair applied to every request.
        transport: Replacement transport, typically ``httpx.MockTransport`` in tests.

    Returns:
        A client the caller owns and must close.
    """

    kwargs: dict = {}
    if transport is not None:
        kwargs["transport"] = transport
    else:
        kwargs["verify"] = _build_ssl_context()
    return httpx.Client(
        headers={"User-Agent": user_agent},
        auth=auth,
        timeout=_timeout_for(settings),
        trust_env=True,
        follow_redirects=True,
        event_hooks={"request": [_request_hook], "response": [_response_hook]},
        **kwargs,
    )
