# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy.publish.object_store",
#   "purpose": "Probe, register, and upload bottle payloads on the remote object store",
#   "sections": [
#     {"id": "objectstore", "name": "ObjectStore", "anchor": "class-objectstore", "kind": "class"},
#     {"id": "package-name", "name": "package_name", "anchor": "function-package-name", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Remote object store client used by the upload stage.

Three calls matter: a ``HEAD`` existence probe of a payload's final URL, an
authenticated ``PUT`` of a local file to that URL, and, for stores that model
packages explicitly, a package record lookup plus ``POST`` creation.

The existence probe deliberately reports ``False`` for every failure,
including connection errors, so a flaky network is indistinguishable from an
unpublished file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import httpx

from ..errors import UploadError
from ..net import build_http_client
from ..settings import DeploySettings

__all__ = ["ObjectStore", "package_name"]

LOGGER = logging.getLogger("BottleDeploy.publish.object_store")


def package_name(identity: str) -> str:
    """Return the remote package name for ``identity`` (its last path segment)."""

    return identity.rsplit("/", 1)[-1]


class ObjectStore:
    """HTTP client for the bottle object store.

    Args:
        client: Pre-configured client carrying the User-Agent and credentials.
        package_api_url: Endpoint holding package records, or ``None`` when the
            store has no package concept.
    """

    def __init__(self, client: httpx.Client, *, package_api_url: Optional[str] = None) -> None:
        self._client = client
        self.package_api_url = package_api_url.rstrip("/") if package_api_url else None

    @classmethod
    def from_settings(
        cls,
        settings: DeploySettings,
        *,
        user_agent: str,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> "ObjectStore":
        auth = (settings.require("bintray_user"), settings.require("bintray_key"))
        client = build_http_client(settings, user_agent=user_agent, auth=auth, transport=transport)
        return cls(client, package_api_url=settings.package_api_url)

    @property
    def models_packages(self) -> bool:
        return self.package_api_url is not None

    def exists(self, url: str) -> bool:
        """Return ``True`` only when a ``HEAD`` request for ``url`` succeeds."""

        try:
            response = self._client.head(url)
        except httpx.HTTPError as exc:
            LOGGER.debug("probe failed", extra={"stage": "upload", "url": url, "error": str(exc)})
            return False
        return response.is_success

    def package_exists(self, identity: str) -> bool:
        if not self.package_api_url:
            return False
        return self.exists(f"{self.package_api_url}/{package_name(identity)}")

    def create_package(self, identity: str, *, licenses: List[str], vcs_url: str) -> None:
        """Create the remote package record for ``identity``."""

        if not self.package_api_url:
            return
        body = {
            "name": package_name(identity),
            "public_download_numbers": True,
            "licenses": licenses,
            "vcs_url": vcs_url,
        }
        try:
            response = self._client.post(self.package_api_url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UploadError(
                f"Creating package {body['name']} failed: HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise UploadError(f"Creating package {body['name']} failed: {exc}") from exc
        LOGGER.info("created package record", extra={"stage": "upload", "package": body["name"]})

    def upload(self, path: Path, url: str) -> None:
        """Stream the file at ``path`` to ``url`` with an authenticated ``PUT``."""

        try:
            with path.open("rb") as stream:
                response = self._client.put(url, content=stream)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UploadError(
                f"Uploading {path.name} to {url} failed: HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise UploadError(f"Uploading {path.name} to {url} failed: {exc}") from exc
        LOGGER.info("uploaded bottle", extra={"stage": "upload", "file": path.name, "url": url})

    def close(self) -> None:
        self._client.close()
