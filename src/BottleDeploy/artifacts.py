# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy.artifacts",
#   "purpose": "Locate, download, and expand a named build artifact",
#   "sections": [
#     {"id": "models", "name": "Artifact Models", "anchor": "MOD", "kind": "class"},
#     {"id": "provider", "name": "Artifact Providers", "anchor": "PRV", "kind": "class"},
#     {"id": "fetch", "name": "fetch_artifact", "anchor": "function-fetch-artifact", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Build artifact retrieval.

The build service is treated as an external collaborator with two operations:
list the artifacts attached to a build, and stream one of them as a zip.
:class:`AzureDevOpsArtifactProvider` implements them over the Azure DevOps
build REST API; tests substitute any object satisfying
:class:`ArtifactProvider`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .errors import ArtifactDownloadError, ArtifactNotFoundError
from .io import Expander, find_available_name
from .logging_utils import heading
from .net import build_http_client
from .settings import DeploySettings

__all__ = [
    "ArtifactResource",
    "BuildArtifact",
    "ArtifactProvider",
    "AzureDevOpsArtifactProvider",
    "select_artifact",
    "fetch_artifact",
]

LOGGER = logging.getLogger("BottleDeploy.artifacts")

CONTAINER_RESOURCE = "Container"
API_VERSION = "5.0"
_CHUNK_SIZE = 1 << 16


class ArtifactResource(BaseModel):
    """Storage details of a build artifact."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Optional[str] = None
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")


class BuildArtifact(BaseModel):
    """A named artifact attached to a build."""

    model_config = ConfigDict(extra="ignore")

    name: str
    resource: Optional[ArtifactResource] = None


class ArtifactProvider(Protocol):
    """Operations the fetcher needs from a build service."""

    def list_artifacts(self, build_id: int) -> List[BuildArtifact]:
        ...

    def iter_artifact_zip(self, build_id: int, artifact_name: str) -> Iterator[bytes]:
        ...


class AzureDevOpsArtifactProvider:
    """Artifact provider backed by the Azure DevOps Services build API."""

    def __init__(
        self,
        api_url: str,
        project: str,
        token: str,
        *,
        client: Optional[httpx.Client] = None,
        settings: Optional[DeploySettings] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.project = project
        self._client = client or build_http_client(settings, auth=("PAT", token))

    @classmethod
    def from_settings(cls, settings: DeploySettings) -> "AzureDevOpsArtifactProvider":
        return cls(
            settings.require("api_url"),
            settings.require("api_project"),
            settings.require("api_token"),
            settings=settings,
        )

    def _artifacts_url(self, build_id: int) -> str:
        return f"{self.api_url}/{self.project}/_apis/build/builds/{build_id}/artifacts"

    def list_artifacts(self, build_id: int) -> List[BuildArtifact]:
        """Return the artifacts attached to ``build_id``."""

        url = self._artifacts_url(build_id)
        try:
            response = self._client.get(url, params={"api-version": API_VERSION})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ArtifactDownloadError(
                f"Listing artifacts for build {build_id} failed: HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ArtifactDownloadError(f"Listing artifacts for build {build_id} failed: {exc}") from exc
        payload = response.json()
        items = payload.get("value", []) if isinstance(payload, dict) else payload
        return [BuildArtifact.model_validate(item) for item in items or []]

    def iter_artifact_zip(self, build_id: int, artifact_name: str) -> Iterator[bytes]:
        """Yield the zip payload of ``artifact_name`` in chunks."""

        params = {"artifactName": artifact_name, "api-version": API_VERSION, "$format": "zip"}
        try:
            with self._client.stream(
                "GET",
                self._artifacts_url(build_id),
                params=params,
                headers={"Accept": "application/zip"},
            ) as response:
                response.raise_for_status()
                yield from response.iter_bytes(_CHUNK_SIZE)
        except httpx.HTTPStatusError as exc:
            raise ArtifactDownloadError(
                f"Downloading {artifact_name} failed: HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ArtifactDownloadError(f"Downloading {artifact_name} failed: {exc}") from exc

    def close(self) -> None:
        self._client.close()


def select_artifact(artifacts: List[BuildArtifact], artifact_name: str) -> BuildArtifact:
    """Return the first downloadable container artifact named ``artifact_name``."""

    for artifact in artifacts:
        if artifact.name != artifact_name:
            continue
        if artifact.resource is None or artifact.resource.type != CONTAINER_RESOURCE:
            continue
        if not artifact.resource.download_url:
            break
        return artifact
    raise ArtifactNotFoundError("No downloadable artifact found")


def fetch_artifact(
    build_id: int,
    artifact_name: str,
    *,
    dry_run: bool = False,
    provider: Optional[ArtifactProvider] = None,
    settings: Optional[DeploySettings] = None,
) -> Path:
    """Download ``artifact_name`` of ``build_id`` and expand it in the current directory.

    Args:
        build_id: Numeric build identifier.
        artifact_name: Artifact to download, for example ``"drop"``.
        dry_run: Skip all network I/O and return the default expansion target.
        provider: Build service client; built from ``settings`` when omitted.
        settings: Credentials for the default provider.

    Returns:
        The directory the publish stage should work in.

    Raises:
        ArtifactNotFoundError: When no container artifact matches ``artifact_name``.
        ArtifactDownloadError: When the build service rejects a request.
    """

    project = settings.api_project if settings is not None else None
    heading(f"Fetching {artifact_name} for build {build_id} of {project or 'default'} project")

    if dry_run:
        return Expander.DEFAULT_EXPAND_TO

    owned = provider is None
    if provider is None:
        provider = AzureDevOpsArtifactProvider.from_settings(settings or DeploySettings())
    try:
        artifact = select_artifact(provider.list_artifacts(build_id), artifact_name)
        heading(f"Downloading {artifact.resource.download_url}")  # type: ignore[union-attr]

        path = Path(find_available_name(f"{artifact_name}.zip"))
        written = 0
        with path.open("wb") as sink:
            for chunk in provider.iter_artifact_zip(build_id, artifact_name):
                sink.write(chunk)
                written += len(chunk)
        LOGGER.info(
            "downloaded artifact",
            extra={"stage": "fetch", "artifact": artifact_name, "path": str(path), "bytes": written},
        )
    finally:
        if owned:
            provider.close()  # type: ignore[attr-defined]

    return Expander.from_path(path).expand()
