"""High-level orchestration helpers behind the ``bottle-deploy`` command.

The command line parses arguments and builds a
:class:`~BottleDeploy.settings.DeploySettings`; everything after that goes
through the functions here, so scripted use and the CLI share one code path:

- :func:`fetch` downloads and expands a build artifact,
- :func:`publish` runs the publish pipeline over an expanded directory,
- :func:`deploy` chains the two.
"""

from __future__ import annotations

from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Optional

from .artifacts import ArtifactProvider, fetch_artifact
from .publish import CommandRunner, PublishOptions, PublishPipeline, PublishReport
from .publish.pipeline import StoreFactory
from .settings import DeploySettings, validate_tap_name

__all__ = ["__version__", "fetch", "publish", "deploy"]

try:
    __version__ = importlib_metadata.version("bottle-deploy")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - source checkout
    __version__ = "0.0.0"


def fetch(
    build_id: int,
    artifact_name: str,
    *,
    settings: DeploySettings,
    dry_run: bool = False,
    provider: Optional[ArtifactProvider] = None,
) -> Path:
    """Download and expand ``artifact_name`` from ``build_id``."""

    return fetch_artifact(
        build_id,
        artifact_name,
        dry_run=dry_run,
        provider=provider,
        settings=settings,
    )


def publish(
    working_path: Path,
    tap: str,
    *,
    settings: DeploySettings,
    options: Optional[PublishOptions] = None,
    runner: Optional[CommandRunner] = None,
    store_factory: Optional[StoreFactory] = None,
) -> PublishReport:
    """Publish the bottles found in ``working_path`` to ``tap``."""

    tap = validate_tap_name(tap)
    pipeline = PublishPipeline(settings, runner=runner, store_factory=store_factory)
    return pipeline.run(working_path, tap, options)


def deploy(
    build_id: int,
    tap: str,
    *,
    settings: DeploySettings,
    artifact_name: str = "drop",
    options: Optional[PublishOptions] = None,
    provider: Optional[ArtifactProvider] = None,
    runner: Optional[CommandRunner] = None,
    store_factory: Optional[StoreFactory] = None,
) -> PublishReport:
    """Fetch an artifact and publish the bottles it contains."""

    options = options or PublishOptions()
    tap = validate_tap_name(tap)
    expanded = fetch(
        build_id,
        artifact_name,
        settings=settings,
        dry_run=options.dry_run,
        provider=provider,
    )
    return publish(
        expanded,
        tap,
        settings=settings,
        options=options,
        runner=runner,
        store_factory=store_factory,
    )
