# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy.publish.pipeline",
#   "purpose": "Idempotent multi-stage publish of expanded bottles to a tap and object store",
#   "sections": [
#     {"id": "options", "name": "PublishOptions & ConflictPolicy", "anchor": "OPT", "kind": "class"},
#     {"id": "state", "name": "PublishState & PublishReport", "anchor": "STA", "kind": "class"},
#     {"id": "pipeline", "name": "PublishPipeline", "anchor": "class-publishpipeline", "kind": "class"},
#     {"id": "stages", "name": "Stage Implementations", "anchor": "STG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""The publish pipeline.

A run walks an ordered list of :class:`Stage` records against one
:class:`PublishState`:

1. ``prepare-mirror``: clone or unshallow the tap, abort leftover
   rebase/am state, check out and fast-forward the default branch.
2. ``integrate-pull-request``: optionally fetch, rebase, and merge a PR.
3. ``load-descriptors``: find and deep-merge ``*.bottle.json`` files.
4. ``merge-bottles``: ``brew bottle --merge --write`` into the tap.
5. ``upload-bottles``: probe, register, and upload every payload.
6. ``push-mirror``: push the tap commits.

Stages run strictly in sequence and the first exception ends the run.  Every
mutating command and request passes through a dry-run gate that logs it
instead, so re-running after a partial failure is always safe to preview.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set

from ..errors import AlreadyPublishedError, ConfigurationError, ExternalToolError
from ..logging_utils import heading
from ..settings import DeploySettings
from .commands import GIT_BIN, HOMEBREW_BIN, CommandRunner, SubprocessRunner, format_command, safe_system
from .descriptors import (
    BottleDescriptor,
    discover_descriptor_files,
    load_descriptors,
    synthetic_descriptors,
    tap_of,
)
from .object_store import ObjectStore
from .platform import platform_tag, user_agent

__all__ = [
    "ConflictPolicy",
    "PublishOptions",
    "PublishState",
    "PublishReport",
    "Stage",
    "PublishPipeline",
]

LOGGER = logging.getLogger("BottleDeploy.publish")

DEFAULT_BRANCH = "origin/master"
JSON_FILES_PLACEHOLDER = "$JSON_FILES"

StoreFactory = Callable[[DeploySettings, str], ObjectStore]


class ConflictPolicy(str, enum.Enum):
    """What to do when a payload already exists at its final URL."""

    SKIP = "skip"
    ABORT = "abort"


@dataclass(frozen=True)
class PublishOptions:
    dry_run: bool = False
    pr: Optional[int] = None
    keep_old: bool = False
    no_push: bool = False
    on_conflict: ConflictPolicy = ConflictPolicy.SKIP


@dataclass
class PublishState:
    """Transient data owned by one pipeline run."""

    working_path: Path
    tap: str
    options: PublishOptions
    tap_path: Optional[Path] = None
    default_branch: str = DEFAULT_BRANCH
    descriptor_files: List[str] = field(default_factory=list)
    bottles: Dict[str, BottleDescriptor] = field(default_factory=dict)
    confirmed_packages: Set[str] = field(default_factory=set)
    uploaded: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    completed_stages: List[str] = field(default_factory=list)

    @property
    def branch_name(self) -> str:
        return self.default_branch.replace("origin/", "", 1)


@dataclass(frozen=True)
class PublishReport:
    tap: str
    tap_path: Optional[Path]
    uploaded: Sequence[str]
    conflicts: Sequence[str]
    stages: Sequence[str]
    dry_run: bool


@dataclass(frozen=True)
class Stage:
    name: str
    action: Callable[[PublishState], None]
    enabled: Callable[[PublishState], bool] = lambda state: True


def _default_store_factory(settings: DeploySettings, agent: str) -> ObjectStore:
    return ObjectStore.from_settings(settings, user_agent=agent)


class PublishPipeline:
    """Publish the bottles in a working directory to ``tap``.

    Args:
        settings: Credentials and object store configuration.
        runner: Executor for ``brew`` and ``git``; a recording fake in tests.
        store_factory: Builds the :class:`ObjectStore` once the User-Agent is
            known; only called outside dry-run mode.
    """

    def __init__(
        self,
        settings: Optional[DeploySettings] = None,
        *,
        runner: Optional[CommandRunner] = None,
        store_factory: Optional[StoreFactory] = None,
    ) -> None:
        self.settings = settings or DeploySettings()
        self.runner = runner or SubprocessRunner()
        self.store_factory = store_factory or _default_store_factory
        self._env: Dict[str, str] = self.settings.subprocess_env()

    # --- Driver -----------------------------------------------------------------

    def stages(self) -> List[Stage]:
        return [
            Stage("prepare-mirror", self._prepare_mirror),
            Stage("load-descriptors", self._load_descriptors),
            Stage(
                "integrate-pull-request",
                self._integrate_pull_request,
                enabled=lambda state: bool(state.options.pr),
            ),
            Stage("merge-bottles", self._merge_bottles),
            Stage("upload-bottles", self._upload_bottles),
            Stage("push-mirror", self._push_mirror, enabled=lambda state: not state.options.no_push),
        ]

    def run(
        self,
        working_path: Path,
        tap: str,
        options: Optional[PublishOptions] = None,
    ) -> PublishReport:
        """Execute every enabled stage in order, stopping at the first failure."""

        options = options or PublishOptions()
        working_path = Path(working_path)
        if working_path.is_file():
            working_path = working_path.parent
        state = PublishState(working_path=working_path, tap=tap, options=options)

        heading("Deploying bottles to tap")
        for stage in self.stages():
            if not stage.enabled(state):
                LOGGER.debug("stage skipped", extra={"stage": stage.name})
                continue
            LOGGER.debug("stage started", extra={"stage": stage.name})
            stage.action(state)
            state.completed_stages.append(stage.name)

        return PublishReport(
            tap=tap,
            tap_path=state.tap_path,
            uploaded=tuple(state.uploaded),
            conflicts=tuple(state.conflicts),
            stages=tuple(state.completed_stages),
            dry_run=options.dry_run,
        )

    # --- Command gates ----------------------------------------------------------

    def _git(self, state: PublishState, *args: str) -> List[str]:
        return [GIT_BIN, "-C", str(state.tap_path), *args]

    def _mutate(
        self,
        state: PublishState,
        argv: Sequence[str],
        *,
        cwd: Optional[Path] = None,
    ) -> None:
        if state.options.dry_run:
            LOGGER.info(format_command(argv), extra={"stage": "dry-run"})
            return
        safe_system(self.runner, argv, cwd=cwd, env=self._env)

    def _best_effort(self, state: PublishState, argv: Sequence[str]) -> None:
        if state.options.dry_run:
            LOGGER.info(format_command(argv), extra={"stage": "dry-run"})
            return
        try:
            self.runner.capture(argv, env=self._env)
        except ExternalToolError as exc:
            LOGGER.debug("nothing to abort", extra={"stage": "prepare-mirror", "error": str(exc)})

    # --- Stage Implementations --------------------------------------------------

    def _prepare_mirror(self, state: PublishState) -> None:
        tap_path = Path(self.runner.capture([HOMEBREW_BIN, "--repository", state.tap], env=self._env))
        state.tap_path = tap_path

        if not tap_path.exists():
            self._mutate(state, [HOMEBREW_BIN, "tap", state.tap, "--full"])
        elif (tap_path / ".git" / "shallow").exists():
            self._mutate(state, self._git(state, "fetch", "--unshallow"))

        self._best_effort(state, self._git(state, "am", "--abort"))
        self._best_effort(state, self._git(state, "rebase", "--abort"))
        self._mutate(state, self._git(state, "remote", "set-head", "origin", "--auto"))

        symbolic_ref = self._git(state, "symbolic-ref", "refs/remotes/origin/HEAD", "--short")
        try:
            state.default_branch = self.runner.capture(symbolic_ref, env=self._env) or DEFAULT_BRANCH
        except ExternalToolError:
            if not state.options.dry_run:
                raise
            LOGGER.info(
                "default branch unknown in dry run; assuming %s",
                DEFAULT_BRANCH,
                extra={"stage": "prepare-mirror"},
            )
            state.default_branch = DEFAULT_BRANCH

        self._mutate(state, self._git(state, "checkout", state.branch_name))
        self._mutate(state, self._git(state, "pull", "--rebase"))

    def _integrate_pull_request(self, state: PublishState) -> None:
        pr_ref = f"pull/{state.options.pr}"
        self._mutate(state, self._git(state, "fetch", "origin", f"{pr_ref}/head:{pr_ref}"))
        self._mutate(state, self._git(state, "rebase", state.branch_name, pr_ref))
        self._mutate(state, self._git(state, "checkout", state.branch_name))
        self._mutate(state, self._git(state, "merge", pr_ref))

    def _load_descriptors(self, state: PublishState) -> None:
        if state.options.dry_run:
            state.descriptor_files = [JSON_FILES_PLACEHOLDER]
            state.bottles = synthetic_descriptors(platform_tag(self.runner))
            return

        files = discover_descriptor_files(state.working_path)
        state.descriptor_files = [file.name for file in files]
        state.bottles = load_descriptors(files)

        first_identity = next(iter(state.bottles), "")
        if tap_of(first_identity) != state.tap:
            LOGGER.warning(
                "Bottle files don't match given tap",
                extra={"stage": "load-descriptors", "tap": state.tap, "identity": first_identity},
            )

    def _merge_bottles(self, state: PublishState) -> None:
        argv = [HOMEBREW_BIN, "bottle", "--merge", "--write"]
        if state.options.keep_old:
            argv.append("--keep-old")
        argv.extend(state.descriptor_files)
        self._mutate(state, argv, cwd=state.working_path)

    def _upload_bottles(self, state: PublishState) -> None:
        agent = user_agent(self.runner)
        LOGGER.info("Using User-Agent: %s", agent, extra={"stage": "upload-bottles"})

        store: Optional[ObjectStore] = None
        if not state.options.dry_run:
            store = self.store_factory(self.settings, agent)
        try:
            for identity, bottle in state.bottles.items():
                self._upload_identity(state, store, identity, bottle)
        finally:
            if store is not None:
                store.close()

    def _upload_identity(
        self,
        state: PublishState,
        store: Optional[ObjectStore],
        identity: str,
        bottle: BottleDescriptor,
    ) -> None:
        root_url = (bottle.bottle.root_url or self.settings.root_url or "").rstrip("/")
        if not root_url and not state.options.dry_run:
            raise ConfigurationError(
                f"No root_url for {identity}; set BOTTLE_ROOT_URL or add it to the descriptor"
            )

        for tag, payload in bottle.bottle.tags.items():
            url = f"{root_url}/{payload.filename}"
            LOGGER.info("curl -I --output /dev/null %s", url, extra={"stage": "upload-bottles"})
            if store is not None and store.exists(url):
                state.conflicts.append(url)
                if state.options.on_conflict is ConflictPolicy.ABORT:
                    raise AlreadyPublishedError(payload.filename, url)
                LOGGER.warning(
                    "%s is already published. Please remove it manually from\n  %s",
                    payload.filename,
                    url,
                    extra={"stage": "upload-bottles", "tag": tag},
                )
                continue

            self._ensure_package(state, store, identity, bottle)

            LOGGER.info(
                "curl --user $HOMEBREW_BINTRAY_USER:$HOMEBREW_BINTRAY_KEY --upload-file %s %s",
                payload.local_filename,
                url,
                extra={"stage": "upload-bottles"},
            )
            if store is not None:
                store.upload(state.working_path / payload.local_filename, url)
                state.uploaded.append(url)

    def _ensure_package(
        self,
        state: PublishState,
        store: Optional[ObjectStore],
        identity: str,
        bottle: BottleDescriptor,
    ) -> None:
        if identity in state.confirmed_packages:
            return
        if store is None:
            if self.settings.package_api_url:
                LOGGER.info(
                    "curl --user $HOMEBREW_BINTRAY_USER:$HOMEBREW_BINTRAY_KEY -X POST %s",
                    self.settings.package_api_url,
                    extra={"stage": "upload-bottles", "identity": identity},
                )
        elif store.models_packages and not store.package_exists(identity):
            store.create_package(
                identity,
                licenses=bottle.licenses() or list(self.settings.package_licenses),
                vcs_url=self.settings.tap_vcs_url(state.tap),
            )
        state.confirmed_packages.add(identity)

    def _push_mirror(self, state: PublishState) -> None:
        self._mutate(state, self._git(state, "push"))

