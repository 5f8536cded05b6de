# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy.cli",
#   "purpose": "Command-line entry point for fetching and publishing bottle artifacts",
#   "sections": [
#     {"id": "normalize-args", "name": "_normalize_args", "anchor": "function-normalize-args", "kind": "function"},
#     {"id": "parser", "name": "_build_parser", "anchor": "function-build-parser", "kind": "function"},
#     {"id": "handlers", "name": "Subcommand Handlers", "anchor": "HND", "kind": "api"},
#     {"id": "cli-main", "name": "cli_main", "anchor": "function-cli-main", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command-line orchestration for bottle deployments.

``bottle-deploy BUILD_ID TAP`` downloads the build's artifact, expands it next
to existing files without overwriting anything, and publishes the bottles it
contains to ``TAP``.  ``fetch`` and ``publish`` run either half on its own.

Required configuration is read from the environment or from the JSON file
given with ``--secrets``:

    API_URL                 Azure DevOps Services organisation URL
    API_PROJECT             Project id/name owning the builds
    API_TOKEN               Personal access token (build:read scope)
    HOMEBREW_BINTRAY_USER   Object store user with upload rights
    HOMEBREW_BINTRAY_KEY    Object store API key for that user
    HOMEBREW_GIT_NAME       Name for bottle commits (default: git config)
    HOMEBREW_GIT_EMAIL      Email for bottle commits (default: git config)

Errors are printed to stderr.  A failing ``brew`` or ``git`` exit status is
returned as the process exit code; every other error exits with 1.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from . import api
from .errors import BottleDeployError, ConfigError
from .logging_utils import setup_logging
from .publish import ConflictPolicy, PublishOptions, PublishReport
from .settings import DeploySettings, load_settings, validate_tap_name

_DEFAULT_SUBCOMMAND = "deploy"
_KNOWN_SUBCOMMANDS = {"deploy", "fetch", "publish"}
_GLOBAL_OPTIONS_WITH_VALUES = {"--log-level"}
_HELP_FLAGS = {"-h", "--help", "--version"}


def _normalize_args(args: Sequence[str]) -> List[str]:
    """Inject the default subcommand when callers omit it."""

    normalized: List[str] = list(args)
    index = 0
    while index < len(normalized):
        token = normalized[index]
        if token == "--":
            index += 1
            break
        if token in _HELP_FLAGS:
            return normalized
        option_name = token.split("=", 1)[0]
        if option_name in _GLOBAL_OPTIONS_WITH_VALUES:
            index += 1 if "=" in token else 2
            continue
        # Subcommand options such as -d are left for the injected subcommand.
        break

    if index >= len(normalized):
        return normalized
    if normalized[index] not in _KNOWN_SUBCOMMANDS:
        normalized.insert(index, _DEFAULT_SUBCOMMAND)
    return normalized


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"{value!r} is not a number") from exc
    if parsed < 0:
        raise argparse.ArgumentTypeError(f"{value!r} must not be negative")
    return parsed


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-c",
        "--secrets",
        type=Path,
        metavar="FILE",
        help="Load environment secrets from JSON FILE",
    )
    common.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        help="Just print commands, instead of running them",
    )
    return common


def _publish_options() -> argparse.ArgumentParser:
    options = argparse.ArgumentParser(add_help=False)
    options.add_argument(
        "-p",
        "--pr",
        type=_positive_int,
        metavar="PR",
        help="Fetch and merge the pull request that initiated this bottle",
    )
    options.add_argument(
        "-n",
        "--no-push",
        action="store_true",
        help="Do not push after everything is complete",
    )
    options.add_argument(
        "-k",
        "--keep-old",
        action="store_true",
        help="Keep bottles for tags not present in the new descriptors",
    )
    options.add_argument(
        "--on-conflict",
        choices=[policy.value for policy in ConflictPolicy],
        default=ConflictPolicy.SKIP.value,
        help="Skip already-published bottles (default) or abort the run",
    )
    return options


def _build_parser() -> argparse.ArgumentParser:
    """Configure the top-level parser and its subcommands."""

    parser = argparse.ArgumentParser(
        prog="bottle-deploy",
        description=(
            "Deploy Homebrew bottle artifacts from Azure DevOps Services builds to a tap. "
            "Artifacts are expanded in the working directory without overriding existing files."
        ),
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging verbosity",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {api.__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    common = _common_options()
    publish_opts = _publish_options()

    deploy = subparsers.add_parser(
        "deploy",
        parents=[common, publish_opts],
        help="Fetch a build artifact and publish its bottles (default)",
    )
    deploy.add_argument("build_id", type=_positive_int, help="Build id of the artifact")
    deploy.add_argument("tap", help="Tap to publish to, as user/repo")
    deploy.add_argument(
        "-a",
        "--artifact",
        default="drop",
        metavar="NAME",
        help="Use artifact named NAME from build (default: drop)",
    )
    deploy.set_defaults(func=_cmd_deploy)

    fetch = subparsers.add_parser(
        "fetch",
        parents=[common],
        help="Download and expand a build artifact only",
    )
    fetch.add_argument("build_id", type=_positive_int, help="Build id of the artifact")
    fetch.add_argument("-a", "--artifact", default="drop", metavar="NAME")
    fetch.set_defaults(func=_cmd_fetch)

    publish = subparsers.add_parser(
        "publish",
        parents=[common, publish_opts],
        help="Publish bottles already present in a directory",
    )
    publish.add_argument("tap", help="Tap to publish to, as user/repo")
    publish.add_argument(
        "--path",
        type=Path,
        default=Path("."),
        help="Directory holding *.bottle.json files (default: current directory)",
    )
    publish.set_defaults(func=_cmd_publish)

    return parser


# --- Subcommand Handlers -------------------------------------------------------


def _options_from(args: argparse.Namespace) -> PublishOptions:
    return PublishOptions(
        dry_run=args.dry_run,
        pr=args.pr,
        keep_old=args.keep_old,
        no_push=args.no_push,
        on_conflict=ConflictPolicy(args.on_conflict),
    )


def _summarize(report: PublishReport) -> None:
    for url in report.conflicts:
        print(f"Already published: {url}", file=sys.stderr)
    if report.uploaded:
        print(f"Uploaded {len(report.uploaded)} bottle(s) to {report.tap}")


def _cmd_deploy(args: argparse.Namespace, settings: DeploySettings) -> int:
    report = api.deploy(
        args.build_id,
        args.tap,
        settings=settings,
        artifact_name=args.artifact,
        options=_options_from(args),
    )
    _summarize(report)
    return 0


def _cmd_fetch(args: argparse.Namespace, settings: DeploySettings) -> int:
    expanded = api.fetch(args.build_id, args.artifact, settings=settings, dry_run=args.dry_run)
    print(expanded)
    return 0


def _cmd_publish(args: argparse.Namespace, settings: DeploySettings) -> int:
    report = api.publish(args.path, args.tap, settings=settings, options=_options_from(args))
    _summarize(report)
    return 0


def cli_main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line and return the process exit code."""

    parser = _build_parser()
    args = parser.parse_args(_normalize_args(sys.argv[1:] if argv is None else argv))

    try:
        if getattr(args, "tap", None) is not None:
            args.tap = validate_tap_name(args.tap)
        settings = load_settings(args.secrets)
        setup_logging(level=args.log_level or settings.log_level, log_dir=settings.log_dir)
        return args.func(args, settings)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return exc.exit_code
    except BottleDeployError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return exc.exit_code
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return 1


def main() -> None:  # pragma: no cover - thin wrapper
    sys.exit(cli_main())


if __name__ == "__main__":  # pragma: no cover
    main()
