# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy.settings",
#   "purpose": "Typed deployment settings assembled from the environment and a JSON secrets file",
#   "sections": [
#     {"id": "constants", "name": "Constants & Paths", "anchor": "CONST", "kind": "constants"},
#     {"id": "settings", "name": "DeploySettings", "anchor": "class-deploysettings", "kind": "class"},
#     {"id": "loading", "name": "Settings Loading", "anchor": "LOAD", "kind": "api"},
#     {"id": "tap", "name": "Tap Name Validation", "anchor": "TAP", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Deployment settings.

Every component receives its configuration through a :class:`DeploySettings`
instance built once at the command line boundary.  Values come from the
process environment and, optionally, a JSON secrets file whose keys use the
same names as the environment variables (``API_TOKEN``,
``HOMEBREW_BINTRAY_KEY``, ...).  Secrets take precedence over the environment.

Fields are optional at load time; the operations that need a value call
:meth:`DeploySettings.require`, which raises
:class:`~BottleDeploy.errors.MissingConfigError` naming the missing variable.
Dry runs therefore work without any credentials configured.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from pydantic import Field, SecretStr
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError, MissingConfigError

__all__ = [
    "LOG_DIR",
    "HOMEBREW_ENV",
    "DeploySettings",
    "load_settings",
    "validate_tap_name",
]

# --- Constants & Paths ---------------------------------------------------------

_STATE_HOME = Path(os.environ.get("XDG_STATE_HOME") or Path.home() / ".local" / "state")
LOG_DIR: Path = _STATE_HOME / "bottle-deploy" / "logs"

HOMEBREW_ENV: Dict[str, str] = {
    "HOMEBREW_DEVELOPER": "1",
    "HOMEBREW_NO_AUTO_UPDATE": "1",
    "HOMEBREW_NO_EMOJI": "1",
    "HOMEBREW_NO_ENV_FILTERING": "1",
}

_TAP_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


class DeploySettings(BaseSettings):
    """Configuration consumed by the fetch and publish stages."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    api_url: Optional[str] = Field(
        default=None,
        alias="API_URL",
        description="Azure DevOps Services organisation URL",
    )
    api_project: Optional[str] = Field(
        default=None,
        alias="API_PROJECT",
        description="Project id or name owning the builds",
    )
    api_token: Optional[SecretStr] = Field(
        default=None,
        alias="API_TOKEN",
        description="Personal access token with build:read scope",
    )
    bintray_user: Optional[str] = Field(default=None, alias="HOMEBREW_BINTRAY_USER")
    bintray_key: Optional[SecretStr] = Field(default=None, alias="HOMEBREW_BINTRAY_KEY")
    git_name: Optional[str] = Field(default=None, alias="HOMEBREW_GIT_NAME")
    git_email: Optional[str] = Field(default=None, alias="HOMEBREW_GIT_EMAIL")
    root_url: Optional[str] = Field(
        default=None,
        alias="BOTTLE_ROOT_URL",
        description="Upload root used when a descriptor carries no root_url",
    )
    package_api_url: Optional[str] = Field(
        default=None,
        alias="BOTTLE_PACKAGE_API_URL",
        description="Package record endpoint; package records are skipped when unset",
    )
    package_licenses: List[str] = Field(
        default_factory=lambda: ["BSD-2-Clause"],
        alias="BOTTLE_PACKAGE_LICENSES",
    )
    vcs_url: Optional[str] = Field(default=None, alias="BOTTLE_VCS_URL")
    http_timeout: Optional[float] = Field(
        default=None,
        alias="BOTTLE_HTTP_TIMEOUT",
        gt=0.0,
        description="Per-request timeout in seconds; requests never time out when unset",
    )
    log_level: str = Field(default="INFO", alias="BOTTLE_DEPLOY_LOG_LEVEL")
    log_dir: Optional[Path] = Field(default=None, alias="BOTTLE_DEPLOY_LOG_DIR")

    def require(self, name: str) -> str:
        """Return the value of field ``name`` or raise :class:`MissingConfigError`."""

        value = getattr(self, name)
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        if not value:
            field = type(self).model_fields[name]
            raise MissingConfigError(field.alias or name.upper())
        return str(value)

    def subprocess_env(self, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Return the environment handed to ``brew`` and ``git`` invocations."""

        env = dict(os.environ if base is None else base)
        env.update(HOMEBREW_ENV)
        if self.git_name:
            env["HOMEBREW_GIT_NAME"] = self.git_name
        if self.git_email:
            env["HOMEBREW_GIT_EMAIL"] = self.git_email
        return env

    def tap_vcs_url(self, tap: str) -> str:
        """Return the source-control URL advertised in package records for ``tap``."""

        if self.vcs_url:
            return self.vcs_url
        user, repo = tap.split("/", 1)
        return f"https://github.com/{user}/homebrew-{repo}"


# --- Settings Loading ----------------------------------------------------------


def _read_secrets(path: Path) -> Dict[str, object]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Secrets file not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Unable to read secrets file {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Secrets file {path} must contain a JSON object")
    return payload


def load_settings(
    secrets_path: Optional[Path] = None,
    *,
    overrides: Optional[Mapping[str, object]] = None,
) -> DeploySettings:
    """Build :class:`DeploySettings` from the environment, secrets file, and overrides."""

    values: Dict[str, object] = {}
    if secrets_path is not None:
        values.update(_read_secrets(secrets_path))
    if overrides:
        values.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return DeploySettings(**values)
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


# --- Tap Name Validation -------------------------------------------------------


def validate_tap_name(tap: str) -> str:
    """Return ``tap`` unchanged when it has the ``user/repo`` shape."""

    candidate = (tap or "").strip()
    if not _TAP_PATTERN.match(candidate):
        raise ConfigError(f"Invalid tap name {tap!r}; expected user/repo")
    return candidate
