# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy",
#   "purpose": "Package initialization for BottleDeploy",
#   "sections": [
#     {"id": "getattr", "name": "__getattr__", "anchor": "function-getattr", "kind": "function"},
#     {"id": "dir", "name": "__dir__", "anchor": "function-dir", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Public API for deploying Homebrew bottles from CI build artifacts.

The facade exposes the fetch, publish, and combined deploy operations along
with the settings loader and the root exception type.  Attributes are imported
lazily so ``import BottleDeploy`` stays cheap for the command line.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any, Dict, Tuple

_EXPORTS: Dict[str, Tuple[str, str]] = {
    "__version__": ("BottleDeploy.api", "__version__"),
    "fetch": ("BottleDeploy.api", "fetch"),
    "publish": ("BottleDeploy.api", "publish"),
    "deploy": ("BottleDeploy.api", "deploy"),
    "DeploySettings": ("BottleDeploy.settings", "DeploySettings"),
    "load_settings": ("BottleDeploy.settings", "load_settings"),
    "PublishOptions": ("BottleDeploy.publish.pipeline", "PublishOptions"),
    "ConflictPolicy": ("BottleDeploy.publish.pipeline", "ConflictPolicy"),
    "BottleDeployError": ("BottleDeploy.errors", "BottleDeployError"),
}

__all__ = sorted(_EXPORTS)

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .api import __version__, deploy, fetch, publish
    from .errors import BottleDeployError
    from .publish.pipeline import ConflictPolicy, PublishOptions
    from .settings import DeploySettings, load_settings


def __getattr__(name: str) -> Any:
    """Lazily import public attributes on first access."""

    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    module_name, attribute = target
    value = getattr(import_module(module_name), attribute)
    globals()[name] = value
    return value


def __dir__() -> list:
    return sorted(set(globals()) | set(__all__))
