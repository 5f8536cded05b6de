# === NAVMAP v1 ===
# {
#   "module": "BottleDeploy.publish.descriptors",
#   "purpose": "Model, discover, and deep-merge bottle descriptor JSON files",
#   "sections": [
#     {"id": "models", "name": "Descriptor Models", "anchor": "MOD", "kind": "class"},
#     {"id": "merge", "name": "merge_descriptor_payloads", "anchor": "function-merge-descriptor-payloads", "kind": "function"},
#     {"id": "discovery", "name": "Discovery & Loading", "anchor": "DIS", "kind": "api"},
#     {"id": "synthetic", "name": "Dry-run Descriptor", "anchor": "SYN", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Bottle descriptor files (``*.bottle.json``).

Each file maps a package identity such as ``alice/bottles/widget`` to its
formula version and the bottles built for it, one per platform tag::

    {"alice/bottles/widget": {
        "formula": {"pkg_version": "1.0.0"},
        "bottle": {"root_url": "https://...", "rebuild": 0,
                   "tags": {"sonoma": {"filename": "...", "local_filename": "...",
                                       "sha256": "..."}}}}}

A CI matrix produces one file per platform, so the files for one identity are
deep-merged: later files add tags to earlier ones instead of replacing them.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import ConfigError, NoBottlesFoundError

__all__ = [
    "DESCRIPTOR_PATTERN",
    "BottleTag",
    "BottleSpec",
    "FormulaSpec",
    "BottleDescriptor",
    "merge_descriptor_payloads",
    "discover_descriptor_files",
    "load_descriptors",
    "parse_descriptors",
    "synthetic_descriptors",
    "tap_of",
]

DESCRIPTOR_PATTERN = "*.bottle.json"
SYNTHETIC_FORMULA = "testbottest"
SYNTHETIC_VERSION = "1.0.0"
SYNTHETIC_SHA256 = "20cdde424f5fe6d4fdb6a24cff41d2f7aefcd1ef2f98d46f6c074c36a1eef81e"


class BottleTag(BaseModel):
    """Payload record for one platform tag."""

    model_config = ConfigDict(extra="allow")

    filename: str
    local_filename: str
    sha256: str


class BottleSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    root_url: Optional[str] = None
    prefix: Optional[str] = None
    cellar: Optional[str] = None
    rebuild: int = 0
    tags: Dict[str, BottleTag] = Field(default_factory=dict)


class FormulaSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    pkg_version: str
    path: Optional[str] = None
    license: Optional[Any] = None


class BottleDescriptor(BaseModel):
    """Merged packaging metadata for one package identity."""

    model_config = ConfigDict(extra="allow")

    formula: FormulaSpec
    bottle: BottleSpec

    @property
    def version(self) -> str:
        return self.formula.pkg_version

    def licenses(self) -> List[str]:
        """Return the formula licence as a list, empty when the descriptor has none."""

        value = self.formula.license
        if not value:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        return [str(value)]


def _merge_value(base: Any, override: Any) -> Any:
    if isinstance(base, Mapping) and isinstance(override, Mapping):
        return merge_descriptor_payloads(base, override)
    if isinstance(base, list) and isinstance(override, list):
        merged = list(base)
        merged.extend(item for item in override if item not in base)
        return merged
    return override


def merge_descriptor_payloads(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep merge ``override`` into a copy of ``base``.

    Mappings merge recursively, lists become an order-preserving union, and any
    other value in ``override`` wins.  Merging the same payload twice is a
    no-op, and payloads for disjoint identities merge identically in any order.
    """

    result: Dict[str, Any] = dict(base)
    for key, value in override.items():
        result[key] = _merge_value(result[key], value) if key in result else value
    return result


def discover_descriptor_files(working_path: Path) -> List[Path]:
    """Return the descriptor files in ``working_path`` in a stable order."""

    files = sorted(path for path in working_path.glob(DESCRIPTOR_PATTERN) if path.is_file())
    if not files:
        raise NoBottlesFoundError(f"No bottles found in {working_path}")
    return files


def parse_descriptors(payload: Mapping[str, Any]) -> Dict[str, BottleDescriptor]:
    """Validate a merged payload into :class:`BottleDescriptor` models."""

    try:
        return {
            identity: BottleDescriptor.model_validate(entry) for identity, entry in payload.items()
        }
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid bottle descriptor: {exc}") from exc


def load_descriptors(files: Iterable[Path]) -> Dict[str, BottleDescriptor]:
    """Read and deep-merge descriptor ``files`` into one identity map."""

    merged: Dict[str, Any] = {}
    for file in files:
        try:
            payload = json.loads(file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Unable to read bottle descriptor {file}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigError(f"Bottle descriptor {file} must contain a JSON object")
        merged = merge_descriptor_payloads(merged, payload)
    return parse_descriptors(merged)


def synthetic_descriptors(tag: str) -> Dict[str, BottleDescriptor]:
    """Return a placeholder descriptor so a dry run has something to print."""

    stem = f"{SYNTHETIC_FORMULA}-{SYNTHETIC_VERSION}.{tag}.bottle.tar.gz"
    return parse_descriptors(
        {
            SYNTHETIC_FORMULA: {
                "formula": {"pkg_version": SYNTHETIC_VERSION},
                "bottle": {
                    "rebuild": 0,
                    "tags": {
                        tag: {
                            "filename": stem,
                            "local_filename": f"{SYNTHETIC_FORMULA}--{SYNTHETIC_VERSION}.{tag}.bottle.tar.gz",
                            "sha256": SYNTHETIC_SHA256,
                        }
                    },
                },
            }
        }
    )


def tap_of(identity: str) -> str:
    """Return the ``user/repo`` prefix of a fully qualified package identity."""

    return "/".join(identity.split("/", 2)[:2])
