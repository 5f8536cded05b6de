"""Publishing bottles to a tap and its object store.

Re-exports the pipeline, the descriptor helpers, and the command runner
interfaces used to inject fakes in tests.
"""

from .commands import CommandRunner, ExitStatus, SubprocessRunner, safe_system
from .descriptors import (
    BottleDescriptor,
    discover_descriptor_files,
    load_descriptors,
    merge_descriptor_payloads,
    synthetic_descriptors,
)
from .object_store import ObjectStore
from .pipeline import (
    ConflictPolicy,
    PublishOptions,
    PublishPipeline,
    PublishReport,
    PublishState,
    Stage,
)

__all__ = [
    "BottleDescriptor",
    "CommandRunner",
    "ConflictPolicy",
    "ExitStatus",
    "ObjectStore",
    "PublishOptions",
    "PublishPipeline",
    "PublishReport",
    "PublishState",
    "Stage",
    "SubprocessRunner",
    "discover_descriptor_files",
    "load_descriptors",
    "merge_descriptor_payloads",
    "safe_system",
    "synthetic_descriptors",
]
