"""Post-build actions run by the host build system.

Boundary rules:
- Actions reach the Integrity server only through `session.APISession`.
- Progress and failures are written to the host's `BuildLogSink`; nothing
  escapes perform() as an exception.
"""

from .base import (
    BuildContext,
    BuildLogSink,
    BuildResult,
    Failed,
    InMemoryLogSink,
    OperationOutcome,
    Skipped,
    Succeeded,
)
from .checkpoint import CheckpointAction
from .logging import FileBuildLogSink

__all__ = [
    "BuildContext",
    "BuildLogSink",
    "BuildResult",
    "CheckpointAction",
    "Failed",
    "FileBuildLogSink",
    "InMemoryLogSink",
    "OperationOutcome",
    "Skipped",
    "Succeeded",
]
