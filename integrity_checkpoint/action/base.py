from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol, Union

from ..session.interface import ProjectHandle


class BuildLogSink(Protocol):
    """Host-visible build log; stdout carries progress, stderr carries failures."""

    def write_stdout(self, data: bytes) -> None:  # pragma: no cover - protocol
        ...

    def write_stderr(self, data: bytes) -> None:  # pragma: no cover - protocol
        ...


class BuildResult(str, enum.Enum):
    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"
    ABORTED = "ABORTED"
    NOT_BUILT = "NOT_BUILT"


@dataclass(frozen=True)
class BuildContext:
    """What the host hands over once a build has finished."""

    result: Union[BuildResult, str]
    environment: Mapping[str, str] = field(default_factory=dict)
    build_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        value = self.result.value if isinstance(self.result, BuildResult) else str(self.result)
        return value.upper() == BuildResult.SUCCESS.value


@dataclass(frozen=True)
class OperationOutcome:
    """Result of one checkpoint run, as reported to the host."""

    @property
    def ok(self) -> bool:
        """Whether the host should treat the step as passed."""
        return True


@dataclass(frozen=True)
class Skipped(OperationOutcome):
    reason: str


@dataclass(frozen=True)
class Succeeded(OperationOutcome):
    project: ProjectHandle
    label: str
    revision: str


@dataclass(frozen=True)
class Failed(OperationOutcome):
    reason: str
    error: Optional[BaseException] = field(default=None, compare=False, repr=False)

    @property
    def ok(self) -> bool:
        return False


class InMemoryLogSink:
    """Simple bytes-accumulating sink useful for tests and bootstrap wiring."""

    def __init__(self) -> None:
        self._stdout: bytearray = bytearray()
        self._stderr: bytearray = bytearray()

    def write_stdout(self, data: bytes) -> None:
        self._stdout.extend(data)

    def write_stderr(self, data: bytes) -> None:
        self._stderr.extend(data)

    @property
    def stdout(self) -> str:
        return self._stdout.decode("utf-8", errors="replace")

    @property
    def stderr(self) -> str:
        return self._stderr.decode("utf-8", errors="replace")
