"""Error taxonomy for checkpoint runs.

Every failure the orchestrator can classify derives from CheckpointError so
the run boundary can convert it into a Failed outcome.
"""

from __future__ import annotations

from typing import Optional


class CheckpointError(RuntimeError):
    """Base class for classified checkpoint failures."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class ExpressionError(CheckpointError):
    """Label template could not be compiled or rendered."""


class ExpressionSyntaxError(ExpressionError):
    """Template is not well-formed (unbalanced quotes, braces or brackets)."""

    def __init__(
        self,
        message: str,
        position: int,
        *,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(f"{message} at position {position}", cause=cause)
        self.position = position


class ExpressionEvaluationError(ExpressionError):
    """Template compiled but failed while rendering."""


class APIConnectionError(CheckpointError):
    """Session to the Integrity server could not be established."""


class ProjectNotFoundError(CheckpointError):
    """Configuration name does not resolve to a project."""


class CommandError(CheckpointError):
    """Remote command failed or returned a result we cannot parse."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int = -1,
        command: str = "",
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.exit_code = exit_code
        self.command = command
