"""Labeled Integrity checkpoints for finished builds."""

from .action import BuildContext, CheckpointAction, Failed, OperationOutcome, Skipped, Succeeded
from .errors import (
    APIConnectionError,
    CheckpointError,
    CommandError,
    ExpressionError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    ProjectNotFoundError,
)
from .secret import Secret
from .settings import CheckpointSettings, ConnectionSettings

__all__ = [
    "APIConnectionError",
    "BuildContext",
    "CheckpointAction",
    "CheckpointError",
    "CheckpointSettings",
    "CommandError",
    "ConnectionSettings",
    "ExpressionError",
    "ExpressionEvaluationError",
    "ExpressionSyntaxError",
    "Failed",
    "OperationOutcome",
    "ProjectNotFoundError",
    "Secret",
    "Skipped",
    "Succeeded",
]
