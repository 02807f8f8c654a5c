"""Post-build step that checkpoints an Integrity project configuration.

Workflow per run:
1. Skip unless the build succeeded
2. Open an API session (fail if it cannot be established)
3. Render the label template against the build environment
4. Resolve the project configuration; skip build configurations
5. Checkpoint and report the new revision
6. Close the session on every path
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Callable

from ..errors import CommandError
from ..label import evaluate, validate_label
from ..session import APIConnector, APISession
from ..settings import CheckpointSettings
from .base import BuildContext, BuildLogSink, Failed, OperationOutcome, Skipped, Succeeded

logger = logging.getLogger(__name__)

BUILD_NOT_SUCCESSFUL = "build not successful"
BUILD_CONFIGURATION = "cannot checkpoint a build configuration"
NO_SESSION_MESSAGE = "An API Session could not be established!  Cannot perform checkpoint operation!"


def _emit(write: Callable[[bytes], None], message: str) -> None:
    write((message + "\n").encode("utf-8"))


class CheckpointAction:
    """Creates a labeled checkpoint of a project after a successful build.

    Each perform() call is independent: the action holds only read-only
    settings and opens its own session per run.

    Example:
        action = CheckpointAction(CheckpointSettings.from_config(), connector)
        outcome = action.perform(BuildContext("SUCCESS", env), sink)
        if not outcome.ok:
            ...
    """

    def __init__(self, settings: CheckpointSettings, connector: APIConnector) -> None:
        self.settings = settings
        self.connector = connector

    @classmethod
    def from_config(
        cls,
        connector: APIConnector,
        label_template: str = "",
        **overrides: Any,
    ) -> "CheckpointAction":
        """Build an action from configured defaults plus per-step overrides."""
        return cls(CheckpointSettings.from_config(label_template, **overrides), connector)

    def perform(self, build: BuildContext, sink: BuildLogSink) -> OperationOutcome:
        """Run the checkpoint step for a finished build.

        Never raises for classified or unexpected failures; they are logged
        and returned as Failed.
        """
        if not build.succeeded:
            _emit(sink.write_stdout, "Build failed!  Skipping Integrity Checkpoint step!")
            logger.info("Skipping checkpoint, build result is %s", build.result)
            return Skipped(BUILD_NOT_SUCCESSFUL)

        session = APISession.create(self.settings.connection, self.connector)
        if session is None:
            logger.error(NO_SESSION_MESSAGE)
            _emit(sink.write_stderr, NO_SESSION_MESSAGE)
            return Failed(NO_SESSION_MESSAGE)

        try:
            return self._checkpoint(session, build, sink)
        except CommandError as exc:
            logger.error("API Exception caught...")
            logger.error("%s", exc)
            logger.debug("%s returned exit code %d", exc.command, exc.exit_code)
            return self._fail(sink, exc)
        except Exception as exc:
            logger.error("Exception caught!  %s", exc, exc_info=True)
            return self._fail(sink, exc)
        finally:
            session.close()

    def _checkpoint(
        self,
        session: APISession,
        build: BuildContext,
        sink: BuildLogSink,
    ) -> OperationOutcome:
        label = evaluate(dict(build.environment), self.settings.effective_label_template())
        problem = validate_label(label)
        if problem:
            # The server has the final say on labels
            logger.warning("Label '%s' is likely to be rejected: %s", label, problem)

        project = session.resolve_project(self.settings.configuration_name)
        if project.is_build_configuration:
            _emit(
                sink.write_stdout,
                f"Cannot checkpoint a build project configuration: {project.configuration_path}!",
            )
            logger.info("Skipping checkpoint of build configuration %s", project.configuration_path)
            return Skipped(BUILD_CONFIGURATION)

        _emit(sink.write_stdout, f"Preparing to execute si checkpoint for {project.configuration_path}")
        result = session.checkpoint(project, label)
        logger.debug("%s returned %d", result.command, result.exit_code)

        _emit(
            sink.write_stdout,
            f"Successfully checkpointed project {project.configuration_path} "
            f"with label '{label}', new revision is {result.revision}",
        )
        logger.info(
            "Checkpointed %s with label %s -> revision %s",
            project.configuration_path,
            label,
            result.revision,
        )
        return Succeeded(project=project, label=label, revision=result.revision)

    def _fail(self, sink: BuildLogSink, exc: BaseException) -> Failed:
        message = str(exc) or type(exc).__name__
        _emit(sink.write_stderr, f"FATAL: {message}")
        if isinstance(exc, CommandError) and exc.command:
            _emit(sink.write_stderr, f"{exc.command} returned exit code {exc.exit_code}")
        sink.write_stderr(
            "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).encode("utf-8")
        )
        return Failed(message, error=exc)
