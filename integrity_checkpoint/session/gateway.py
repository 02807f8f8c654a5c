"""Session lifecycle and command execution against the Integrity server."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..errors import APIConnectionError, CommandError, ProjectNotFoundError
from ..settings import ConnectionSettings
from .interface import (
    APIConnection,
    APIConnector,
    CheckpointResult,
    Command,
    CommandResponse,
    ProjectHandle,
)

logger = logging.getLogger(__name__)

CHECKPOINT_DESCRIPTION = "Build automation checkpoint {label}"
RESULTANT_FIELD = "resultant"


class APISession:
    """One session against the Integrity server.

    States run Closed -> Open -> Closed once; a closed session cannot be
    reopened. Use as a context manager, or call close() in a finally block.

    Example:
        session = APISession.create(settings, connector)
        if session is not None:
            with session:
                project = session.resolve_project("#/product/main.pj")
                result = session.checkpoint(project, "nightly-42")
    """

    def __init__(self, settings: ConnectionSettings, connector: APIConnector) -> None:
        self.settings = settings
        self._connector = connector
        self._connection: Optional[APIConnection] = None
        self._closed = False

    @classmethod
    def create(
        cls,
        settings: ConnectionSettings,
        connector: APIConnector,
    ) -> Optional["APISession"]:
        """Open a session, returning None if it could not be established."""
        session = cls(settings, connector)
        try:
            session.open()
        except APIConnectionError as exc:
            logger.error("%s", exc)
            return None
        return session

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def open(self) -> None:
        """Connect and authenticate.

        Raises:
            APIConnectionError: If the session is already used or the
                connection cannot be established
        """
        if self._closed or self._connection is not None:
            raise APIConnectionError("API session has already been used")

        target = self.settings.describe()
        logger.debug("Opening API session to %s", target)
        try:
            self._connection = self._connector.connect(
                self.settings, self.settings.password.reveal()
            )
        except Exception as exc:
            raise APIConnectionError(
                f"An API Session could not be established to {target}: {exc}", cause=exc
            )
        if self._connection is None:
            raise APIConnectionError(f"An API Session could not be established to {target}")
        logger.info("API session established to %s", target)

    def execute(self, command: Command) -> CommandResponse:
        """Run a command and parse its response.

        Raises:
            CommandError: If the command fails or the response is malformed
        """
        if self._connection is None:
            raise CommandError("API session is not open", command=str(command))

        text = str(command)
        logger.debug("Executing: %s", text)
        try:
            raw = self._connection.execute(command)
        except CommandError:
            raise
        except Exception as exc:
            raise CommandError(
                str(exc) or type(exc).__name__,
                exit_code=_exit_code_of(exc),
                command=text,
                cause=exc,
            )

        response = _parse_response(command, raw)
        logger.debug("%s returned %d", response.command, response.exit_code)
        if response.exit_code != 0:
            raise CommandError(
                response.message or f"Command returned exit code {response.exit_code}",
                exit_code=response.exit_code,
                command=response.command,
            )
        return response

    def resolve_project(self, configuration_name: str) -> ProjectHandle:
        """Look up the project configuration by name.

        Raises:
            ProjectNotFoundError: If no project matches the name, including
                when the server rejects the lookup with an exit code
            CommandError: If the lookup cannot be carried out
        """
        if not configuration_name:
            raise ProjectNotFoundError("No configuration name was given")

        command = Command("si", "projectinfo").with_option("project", configuration_name)
        try:
            response = self.execute(command)
        except CommandError as exc:
            if exc.exit_code <= 0:
                raise
            raise ProjectNotFoundError(
                f"Could not find a project for configuration '{configuration_name}': {exc}",
                cause=exc,
            )
        if not response.work_items:
            raise ProjectNotFoundError(
                f"Could not find a project for configuration '{configuration_name}'"
            )

        item = response.work_items[0]
        project = ProjectHandle(
            configuration_name=configuration_name,
            configuration_path=str(item.get_field("fullConfigSyntax") or item.id),
            project_name=str(item.get_field("projectName") or ""),
            project_type=str(item.get_field("projectType") or "Normal"),
        )
        logger.debug(
            "Resolved configuration %s -> %s (type=%s)",
            configuration_name,
            project.configuration_path,
            project.project_type,
        )
        return project

    def checkpoint(self, project: ProjectHandle, label: str) -> CheckpointResult:
        """Checkpoint a project with the given label.

        Returns:
            CheckpointResult carrying the new revision id

        Raises:
            CommandError: If the command fails or the revision id is missing
        """
        command = (
            Command("si", "checkpoint")
            .with_option("project", project.configuration_path)
            .with_option("label", label)
            .with_option("description", CHECKPOINT_DESCRIPTION.format(label=label))
        )
        response = self.execute(command)

        item = response.work_item(project.configuration_path)
        if item.result is None:
            raise CommandError(
                f"Work item for {project.configuration_path} has no result",
                exit_code=response.exit_code,
                command=response.command,
            )
        revision = item.result.field_item_id(
            RESULTANT_FIELD, command=response.command, exit_code=response.exit_code
        )
        return CheckpointResult(
            exit_code=response.exit_code,
            command=response.command,
            revision=revision,
        )

    def close(self) -> None:
        """Terminate the session; safe to call more than once."""
        connection, self._connection = self._connection, None
        self._closed = True
        if connection is None:
            return
        try:
            connection.terminate()
        except Exception as exc:
            logger.warning("Failed to terminate API session: %s", exc)
        else:
            logger.debug("API session to %s terminated", self.settings.describe())

    def __enter__(self) -> "APISession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _exit_code_of(exc: BaseException) -> int:
    code = getattr(exc, "exit_code", None)
    try:
        return int(code) if code is not None else -1
    except (TypeError, ValueError):
        return -1


def _parse_response(command: Command, raw: Any) -> CommandResponse:
    try:
        return CommandResponse.from_mapping(command, raw)
    except CommandError:
        raise
    except (TypeError, ValueError, AttributeError) as exc:
        raise CommandError(
            f"Malformed response: {exc}", command=str(command), cause=exc
        )
