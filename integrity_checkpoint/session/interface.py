from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Sequence, Tuple

from ..errors import CommandError
from ..settings import ConnectionSettings


@dataclass(frozen=True)
class Command:
    """A single command issued against the Integrity server.

    - app: command application (``si`` for configuration management)
    - name: command name, e.g. ``checkpoint``
    - options: ordered (name, value) pairs; a None value renders as a flag
    - selection: positional selection arguments
    """

    app: str
    name: str
    options: Tuple[Tuple[str, Optional[str]], ...] = ()
    selection: Tuple[str, ...] = ()

    def with_option(self, name: str, value: Optional[str] = None) -> "Command":
        return Command(self.app, self.name, self.options + ((name, value),), self.selection)

    def option(self, name: str) -> Optional[str]:
        for key, value in self.options:
            if key == name:
                return value
        return None

    def __str__(self) -> str:
        parts = [self.app, self.name]
        for key, value in self.options:
            parts.append(f"--{key}" if value is None else f"--{key}={shlex.quote(value)}")
        parts.extend(shlex.quote(item) for item in self.selection)
        return " ".join(parts)


@dataclass(frozen=True)
class ItemResult:
    """Result block of a work item: a message plus named fields."""

    message: str = ""
    fields: Mapping[str, Any] = field(default_factory=dict)

    def field_item_id(self, name: str, command: str = "", exit_code: int = 0) -> str:
        """Return the ``id`` of the item held by field ``name``.

        Raises:
            CommandError: If the field is missing or does not hold an item id
        """
        value = self.fields.get(name)
        if not isinstance(value, Mapping):
            raise CommandError(
                f"Response field '{name}' is missing or does not hold an item",
                exit_code=exit_code,
                command=command,
            )
        item_id = value.get("id")
        if item_id is None or item_id == "":
            raise CommandError(
                f"Item in response field '{name}' has no id",
                exit_code=exit_code,
                command=command,
            )
        return str(item_id)


@dataclass(frozen=True)
class WorkItem:
    """Outcome of a command for one target (keyed by configuration path)."""

    id: str
    fields: Mapping[str, Any] = field(default_factory=dict)
    result: Optional[ItemResult] = None

    def get_field(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass(frozen=True)
class CommandResponse:
    """Typed view of the structured response returned for a command."""

    command: str
    exit_code: int
    message: str = ""
    work_items: Tuple[WorkItem, ...] = ()

    @classmethod
    def from_mapping(cls, command: Command, data: Any) -> "CommandResponse":
        """Parse a raw response mapping.

        Expected shape::

            {"command": "si checkpoint ...", "exit_code": 0, "message": "...",
             "work_items": {"<id>": {"fields": {...},
                                     "result": {"message": "...", "fields": {...}}}}}

        ``work_items`` may also be a list of items carrying their own ``id``.

        Raises:
            CommandError: If the response is not shaped as above
        """
        text = str(command)
        if not isinstance(data, Mapping):
            raise CommandError("Response is not a structured mapping", command=text)

        text = str(data.get("command") or text)
        try:
            exit_code = int(data.get("exit_code", 0))
        except (TypeError, ValueError) as exc:
            raise CommandError("Response exit code is not an integer", command=text, cause=exc)

        items = []
        for item_id, raw in _iter_work_items(data.get("work_items"), text, exit_code):
            if not isinstance(raw, Mapping):
                raise CommandError(
                    f"Work item '{item_id}' is malformed", exit_code=exit_code, command=text
                )
            result = raw.get("result")
            if result is not None and not isinstance(result, Mapping):
                raise CommandError(
                    f"Result of work item '{item_id}' is malformed",
                    exit_code=exit_code,
                    command=text,
                )
            items.append(
                WorkItem(
                    id=str(item_id),
                    fields=dict(raw.get("fields") or {}),
                    result=None
                    if result is None
                    else ItemResult(
                        message=str(result.get("message") or ""),
                        fields=dict(result.get("fields") or {}),
                    ),
                )
            )

        return cls(
            command=text,
            exit_code=exit_code,
            message=str(data.get("message") or ""),
            work_items=tuple(items),
        )

    def work_item(self, item_id: str) -> WorkItem:
        """Find the work item for a target.

        Raises:
            CommandError: If the response has no work item for ``item_id``
        """
        for item in self.work_items:
            if item.id == item_id:
                return item
        raise CommandError(
            f"Response has no work item for {item_id}",
            exit_code=self.exit_code,
            command=self.command,
        )


def _iter_work_items(raw: Any, command: str, exit_code: int) -> Iterable[Tuple[str, Any]]:
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        return list(raw.items())
    if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        pairs = []
        for item in raw:
            if not isinstance(item, Mapping) or not item.get("id"):
                raise CommandError("Work item without an id", exit_code=exit_code, command=command)
            pairs.append((item["id"], item))
        return pairs
    raise CommandError("Response work items are malformed", exit_code=exit_code, command=command)


@dataclass(frozen=True)
class ProjectHandle:
    """An Integrity project configuration resolved from its name."""

    configuration_name: str
    configuration_path: str
    project_name: str = ""
    project_type: str = "Normal"

    @property
    def is_build_configuration(self) -> bool:
        """Build configurations are checkpoint results and cannot be checkpointed."""
        return self.project_type.lower() == "build"


@dataclass(frozen=True)
class CheckpointResult:
    """Outcome of a successful checkpoint command."""

    exit_code: int
    command: str
    revision: str


class APIConnection(Protocol):
    """An open connection to the Integrity server."""

    def execute(self, command: Command) -> Mapping[str, Any]:  # pragma: no cover - protocol
        """Run a command and return its structured response.

        Implementations raise on transport or server failures; an exception
        with an ``exit_code`` attribute reports the server's exit code.
        """
        ...

    def terminate(self) -> None:  # pragma: no cover - protocol
        """Release the connection."""
        ...


class APIConnector(Protocol):
    """Factory for connections; the only component that talks to the wire."""

    def connect(
        self,
        settings: ConnectionSettings,
        password: str,
    ) -> APIConnection:  # pragma: no cover - protocol
        """Open and authenticate a connection, encrypting it when settings.secure is set."""
        ...


class InMemoryAPIConnection:
    """Scripted connection useful for tests and local wiring.

    Responses are returned per command name in order; executed commands and
    terminate calls are recorded.
    """

    def __init__(self, responses: Optional[Dict[str, Sequence[Any]]] = None) -> None:
        self._responses: Dict[str, list] = {
            name: list(items) for name, items in (responses or {}).items()
        }
        self.executed: list[Command] = []
        self.terminate_calls = 0

    def add_response(self, command_name: str, response: Any) -> None:
        self._responses.setdefault(command_name, []).append(response)

    def execute(self, command: Command) -> Mapping[str, Any]:
        self.executed.append(command)
        queue = self._responses.get(command.name)
        if not queue:
            raise RuntimeError(f"No scripted response for {command.app} {command.name}")
        response = queue.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    def terminate(self) -> None:
        self.terminate_calls += 1


class InMemoryAPIConnector:
    """Connector handing out a single InMemoryAPIConnection."""

    def __init__(self, connection: Optional[InMemoryAPIConnection] = None, error: Optional[BaseException] = None) -> None:
        self.connection = connection or InMemoryAPIConnection()
        self.error = error
        self.connect_calls: list[ConnectionSettings] = []

    def connect(self, settings: ConnectionSettings, password: str) -> InMemoryAPIConnection:
        self.connect_calls.append(settings)
        if self.error is not None:
            raise self.error
        return self.connection
