"""Connection and step settings consumed by the checkpoint action."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any

from . import config as ic_config
from .secret import Secret


@dataclass(frozen=True)
class ConnectionSettings:
    """Parameters for opening a session against the Integrity server.

    - integration_host/integration_port: optional integration point in front
      of the server; empty host means connect directly
    - password: opaque secret, revealed only when the session is opened
    """

    host: str
    port: int
    user_name: str = ""
    password: Secret = field(default_factory=Secret)
    secure: bool = False
    integration_host: str = ""
    integration_port: int = 0
    configuration_name: str = ""

    @classmethod
    def from_config(cls) -> "ConnectionSettings":
        """Build settings from the configured defaults."""
        return cls(
            host=ic_config.checkpoint_host(),
            port=ic_config.checkpoint_port(),
            user_name=ic_config.checkpoint_user_name(),
            password=ic_config.checkpoint_password(),
            secure=ic_config.checkpoint_secure(),
            integration_host=ic_config.checkpoint_integration_point_host(),
            integration_port=ic_config.checkpoint_integration_point_port(),
            configuration_name=ic_config.checkpoint_configuration_name(),
        )

    def with_overrides(self, **values: Any) -> "ConnectionSettings":
        """Return a copy with per-step overrides applied; None keeps the default."""
        changes = {key: value for key, value in values.items() if value is not None}
        if isinstance(changes.get("password"), str):
            changes["password"] = Secret(changes["password"])
        return dataclasses.replace(self, **changes)

    @property
    def uses_integration_point(self) -> bool:
        return bool(self.integration_host)

    def describe(self) -> str:
        """Human-readable endpoint for diagnostics (never includes the password)."""
        target = f"{self.user_name}@{self.host}:{self.port}" if self.user_name else f"{self.host}:{self.port}"
        if self.uses_integration_point:
            target = f"{target} via {self.integration_host}:{self.integration_port}"
        if self.secure:
            target = f"{target} (secure)"
        return target


@dataclass(frozen=True)
class CheckpointSettings:
    """Configuration of one checkpoint step."""

    connection: ConnectionSettings
    label_template: str = ""

    @classmethod
    def from_config(cls, label_template: str = "", **overrides: Any) -> "CheckpointSettings":
        return cls(
            connection=ConnectionSettings.from_config().with_overrides(**overrides),
            label_template=label_template,
        )

    def effective_label_template(self) -> str:
        """Label template for this step, falling back to the configured default."""
        if not self.label_template:
            return ic_config.checkpoint_label_template()
        return self.label_template

    @property
    def configuration_name(self) -> str:
        return self.connection.configuration_name
