"""Integrity server sessions.

Boundary rules:
- Only connectors (`APIConnector` implementations) talk to the wire.
- `APISession` owns the session lifecycle and turns raw responses into typed
  results, raising `CommandError` for anything it cannot parse.
"""

from .gateway import APISession
from .interface import (
    APIConnection,
    APIConnector,
    CheckpointResult,
    Command,
    CommandResponse,
    InMemoryAPIConnection,
    InMemoryAPIConnector,
    ItemResult,
    ProjectHandle,
    WorkItem,
)

__all__ = [
    "APIConnection",
    "APIConnector",
    "APISession",
    "CheckpointResult",
    "Command",
    "CommandResponse",
    "InMemoryAPIConnection",
    "InMemoryAPIConnector",
    "ItemResult",
    "ProjectHandle",
    "WorkItem",
]
