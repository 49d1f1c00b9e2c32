"""Ports for session storage and transport-agnostic async operations."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from autoblog_client.domain.models import OperationUpdate


class KeyValueStorage(Protocol):
    """String key/value store with browser session-storage semantics."""

    def get_item(self, key: str) -> str | None:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...


class AsyncOperation(Protocol):
    """Long-running backend work observed through one update callback."""

    async def subscribe(self, on_update: Callable[[OperationUpdate], None]) -> OperationUpdate:
        """Deliver updates in order and return the terminal update."""
        ...
