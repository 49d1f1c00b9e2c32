"""Abort signal shared by streams, poll loops, and narration."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from autoblog_client.domain.errors import OperationAbortedError


class AbortSignal:
    """One-shot cancellation flag; aborting twice is a no-op."""

    def __init__(self) -> None:
        self._aborted = False
        self._event = asyncio.Event()
        self._listeners: list[Callable[[], None]] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._event.set()
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener()

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register `listener` for abort; returns a function that unregisters it."""
        if self._aborted:
            listener()
            return lambda: None
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def raise_if_aborted(self, message: str = "Operation aborted") -> None:
        if self._aborted:
            raise OperationAbortedError(message)

    async def wait(self) -> None:
        await self._event.wait()


async def sleep_unless_aborted(seconds: float, signal: AbortSignal | None) -> None:
    """Sleep for `seconds`, returning early when `signal` aborts."""
    if signal is None:
        await asyncio.sleep(seconds)
        return
    if signal.aborted:
        return
    try:
        await asyncio.wait_for(signal.wait(), timeout=max(0.0, seconds))
    except TimeoutError:
        return
