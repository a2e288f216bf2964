"""Cooperative cancellation for async actions.

An abortable action's call receives ``ctx.abort_signal``. Nothing is
interrupted preemptively: the call observes the signal (poll ``aborted``,
``throw_if_aborted()``, ``await signal.wait()`` or register a listener) and
stops on its own. Whatever it settles with afterwards, the store classifies
the call as aborted.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from actstore.errors import AbortError


class AbortSignal:
    """Read side of an AbortController."""

    __slots__ = ("_aborted", "_reason", "_listeners", "_event")

    def __init__(self) -> None:
        self._aborted = False
        self._reason: object = None
        self._listeners: list[Callable[[object], None]] = []
        self._event: asyncio.Event | None = None

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> object:
        return self._reason

    def add_listener(self, callback: Callable[[object], None]) -> Callable[[], None]:
        """Call callback(reason) on abort (immediately if already aborted).

        Returns a function that removes the listener.
        """
        if self._aborted:
            callback(self._reason)
            return lambda: None
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def throw_if_aborted(self) -> None:
        if self._aborted:
            raise AbortError(self._reason)

    async def wait(self) -> None:
        """Suspend until the signal is aborted."""
        if self._aborted:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def _fire(self, reason: object) -> None:
        self._aborted = True
        self._reason = reason
        if self._event is not None:
            self._event.set()
        listeners, self._listeners = self._listeners, []
        for callback in listeners:
            callback(reason)

    def __repr__(self) -> str:
        return f"AbortSignal(aborted={self._aborted})"


class AbortController:
    """Owns an AbortSignal; abort() fires it once."""

    __slots__ = ("signal",)

    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self, reason: object = None) -> bool:
        """Fire the signal. Returns False if it had already fired."""
        if self.signal.aborted:
            return False
        self.signal._fire(reason)
        return True
