"""Conflict resolution between concurrent calls of the same async action.

The resolver owns two maps:

- pending-call slots: action name -> instance id -> the call in flight,
- conflict queues: action name -> FIFO of deferred calls.

When a call arrives while its slot is occupied, ``defer()`` applies the
action's ConflictPolicy and hands back the future the caller will get.
PARALLEL actions never reach ``defer()``: each instance id has its own slot
and calls sharing an id are not checked against each other.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass

from actstore.cancel import AbortController
from actstore.definitions import DEFAULT_INSTANCE, ConflictPolicy
from actstore.errors import ConflictError

logger = logging.getLogger("actstore.conflicts")


@dataclass
class PendingCall:
    """An in-flight async call occupying a slot."""

    future: asyncio.Future
    ref_args: tuple = ()
    controller: AbortController | None = None


@dataclass
class DeferredCall:
    """A call waiting for its action's slot to free up."""

    args: tuple
    future: asyncio.Future


def same_args(a: tuple, b: tuple) -> bool:
    if len(a) != len(b):
        return False
    return all(x is y or x == y for x, y in zip(a, b))


class ConflictResolver:
    def __init__(self) -> None:
        self._slots: dict[str, dict[str, PendingCall]] = {}
        self._queues: dict[str, deque[DeferredCall]] = {}

    def occupant(self, name: str, instance_id: str = DEFAULT_INSTANCE) -> PendingCall | None:
        return self._slots.get(name, {}).get(instance_id)

    def occupied_ids(self, name: str) -> list[str]:
        return list(self._slots.get(name, {}))

    def occupy(self, name: str, instance_id: str, pending: PendingCall) -> None:
        self._slots.setdefault(name, {})[instance_id] = pending

    def release(self, name: str, instance_id: str, future: asyncio.Future) -> bool:
        """Free the slot, but only if ``future`` is the call occupying it."""
        slots = self._slots.get(name)
        if not slots:
            return False
        pending = slots.get(instance_id)
        if pending is None or pending.future is not future:
            return False
        del slots[instance_id]
        if not slots:
            del self._slots[name]
        return True

    def defer(self, name: str, policy: ConflictPolicy, args: tuple) -> asyncio.Future:
        """Handle a call to ``name`` made while its default slot is occupied."""
        if policy is ConflictPolicy.REUSE:
            pending = self.occupant(name)
            if pending is not None and same_args(pending.ref_args, args):
                logger.debug("%s: reusing in-flight call", name)
                return pending.future
            policy = ConflictPolicy.KEEP_ALL

        future = asyncio.get_running_loop().create_future()

        if policy is ConflictPolicy.IGNORE:
            logger.debug("%s: call ignored, another call is in flight", name)
            future.set_result(None)
        elif policy is ConflictPolicy.REJECT:
            logger.debug("%s: call rejected, another call is in flight", name)
            future.set_exception(ConflictError(name))
        elif policy is ConflictPolicy.KEEP_LAST:
            queue = self._queues.setdefault(name, deque())
            while queue:
                superseded = queue.popleft()
                if not superseded.future.done():
                    superseded.future.set_result(None)
            queue.append(DeferredCall(args, future))
        elif policy is ConflictPolicy.KEEP_ALL:
            self._queues.setdefault(name, deque()).append(DeferredCall(args, future))
            logger.debug("%s: call queued (%d waiting)", name, len(self._queues[name]))
        elif policy is ConflictPolicy.PARALLEL:
            raise ValueError("PARALLEL calls are never deferred")
        else:
            raise ValueError(f"Unhandled conflict policy {policy!r}")
        return future

    def pop_next(self, name: str) -> DeferredCall | None:
        queue = self._queues.get(name)
        while queue:
            deferred = queue.popleft()
            if not deferred.future.done():
                return deferred
        self._queues.pop(name, None)
        return None

    def queued(self, name: str) -> int:
        return len(self._queues.get(name, ()))

    def clear(self) -> list[DeferredCall]:
        """Drop every slot and queue. Returns the deferred calls dropped."""
        dropped = [d for queue in self._queues.values() for d in queue]
        self._slots.clear()
        self._queues.clear()
        return dropped
