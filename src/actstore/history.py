"""Optimistic history — effect log and rollback-by-replay.

While at least one optimistic call is unresolved, every committed effect is
appended to the log. The entry that starts an optimistic effect also keeps a
clone of the state right before it.

When an optimistic call fails, its entry's snapshot becomes the baseline and
every later entry is replayed on top of it, in commit order. The result is
the state as if the failed call had never been attempted, with every other
effect still applied.

Each optimistic call is identified by the token ``begin()`` returns, so two
calls sharing an action name and instance id (a call started after an abort,
or PARALLEL calls with the same id) resolve and roll back independently.

Usage (done by the store):
    token = history.begin("save", DEFAULT_INSTANCE, ctx, state)   # optimistic effect
    history.record("rename", DEFAULT_INSTANCE, EffectKind.EFFECTS, ctx)
    state = history.rollback(token, replay)
"""

from __future__ import annotations

import dataclasses
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable

from actstore.definitions import Context, EffectKind

logger = logging.getLogger("actstore.history")


@dataclass
class HistoryEntry:
    action_name: str
    instance_id: str
    kind: EffectKind
    context: Context
    # Only set on entries starting an optimistic effect still able to roll back.
    snapshot: Any = None
    token: int | None = None


Replay = Callable[[HistoryEntry, Any], Any]


class OptimisticHistory:
    def __init__(self, clone: Callable[[Any], Any]) -> None:
        self._clone = clone
        self._entries: list[HistoryEntry] = []
        self._pending: dict[int, tuple[str, str]] = {}
        self._tokens = itertools.count(1)

    @property
    def recording(self) -> bool:
        return bool(self._pending)

    @property
    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    def is_pending(self, name: str, instance_id: str) -> bool:
        return (name, instance_id) in self._pending.values()

    def _entry(self, name: str, instance_id: str, kind: EffectKind, ctx: Context) -> HistoryEntry:
        context = dataclasses.replace(
            ctx, state={}, args=self._clone(ctx.args), abort_signal=None, actions=None
        )
        return HistoryEntry(name, instance_id, kind, context)

    def record(self, name: str, instance_id: str, kind: EffectKind, ctx: Context) -> None:
        """Append a committed effect, if recording."""
        if self._pending:
            self._entries.append(self._entry(name, instance_id, kind, ctx))

    def begin(self, name: str, instance_id: str, ctx: Context, state: Any) -> int:
        """Start tracking an optimistic effect about to be applied to ``state``.

        Returns the token that resolve() and rollback() take.
        """
        token = next(self._tokens)
        self._pending[token] = (name, instance_id)
        entry = self._entry(name, instance_id, EffectKind.OPTIMISTIC_EFFECTS, ctx)
        entry.snapshot = self._clone(state)
        entry.token = token
        self._entries.append(entry)
        return token

    def _find(self, token: int) -> int:
        for index, entry in enumerate(self._entries):
            if entry.token == token and entry.snapshot is not None:
                return index
        return -1

    def _trim_to_next_optimistic(self) -> None:
        for index, entry in enumerate(self._entries):
            if entry.snapshot is not None:
                del self._entries[:index]
                return
        self._entries.clear()

    def resolve(self, token: int) -> None:
        """The optimistic call succeeded: its effect stays, its snapshot goes."""
        index = self._find(token)
        self._pending.pop(token, None)
        if not self._pending:
            self._entries.clear()
            return
        if index == 0:
            del self._entries[0]
            self._trim_to_next_optimistic()
        elif index > 0:
            # replayed as a plain effect by later rollbacks
            self._entries[index].snapshot = None

    def rollback(self, token: int, replay: Replay) -> Any:
        """The optimistic call failed: rebuild state without its effect.

        Returns the corrected state, or None if the call is not in the log.
        """
        index = self._find(token)
        name, instance_id = self._pending.pop(token, ("?", "?"))
        if index < 0:
            logger.warning("%s[%s]: no optimistic entry to roll back", name, instance_id)
            if not self._pending:
                self._entries.clear()
            return None

        state = self._entries.pop(index).snapshot
        replayed = 0
        for entry in self._entries[index:]:
            if entry.snapshot is not None:
                entry.snapshot = state
            state = replay(entry, state)
            replayed += 1
        logger.debug("%s[%s]: rolled back, %d effects replayed", name, instance_id, replayed)

        if not self._pending:
            self._entries.clear()
        elif index == 0:
            self._trim_to_next_optimistic()
        return state

    def clear(self) -> None:
        self._entries.clear()
        self._pending.clear()

    def __repr__(self) -> str:
        return f"OptimisticHistory(entries={len(self._entries)}, pending={len(self._pending)})"
