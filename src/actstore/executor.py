"""Async executor — runs one async action invocation end to end.

States: Idle -> PreEffect -> InFlight -> {Success | Error | Aborted} -> Idle.

dispatch() runs synchronously up to InFlight: conflict check, the first
attempt of the (retry-wrapped) call, pre-effect and optimistic effect
commits. The rest happens in an asyncio task that the caller gets back; it
settles with the call result, None for handled errors and aborts, or the
error itself when unhandled.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING, Any, Awaitable

from actstore.cancel import AbortController
from actstore.config import AsyncErrorInfo
from actstore.conflicts import PendingCall
from actstore.definitions import DEFAULT_INSTANCE, Async, ConflictPolicy, Context, EffectKind
from actstore.errors import AbortError
from actstore.retry import retry_decorator

if TYPE_CHECKING:
    from actstore.store import Store

logger = logging.getLogger("actstore.executor")


def _resolved(value: Any = None) -> asyncio.Future:
    future = asyncio.get_running_loop().create_future()
    future.set_result(value)
    return future


def _chain(source: asyncio.Future, target: asyncio.Future) -> None:
    """Settle target the way source settles."""

    def _copy(done: asyncio.Future) -> None:
        if target.done():
            if not done.cancelled():
                done.exception()
            return
        if done.cancelled():
            target.cancel()
        elif done.exception() is not None:
            target.set_exception(done.exception())
        else:
            target.set_result(done.result())

    source.add_done_callback(_copy)


class AsyncExecutor:
    """Drives async actions for one store."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def dispatch(self, name: str, action: Async, args: tuple) -> asyncio.Future:
        """Start a call, or let the conflict policy decide what to do with it."""
        resolver = self._store._resolver
        if action.conflict_policy is ConflictPolicy.PARALLEL:
            # instance ids are independent; no conflict check at all
            return self._launch(name, action, args, str(action.get_instance_id(*args)))
        if resolver.occupant(name) is not None:
            return resolver.defer(name, action.conflict_policy, args)
        return self._launch(name, action, args, DEFAULT_INSTANCE)

    def _launch(self, name: str, action: Async, args: tuple, instance_id: str) -> asyncio.Future:
        store = self._store
        controller = AbortController() if action.abortable else None
        ctx = store._context(
            args,
            instance_id=instance_id,
            abort_signal=controller.signal if controller is not None else None,
        )

        call = retry_decorator(
            action.call,
            action.max_calls,
            action.retry_delay_seed,
            action.is_retry_error or store.config.retry_on_error,
        )
        awaitable = call(ctx)
        if awaitable is None:
            logger.debug("%s[%s]: call skipped", name, instance_id)
            return _resolved()

        loop = asyncio.get_running_loop()
        with store.transaction():
            store._apply_effect(
                name, EffectKind.PRE_EFFECTS, ctx, action.pre_effects,
                instance_id=instance_id, loading=not action.optimistic,
            )
            token = None
            if action.optimistic:
                token = store._begin_optimistic(name, action, ctx, instance_id)
            task = loop.create_task(self._run(name, action, ctx, awaitable, controller, token))
            ref_args = args if action.conflict_policy is ConflictPolicy.REUSE else ()
            store._resolver.occupy(name, instance_id, PendingCall(task, ref_args, controller))
        return task

    async def _run(
        self,
        name: str,
        action: Async,
        ctx: Context,
        awaitable: Awaitable[Any],
        controller: AbortController | None,
        token: int | None,
    ) -> Any:
        task = asyncio.current_task()
        try:
            result = await awaitable
        except asyncio.CancelledError:
            self._on_failure(
                name, action, ctx, AbortError("task cancelled"), task, token, aborted=True
            )
            raise
        except Exception as error:
            aborted = isinstance(error, AbortError) or (
                controller is not None and controller.signal.aborted
            )
            return self._on_failure(name, action, ctx, error, task, token, aborted=aborted)

        if controller is not None and controller.signal.aborted:
            return self._on_failure(
                name, action, ctx, AbortError(controller.signal.reason), task, token, aborted=True
            )
        return self._on_success(name, action, ctx, result, task, token)

    def _settle_slot(self, name: str, instance_id: str, task: asyncio.Future) -> bool | None:
        """Release the slot; returns the loading flag update to commit."""
        resolver = self._store._resolver
        resolver.release(name, instance_id, task)
        # a newer call (after abort, or PARALLEL sharing an id) keeps its flag
        if resolver.occupant(name, instance_id) is not None:
            return None
        return False

    def _on_success(
        self,
        name: str,
        action: Async,
        ctx: Context,
        result: Any,
        task: asyncio.Future,
        token: int | None,
    ) -> Any:
        store = self._store
        if not store.alive:
            return result

        ctx = dataclasses.replace(ctx, state=store.state, derived=store.derived, result=result)
        loading = self._settle_slot(name, ctx.instance_id, task)
        store._apply_effect(
            name, EffectKind.EFFECTS, ctx, action.effects,
            instance_id=ctx.instance_id, loading=loading, optimistic_token=token,
        )

        notify_success = store.config.notify_success
        if notify_success is not None and action.get_success_message is not None:
            message = action.get_success_message(ctx)
            if message:
                notify_success(message)

        if action.side_effects is not None:
            action.side_effects(store._side_effect_context(ctx))

        self.process_next(name)
        return result

    def _on_failure(
        self,
        name: str,
        action: Async,
        ctx: Context,
        error: BaseException,
        task: asyncio.Future,
        token: int | None,
        aborted: bool,
    ) -> Any:
        store = self._store
        if not store.alive:
            return None

        ctx = dataclasses.replace(
            ctx, state=store.state, derived=store.derived, error=error, aborted=aborted
        )
        loading = self._settle_slot(name, ctx.instance_id, task)
        store._apply_effect(
            name, EffectKind.ERROR_EFFECTS, ctx, action.error_effects,
            instance_id=ctx.instance_id, loading=loading, optimistic_token=token,
        )

        if aborted:
            logger.debug("%s[%s]: aborted", name, ctx.instance_id)
            if action.error_side_effects is not None:
                action.error_side_effects(store._side_effect_context(ctx))
            self.process_next(name)
            return None

        handled = action.error_effects is not None or action.error_side_effects is not None

        notify_error = store.config.notify_error
        if notify_error is not None:
            message = None
            if action.get_error_message is not None:
                message = action.get_error_message(ctx)
            if not message and store.config.get_error_message is not None:
                message = store.config.get_error_message(error)
            if message:
                handled = True
                notify_error(message)

        store.config.async_error_handler(
            AsyncErrorInfo(
                error=error,
                handled=handled,
                action_name=name,
                args=ctx.args,
                state=store.state,
                props=store.props,
            )
        )

        if action.error_side_effects is not None:
            action.error_side_effects(store._side_effect_context(ctx))

        self.process_next(name)

        if not handled or action.reject_on_error:
            raise error
        return None

    def process_next(self, name: str) -> None:
        """Start the next queued call of ``name``, if any.

        Does nothing while a call holds the slot: that call starts the queue
        when it settles, which keeps queued calls in arrival order.
        """
        store = self._store
        action = store._definitions[name]
        while store.alive and store._resolver.occupant(name) is None:
            deferred = store._resolver.pop_next(name)
            if deferred is None:
                return
            future = self.dispatch(name, action, deferred.args)
            _chain(future, deferred.future)
            if not future.done():
                return
            # skipped call: nothing occupies the slot, move on
