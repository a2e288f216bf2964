"""Retry decorator for async action calls.

Wraps a call provider so that a failed attempt is retried after
``delay * attempt`` seconds, up to ``max_calls`` attempts in total. Only
errors accepted by ``is_retry_error`` are retried; cancellations never are.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from actstore.definitions import Context
from actstore.errors import AbortError

logger = logging.getLogger("actstore.retry")

CallProvider = Callable[[Context], "Awaitable[Any] | None"]


def _always(error: BaseException) -> bool:
    return True


def retry_decorator(
    provider: CallProvider,
    max_calls: int = 1,
    delay: float = 1.0,
    is_retry_error: Callable[[BaseException], bool] = _always,
) -> CallProvider:
    """Return a provider that retries provider's awaitable on failure.

    The first attempt is made synchronously when the decorated provider is
    called, so a provider returning None (call skipped) still returns None.
    """
    if max_calls <= 1:
        return provider

    def decorated(ctx: Context) -> Awaitable[Any] | None:
        first = provider(ctx)
        if first is None:
            return None
        return _attempts(ctx, first)

    async def _attempts(ctx: Context, awaitable: Awaitable[Any]) -> Any:
        call_count = 1
        while True:
            try:
                return await awaitable
            except AbortError:
                raise
            except Exception as error:
                signal = ctx.abort_signal
                if signal is not None and signal.aborted:
                    raise
                if call_count >= max_calls or not is_retry_error(error):
                    raise
                wait = delay * call_count
                logger.debug(
                    "Retrying after %r (attempt %d/%d, waiting %.3fs)",
                    error, call_count + 1, max_calls, wait,
                )
                await asyncio.sleep(wait)
                call_count += 1
                awaitable = provider(ctx)
                if awaitable is None:
                    return None

    return decorated
