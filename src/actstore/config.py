"""Store-scoped configuration.

Every store carries its own StoreConfig, so two stores in one process never
share a clone function or notification hooks. Build a variant with
``config.replace(notify_error=...)``.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Callable

from actstore.compare import shallow_equal

logger = logging.getLogger("actstore.config")

NotifyFunc = Callable[[str], None]


@dataclass(frozen=True)
class AsyncErrorInfo:
    """What the global error hook receives when an async call fails."""

    error: BaseException
    handled: bool
    action_name: str
    args: tuple
    state: Any
    props: Any


def default_retry_on_error(error: BaseException) -> bool:
    """Transient transport failures are worth another attempt."""
    return isinstance(error, (ConnectionError, TimeoutError))


def log_async_error(info: AsyncErrorInfo) -> None:
    if info.handled:
        logger.debug("Handled error in async action %s: %r", info.action_name, info.error)
    else:
        logger.error(
            "Unhandled error in async action %s (args=%r)",
            info.action_name,
            info.args,
            exc_info=(type(info.error), info.error, info.error.__traceback__),
        )


@dataclass(frozen=True)
class StoreConfig:
    """Hooks and policies for one store.

    clone:
        Copies a state snapshot (and recorded action arguments) for optimistic
        rollback. Must return a copy that later mutations of the source cannot
        reach, and must handle every value the application keeps in state.
        ``copy.deepcopy`` covers plain data and most objects; pass something
        cheaper when the state is already immutable (``lambda v: v``).
    comparator:
        Decides whether two dependency values (or selected slices) are equal.
    retry_on_error:
        Default retryable-error predicate for async actions.
    async_error_handler:
        Called for every failed (non-aborted) async call, handled or not.
    notify_success / notify_error / notify_warning:
        Message sinks for success/error messages and side-effect warnings.
    get_error_message:
        Fallback error message provider when an action declares none.
    """

    clone: Callable[[Any], Any] = copy.deepcopy
    comparator: Callable[[Any, Any], bool] = shallow_equal
    retry_on_error: Callable[[BaseException], bool] = default_retry_on_error
    async_error_handler: Callable[[AsyncErrorInfo], None] = log_async_error
    notify_success: NotifyFunc | None = None
    notify_error: NotifyFunc | None = None
    notify_warning: NotifyFunc | None = None
    get_error_message: Callable[[BaseException], str | None] | None = None

    def replace(self, **changes: Any) -> StoreConfig:
        return dataclasses.replace(self, **changes)
