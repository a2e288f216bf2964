"""Errors raised by the store.

ConfigurationError is raised at construction and is always fatal.
ConflictError and AbortError travel through an action's future to the one
caller concerned. Effects that raise are never wrapped: they propagate as-is.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for all actstore errors."""


class ConfigurationError(StoreError):
    """Invalid store configuration (bad action map, cyclic derived fields, ...)."""


class UnknownActionError(StoreError, KeyError):
    """dispatch() was called with an action name the store does not declare."""

    def __init__(self, action_name: str) -> None:
        super().__init__(f"Unknown action {action_name!r}")
        self.action_name = action_name

    def __str__(self) -> str:
        return self.args[0]


class ConflictError(StoreError):
    """A REJECT-policy call was made while the same action was in flight."""

    def __init__(self, action_name: str) -> None:
        super().__init__(f"An asynchronous action {action_name} is already ongoing.")
        self.action_name = action_name


class AbortError(StoreError):
    """Raised by an AbortSignal once its controller has been aborted."""

    def __init__(self, reason: object = None) -> None:
        super().__init__("Aborted" if reason is None else f"Aborted: {reason}")
        self.reason = reason
