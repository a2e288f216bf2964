"""Ready-made effect functions for the most common state updates.

Usage:
    actions = {
        "set_filter": Sync(set_arg_in("filter")),
        "toggle_open": Sync(toggle_prop("open")),
        "load": Async(call=fetch_items, effects=set_res_in("items")),
    }
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from actstore.definitions import Context

Effect = Callable[[Context], "Mapping[str, Any] | None"]


def set_arg_in(key: str) -> Effect:
    """Set the first action argument in ``key`` (no-op if already equal)."""

    def effect(ctx: Context) -> Mapping[str, Any] | None:
        value = ctx.args[0]
        if ctx.state.get(key) == value:
            return None
        return {key: value}

    return effect


def set_true_in(key: str) -> Effect:
    def effect(ctx: Context) -> Mapping[str, Any] | None:
        return None if ctx.state.get(key) else {key: True}

    return effect


def set_false_in(key: str) -> Effect:
    def effect(ctx: Context) -> Mapping[str, Any] | None:
        return None if not ctx.state.get(key) else {key: False}

    return effect


def toggle_prop(key: str) -> Effect:
    def effect(ctx: Context) -> Mapping[str, Any]:
        return {key: not ctx.state.get(key)}

    return effect


def set_map_item(key: str) -> Effect:
    """args (item_key, value): set one entry of the mapping stored in ``key``."""

    def effect(ctx: Context) -> Mapping[str, Any]:
        item_key, value = ctx.args[0], ctx.args[1]
        return {key: {**ctx.state.get(key, {}), item_key: value}}

    return effect


def set_array_item(key: str) -> Effect:
    """args (index, value): replace one item of the list stored in ``key``."""

    def effect(ctx: Context) -> Mapping[str, Any]:
        index, value = ctx.args[0], ctx.args[1]
        items = list(ctx.state[key])
        items[index] = value
        return {key: items}

    return effect


def set_res_in(key: str) -> Effect:
    """Set an async call's result in ``key``."""

    def effect(ctx: Context) -> Mapping[str, Any]:
        return {key: ctx.result}

    return effect
