"""Tests for optimistic effects and rollback-by-replay."""

import asyncio

import pytest

from actstore import Async, ConflictPolicy, Context, PropsChange, Store, StoreConfig, Sync
from actstore.definitions import EffectKind
from actstore.history import OptimisticHistory


class _Gate:
    def __init__(self):
        self.calls = []

    def call(self, ctx):
        future = asyncio.get_running_loop().create_future()
        self.calls.append(future)
        return future


def _store(gate, **extra_actions):
    return Store(
        lambda props: {"str": "init", "str2": "", "n": 0},
        {
            "save": Async(
                call=gate.call,
                optimistic_effects=lambda ctx: {"str": ctx.args[0]},
                conflict_policy=ConflictPolicy.PARALLEL,
                get_instance_id=lambda value: value,
            ),
            "set_str2": Sync(lambda ctx: {"str2": ctx.args[0]}),
            "add": Sync(lambda ctx: {"n": ctx.state["n"] + ctx.args[0]}),
            **extra_actions,
        },
        config=StoreConfig(async_error_handler=lambda info: None),
    )


class TestRollback:
    @pytest.mark.asyncio
    async def test_concurrent_change_survives_rollback(self):
        gate = _Gate()
        s = Store(
            lambda props: {"str": "init", "str2": ""},
            {
                "save": Async(call=gate.call, optimistic_effects=lambda ctx: {"str": "opti"}),
                "set_str2": Sync(lambda ctx: {"str2": ctx.args[0]}),
            },
            config=StoreConfig(async_error_handler=lambda info: None),
        )
        future = s.actions.save()
        assert s.state == {"str": "opti", "str2": ""}
        assert not s.is_loading("save")

        s.actions.set_str2("text")
        gate.calls[0].set_exception(RuntimeError("failed"))
        with pytest.raises(RuntimeError):
            await future
        assert s.state == {"str": "init", "str2": "text"}

    @pytest.mark.asyncio
    async def test_success_keeps_optimistic_value(self):
        gate = _Gate()
        s = _store(gate)
        future = s.actions.save("opti")
        s.actions.set_str2("text")
        gate.calls[0].set_result(None)
        await future
        assert s.state["str"] == "opti"
        assert s.state["str2"] == "text"
        assert s._history.entries == []

    @pytest.mark.asyncio
    async def test_replayed_effects_use_rolled_back_state(self):
        gate = _Gate()
        s = Store(
            lambda props: {"n": 1},
            {
                "bump": Async(call=gate.call, optimistic_effects=lambda ctx: {"n": ctx.state["n"] + 100}),
                "double": Sync(lambda ctx: {"n": ctx.state["n"] * 2}),
            },
            config=StoreConfig(async_error_handler=lambda info: None),
        )
        future = s.actions.bump()
        s.actions.double()
        assert s.state["n"] == 202
        gate.calls[0].set_exception(RuntimeError())
        with pytest.raises(RuntimeError):
            await future
        assert s.state["n"] == 2

    @pytest.mark.asyncio
    async def test_error_effects_applied_after_rollback(self):
        gate = _Gate()
        s = Store(
            lambda props: {"str": "init", "error": None},
            {
                "save": Async(
                    call=gate.call,
                    optimistic_effects=lambda ctx: {"str": "opti"},
                    error_effects=lambda ctx: {"error": str(ctx.error)},
                )
            },
        )
        future = s.actions.save()
        gate.calls[0].set_exception(RuntimeError("nope"))
        assert await future is None
        assert s.state == {"str": "init", "error": "nope"}

    @pytest.mark.asyncio
    async def test_two_optimistic_calls_second_fails(self):
        gate = _Gate()
        s = _store(gate)
        first = s.actions.save("a")
        second = s.actions.save("b")
        s.actions.add(1)
        assert s.state["str"] == "b"

        gate.calls[1].set_exception(RuntimeError())
        with pytest.raises(RuntimeError):
            await second
        assert s.state["str"] == "a"
        assert s.state["n"] == 1

        gate.calls[0].set_result(None)
        await first
        assert s.state["str"] == "a"
        assert s._history.entries == []

    @pytest.mark.asyncio
    async def test_two_optimistic_calls_both_fail(self):
        gate = _Gate()
        s = _store(gate)
        first = s.actions.save("a")
        s.actions.add(1)
        second = s.actions.save("b")
        s.actions.add(10)

        gate.calls[0].set_exception(RuntimeError())
        with pytest.raises(RuntimeError):
            await first
        assert s.state["str"] == "b"
        assert s.state["n"] == 11

        gate.calls[1].set_exception(RuntimeError())
        with pytest.raises(RuntimeError):
            await second
        assert s.state == {"str": "init", "str2": "", "n": 11}

    @pytest.mark.asyncio
    async def test_props_change_replayed(self):
        gate = _Gate()
        s = Store(
            lambda props: {"str": "init", "user": props["user"]},
            {"save": Async(call=gate.call, optimistic_effects=lambda ctx: {"str": "opti"})},
            props={"user": "a"},
            on_props_change=PropsChange(
                get_deps=lambda props: [props["user"]],
                effects=lambda ctx: {"user": ctx.props["user"]},
            ),
            config=StoreConfig(async_error_handler=lambda info: None),
        )
        future = s.actions.save()
        s.set_props({"user": "b"})
        gate.calls[0].set_exception(RuntimeError())
        with pytest.raises(RuntimeError):
            await future
        assert s.state == {"str": "init", "user": "b"}

    @pytest.mark.asyncio
    async def test_aborted_optimistic_call_rolls_back(self):
        gate = _Gate()
        s = Store(
            lambda props: {"str": "init"},
            {
                "save": Async(
                    call=gate.call,
                    optimistic_effects=lambda ctx: {"str": "opti"},
                    abortable=True,
                )
            },
        )
        future = s.actions.save()
        s.abort("save")
        gate.calls[0].set_result(None)
        assert await future is None
        assert s.state == {"str": "init"}

    @pytest.mark.asyncio
    async def test_call_started_after_abort_keeps_its_own_rollback(self):
        gate = _Gate()
        s = Store(
            lambda props: {"str": "init"},
            {
                "save": Async(
                    call=gate.call,
                    optimistic_effects=lambda ctx: {"str": ctx.args[0]},
                    abortable=True,
                )
            },
            config=StoreConfig(async_error_handler=lambda info: None),
        )
        first = s.actions.save("one")
        assert s.abort("save")
        second = s.actions.save("two")
        assert s.state == {"str": "two"}

        gate.calls[0].set_exception(RuntimeError())
        assert await first is None
        assert s.state == {"str": "two"}
        assert s._history.recording

        gate.calls[1].set_exception(RuntimeError())
        with pytest.raises(RuntimeError):
            await second
        assert s.state == {"str": "init"}
        assert not s._history.recording

    @pytest.mark.asyncio
    async def test_parallel_calls_sharing_an_id_roll_back_independently(self):
        gate = _Gate()
        s = Store(
            lambda props: {"str": "init"},
            {
                "save": Async(
                    call=gate.call,
                    optimistic_effects=lambda ctx: {"str": ctx.args[1]},
                    conflict_policy=ConflictPolicy.PARALLEL,
                    get_instance_id=lambda key, value: key,
                )
            },
            config=StoreConfig(async_error_handler=lambda info: None),
        )
        first = s.actions.save("k", "a")
        second = s.actions.save("k", "b")
        assert s.state == {"str": "b"}

        gate.calls[1].set_exception(RuntimeError())
        with pytest.raises(RuntimeError):
            await second
        assert s.state == {"str": "a"}

        gate.calls[0].set_exception(RuntimeError())
        with pytest.raises(RuntimeError):
            await first
        assert s.state == {"str": "init"}


class TestHistory:
    def _replay(self, entry, state):
        return {**state, **entry.context.args[0]}

    def _ctx(self, *args):
        return Context(state={}, args=args)

    def test_not_recording_without_pending(self):
        history = OptimisticHistory(dict)
        history.record("a", "default", EffectKind.EFFECTS, self._ctx({"x": 1}))
        assert not history.recording
        assert history.entries == []

    def test_begin_snapshots_state(self):
        history = OptimisticHistory(dict)
        state = {"x": 0}
        history.begin("opt", "default", self._ctx({"x": 1}), state)
        assert history.recording
        assert history.is_pending("opt", "default")
        (entry,) = history.entries
        assert entry.snapshot == {"x": 0}
        assert entry.snapshot is not state

    def test_rollback_replays_later_entries(self):
        history = OptimisticHistory(dict)
        token = history.begin("opt", "default", self._ctx({"x": 1}), {"x": 0, "y": 0})
        history.record("set", "default", EffectKind.EFFECTS, self._ctx({"y": 5}))
        assert history.rollback(token, self._replay) == {"x": 0, "y": 5}
        assert history.entries == []
        assert not history.recording

    def test_rollback_refreshes_later_snapshot(self):
        history = OptimisticHistory(dict)
        token = history.begin("a", "default", self._ctx({"x": 1}), {"x": 0, "y": 0})
        history.record("set", "default", EffectKind.EFFECTS, self._ctx({"y": 5}))
        history.begin("b", "default", self._ctx({"x": 2}), {"x": 1, "y": 5})

        history.rollback(token, self._replay)
        later = [e for e in history.entries if e.action_name == "b"][0]
        assert later.snapshot == {"x": 0, "y": 5}
        assert history.entries[0] is later

    def test_resolve_middle_entry_keeps_it_for_replay(self):
        history = OptimisticHistory(dict)
        first = history.begin("a", "default", self._ctx({"x": 1}), {"x": 0})
        second = history.begin("b", "default", self._ctx({"z": 1}), {"x": 1})
        history.resolve(second)
        entry = history.entries[1]
        assert entry.action_name == "b"
        assert entry.snapshot is None
        assert history.rollback(first, self._replay) == {"x": 0, "z": 1}

    def test_resolve_oldest_trims_prefix(self):
        history = OptimisticHistory(dict)
        token = history.begin("a", "default", self._ctx({"x": 1}), {"x": 0})
        history.record("set", "default", EffectKind.EFFECTS, self._ctx({"y": 1}))
        history.begin("b", "default", self._ctx({"z": 1}), {"x": 1, "y": 1})
        history.resolve(token)
        assert [e.action_name for e in history.entries] == ["b"]

    def test_rollback_unknown_entry(self):
        history = OptimisticHistory(dict)
        assert history.rollback(99, self._replay) is None

    def test_recorded_args_are_cloned(self):
        history = OptimisticHistory(lambda value: ("copy", value))
        history.begin("a", "default", self._ctx(1), {})
        assert history.entries[0].context.args == ("copy", (1,))
