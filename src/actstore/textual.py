"""Textual integration for actstore. Opt-in — requires textual.

Store listeners run wherever the store commits. These wrappers make them safe
to touch widgets from: they skip while the app is not running or is paused
for widget replacement, swallow NoMatches from widget queries, and marshal
off-thread calls through app.call_from_thread.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from actstore.reaction import autorun as _autorun, reaction as _reaction

# Keyed by id(app) so several apps can coexist (tests).
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend guarded reactions during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def _guard(app, fn):
    main = threading.get_ident()

    def _safe(*args):
        try:
            fn(*args)
        except NoMatches:
            pass

    def _guarded(*args):
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(_safe, *args)
        else:
            _safe(*args)

    return _guarded


def reaction(app, store, data_fn, effect_fn, *, fire_immediately=False, comparator=None):
    """reaction() whose effect only touches widgets when it is safe to."""
    return _reaction(
        store,
        data_fn,
        _guard(app, effect_fn),
        fire_immediately=fire_immediately,
        comparator=comparator,
    )


def autorun(app, store, fn):
    """autorun() whose function only touches widgets when it is safe to."""
    return _autorun(store, _guard(app, fn))
