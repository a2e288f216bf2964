"""Shallow equality used to compare dependency values and state slices."""

from __future__ import annotations

from collections.abc import Mapping


def shallow_equal(a: object, b: object) -> bool:
    """Identity/equality at the top level, identity one level down.

    Two mappings are equal when they have the same keys bound to the same
    objects; two lists/tuples when they have the same length and the same
    objects at each position. Anything else compares with ``is`` then ``==``.
    """
    if a is b:
        return True
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if len(a) != len(b):
            return False
        return all(k in b and a[k] is b[k] for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if type(a) is not type(b) or len(a) != len(b):
            return False
        return all(x is y for x, y in zip(a, b))
    return bool(a == b)
