"""Strength blend between the original and the LUT output."""

from typing import Sequence, Union

import numpy as np


def strength_ratio(strength: float) -> float:
    """Map a 0-100 strength onto a [0, 1] blend factor."""
    return min(max(strength / 100.0, 0.0), 1.0)


def blend(
    original: Union[float, Sequence[float], np.ndarray],
    transformed: Union[float, Sequence[float], np.ndarray],
    strength: float,
):
    """Per-channel ``original * (1 - s) + transformed * s`` with ``s = strength / 100``.

    Strength 0 returns the original and strength 100 returns the
    transformed color, both exactly. Accepts scalars, tuples and numpy
    arrays; tuples come back as tuples.
    """
    s = strength_ratio(strength)

    if isinstance(original, np.ndarray) or isinstance(transformed, np.ndarray):
        if s == 0.0:
            return np.array(original, copy=True)
        if s == 1.0:
            return np.array(transformed, copy=True)
        return np.asarray(original) * (1.0 - s) + np.asarray(transformed) * s

    if isinstance(original, (tuple, list)):
        if len(original) != len(transformed):
            raise ValueError("original and transformed must have the same number of channels")
        return tuple(_mix(o, t, s) for o, t in zip(original, transformed))

    return _mix(original, transformed, s)


def _mix(o: float, t: float, s: float) -> float:
    if s == 0.0:
        return o
    if s == 1.0:
        return t
    return o * (1.0 - s) + t * s


__all__ = ["blend", "strength_ratio"]
