"""Utility helpers for JetPy."""

import math
from typing import Tuple

import numpy as np


def as_point(x, dim: int) -> np.ndarray:
    """
    Coerce ``x`` into a float vector of shape ``(dim,)``.

    Scalars are accepted for ``dim == 1``.
    """
    point = np.asarray(x, dtype=float)
    if point.size != dim:
        raise ValueError(f"Expected a point of dimension {dim}, got shape {point.shape}")
    return point.reshape(dim)


def point_key(x: np.ndarray) -> bytes:
    """Hashable cache key for a point."""
    return np.ascontiguousarray(x, dtype=float).tobytes()


def tensors_close(a, b, rtol: float, atol: float) -> bool:
    """
    Tolerant tensor equality with the absolute tolerance scaled by magnitude.

    Non-finite entries never compare equal.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape != b.shape:
        return False
    if not (np.all(np.isfinite(a)) and np.all(np.isfinite(b))):
        return False
    scale = max(1.0, float(np.max(np.abs(a), initial=0.0)), float(np.max(np.abs(b), initial=0.0)))
    return bool(np.allclose(a, b, rtol=rtol, atol=atol * scale))


def max_abs(a) -> float:
    a = np.asarray(a, dtype=float)
    if a.size == 0:
        return 0.0
    return float(np.max(np.abs(a)))


def binomial(n: int, k: int) -> int:
    if k < 0 or k > n:
        return 0
    return math.comb(n, k)


def basis_vector(dim: int, j: int) -> np.ndarray:
    e = np.zeros(dim)
    e[j] = 1.0
    return e


def shape_size(shape: Tuple[int, ...]) -> int:
    return int(np.prod(shape, dtype=int)) if shape else 1
