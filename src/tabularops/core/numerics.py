"""Numeric helpers shared by preprocessing, training and evaluation.

All randomness goes through an explicit ``numpy.random.Generator`` so a run
with a fixed seed is reproducible.
"""

from __future__ import annotations

from typing import Any

import numpy as np

SIGMOID_CLIP = 20.0
LOG_EPSILON = 1e-15


def make_rng(seed: int | None = None) -> np.random.Generator:
    return np.random.default_rng(seed)


def _scalar_or_array(out: np.ndarray, like: Any) -> Any:
    if np.ndim(like) == 0:
        return float(out)
    return out


def sigmoid(x: Any) -> Any:
    """Logistic function; saturates to exactly 0/1 outside [-20, 20]."""
    z = np.asarray(x, dtype=float)
    p = 1.0 / (1.0 + np.exp(-np.clip(z, -SIGMOID_CLIP, SIGMOID_CLIP)))
    p = np.where(z > SIGMOID_CLIP, 1.0, np.where(z < -SIGMOID_CLIP, 0.0, p))
    return _scalar_or_array(p, x)


def softmax(logits: Any) -> np.ndarray:
    """Row-wise softmax for 1D or 2D input."""
    z = np.asarray(logits, dtype=float)
    shifted = z - np.max(z, axis=-1, keepdims=True)
    exps = np.exp(shifted)
    return exps / np.sum(exps, axis=-1, keepdims=True)


def z_score_normalize(values: Any) -> tuple[np.ndarray, float, float]:
    """Return (normalized, mean, std) using the population std.

    A constant column becomes all zeros and reports std 0.
    """
    v = np.asarray(values, dtype=float)
    if v.size == 0:
        return v.copy(), 0.0, 0.0
    mean = float(v.mean())
    std = float(np.sqrt(np.mean((v - mean) ** 2)))
    if std == 0.0:
        return np.zeros_like(v), mean, 0.0
    return (v - mean) / std, mean, std


def min_max_normalize(values: Any) -> tuple[np.ndarray, float, float]:
    """Return (normalized, min, max); a constant column maps to 0.5."""
    v = np.asarray(values, dtype=float)
    if v.size == 0:
        return v.copy(), 0.0, 0.0
    lo = float(v.min())
    hi = float(v.max())
    if hi == lo:
        return np.full_like(v, 0.5), lo, hi
    return (v - lo) / (hi - lo), lo, hi


def random_normal(
    rng: np.random.Generator,
    mean: float = 0.0,
    std: float = 1.0,
    size: int | tuple[int, ...] | None = None,
) -> Any:
    """Box-Muller transform over the generator's uniform stream."""
    # 1 - U 로 (0, 1] 구간을 만들어 log(0)을 피한다
    u = 1.0 - rng.random(size)
    v = rng.random(size)
    z = np.sqrt(-2.0 * np.log(u)) * np.cos(2.0 * np.pi * v)
    out = z * std + mean
    if size is None:
        return float(out)
    return out


def shuffle_indices(length: int, rng: np.random.Generator) -> np.ndarray:
    return rng.permutation(length)


def stratified_split(
    labels: Any,
    train_ratio: float,
    rng: np.random.Generator,
) -> tuple[np.ndarray, np.ndarray]:
    """Split indices per class so each class keeps its share.

    Each class bucket is shuffled, then its first floor(n * ratio) indices go
    to the first part and the rest to the second.
    """
    y = np.asarray(labels)
    first: list[np.ndarray] = []
    second: list[np.ndarray] = []

    for cls in np.unique(y):
        bucket = np.flatnonzero(y == cls)
        bucket = bucket[shuffle_indices(bucket.size, rng)]
        # 1e-9: 0.2 * 0.5 같은 비율 계산의 부동소수 오차 보정
        n_first = int(np.floor(bucket.size * train_ratio + 1e-9))
        first.append(bucket[:n_first])
        second.append(bucket[n_first:])

    empty = np.array([], dtype=int)
    return (
        np.concatenate(first) if first else empty,
        np.concatenate(second) if second else empty,
    )


def clamp(value: Any, lo: float = -SIGMOID_CLIP, hi: float = SIGMOID_CLIP) -> Any:
    out = np.clip(np.asarray(value, dtype=float), lo, hi)
    return _scalar_or_array(out, value)


def safe_log(x: Any, epsilon: float = LOG_EPSILON) -> Any:
    out = np.log(np.maximum(np.asarray(x, dtype=float), epsilon))
    return _scalar_or_array(out, x)
