from __future__ import annotations

import math

import numpy as np

from tabularops.core.numerics import (
    LOG_EPSILON,
    clamp,
    make_rng,
    min_max_normalize,
    random_normal,
    safe_log,
    shuffle_indices,
    sigmoid,
    softmax,
    stratified_split,
    z_score_normalize,
)


def test_sigmoid_saturates_outside_clip_range():
    assert sigmoid(0.0) == 0.5
    assert sigmoid(25.0) == 1.0
    assert sigmoid(-25.0) == 0.0
    assert 0.0 < sigmoid(-20.0) < 1e-8

    out = sigmoid(np.array([-30.0, 0.0, 30.0]))
    assert isinstance(out, np.ndarray)
    assert out.tolist() == [0.0, 0.5, 1.0]


def test_softmax_rows_sum_to_one_without_overflow():
    p = softmax(np.array([[1000.0, 1000.0, 1000.0], [1.0, 2.0, 3.0]]))
    assert np.allclose(p.sum(axis=1), 1.0)
    assert np.allclose(p[0], 1.0 / 3.0)
    assert np.argmax(p[1]) == 2


def test_z_score_constant_column_is_zero():
    out, mean, std = z_score_normalize([4.0, 4.0, 4.0])
    assert out.tolist() == [0.0, 0.0, 0.0]
    assert mean == 4.0
    assert std == 0.0

    out, mean, std = z_score_normalize([1.0, 2.0, 3.0])
    assert math.isclose(mean, 2.0)
    assert math.isclose(std, math.sqrt(2.0 / 3.0))
    assert math.isclose(float(out.mean()), 0.0, abs_tol=1e-12)


def test_min_max_constant_column_is_half():
    out, lo, hi = min_max_normalize([7.0, 7.0])
    assert out.tolist() == [0.5, 0.5]
    assert (lo, hi) == (7.0, 7.0)

    out, _, _ = min_max_normalize([0.0, 5.0, 10.0])
    assert out.tolist() == [0.0, 0.5, 1.0]


def test_random_normal_is_seeded_and_standard():
    a = random_normal(make_rng(7), size=20000)
    b = random_normal(make_rng(7), size=20000)
    assert np.array_equal(a, b)
    assert abs(float(a.mean())) < 0.05
    assert abs(float(a.std()) - 1.0) < 0.05

    x = random_normal(make_rng(1), mean=10.0, std=0.0)
    assert x == 10.0


def test_shuffle_indices_is_a_permutation():
    idx = shuffle_indices(50, make_rng(3))
    assert sorted(idx.tolist()) == list(range(50))


def test_stratified_split_preserves_class_share():
    labels = np.array([0] * 30 + [1] * 10)
    first, second = stratified_split(labels, 0.8, make_rng(0))

    assert first.size == 24 + 8
    assert second.size == 6 + 2
    assert set(first.tolist()).isdisjoint(second.tolist())
    assert sorted(np.concatenate([first, second]).tolist()) == list(range(40))
    assert int((labels[first] == 1).sum()) == 8


def test_clamp_and_safe_log():
    assert clamp(100.0) == 20.0
    assert clamp(-3.0, -1.0, 1.0) == -1.0
    assert clamp(np.array([-50.0, 0.0, 50.0]), -10, 10).tolist() == [-10.0, 0.0, 10.0]

    assert safe_log(0.0) == math.log(LOG_EPSILON)
    assert math.isclose(safe_log(math.e), 1.0)
