from __future__ import annotations

import json

import numpy as np
import pytest

from tabularops.common.errors import ValidationError
from tabularops.core.numerics import make_rng
from tabularops.models import (
    CancellationToken,
    HyperParams,
    LogisticRegression,
    TrainingStatus,
    TrainingTask,
)


def _separable(n: int = 200, seed: int = 0) -> tuple[np.ndarray, np.ndarray]:
    rng = make_rng(seed)
    X = rng.normal(size=(n, 2))
    y = (X[:, 0] + 0.5 * X[:, 1] > 0).astype(float)
    return X, y


def test_fit_separable_data():
    X, y = _separable()
    model = LogisticRegression(2, HyperParams(learning_rate=0.1, epochs=200, seed=1))
    model.fit(X, y)

    loss, acc = model.evaluate(X, y)
    assert acc >= 0.95
    assert model.status is TrainingStatus.EPOCHS_EXHAUSTED
    assert len(model.history) == 200
    assert model.history[-1].loss < model.history[0].loss


def test_initial_weights_are_small_and_bias_zero():
    model = LogisticRegression(5, HyperParams(seed=3))
    assert model.status is TrainingStatus.UNINITIALIZED
    assert model.weights.shape == (5,)
    assert np.all(np.abs(model.weights) <= 0.05)
    assert model.bias == 0.0


def test_same_seed_same_weights():
    X, y = _separable(80)
    a = LogisticRegression(2, HyperParams(epochs=20, seed=11)).fit(X, y)
    b = LogisticRegression(2, HyperParams(epochs=20, seed=11)).fit(X, y)
    assert np.array_equal(a.weights, b.weights)
    assert a.bias == b.bias


def test_weights_are_clamped():
    X = np.array([[1000.0], [-1000.0]] * 10)
    y = np.array([1.0, 0.0] * 10)
    model = LogisticRegression(1, HyperParams(learning_rate=1.0, epochs=5, regularization=0.0))
    model.fit(X, y)
    assert np.all(np.abs(model.weights) <= 10.0)
    assert abs(model.bias) <= 10.0


def test_early_stopping_restores_best_snapshot():
    X, y = _separable(120, seed=2)
    X_val, y_val = X[:30], 1.0 - y[:30]  # 일부러 뒤집은 라벨

    model = LogisticRegression(
        2, HyperParams(learning_rate=0.1, epochs=100, early_stopping_patience=3, seed=4)
    )
    snapshots: list[tuple[np.ndarray, float]] = []
    for m in model.iter_epochs(X, y, (X_val, y_val)):
        snapshots.append((model.weights.copy(), m.val_loss))

    assert model.status is TrainingStatus.EARLY_STOPPED
    assert len(model.history) < 100

    best_w, _ = min(snapshots, key=lambda s: s[1])
    assert np.allclose(model.weights, best_w)
    assert model.evaluate(X_val, y_val)[0] == pytest.approx(min(s[1] for s in snapshots))


def test_tolerance_marks_converged():
    X, y = _separable(60)
    hp = HyperParams(learning_rate=0.5, epochs=2000, batch_size=64, tolerance=1e-3)
    model = LogisticRegression(2, hp)
    model.fit(X, y)
    assert model.status is TrainingStatus.CONVERGED
    assert len(model.history) < 2000


def test_multiclass_softmax():
    rng = make_rng(5)
    centers = np.array([[0.0, 4.0], [4.0, -2.0], [-4.0, -2.0]])
    y = np.repeat([0, 1, 2], 40).astype(float)
    X = centers[y.astype(int)] + rng.normal(scale=0.5, size=(120, 2))

    model = LogisticRegression(2, HyperParams(learning_rate=0.1, epochs=100, seed=0), n_classes=3)
    model.fit(X, y)

    assert model.weights.shape == (2, 3)
    proba = model.predict_proba(X)
    assert proba.shape == (120, 3)
    assert np.allclose(proba.sum(axis=1), 1.0)
    assert np.mean(model.predict_classes(X) == y) >= 0.95


def test_export_load_round_trip():
    X, y = _separable(50)
    model = LogisticRegression(2, HyperParams(epochs=10, seed=2), feature_names=["a", "b"]).fit(X, y)

    data = json.loads(json.dumps(model.export()))
    restored = LogisticRegression.load(data)

    assert restored.feature_names == ["a", "b"]
    assert restored.hyperparams == model.hyperparams
    assert restored.status is model.status
    assert len(restored.history) == 10
    assert np.allclose(restored.predict_proba(X), model.predict_proba(X))
    assert restored.predict_probability(X[0]) == pytest.approx(model.predict_probability(X[0]))


def test_predict_classes_threshold():
    model = LogisticRegression(1, HyperParams(seed=0))
    model.weights = np.array([1.0])
    model.bias = 0.0
    X = np.array([[-1.0], [0.1], [2.0]])
    assert model.predict_classes(X).tolist() == [0, 1, 1]
    assert model.predict_classes(X, threshold=0.9).tolist() == [0, 0, 1]


def test_history_frame():
    X, y = _separable(40)
    model = LogisticRegression(2, HyperParams(epochs=5, seed=0)).fit(X, y, (X[:10], y[:10]))
    df = model.history_frame()
    assert list(df.columns) == ["epoch", "loss", "accuracy", "val_loss", "val_accuracy"]
    assert df["epoch"].tolist() == [1, 2, 3, 4, 5]
    assert df["val_loss"].notna().all()


def test_hyperparams_validation():
    with pytest.raises(ValidationError, match="learning_rate"):
        HyperParams(learning_rate=0.0)
    with pytest.raises(ValidationError, match="epochs"):
        HyperParams(epochs=10001)
    with pytest.raises(ValidationError, match="unknown hyperparams option"):
        HyperParams.from_dict({"lr": 0.1})
    assert HyperParams.from_dict({"epochs": 5}).epochs == 5


def test_hyperparams_coerce_integral_floats_and_reject_wrong_types():
    hp = HyperParams.from_dict({"epochs": 20.0, "batch_size": 4.0, "seed": 3.0})
    assert hp.epochs == 20 and isinstance(hp.epochs, int)
    assert hp.batch_size == 4 and isinstance(hp.batch_size, int)
    assert hp.seed == 3

    with pytest.raises(ValidationError, match="learning_rate must be a number"):
        HyperParams.from_dict({"learning_rate": "0.1"})
    with pytest.raises(ValidationError, match="epochs must be a number"):
        HyperParams.from_dict({"epochs": "abc"})
    with pytest.raises(ValidationError, match="batch_size must be an integer"):
        HyperParams(batch_size=4.5)
    with pytest.raises(ValidationError, match="epochs must be a number"):
        HyperParams(epochs=True)


def test_cancel_before_start():
    X, y = _separable(40)
    token = CancellationToken()
    token.cancel()
    model = LogisticRegression(2, HyperParams(epochs=50, seed=0))
    w0 = model.weights.copy()
    model.fit(X, y, token=token)

    assert model.status is TrainingStatus.CANCELLED
    assert model.history == []
    assert np.array_equal(model.weights, w0)


def test_task_cancels_at_next_epoch_boundary():
    X, y = _separable(40)
    model = LogisticRegression(2, HyperParams(epochs=50, seed=0))
    task = TrainingTask(model=model, X=X, y=y)

    def _stop_at_5(m):
        if m.epoch == 5:
            task.cancel()

    task.callbacks.append(_stop_at_5)
    status = task.run()

    assert status is TrainingStatus.CANCELLED
    assert len(model.history) == 5


def test_task_cancel_mid_epoch_keeps_last_completed_weights():
    X, y = _separable(64)
    model = LogisticRegression(2, HyperParams(epochs=10, batch_size=8, seed=0))
    token = CancellationToken()
    after_epoch: list[np.ndarray] = []

    gen = model.iter_epochs(X, y, token=token)
    next(gen)
    after_epoch.append(model.weights.copy())

    # 다음 epoch 첫 batch 이후 취소되도록 _forward를 가로챔
    original = model._forward
    calls = {"n": 0}

    def _forward(*args):
        calls["n"] += 1
        if calls["n"] == 2:
            token.cancel()
        return original(*args)

    model._forward = _forward  # type: ignore[method-assign]
    for _ in gen:
        pass

    assert model.status is TrainingStatus.CANCELLED
    assert len(model.history) == 1
    assert np.array_equal(model.weights, after_epoch[0])


def test_task_yields_every_n_epochs():
    X, y = _separable(40)
    model = LogisticRegression(2, HyperParams(epochs=25, yield_every=10, seed=0))
    calls: list[int] = []
    task = TrainingTask(model=model, X=X, y=y, yield_fn=lambda: calls.append(len(model.history)))

    assert task.run() is TrainingStatus.EPOCHS_EXHAUSTED
    assert calls == [10, 20]
