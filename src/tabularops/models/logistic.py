"""Mini-batch gradient-descent logistic regression (binary + softmax)."""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import asdict, dataclass, fields
from typing import Any, Protocol

import numpy as np
import pandas as pd

from tabularops.common.errors import ValidationError, as_int, as_number, reject_unknown_keys
from tabularops.common.log import get_logger
from tabularops.core.numerics import clamp, make_rng, safe_log, shuffle_indices, sigmoid, softmax

logger = get_logger(__name__)

WEIGHT_LIMIT = 10.0
MAX_EPOCHS = 10000


class Cancellable(Protocol):
    @property
    def cancelled(self) -> bool: ...


class TrainingStatus(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    TRAINING = "training"
    CONVERGED = "converged"
    EARLY_STOPPED = "early_stopped"
    EPOCHS_EXHAUSTED = "epochs_exhausted"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self not in (TrainingStatus.UNINITIALIZED, TrainingStatus.TRAINING)


@dataclass(frozen=True)
class HyperParams:
    learning_rate: float = 0.01
    epochs: int = 100
    regularization: float = 0.01
    batch_size: int = 32
    early_stopping_patience: int = 20
    seed: int | None = None
    tolerance: float = 0.0
    yield_every: int = 10

    def __post_init__(self) -> None:
        problems: list[str] = []
        for name in ("learning_rate", "regularization", "tolerance"):
            object.__setattr__(self, name, as_number(name, getattr(self, name), problems))
        for name in ("epochs", "batch_size", "early_stopping_patience", "yield_every"):
            object.__setattr__(self, name, as_int(name, getattr(self, name), problems))
        if self.seed is not None:
            object.__setattr__(self, "seed", as_int("seed", self.seed, problems))
        if problems:
            # 타입이 틀리면 범위 검사는 의미가 없다
            raise ValidationError("; ".join(problems), problems)

        if not 0.0 < self.learning_rate <= 1.0:
            problems.append(f"learning_rate must be within (0, 1], got {self.learning_rate}")
        if not 1 <= self.epochs <= MAX_EPOCHS:
            problems.append(f"epochs must be within [1, {MAX_EPOCHS}], got {self.epochs}")
        if self.regularization < 0:
            problems.append(f"regularization must be >= 0, got {self.regularization}")
        if self.batch_size < 1:
            problems.append(f"batch_size must be >= 1, got {self.batch_size}")
        if self.early_stopping_patience < 1:
            problems.append(
                f"early_stopping_patience must be >= 1, got {self.early_stopping_patience}"
            )
        if self.tolerance < 0:
            problems.append(f"tolerance must be >= 0, got {self.tolerance}")
        if self.yield_every < 1:
            problems.append(f"yield_every must be >= 1, got {self.yield_every}")
        if problems:
            raise ValidationError("; ".join(problems), problems)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "HyperParams":
        reject_unknown_keys("hyperparams", d, [f.name for f in fields(HyperParams)])
        return HyperParams(**d)


@dataclass(frozen=True)
class EpochMetrics:
    epoch: int
    loss: float
    accuracy: float
    val_loss: float | None = None
    val_accuracy: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _as_2d(X: Any) -> np.ndarray:
    arr = np.asarray(X, dtype=float)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    return arr


class LogisticRegression:
    """Logistic regression trained with mini-batch gradient descent.

    Binary models keep a weight vector ``(n_features,)`` and a scalar bias and
    use the sigmoid; with ``n_classes > 2`` the weights are
    ``(n_features, n_classes)`` and probabilities come from a softmax.

    Training is a generator (:meth:`iter_epochs`) so a caller can observe each
    epoch, yield to a host loop, or cancel between batches.
    """

    def __init__(
        self,
        n_features: int,
        hyperparams: HyperParams | None = None,
        feature_names: list[str] | None = None,
        n_classes: int = 2,
    ) -> None:
        if n_features < 1:
            raise ValueError(f"n_features must be >= 1, got {n_features}")
        if n_classes < 2:
            raise ValueError(f"n_classes must be >= 2, got {n_classes}")

        self.n_features = n_features
        self.n_classes = n_classes
        self.hyperparams = hyperparams or HyperParams()
        self.feature_names = list(feature_names or [f"x{i}" for i in range(n_features)])
        self.history: list[EpochMetrics] = []
        self.status = TrainingStatus.UNINITIALIZED
        self._rng = make_rng(self.hyperparams.seed)

        shape = (n_features,) if self.binary else (n_features, n_classes)
        self.weights = (self._rng.random(shape) - 0.5) * 0.1
        self.bias: Any = 0.0 if self.binary else np.zeros(n_classes)

    @property
    def binary(self) -> bool:
        return self.n_classes == 2

    # ---------------------------------------------------------------- inference

    def _forward(self, X: np.ndarray, weights: np.ndarray, bias: Any) -> np.ndarray:
        z = X @ weights + bias
        return sigmoid(z) if self.binary else softmax(z)

    def predict_proba(self, X: Any) -> np.ndarray:
        """P(y=1) per row for binary models, ``(n, n_classes)`` for multiclass."""
        return self._forward(_as_2d(X), self.weights, self.bias)

    def predict_probability(self, row: Any) -> float:
        p = self.predict_proba(row)[0]
        return float(p) if self.binary else float(np.max(p))

    def predict_classes(self, X: Any, threshold: float = 0.5) -> np.ndarray:
        p = self.predict_proba(X)
        if self.binary:
            return (p >= threshold).astype(int)
        return np.argmax(p, axis=1)

    def _loss_and_correct(self, p: np.ndarray, y: np.ndarray) -> tuple[float, int]:
        if self.binary:
            loss = -(y * safe_log(p) + (1.0 - y) * safe_log(1.0 - p))
            correct = int(np.sum((p >= 0.5).astype(int) == y.astype(int)))
            return float(np.sum(loss)), correct
        idx = y.astype(int)
        loss = -safe_log(p[np.arange(idx.size), idx])
        correct = int(np.sum(np.argmax(p, axis=1) == idx))
        return float(np.sum(loss)), correct

    def evaluate(self, X: Any, y: Any) -> tuple[float, float]:
        """Mean cross-entropy and accuracy (0.5 threshold / argmax)."""
        X = _as_2d(X)
        y = np.asarray(y, dtype=float)
        if y.size == 0:
            return 0.0, 0.0
        total, correct = self._loss_and_correct(self.predict_proba(X), y)
        return total / y.size, correct / y.size

    # ----------------------------------------------------------------- training

    def _gradients(self, Xb: np.ndarray, yb: np.ndarray, p: np.ndarray) -> tuple[np.ndarray, Any]:
        m = yb.size
        if self.binary:
            err = p - yb
        else:
            onehot = np.zeros_like(p)
            onehot[np.arange(m), yb.astype(int)] = 1.0
            err = p - onehot
        grad_w = Xb.T @ err / m + self.hyperparams.regularization * self.weights
        grad_b = err.sum(axis=0) / m
        return grad_w, (float(grad_b) if self.binary else grad_b)

    def iter_epochs(
        self,
        X: Any,
        y: Any,
        validation: tuple[Any, Any] | None = None,
        token: Cancellable | None = None,
    ) -> Iterator[EpochMetrics]:
        """Train epoch by epoch, yielding each epoch's metrics.

        Stops with CONVERGED (training-loss change below ``tolerance``),
        EARLY_STOPPED (validation loss stalled for ``early_stopping_patience``
        epochs; best weights restored), CANCELLED (token set) or
        EPOCHS_EXHAUSTED.
        """
        hp = self.hyperparams
        X = _as_2d(X)
        y = np.asarray(y, dtype=float)
        n = y.size
        if X.shape[0] != n:
            raise ValueError(f"X/y size mismatch: {X.shape[0]} vs {n}")
        if X.shape[1] != self.n_features:
            raise ValueError(f"expected {self.n_features} features, got {X.shape[1]}")

        if validation is not None:
            X_val, y_val = _as_2d(validation[0]), np.asarray(validation[1], dtype=float)
            if y_val.size == 0:
                validation = None

        self.history = []
        self.status = TrainingStatus.TRAINING
        if n == 0:
            self.status = TrainingStatus.EPOCHS_EXHAUSTED
            return

        best_val = np.inf
        best_weights, best_bias = self.weights.copy(), np.copy(self.bias)
        patience = 0
        prev_loss: float | None = None

        for epoch in range(1, hp.epochs + 1):
            if token is not None and token.cancelled:
                self.status = TrainingStatus.CANCELLED
                return

            epoch_weights, epoch_bias = self.weights.copy(), np.copy(self.bias)
            order = shuffle_indices(n, self._rng)
            total_loss = 0.0
            correct = 0

            for start in range(0, n, hp.batch_size):
                if token is not None and token.cancelled:
                    # 중단된 epoch의 일부 업데이트는 버린다
                    self.weights, self.bias = epoch_weights, self._bias_value(epoch_bias)
                    self.status = TrainingStatus.CANCELLED
                    return

                idx = order[start : start + hp.batch_size]
                Xb, yb = X[idx], y[idx]
                p = self._forward(Xb, self.weights, self.bias)

                batch_loss, batch_correct = self._loss_and_correct(p, yb)
                total_loss += batch_loss
                correct += batch_correct

                grad_w, grad_b = self._gradients(Xb, yb, p)
                self.weights = np.clip(
                    self.weights - hp.learning_rate * grad_w, -WEIGHT_LIMIT, WEIGHT_LIMIT
                )
                self.bias = clamp(self.bias - hp.learning_rate * grad_b, -WEIGHT_LIMIT, WEIGHT_LIMIT)

            loss = total_loss / n
            acc = correct / n
            val_loss = val_acc = None

            if validation is not None:
                val_loss, val_acc = self.evaluate(X_val, y_val)
                if val_loss < best_val:
                    best_val = val_loss
                    best_weights, best_bias = self.weights.copy(), np.copy(self.bias)
                    patience = 0
                else:
                    patience += 1

                if patience >= hp.early_stopping_patience:
                    logger.info("early stopping at epoch %d (best val_loss=%.6f)", epoch, best_val)
                    self.weights, self.bias = best_weights, self._bias_value(best_bias)
                    self.status = TrainingStatus.EARLY_STOPPED
                    return

            metrics = EpochMetrics(
                epoch=epoch, loss=loss, accuracy=acc, val_loss=val_loss, val_accuracy=val_acc
            )
            self.history.append(metrics)
            yield metrics

            if hp.tolerance > 0 and prev_loss is not None and abs(prev_loss - loss) < hp.tolerance:
                logger.info("converged at epoch %d (loss=%.6f)", epoch, loss)
                self.status = TrainingStatus.CONVERGED
                return
            prev_loss = loss

        self.status = TrainingStatus.EPOCHS_EXHAUSTED

    def _bias_value(self, bias: Any) -> Any:
        return float(bias) if self.binary else np.asarray(bias, dtype=float)

    def fit(
        self,
        X: Any,
        y: Any,
        validation: tuple[Any, Any] | None = None,
        token: Cancellable | None = None,
    ) -> "LogisticRegression":
        for _ in self.iter_epochs(X, y, validation, token=token):
            pass
        return self

    # ------------------------------------------------------------ export / load

    def history_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [m.to_dict() for m in self.history],
            columns=["epoch", "loss", "accuracy", "val_loss", "val_accuracy"],
        )

    def export(self) -> dict[str, Any]:
        return {
            "type": "logistic",
            "n_classes": self.n_classes,
            "weights": self.weights.tolist(),
            "bias": self.bias if self.binary else self.bias.tolist(),
            "feature_names": list(self.feature_names),
            "hyperparams": self.hyperparams.to_dict(),
            "status": self.status.value,
            "history": [m.to_dict() for m in self.history],
        }

    @staticmethod
    def load(data: dict[str, Any]) -> "LogisticRegression":
        weights = np.asarray(data["weights"], dtype=float)
        n_classes = int(data.get("n_classes", 2))
        model = LogisticRegression(
            n_features=weights.shape[0],
            hyperparams=HyperParams.from_dict(data.get("hyperparams") or {}),
            feature_names=data.get("feature_names"),
            n_classes=n_classes,
        )
        model.weights = weights
        model.bias = model._bias_value(data.get("bias", 0.0))
        model.history = [EpochMetrics(**m) for m in data.get("history") or []]
        model.status = TrainingStatus(data.get("status", TrainingStatus.EPOCHS_EXHAUSTED.value))
        return model
