"""Classification metrics over plain prediction/label arrays."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

import numpy as np
import pandas as pd

ThresholdMetric = Literal["f1", "youden"]

N_THRESHOLDS = 100


@dataclass(frozen=True)
class ClassMetrics:
    precision: float
    recall: float
    f1: float
    support: int = 0


@dataclass(frozen=True)
class ThresholdResult:
    threshold: float
    score: float
    metric: str = "f1"


@dataclass
class EvaluationSummary:
    accuracy: float
    precision: float
    recall: float
    f1: float
    confusion_matrix: list[list[int]]
    class_labels: list[str]
    threshold: float = 0.5
    auc: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MulticlassSummary:
    accuracy: float
    macro_f1: float
    weighted_f1: float
    confusion_matrix: list[list[int]]
    class_labels: list[str]
    per_class: list[ClassMetrics] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def per_class_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [asdict(m) for m in self.per_class],
            index=pd.Index(self.class_labels, name="class"),
        )


def _ints(values: Any) -> np.ndarray:
    return np.rint(np.asarray(values, dtype=float)).astype(int)


def confusion_matrix(predictions: Any, labels: Any, n_classes: int | None = None) -> np.ndarray:
    """rows = actual, columns = predicted."""
    pred = _ints(predictions)
    actual = _ints(labels)
    if n_classes is None:
        n_classes = int(max(pred.max(initial=0), actual.max(initial=0))) + 1

    matrix = np.zeros((n_classes, n_classes), dtype=int)
    ok = (pred >= 0) & (pred < n_classes) & (actual >= 0) & (actual < n_classes)
    np.add.at(matrix, (actual[ok], pred[ok]), 1)
    return matrix


def accuracy(predictions: Any, labels: Any) -> float:
    pred = _ints(predictions)
    actual = _ints(labels)
    if actual.size == 0:
        return 0.0
    return float(np.mean(pred == actual))


def precision_recall_f1(matrix: Any, positive: int = 1) -> ClassMetrics:
    m = np.asarray(matrix)
    if m.shape[0] < 2 or positive >= m.shape[0]:
        return ClassMetrics(0.0, 0.0, 0.0)

    tp = int(m[positive, positive])
    fp = int(m[:, positive].sum()) - tp
    fn = int(m[positive, :].sum()) - tp

    precision = tp / (tp + fp) if tp + fp > 0 else 0.0
    recall = tp / (tp + fn) if tp + fn > 0 else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0
    return ClassMetrics(precision, recall, f1, support=int(m[positive, :].sum()))


def roc_auc(probabilities: Any, labels: Any) -> float:
    """Trapezoidal area under the ROC curve (0.5 when a class is absent)."""
    p = np.asarray(probabilities, dtype=float)
    y = _ints(labels)

    positives = int(np.sum(y == 1))
    negatives = y.size - positives
    if positives == 0 or negatives == 0:
        return 0.5

    # 확률 내림차순으로 한 샘플씩 sweep
    order = np.argsort(-p, kind="stable")
    hits = (y[order] == 1).astype(float)
    tpr = np.concatenate([[0.0], np.cumsum(hits) / positives])
    fpr = np.concatenate([[0.0], np.cumsum(1.0 - hits) / negatives])
    return float(np.sum(np.diff(fpr) * (tpr[1:] + tpr[:-1]) / 2.0))


def find_optimal_threshold(
    probabilities: Any,
    labels: Any,
    metric: ThresholdMetric = "f1",
) -> ThresholdResult:
    """Scan thresholds 0.00..0.99; the first threshold reaching the best score wins."""
    if metric not in ("f1", "youden"):
        raise ValueError(f"unknown threshold metric: {metric}")

    p = np.asarray(probabilities, dtype=float)
    y = _ints(labels)

    best_threshold = 0.5
    best_score = 0.0
    for i in range(N_THRESHOLDS):
        t = i / N_THRESHOLDS
        m = confusion_matrix((p >= t).astype(int), y, n_classes=2)
        if metric == "f1":
            score = precision_recall_f1(m, 1).f1
        else:
            score = precision_recall_f1(m, 1).recall + precision_recall_f1(m, 0).recall - 1.0
        if score > best_score:
            best_score = score
            best_threshold = t

    return ThresholdResult(threshold=best_threshold, score=best_score, metric=metric)


def evaluation_summary(
    probabilities: Any,
    labels: Any,
    threshold: float = 0.5,
    class_labels: list[str] | None = None,
) -> EvaluationSummary:
    p = np.asarray(probabilities, dtype=float)
    y = _ints(labels)
    pred = (p >= threshold).astype(int)

    m = confusion_matrix(pred, y, n_classes=2)
    pos = precision_recall_f1(m, 1)
    return EvaluationSummary(
        accuracy=accuracy(pred, y),
        precision=pos.precision,
        recall=pos.recall,
        f1=pos.f1,
        auc=roc_auc(p, y),
        confusion_matrix=m.tolist(),
        class_labels=list(class_labels or ["False", "True"]),
        threshold=float(threshold),
    )


def multiclass_summary(predictions: Any, labels: Any, class_labels: list[str]) -> MulticlassSummary:
    n = len(class_labels)
    m = confusion_matrix(predictions, labels, n_classes=n)

    per_class = [precision_recall_f1(m, k) for k in range(n)]
    support = np.array([c.support for c in per_class], dtype=float)
    f1s = np.array([c.f1 for c in per_class], dtype=float)

    return MulticlassSummary(
        accuracy=accuracy(predictions, labels),
        macro_f1=float(f1s.mean()) if n else 0.0,
        weighted_f1=float((f1s * support).sum() / support.sum()) if support.sum() > 0 else 0.0,
        confusion_matrix=m.tolist(),
        class_labels=list(class_labels),
        per_class=per_class,
    )
