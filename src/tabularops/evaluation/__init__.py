from __future__ import annotations

from tabularops.evaluation.metrics import (
    ClassMetrics,
    EvaluationSummary,
    MulticlassSummary,
    ThresholdResult,
    accuracy,
    confusion_matrix,
    evaluation_summary,
    find_optimal_threshold,
    multiclass_summary,
    precision_recall_f1,
    roc_auc,
)

__all__ = [
    "ClassMetrics",
    "EvaluationSummary",
    "MulticlassSummary",
    "ThresholdResult",
    "accuracy",
    "confusion_matrix",
    "evaluation_summary",
    "find_optimal_threshold",
    "multiclass_summary",
    "precision_recall_f1",
    "roc_auc",
]
