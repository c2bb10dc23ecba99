from __future__ import annotations

from tabularops.models.logistic import EpochMetrics, HyperParams, LogisticRegression, TrainingStatus
from tabularops.models.task import CancellationToken, TrainingTask

__all__ = [
    "CancellationToken",
    "EpochMetrics",
    "HyperParams",
    "LogisticRegression",
    "TrainingStatus",
    "TrainingTask",
]
