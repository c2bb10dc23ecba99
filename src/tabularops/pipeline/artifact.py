"""Self-contained export of a trained model + preprocessing state.

``predict_row`` only needs the artifact: it reuses the encoding rules and the
sigmoid/softmax helpers, never the training code path.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np

from tabularops.common.version import get_build_info
from tabularops.core.numerics import sigmoid, softmax
from tabularops.preprocessing.encoding import EncodingInfo, transform_row

if TYPE_CHECKING:
    from tabularops.pipeline.trainer import TrainingResult

ARTIFACT_TYPE = "tabularops.logistic"
ARTIFACT_VERSION = 1


@dataclass
class ModelArtifact:
    weights: np.ndarray
    bias: Any
    feature_names: list[str]
    encoding_info: list[EncodingInfo]
    class_labels: list[str]
    target_column: str
    threshold: float = 0.5
    metrics: dict[str, Any] = field(default_factory=dict)
    build: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""

    @property
    def n_classes(self) -> int:
        return 2 if self.weights.ndim == 1 else int(self.weights.shape[1])

    def to_dict(self) -> dict[str, Any]:
        bias = np.asarray(self.bias, dtype=float)
        return {
            "type": ARTIFACT_TYPE,
            "version": ARTIFACT_VERSION,
            "created_at": self.created_at,
            "target_column": self.target_column,
            "weights": self.weights.tolist(),
            "bias": float(bias) if bias.ndim == 0 else bias.tolist(),
            "feature_names": list(self.feature_names),
            "encoding_info": [e.to_dict() for e in self.encoding_info],
            "class_labels": list(self.class_labels),
            "threshold": float(self.threshold),
            "metrics": self.metrics,
            "build": self.build,
        }

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "ModelArtifact":
        if d.get("type") != ARTIFACT_TYPE:
            raise ValueError(f"not a {ARTIFACT_TYPE} artifact: type={d.get('type')!r}")
        weights = np.asarray(d["weights"], dtype=float)
        bias = d.get("bias", 0.0)
        return ModelArtifact(
            weights=weights,
            bias=float(bias) if weights.ndim == 1 else np.asarray(bias, dtype=float),
            feature_names=list(d["feature_names"]),
            encoding_info=[EncodingInfo.from_dict(e) for e in d["encoding_info"]],
            class_labels=list(d.get("class_labels") or []),
            target_column=str(d.get("target_column") or ""),
            threshold=float(d.get("threshold", 0.5)),
            metrics=dict(d.get("metrics") or {}),
            build=dict(d.get("build") or {}),
            created_at=str(d.get("created_at") or ""),
        )

    def save(self, path: str | Path) -> Path:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(self.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        return p

    @staticmethod
    def load(path: str | Path) -> "ModelArtifact":
        return ModelArtifact.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


@dataclass(frozen=True)
class Prediction:
    label: str
    class_index: int
    probability: float
    probabilities: list[float]

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "class_index": self.class_index,
            "probability": self.probability,
            "probabilities": self.probabilities,
        }


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_artifact(result: "TrainingResult") -> ModelArtifact:
    metrics: dict[str, Any] = {
        "train": {"loss": result.train_metrics.loss, "accuracy": result.train_metrics.accuracy},
        "status": result.status.value,
        "epochs_completed": result.performance.epochs_completed,
    }
    if result.val_metrics is not None:
        metrics["val"] = {"loss": result.val_metrics.loss, "accuracy": result.val_metrics.accuracy}
    if result.test_metrics is not None:
        metrics["test"] = {
            "loss": result.test_metrics.loss,
            "accuracy": result.test_metrics.accuracy,
        }
    if result.evaluation is not None:
        metrics["evaluation"] = result.evaluation.to_dict()

    model = result.model
    return ModelArtifact(
        weights=np.array(model.weights, dtype=float),
        bias=model.bias if model.binary else np.array(model.bias, dtype=float),
        feature_names=list(model.feature_names),
        encoding_info=[EncodingInfo.from_dict(e.to_dict()) for e in result.encoding_info],
        class_labels=list(result.prepared.class_labels),
        target_column=result.config.preprocessing.target_column,
        threshold=result.threshold,
        metrics=metrics,
        build=get_build_info(),
        created_at=_utc_now(),
    )


def predict_row(artifact: ModelArtifact, row: dict[str, Any]) -> Prediction:
    """Encode one raw row with the stored preprocessing state and score it."""
    x = transform_row(row, artifact.encoding_info)
    z = x @ artifact.weights + artifact.bias
    labels = artifact.class_labels

    if artifact.weights.ndim == 1:
        p = float(sigmoid(float(z)))
        idx = int(p >= artifact.threshold)
        return Prediction(
            label=labels[idx] if idx < len(labels) else str(idx),
            class_index=idx,
            probability=p,
            probabilities=[1.0 - p, p],
        )

    probs = softmax(z)
    idx = int(np.argmax(probs))
    return Prediction(
        label=labels[idx] if idx < len(labels) else str(idx),
        class_index=idx,
        probability=float(probs[idx]),
        probabilities=[float(v) for v in probs],
    )


def _slug(s: str) -> str:
    s = re.sub(r"[^0-9A-Za-z]+", "_", s.strip())
    return re.sub(r"_+", "_", s).strip("_") or "model"


def default_artifact_path(artifacts_dir: str | Path, name: str) -> Path:
    """예: artifacts/models/20260124_163015_churn.json (UTC)"""
    ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return Path(artifacts_dir) / "models" / f"{ts}_{_slug(name)}.json"
