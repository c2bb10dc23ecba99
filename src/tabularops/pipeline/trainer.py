"""validate -> preprocess -> split -> train -> evaluate, with progress events."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Literal

import numpy as np

from tabularops.common.errors import ValidationError, as_bool, as_number, reject_unknown_keys
from tabularops.common.log import get_logger
from tabularops.datasets.bundle import ColumnMeta, ParseResult
from tabularops.evaluation.metrics import (
    EvaluationSummary,
    MulticlassSummary,
    evaluation_summary,
    find_optimal_threshold,
    multiclass_summary,
)
from tabularops.models.logistic import (
    MAX_EPOCHS,
    EpochMetrics,
    HyperParams,
    LogisticRegression,
    TrainingStatus,
)
from tabularops.models.task import CancellationToken, TrainingTask
from tabularops.preprocessing.config import PreprocessConfig
from tabularops.preprocessing.encoding import EncodingInfo
from tabularops.preprocessing.prepare import PreparedDataset, PrepareReport, SplitIndices, prepare

if TYPE_CHECKING:
    from tabularops.pipeline.artifact import ModelArtifact

logger = get_logger(__name__)

Stage = Literal["preprocessing", "training", "validation", "complete"]
ProgressCallback = Callable[["ProgressEvent"], None]

_TARGET_TYPES = ("categorical", "boolean")


@dataclass(frozen=True)
class EvaluationConfig:
    optimize_threshold: bool = True
    threshold_metric: str = "f1"
    threshold: float = 0.5

    def __post_init__(self) -> None:
        problems: list[str] = []
        as_bool("optimize_threshold", self.optimize_threshold, problems)
        object.__setattr__(self, "threshold", as_number("threshold", self.threshold, problems))
        if problems:
            raise ValidationError("; ".join(problems), problems)
        if self.threshold_metric not in ("f1", "youden"):
            raise ValidationError(
                f"threshold_metric must be 'f1' or 'youden', got {self.threshold_metric!r}"
            )
        if not 0.0 <= self.threshold <= 1.0:
            raise ValidationError(f"threshold must be within [0, 1], got {self.threshold}")

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "EvaluationConfig":
        reject_unknown_keys("evaluation", d, ["optimize_threshold", "threshold_metric", "threshold"])
        return EvaluationConfig(**d)


@dataclass(frozen=True)
class TrainingConfig:
    preprocessing: PreprocessConfig
    hyperparams: HyperParams = field(default_factory=HyperParams)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)

    def to_dict(self) -> dict[str, Any]:
        return {
            "preprocessing": self.preprocessing.to_dict(),
            "hyperparams": self.hyperparams.to_dict(),
            "evaluation": asdict(self.evaluation),
        }

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "TrainingConfig":
        reject_unknown_keys("training config", d, ["preprocessing", "hyperparams", "evaluation"])
        if "preprocessing" not in d:
            raise ValidationError("training config requires 'preprocessing'")
        return TrainingConfig(
            preprocessing=PreprocessConfig.from_dict(d["preprocessing"]),
            hyperparams=HyperParams.from_dict(d.get("hyperparams") or {}),
            evaluation=EvaluationConfig.from_dict(d.get("evaluation") or {}),
        )


@dataclass(frozen=True)
class ProgressEvent:
    stage: Stage
    progress: float
    message: str
    epoch: int | None = None
    total_epochs: int | None = None
    metrics: EpochMetrics | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SplitMetrics:
    loss: float
    accuracy: float
    n_samples: int


@dataclass(frozen=True)
class Performance:
    training_time_ms: float
    samples_processed: int
    epochs_completed: int


@dataclass
class TrainingResult:
    model: LogisticRegression
    config: TrainingConfig
    prepared: PreparedDataset
    split: SplitIndices
    train_metrics: SplitMetrics
    val_metrics: SplitMetrics | None
    test_metrics: SplitMetrics | None
    history: list[EpochMetrics]
    status: TrainingStatus
    encoding_info: list[EncodingInfo]
    report: PrepareReport
    evaluation: EvaluationSummary | MulticlassSummary | None
    performance: Performance

    @property
    def threshold(self) -> float:
        if isinstance(self.evaluation, EvaluationSummary):
            return self.evaluation.threshold
        return self.config.evaluation.threshold

    def artifact(self) -> "ModelArtifact":
        from tabularops.pipeline.artifact import build_artifact

        return build_artifact(self)

    def summary(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "status": self.status.value,
            "epochs_completed": self.performance.epochs_completed,
            "train_accuracy": self.train_metrics.accuracy,
        }
        if self.val_metrics is not None:
            out["val_accuracy"] = self.val_metrics.accuracy
        if self.test_metrics is not None:
            out["test_accuracy"] = self.test_metrics.accuracy
        if self.evaluation is not None:
            ev = self.evaluation.to_dict()
            ev.pop("confusion_matrix", None)
            ev.pop("per_class", None)
            out["evaluation"] = ev
        return out


def validate_config(config: TrainingConfig, column_meta: list[ColumnMeta]) -> None:
    """Fail fast before any preprocessing work."""
    pp = config.preprocessing
    hp = config.hyperparams
    by_name = {m.name: m for m in column_meta}
    problems: list[str] = []

    target = by_name.get(pp.target_column)
    if target is None:
        problems.append(f"Target column '{pp.target_column}' not found in dataset")
    elif target.inferred_type not in _TARGET_TYPES:
        problems.append(
            f"Target column '{pp.target_column}' must be categorical or boolean, "
            f"got {target.inferred_type}"
        )

    for feat in pp.selected_features:
        if feat not in by_name:
            problems.append(f"Feature column '{feat}' not found in dataset")

    if not pp.selected_features:
        problems.append("At least one feature must be selected")
    if pp.target_column in pp.selected_features:
        problems.append(f"Target column '{pp.target_column}' cannot also be a feature")

    if not 0.0 < hp.learning_rate <= 1.0:
        problems.append("Learning rate must be between 0 and 1")
    if not 1 <= hp.epochs <= MAX_EPOCHS:
        problems.append(f"Epochs must be between 1 and {MAX_EPOCHS}")

    if problems:
        raise ValidationError("; ".join(problems), problems)


def default_hyperparams(n_rows: int, seed: int | None = None) -> HyperParams:
    n = max(1, int(n_rows))
    return HyperParams(
        learning_rate=0.01 if n < 1000 else 0.001,
        epochs=min(1000, max(100, 10000 // n)),
        regularization=0.01,
        batch_size=min(32, max(1, n // 10)),
        early_stopping_patience=20,
        seed=seed,
    )


def _split_metrics(model: LogisticRegression, X: np.ndarray, y: np.ndarray) -> SplitMetrics:
    loss, acc = model.evaluate(X, y)
    return SplitMetrics(loss=loss, accuracy=acc, n_samples=int(y.size))


def _evaluate(
    model: LogisticRegression,
    prepared: PreparedDataset,
    val: tuple[np.ndarray, np.ndarray],
    holdout: tuple[np.ndarray, np.ndarray],
    config: EvaluationConfig,
) -> EvaluationSummary | MulticlassSummary | None:
    X_h, y_h = holdout
    if y_h.size == 0:
        return None

    if not model.binary:
        return multiclass_summary(model.predict_classes(X_h), y_h, prepared.class_labels)

    threshold = config.threshold
    X_v, y_v = val
    if config.optimize_threshold and y_v.size:
        found = find_optimal_threshold(model.predict_proba(X_v), y_v, config.threshold_metric)
        threshold = found.threshold
        logger.info("decision threshold %.2f (%s=%.4f)", threshold, found.metric, found.score)

    labels = prepared.class_labels
    if len(labels) < 2:
        labels = labels + ["__other__"] * (2 - len(labels))
    return evaluation_summary(model.predict_proba(X_h), y_h, threshold, labels)


def train(
    parse_result: ParseResult,
    config: TrainingConfig,
    on_progress: ProgressCallback | None = None,
    token: CancellationToken | None = None,
    yield_fn: Callable[[], None] | None = None,
) -> TrainingResult:
    """Run the full training pipeline on a parsed dataset.

    Raises ValidationError / PreprocessError before training starts; a
    cancelled run still returns a result with status CANCELLED.
    """
    started = time.perf_counter()

    def emit(stage: Stage, progress: float, message: str, **kw: Any) -> None:
        if on_progress is not None:
            on_progress(ProgressEvent(stage=stage, progress=progress, message=message, **kw))

    emit("preprocessing", 0.0, "Validating configuration...")
    validate_config(config, parse_result.column_meta)

    emit("preprocessing", 0.2, "Preparing dataset...")
    prep = prepare(parse_result.raw_dataset, parse_result.column_meta, config.preprocessing)
    prepared, split = prep.prepared, prep.split

    emit("preprocessing", 0.8, "Splitting data...")
    X_tr, y_tr = prepared.subset(split.train)
    X_val, y_val = prepared.subset(split.val)
    test = prepared.subset(split.test) if split.test is not None else None
    logger.info("training with %d samples, validating with %d samples", y_tr.size, y_val.size)

    hp = config.hyperparams
    model = LogisticRegression(
        n_features=prepared.shape[1],
        hyperparams=hp,
        feature_names=prepared.feature_names,
        n_classes=max(2, prepared.n_classes),
    )

    emit("training", 0.0, "Starting model training...", epoch=0, total_epochs=hp.epochs)

    def on_epoch(m: EpochMetrics) -> None:
        emit(
            "training",
            m.epoch / hp.epochs,
            f"Training epoch {m.epoch}/{hp.epochs}",
            epoch=m.epoch,
            total_epochs=hp.epochs,
            metrics=m,
        )

    task = TrainingTask(
        model=model,
        X=X_tr,
        y=y_tr,
        validation=(X_val, y_val) if y_val.size else None,
        token=token or CancellationToken(),
        callbacks=[on_epoch],
        yield_fn=yield_fn,
    )
    status = task.run()

    emit("validation", 0.0, "Evaluating model...")
    holdout = test if test is not None and test[1].size else (X_val, y_val)
    if holdout[1].size == 0:
        holdout = (X_tr, y_tr)
    evaluation = _evaluate(model, prepared, (X_val, y_val), holdout, config.evaluation)

    result = TrainingResult(
        model=model,
        config=config,
        prepared=prepared,
        split=split,
        train_metrics=_split_metrics(model, X_tr, y_tr),
        val_metrics=_split_metrics(model, X_val, y_val) if y_val.size else None,
        test_metrics=_split_metrics(model, *test) if test is not None else None,
        history=list(model.history),
        status=status,
        encoding_info=prep.encoding_info,
        report=prep.report,
        evaluation=evaluation,
        performance=Performance(
            training_time_ms=(time.perf_counter() - started) * 1000.0,
            samples_processed=int(y_tr.size),
            epochs_completed=len(model.history),
        ),
    )

    logger.info("training finished: %s", result.summary())
    if status is TrainingStatus.CANCELLED:
        emit("complete", 1.0, f"Training cancelled after {len(model.history)} epoch(s)")
    else:
        emit("complete", 1.0, "Training completed successfully!")
    return result
