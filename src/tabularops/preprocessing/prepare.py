"""Raw parsed rows -> numeric feature matrix + encoded target + split."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

import numpy as np
import pandas as pd

from tabularops.common.errors import PreprocessError
from tabularops.common.log import get_logger
from tabularops.core.numerics import make_rng, stratified_split
from tabularops.datasets.bundle import ColumnMeta, RawDataset
from tabularops.preprocessing.config import PreprocessConfig
from tabularops.preprocessing.encoding import (
    EncodingInfo,
    compute_impute_value,
    encode_boolean,
    encode_value,
    encoding_type_for,
    expand,
    fit_scaling,
    to_float,
)

logger = get_logger(__name__)

TargetType = Literal["binary", "multiclass", "regression"]

HIGH_MISSING_RATIO = 0.5


@dataclass
class PreparedDataset:
    features: np.ndarray
    shape: tuple[int, int]
    feature_names: list[str]
    target: np.ndarray
    target_type: TargetType
    encoding_map: dict[str, dict[str, int]] = field(default_factory=dict)
    class_labels: list[str] = field(default_factory=list)

    @property
    def X(self) -> np.ndarray:
        return self.features.reshape(self.shape)

    @property
    def n_classes(self) -> int:
        return len(self.class_labels)

    def subset(self, indices: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        idx = np.asarray(indices, dtype=int)
        return self.X[idx], self.target[idx]

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.X, columns=self.feature_names)
        df["__target__"] = self.target
        return df


@dataclass
class SplitIndices:
    train: np.ndarray
    val: np.ndarray
    test: np.ndarray | None = None

    def sizes(self) -> dict[str, int]:
        return {
            "train": int(self.train.size),
            "val": int(self.val.size),
            "test": int(self.test.size) if self.test is not None else 0,
        }


@dataclass
class MissingStats:
    strategy: str
    missing: int
    imputed: int
    impute_value: str | None = None


@dataclass
class PrepareReport:
    removed_constant: list[str] = field(default_factory=list)
    removed_high_missing: list[str] = field(default_factory=list)
    rows_dropped_missing_target: int = 0
    rows_dropped_by_strategy: int = 0
    missing_values: dict[str, MissingStats] = field(default_factory=dict)
    one_hot: dict[str, list[str]] = field(default_factory=dict)
    rows_before: int = 0
    rows_after: int = 0

    @property
    def removed_features(self) -> list[str]:
        return self.removed_constant + self.removed_high_missing

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PrepareResult:
    prepared: PreparedDataset
    split: SplitIndices
    encoding_info: list[EncodingInfo]
    report: PrepareReport


def _column_index(raw: RawDataset, name: str, role: str) -> int:
    if name not in raw.header:
        raise PreprocessError(f"{role} column '{name}' not found in dataset")
    return raw.column_index(name)


def _select_features(
    raw: RawDataset, config: PreprocessConfig, report: PrepareReport
) -> list[str]:
    for col in config.selected_features:
        _column_index(raw, col, "feature")

    kept: list[str] = []
    n = raw.n_rows()
    for col in config.selected_features:
        values = raw.column(col)
        present = [v for v in values if v != ""]

        if config.remove_high_missing_features and n and (n - len(present)) / n > HIGH_MISSING_RATIO:
            report.removed_high_missing.append(col)
            continue
        if config.remove_constant_features and len(set(present)) <= 1:
            report.removed_constant.append(col)
            continue
        kept.append(col)

    if report.removed_features:
        logger.info("removed features: %s", report.removed_features)
    if not kept:
        raise PreprocessError("no feature columns left after feature removal")
    return kept


def _encode_target(
    values: list[str], meta: ColumnMeta | None
) -> tuple[np.ndarray, TargetType, list[str], dict[str, int]]:
    kind = meta.inferred_type if meta is not None else "categorical"

    if kind == "boolean":
        y = np.array([encode_boolean(v) for v in values], dtype=float)
        return y, "binary", ["False", "True"], {"False": 0, "True": 1}

    if kind == "numeric":
        y = np.array([to_float(v) for v in values], dtype=float)
        return y, "regression", [], {}

    mapping: dict[str, int] = {}
    for v in values:
        mapping.setdefault(v, len(mapping))
    y = np.array([mapping[v] for v in values], dtype=float)
    target_type: TargetType = "binary" if len(mapping) <= 2 else "multiclass"
    return y, target_type, list(mapping), mapping


def split_indices(
    target: np.ndarray,
    target_type: str,
    train_ratio: float,
    test_ratio: float | None,
    rng: np.random.Generator,
) -> SplitIndices:
    """Stratified train/val(/test) split over encoded target values."""
    # regression은 단일 버킷으로 셔플만
    labels = np.zeros(target.size) if target_type == "regression" else target

    train, rest = stratified_split(labels, train_ratio, rng)
    if test_ratio is None:
        return SplitIndices(train=train, val=rest)

    # 남은 부분에서 val : test = (1 - train - test) : test
    val_share = (1.0 - train_ratio - test_ratio) / (1.0 - train_ratio)
    sub_val, sub_test = stratified_split(labels[rest], val_share, rng)
    return SplitIndices(train=train, val=rest[sub_val], test=rest[sub_test])


def prepare(
    raw: RawDataset,
    column_meta: list[ColumnMeta],
    config: PreprocessConfig,
) -> PrepareResult:
    """Clean, encode, normalise and split ``raw`` according to ``config``."""
    report = PrepareReport(rows_before=raw.n_rows())
    meta_by_name = {m.name: m for m in column_meta}

    target_idx = _column_index(raw, config.target_column, "target")
    features = _select_features(raw, config, report)
    feat_idx = [raw.column_index(c) for c in features]

    # 1) target 결측 row 제거
    rows = [r for r in raw.rows if r[target_idx].strip() != ""]
    report.rows_dropped_missing_target = raw.n_rows() - len(rows)

    # 2) drop 전략 컬럼에 결측이 있는 row 제거
    drop_cols = [i for c, i in zip(features, feat_idx) if config.strategy_for(c) == "drop"]
    if drop_cols:
        before = len(rows)
        rows = [r for r in rows if all(r[i] != "" for i in drop_cols)]
        report.rows_dropped_by_strategy = before - len(rows)

    if not rows:
        raise PreprocessError("no rows left after removing missing values")

    # 3) 결측 대체 + 인코딩
    infos: list[EncodingInfo] = []
    blocks: list[np.ndarray] = []
    names: list[str] = []
    encoding_map: dict[str, dict[str, int]] = {}

    for col, idx in zip(features, feat_idx):
        meta = meta_by_name.get(col)
        inferred = meta.inferred_type if meta is not None else "text"
        strategy = config.strategy_for(col)

        values = [r[idx] for r in rows]
        valid = [v for v in values if v != ""]
        n_missing = len(values) - len(valid)

        impute_value = compute_impute_value(valid, strategy, inferred)
        if n_missing:
            values = [impute_value if v == "" else v for v in values]  # type: ignore[misc]
        report.missing_values[col] = MissingStats(
            strategy=strategy,
            missing=n_missing,
            imputed=n_missing if impute_value is not None else 0,
            impute_value=impute_value,
        )

        info = EncodingInfo(
            column_name=col,
            type=encoding_type_for(inferred),
            missing_strategy=strategy,
            impute_value=impute_value,
        )
        if info.type == "categorical":
            mapping: dict[str, int] = {}
            for v in values:
                mapping.setdefault(v, len(mapping))
            info.categorical_mapping = mapping
            info.one_hot = config.one_hot_encode
            encoding_map[col] = mapping
            if info.one_hot:
                report.one_hot[col] = info.output_names()

        codes = np.array([encode_value(info, v) for v in values], dtype=float)
        if info.type == "numeric" and config.normalization:
            codes = fit_scaling(info, codes, config.scaling)

        blocks.append(expand(info, codes))
        names.extend(info.output_names())
        infos.append(info)

    X = np.hstack(blocks)
    y, target_type, class_labels, target_map = _encode_target(
        [r[target_idx] for r in rows], meta_by_name.get(config.target_column)
    )
    if target_map:
        encoding_map[config.target_column] = target_map

    prepared = PreparedDataset(
        features=X.ravel(),
        shape=(X.shape[0], X.shape[1]),
        feature_names=names,
        target=y,
        target_type=target_type,
        encoding_map=encoding_map,
        class_labels=class_labels,
    )
    report.rows_after = X.shape[0]

    split = split_indices(
        y,
        target_type,
        config.train_split_ratio,
        config.test_split_ratio,
        make_rng(config.seed),
    )
    logger.info(
        "prepared %d rows x %d features (target=%s, %s), split=%s",
        X.shape[0],
        X.shape[1],
        config.target_column,
        target_type,
        split.sizes(),
    )
    return PrepareResult(prepared=prepared, split=split, encoding_info=infos, report=report)
