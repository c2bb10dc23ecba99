"""Per-feature encoding rules shared by training and inference.

Training (``prepare``) and serving (``transform_row``) both go through
``encode_value`` / ``scale_value`` so a row seen at training time encodes to
the same vector at inference time.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any, Literal

import numpy as np

from tabularops.common.errors import PreprocessError
from tabularops.core.numerics import min_max_normalize, z_score_normalize

EncodingType = Literal["numeric", "categorical", "boolean"]

_TRUE_VALUES = {"true", "1", "yes"}


@dataclass
class EncodingInfo:
    column_name: str
    type: EncodingType
    categorical_mapping: dict[str, int] | None = None
    one_hot: bool = False
    missing_strategy: str = "mean"
    impute_value: str | None = None
    normalize_stats: dict[str, float] | None = None

    def output_names(self) -> list[str]:
        if self.one_hot and self.categorical_mapping is not None:
            return [f"{self.column_name}_{cat}" for cat in self.categorical_mapping]
        return [self.column_name]

    def width(self) -> int:
        return len(self.output_names())

    def categories(self) -> list[str]:
        return list(self.categorical_mapping or {})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "EncodingInfo":
        mapping = d.get("categorical_mapping")
        stats = d.get("normalize_stats")
        return EncodingInfo(
            column_name=str(d["column_name"]),
            type=d["type"],
            categorical_mapping={str(k): int(v) for k, v in mapping.items()} if mapping else None,
            one_hot=bool(d.get("one_hot", False)),
            missing_strategy=str(d.get("missing_strategy", "mean")),
            impute_value=d.get("impute_value"),
            normalize_stats={str(k): float(v) for k, v in stats.items()} if stats else None,
        )


def encoding_type_for(inferred_type: str) -> EncodingType:
    if inferred_type in ("numeric", "boolean"):
        return inferred_type  # type: ignore[return-value]
    # datetime/text는 범주형으로 취급
    return "categorical"


def to_float(value: str) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0


def encode_boolean(value: str) -> float:
    return 1.0 if value.strip().lower() in _TRUE_VALUES else 0.0


def mode_of(values: list[str]) -> str | None:
    """최빈값. 동률이면 먼저 등장한 값."""
    if not values:
        return None
    return Counter(values).most_common(1)[0][0]


def compute_impute_value(valid: list[str], strategy: str, inferred_type: str) -> str | None:
    """Fill value for missing cells, as a raw cell string."""
    if strategy == "drop":
        return None

    if strategy == "mean" and inferred_type == "numeric":
        nums = [to_float(v) for v in valid if _is_number(v)]
        if nums:
            return repr(float(np.mean(nums)))

    # mode, 또는 숫자가 아닌 컬럼에 mean을 지정한 경우
    mode = mode_of(valid)
    if mode is not None:
        return mode

    if inferred_type == "numeric":
        return "0"
    if inferred_type == "boolean":
        return "false"
    return "unknown"


def _is_number(value: str) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def encode_value(info: EncodingInfo, value: str) -> float:
    """Raw cell -> scalar code (before scaling / one-hot)."""
    if info.type == "numeric":
        return to_float(value)
    if info.type == "boolean":
        return encode_boolean(value)
    mapping = info.categorical_mapping or {}
    # 학습 때 못 본 범주는 0번으로
    return float(mapping.get(value, 0))


def fit_scaling(info: EncodingInfo, codes: np.ndarray, scaling: str) -> np.ndarray:
    """Scale a numeric column in place of training and record the stats on ``info``."""
    if scaling == "minmax":
        out, lo, hi = min_max_normalize(codes)
        info.normalize_stats = {"min": lo, "max": hi}
        return out
    out, mean, std = z_score_normalize(codes)
    info.normalize_stats = {"mean": mean, "std": std}
    return out


def scale_value(info: EncodingInfo, code: float) -> float:
    stats = info.normalize_stats
    if not stats:
        return code
    if "mean" in stats:
        std = stats["std"]
        return 0.0 if std == 0.0 else (code - stats["mean"]) / std
    lo, hi = stats["min"], stats["max"]
    return 0.5 if hi == lo else (code - lo) / (hi - lo)


def expand(info: EncodingInfo, codes: np.ndarray) -> np.ndarray:
    """(n,) codes -> (n, width) block, one-hot when requested."""
    if info.one_hot and info.categorical_mapping is not None:
        width = len(info.categorical_mapping)
        block = np.zeros((codes.size, width), dtype=float)
        block[np.arange(codes.size), codes.astype(int)] = 1.0
        return block
    return codes.reshape(-1, 1).astype(float)


def transform_row(row: Mapping[str, Any], encoding_info: list[EncodingInfo]) -> np.ndarray:
    """Encode one raw feature row for inference.

    ``row`` maps column name to raw cell text. Missing cells are imputed with
    the training-time fill value; a missing cell in a ``drop`` column cannot be
    encoded and raises :class:`PreprocessError`.
    """
    out: list[float] = []
    for info in encoding_info:
        raw = row.get(info.column_name)
        value = "" if raw is None else str(raw).strip()
        if value == "":
            if info.impute_value is None:
                raise PreprocessError(
                    f"feature '{info.column_name}' is missing and its strategy is "
                    f"'{info.missing_strategy}'"
                )
            value = info.impute_value

        code = encode_value(info, value)
        if info.type == "numeric":
            code = scale_value(info, code)

        if info.one_hot and info.categorical_mapping is not None:
            vec = [0.0] * len(info.categorical_mapping)
            vec[int(code)] = 1.0
            out.extend(vec)
        else:
            out.append(code)

    return np.asarray(out, dtype=float)
