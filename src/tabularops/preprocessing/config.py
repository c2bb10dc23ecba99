from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any

from tabularops.common.errors import ValidationError, as_bool, as_int, as_number, reject_unknown_keys

MISSING_STRATEGIES = ("drop", "mean", "mode")
SCALINGS = ("zscore", "minmax")
DEFAULT_MISSING_STRATEGY = "mean"


@dataclass(frozen=True)
class PreprocessConfig:
    """전처리 설정. 생성 시점에 범위를 검증한다.

    - missing_value_strategy: 컬럼별 drop|mean|mode (없으면 mean)
    - test_split_ratio: 지정하면 train/val/test 3-way split
    """

    target_column: str
    selected_features: tuple[str, ...]
    normalization: bool = True
    scaling: str = "zscore"
    missing_value_strategy: dict[str, str] = field(default_factory=dict)
    train_split_ratio: float = 0.8
    test_split_ratio: float | None = None
    remove_constant_features: bool = False
    remove_high_missing_features: bool = True
    one_hot_encode: bool = False
    seed: int | None = None

    def __post_init__(self) -> None:
        problems: list[str] = []
        if not isinstance(self.target_column, str):
            problems.append(f"target_column must be a string, got {self.target_column!r}")
        # 문자열 하나를 넘기면 글자 단위로 쪼개지므로 list/tuple만 받는다
        if not isinstance(self.selected_features, (list, tuple)) or not all(
            isinstance(c, str) for c in self.selected_features
        ):
            problems.append(
                f"selected_features must be a list of column names, got {self.selected_features!r}"
            )
        if not isinstance(self.missing_value_strategy, dict):
            problems.append(
                f"missing_value_strategy must be a mapping, got {self.missing_value_strategy!r}"
            )
        for name in ("normalization", "remove_constant_features",
                     "remove_high_missing_features", "one_hot_encode"):
            as_bool(name, getattr(self, name), problems)
        object.__setattr__(
            self, "train_split_ratio", as_number("train_split_ratio", self.train_split_ratio, problems)
        )
        if self.test_split_ratio is not None:
            object.__setattr__(
                self, "test_split_ratio", as_number("test_split_ratio", self.test_split_ratio, problems)
            )
        if self.seed is not None:
            object.__setattr__(self, "seed", as_int("seed", self.seed, problems))
        if problems:
            raise ValidationError("; ".join(problems), problems)

        object.__setattr__(self, "selected_features", tuple(self.selected_features))
        object.__setattr__(self, "missing_value_strategy", dict(self.missing_value_strategy))

        if not self.target_column:
            raise ValidationError("target_column is required")

        bad = {c: s for c, s in self.missing_value_strategy.items() if s not in MISSING_STRATEGIES}
        if bad:
            raise ValidationError(
                f"unknown missing value strategy: {bad} (allowed: {', '.join(MISSING_STRATEGIES)})"
            )

        if self.scaling not in SCALINGS:
            raise ValidationError(f"unknown scaling: {self.scaling} (allowed: {', '.join(SCALINGS)})")

        if not 0.0 < self.train_split_ratio < 1.0:
            raise ValidationError(
                f"train_split_ratio must be within (0, 1), got {self.train_split_ratio}"
            )

        if self.test_split_ratio is not None:
            remaining = 1.0 - self.train_split_ratio
            if not 0.0 < self.test_split_ratio < remaining:
                raise ValidationError(
                    f"test_split_ratio must be within (0, {remaining:.4g}), "
                    f"got {self.test_split_ratio}"
                )

    def strategy_for(self, column: str) -> str:
        return self.missing_value_strategy.get(column, DEFAULT_MISSING_STRATEGY)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["selected_features"] = list(self.selected_features)
        return d

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "PreprocessConfig":
        reject_unknown_keys("preprocessing", d, [f.name for f in fields(PreprocessConfig)])
        if "target_column" not in d:
            raise ValidationError("preprocessing.target_column is required")
        kwargs = dict(d)
        if kwargs.get("selected_features") is None:
            kwargs["selected_features"] = ()
        return PreprocessConfig(**kwargs)
