from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

import pandas as pd

ColumnType = Literal["numeric", "categorical", "boolean", "datetime", "text"]


@dataclass(frozen=True)
class RawDataset:
    """파싱 직후의 원본 데이터.

    - header: 순서가 있는 고유 컬럼명
    - rows: 문자열 셀 그대로(검증 후 모든 row 길이 == header 길이)
    """

    name: str
    header: list[str]
    rows: list[list[str]]

    def n_rows(self) -> int:
        return len(self.rows)

    def column_index(self, name: str) -> int:
        return self.header.index(name)

    def column(self, name: str) -> list[str]:
        idx = self.column_index(name)
        return [r[idx] for r in self.rows]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=self.header)


@dataclass(frozen=True)
class ColumnMeta:
    name: str
    index: int
    inferred_type: ColumnType
    missing_count: int
    min: float | None = None
    max: float | None = None
    mean: float | None = None
    std: float | None = None
    unique_values: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ParseStats:
    delimiter: str
    total_rows_before: int
    total_rows_after: int
    inconsistent_rows_dropped: int = 0
    truncated_from: int | None = None
    high_missing_columns: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ParseResult:
    raw_dataset: RawDataset
    column_meta: list[ColumnMeta]
    parse_stats: ParseStats

    def meta(self, name: str) -> ColumnMeta | None:
        for m in self.column_meta:
            if m.name == name:
                return m
        return None

    def describe(self) -> pd.DataFrame:
        """컬럼별 추론 결과 요약 테이블."""
        return pd.DataFrame(
            [
                {
                    "name": m.name,
                    "type": m.inferred_type,
                    "missing": m.missing_count,
                    "unique": len(m.unique_values) if m.unique_values is not None else None,
                    "min": m.min,
                    "max": m.max,
                    "mean": m.mean,
                    "std": m.std,
                }
                for m in self.column_meta
            ]
        )
