"""Delimited-text parsing and column type inference.

``parse`` turns a raw text blob into a :class:`ParseResult`; it either returns
a fully validated dataset or raises, never a partial one.
"""

from __future__ import annotations

import io
import math
import re
from dataclasses import dataclass, fields
from typing import Any

import numpy as np
import pandas as pd

from tabularops.common.errors import (
    ParseError,
    ValidationError,
    as_bool,
    as_int,
    as_number,
    reject_unknown_keys,
)
from tabularops.common.log import get_logger
from tabularops.datasets.bundle import ColumnMeta, ColumnType, ParseResult, ParseStats, RawDataset

logger = get_logger(__name__)

DEFAULT_DELIMITERS = (",", ";", "\t", "|")

AUTO_DETECT_THRESHOLD = 0.3
STRICT_MAX_INCONSISTENCY = 0.1
MIN_TRAINING_ROWS = 10
HIGH_MISSING_RATIO = 0.5
MAX_CATEGORIES = 30
MAX_UNIQUE_SAMPLE = 50

_BOOLEAN_VALUES = {"true", "false", "1", "0", "yes", "no"}
_DATE_LIKE = re.compile(r"\d{4}|\d{1,2}/\d{1,2}|\d{1,2}-\d{1,2}")
_SPECIAL_CHARS = re.compile(r"[^a-zA-Z0-9_\s-]")


@dataclass(frozen=True)
class ParseOptions:
    max_rows: int | None = None
    tolerant: bool = False
    max_inconsistency_ratio: float = 0.3
    auto_detect_delimiter: bool = True
    delimiters: tuple[str, ...] = DEFAULT_DELIMITERS

    def __post_init__(self) -> None:
        problems: list[str] = []
        if self.max_rows is not None:
            object.__setattr__(self, "max_rows", as_int("max_rows", self.max_rows, problems))
        as_bool("tolerant", self.tolerant, problems)
        as_bool("auto_detect_delimiter", self.auto_detect_delimiter, problems)
        object.__setattr__(
            self,
            "max_inconsistency_ratio",
            as_number("max_inconsistency_ratio", self.max_inconsistency_ratio, problems),
        )
        if problems:
            raise ValidationError("; ".join(problems), problems)
        if self.max_rows is not None and self.max_rows <= 0:
            raise ValidationError(f"max_rows must be positive, got {self.max_rows}")
        if not 0.0 <= self.max_inconsistency_ratio <= 1.0:
            raise ValidationError(
                f"max_inconsistency_ratio must be within [0, 1], got {self.max_inconsistency_ratio}"
            )
        if not self.delimiters or any(not isinstance(d, str) or len(d) != 1 for d in self.delimiters):
            raise ValidationError("delimiters must be single characters")

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "ParseOptions":
        reject_unknown_keys("parse", d, [f.name for f in fields(ParseOptions)])
        kwargs = dict(d)
        if "delimiters" in kwargs:
            kwargs["delimiters"] = tuple(kwargs["delimiters"])
        return ParseOptions(**kwargs)


def _read_frame(text: str, delimiter: str, **kw: Any) -> pd.DataFrame:
    return pd.read_csv(
        io.StringIO(text),
        sep=delimiter,
        header=None,
        index_col=False,
        dtype=str,
        keep_default_na=False,
        engine="python",
        skipinitialspace=True,
        skip_blank_lines=True,
        **kw,
    )


def read_rows(content: str, delimiter: str = ",") -> list[list[str]]:
    """Tokenize ``content`` into rows of stripped fields, header included.

    pandas handles the quoting (delimiters, doubled quotes and newlines inside
    quoted fields). Rows keep their real field count so the consistency check
    can see short and long rows.
    """
    text = content.lstrip("\ufeff")
    long_widths: list[int] = []

    def _note_long_row(bad: list[str]) -> None:
        long_widths.append(len(bad))
        return None

    try:
        df = _read_frame(text, delimiter, on_bad_lines=_note_long_row)
        if long_widths:
            # header보다 긴 row가 있으면 최대 폭으로 다시 읽는다(row 순서 유지)
            df = _read_frame(text, delimiter, names=list(range(max(long_widths))))
    except pd.errors.EmptyDataError:
        return []
    except pd.errors.ParserError as e:
        raise ParseError(f"CSV content could not be tokenized: {e}") from e

    rows: list[list[str]] = []
    for values in df.itertuples(index=False, name=None):
        # keep_default_na=False 이므로 NaN은 짧은 row의 padding뿐
        row = [v.strip() for v in values if isinstance(v, str)]
        if len(row) <= 1 and not "".join(row):
            continue
        rows.append(row)
    return rows


def inconsistency(lines: list[list[str]]) -> float:
    """Share of data rows whose field count differs from the header's."""
    if len(lines) < 2:
        return 0.0
    width = len(lines[0])
    data = lines[1:]
    bad = sum(1 for r in data if len(r) != width)
    return bad / len(data)


def _detect_delimiter(content: str, options: ParseOptions) -> tuple[str, list[list[str]]]:
    lines = read_rows(content, ",")
    if not options.auto_detect_delimiter:
        return ",", lines

    score = inconsistency(lines)
    # 쉼표로 header가 한 칸뿐이면 다른 구분자일 가능성이 높다
    single_column = bool(lines) and len(lines[0]) <= 1
    if score <= AUTO_DETECT_THRESHOLD and not single_column:
        return ",", lines

    best_d, best_lines = ",", lines
    best_score = math.inf if single_column else score
    for d in options.delimiters:
        test = read_rows(content, d)
        # header가 실제로 쪼개지지 않는 구분자는 후보에서 제외
        if len(test) <= 1 or len(test[0]) <= 1:
            continue
        s = inconsistency(test)
        if s < best_score:
            best_d, best_lines, best_score = d, test, s

    if best_d != ",":
        logger.info(
            "auto-detected delimiter %r (inconsistency %.1f%%)", best_d, best_score * 100
        )
    return best_d, best_lines


def validate_header(header: list[str]) -> None:
    if not header:
        raise ParseError("CSV header is empty")
    if any(not h or not h.strip() for h in header):
        raise ParseError("Empty column names found in header")
    if len(set(header)) != len(header):
        dupes = sorted({h for h in header if header.count(h) > 1})
        raise ParseError(f"Duplicate column names found in header: {', '.join(dupes)}")

    special = [h for h in header if _SPECIAL_CHARS.search(h)]
    if special:
        logger.warning("column names contain special characters: %s", special)


def _check_row_consistency(
    header: list[str], rows: list[list[str]], options: ParseOptions
) -> tuple[list[list[str]], int]:
    width = len(header)
    bad = [i for i, r in enumerate(rows) if len(r) != width]
    if not bad:
        return rows, 0

    ratio = len(bad) / len(rows)
    logger.warning(
        "%d/%d rows have inconsistent column count (expected: %d)", len(bad), len(rows), width
    )
    for i in bad[:3]:
        # +2: header line + 1-based
        logger.warning("row %d has %d columns", i + 2, len(rows[i]))

    if options.tolerant:
        if ratio > options.max_inconsistency_ratio:
            raise ParseError(
                f"Too many inconsistent rows even in tolerant mode "
                f"({len(bad)}/{len(rows)} rows have inconsistent column count, "
                f"expected {width})"
            )
        bad_set = set(bad)
        logger.warning(
            "tolerant mode: dropping %d inconsistent rows (%.1f%%)", len(bad), ratio * 100
        )
        return [r for i, r in enumerate(rows) if i not in bad_set], len(bad)

    if ratio > STRICT_MAX_INCONSISTENCY:
        raise ParseError(
            f"Too many rows with inconsistent column count "
            f"({len(bad)}/{len(rows)} rows, expected {width} columns). Please check CSV format."
        )
    # strict 모드에서 10% 이하는 경고만 남기고 통과. 이후 단계가 header 길이를 가정하므로 잘라낸다
    bad_set = set(bad)
    return [r for i, r in enumerate(rows) if i not in bad_set], len(bad)


def _numeric_values(values: list[str]) -> np.ndarray:
    nums = pd.to_numeric(pd.Series(values, dtype=object), errors="coerce").to_numpy(dtype=float)
    return nums[np.isfinite(nums)]


def _date_share(values: list[str]) -> float:
    candidates = [v for v in values if _DATE_LIKE.search(v)]
    if not candidates:
        return 0.0
    parsed = pd.to_datetime(pd.Series(candidates), errors="coerce", format="mixed", utc=True)
    return int(parsed.notna().sum()) / len(values)


def infer_column_type(values: list[str]) -> ColumnType:
    """Infer a column type from its non-missing values."""
    if not values:
        return "text"

    if all(v.lower() in _BOOLEAN_VALUES for v in values):
        return "boolean"

    if _numeric_values(values).size / len(values) >= 0.8:
        return "numeric"

    if _date_share(values) >= 0.8:
        return "datetime"

    n_unique = len(set(values))
    if n_unique <= MAX_CATEGORIES and n_unique <= math.ceil(len(values) / 2):
        return "categorical"

    return "text"


def infer_column_types(header: list[str], rows: list[list[str]]) -> list[ColumnMeta]:
    out: list[ColumnMeta] = []
    for idx, name in enumerate(header):
        values = [r[idx] for r in rows if idx < len(r) and r[idx] != ""]
        kind = infer_column_type(values)
        missing = len(rows) - len(values)

        if kind == "numeric":
            nums = _numeric_values(values)
            mean = float(nums.mean())
            out.append(
                ColumnMeta(
                    name=name,
                    index=idx,
                    inferred_type=kind,
                    missing_count=missing,
                    min=float(nums.min()),
                    max=float(nums.max()),
                    mean=mean,
                    std=float(np.sqrt(np.mean((nums - mean) ** 2))),
                )
            )
        elif kind in ("categorical", "boolean"):
            uniques = list(dict.fromkeys(values))[:MAX_UNIQUE_SAMPLE]
            out.append(
                ColumnMeta(
                    name=name,
                    index=idx,
                    inferred_type=kind,
                    missing_count=missing,
                    unique_values=uniques,
                )
            )
        else:
            out.append(ColumnMeta(name=name, index=idx, inferred_type=kind, missing_count=missing))
    return out


def high_missing_columns(column_meta: list[ColumnMeta], n_rows: int) -> list[str]:
    if n_rows == 0:
        return []
    return [m.name for m in column_meta if m.missing_count / n_rows > HIGH_MISSING_RATIO]


def constant_columns(column_meta: list[ColumnMeta]) -> list[str]:
    out: list[str] = []
    for m in column_meta:
        if m.unique_values is not None and len(m.unique_values) <= 1:
            out.append(m.name)
        elif m.inferred_type == "numeric" and m.min is not None and m.min == m.max:
            out.append(m.name)
    return out


def readiness_problems(column_meta: list[ColumnMeta], n_rows: int) -> list[str]:
    problems: list[str] = []
    if n_rows < MIN_TRAINING_ROWS:
        problems.append(f"Dataset must contain at least {MIN_TRAINING_ROWS} rows for training")

    if not any(m.inferred_type in ("categorical", "boolean") for m in column_meta):
        problems.append(
            "No suitable target column found. "
            "Dataset should contain at least one categorical column."
        )

    if not any(m.inferred_type in ("numeric", "categorical") for m in column_meta):
        problems.append(
            "Dataset must contain at least one feature column (numeric or categorical)"
        )
    return problems


def validate_for_training(column_meta: list[ColumnMeta], n_rows: int) -> None:
    problems = readiness_problems(column_meta, n_rows)

    constant = constant_columns(column_meta)
    if constant:
        logger.warning("columns with constant values detected: %s", constant)

    high_missing = high_missing_columns(column_meta, n_rows)
    if high_missing:
        logger.warning("columns with >50%% missing values: %s", high_missing)

    if problems:
        raise ValidationError("Dataset validation failed:\n" + "\n".join(problems), problems)


def parse(content: str, name: str = "dataset.csv", options: ParseOptions | None = None) -> ParseResult:
    options = options or ParseOptions()

    if not content or not content.strip():
        raise ParseError("CSV content is empty or invalid")

    delimiter, lines = _detect_delimiter(content, options)

    if not lines:
        raise ParseError("CSV file contains no valid rows")
    if len(lines) == 1:
        raise ParseError("CSV file must contain header and at least one data row")

    header = lines[0]
    rows = lines[1:]

    truncated_from = None
    if options.max_rows and len(rows) > options.max_rows:
        truncated_from = len(rows)
        logger.info(
            "dataset truncated to %d rows for performance (original: %d rows)",
            options.max_rows,
            truncated_from,
        )
        rows = rows[: options.max_rows]

    validate_header(header)

    total_before = len(rows)
    rows, dropped = _check_row_consistency(header, rows, options)

    column_meta = infer_column_types(header, rows)
    validate_for_training(column_meta, len(rows))

    stats = ParseStats(
        delimiter=delimiter,
        total_rows_before=total_before,
        total_rows_after=len(rows),
        inconsistent_rows_dropped=dropped,
        truncated_from=truncated_from,
        high_missing_columns=high_missing_columns(column_meta, len(rows)),
    )
    logger.info(
        "parsed %s: %d rows x %d columns (delimiter=%r)", name, len(rows), len(header), delimiter
    )
    return ParseResult(
        raw_dataset=RawDataset(name=name, header=header, rows=rows),
        column_meta=column_meta,
        parse_stats=stats,
    )
