from __future__ import annotations

import numbers
from collections.abc import Iterable
from typing import Any


class TabularOpsError(ValueError):
    """파이프라인 공통 예외.

    ValueError를 상속하므로 기존처럼 ValueError로 잡아도 된다.
    """

    code = "TABULAROPS_ERROR"


class ParseError(TabularOpsError):
    """입력 텍스트가 깨졌거나 header/row 구조가 맞지 않을 때."""

    code = "PARSE_ERROR"


class ValidationError(TabularOpsError):
    """데이터셋이 학습 조건을 만족하지 않거나 설정 값이 범위를 벗어날 때."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, problems: Iterable[str] | None = None) -> None:
        super().__init__(message)
        self.problems = list(problems) if problems is not None else [message]


class PreprocessError(TabularOpsError):
    """전처리 시점에 target/feature 컬럼이 없거나 남는 데이터가 없을 때."""

    code = "PREPROCESS_ERROR"


def reject_unknown_keys(kind: str, d: dict, allowed: Iterable[str]) -> None:
    unknown = sorted(set(d) - set(allowed))
    if unknown:
        raise ValidationError(f"unknown {kind} option(s): {', '.join(unknown)}")


def as_number(name: str, value: Any, problems: list[str]) -> float | None:
    # bool은 int의 subclass지만 숫자 설정으로는 받지 않는다
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        problems.append(f"{name} must be a number, got {value!r}")
        return None
    return float(value) if not isinstance(value, numbers.Integral) else value


def as_int(name: str, value: Any, problems: list[str]) -> int | None:
    """정수 설정 값. JSON에서 온 ``20.0`` 같은 정수형 float은 int로 바꾼다."""
    num = as_number(name, value, problems)
    if num is None:
        return None
    if isinstance(num, numbers.Integral):
        return int(num)
    if not float(num).is_integer():
        problems.append(f"{name} must be an integer, got {value!r}")
        return None
    return int(num)


def as_bool(name: str, value: Any, problems: list[str]) -> bool | None:
    if not isinstance(value, bool):
        problems.append(f"{name} must be true or false, got {value!r}")
        return None
    return value
