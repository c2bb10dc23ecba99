from __future__ import annotations

from pathlib import Path
from typing import Any

from tabularops.common.config import get_settings
from tabularops.datasets.bundle import ParseResult
from tabularops.datasets.parser import ParseOptions, parse
from tabularops.datasets.registry import DatasetSpec, register_loader

# loader 전용 키(나머지는 ParseOptions로 전달)
_LOADER_KEYS = {"path", "content", "encoding"}


def _parse_options(params: dict[str, Any]) -> ParseOptions:
    opts = {k: v for k, v in params.items() if k not in _LOADER_KEYS}
    if "max_rows" not in opts:
        opts["max_rows"] = get_settings().max_rows
    return ParseOptions.from_dict(opts)


def load_csv_dataset(spec: DatasetSpec) -> ParseResult:
    """CSV 파일을 ParseResult로 로드.

    spec.params 지원 키:
      - path (required)
      - encoding (default: utf-8)
      - ParseOptions 키(max_rows, tolerant, max_inconsistency_ratio,
        auto_detect_delimiter, delimiters)
    """
    params = spec.params
    path = params.get("path")
    if not path:
        raise ValueError("csv loader requires params.path")

    p = Path(str(path))
    if not p.exists():
        raise FileNotFoundError(str(p))

    content = p.read_text(encoding=str(params.get("encoding") or "utf-8"))
    return parse(content, name=spec.name or p.name, options=_parse_options(params))


def load_text_dataset(spec: DatasetSpec) -> ParseResult:
    """params.content에 담긴 텍스트를 그대로 파싱(업로드/HTTP 입력용)."""
    content = spec.params.get("content")
    if content is None:
        raise ValueError("text loader requires params.content")
    return parse(str(content), name=spec.name or "dataset.csv", options=_parse_options(spec.params))


# built-in
register_loader("csv", load_csv_dataset, overwrite=True)
register_loader("text", load_text_dataset, overwrite=True)
