from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from tabularops.common.errors import reject_unknown_keys
from tabularops.common.log import get_logger
from tabularops.datasets.bundle import ParseResult

logger = get_logger(__name__)


def normalize_kind(kind: Any) -> str:
    """loader 이름 표기 통일: ``" CSV "`` -> ``"csv"``, ``"my-data"`` -> ``"my_data"``."""
    return str(kind or "").strip().lower().replace("-", "_")


@dataclass(frozen=True)
class DatasetSpec:
    """학습 데이터가 어디서 오는지를 나타내는 값.

    - kind: loader 이름 (csv, text, synthetic, 또는 register_loader로 추가한 것)
    - name: ParseResult에 붙일 데이터셋 이름. 없으면 loader가 정한다.
    - params: loader 인자. csv/text loader는 ParseOptions 키도 그대로 받는다.
    - note: 실행 기록용 메모
    """

    kind: str
    name: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    note: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.params, Mapping):
            raise ValueError(f"dataset params must be an object, got {type(self.params).__name__}")
        object.__setattr__(self, "kind", normalize_kind(self.kind))
        object.__setattr__(self, "params", dict(self.params))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "DatasetSpec":
        reject_unknown_keys("dataset spec", dict(d), ["kind", "name", "params", "note"])
        return DatasetSpec(
            kind=d.get("kind") or "",
            name=d.get("name"),
            params=d.get("params") or {},
            note=d.get("note"),
        )

    @staticmethod
    def from_json(path: str | Path) -> "DatasetSpec":
        obj = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(obj, dict):
            raise ValueError(f"dataset spec JSON must be an object: {path}")
        return DatasetSpec.from_dict(obj)


DatasetLoader = Callable[[DatasetSpec], ParseResult]

_LOADERS: dict[str, DatasetLoader] = {}


def register_loader(kind: str, loader: DatasetLoader, *, overwrite: bool = False) -> None:
    k = normalize_kind(kind)
    if not k:
        raise ValueError("loader kind is required")
    if k in _LOADERS and not overwrite:
        raise ValueError(f"loader already registered: {k}")
    _LOADERS[k] = loader


def unregister_loader(kind: str) -> bool:
    """등록 해제. 없던 kind면 False."""
    return _LOADERS.pop(normalize_kind(kind), None) is not None


def list_loaders() -> list[str]:
    return sorted(_LOADERS)


def describe_loaders() -> dict[str, str]:
    # docstring 첫 줄을 설명으로 쓴다
    out: dict[str, str] = {}
    for k in list_loaders():
        doc = (_LOADERS[k].__doc__ or "").strip()
        out[k] = doc.splitlines()[0] if doc else ""
    return out


def load_dataset(spec: DatasetSpec) -> ParseResult:
    if not spec.kind:
        raise ValueError("dataset kind is required")
    loader = _LOADERS.get(spec.kind)
    if loader is None:
        known = ", ".join(list_loaders()) or "(none)"
        raise ValueError(f"unknown dataset kind: {spec.kind} (known: {known})")

    pr = loader(spec)
    logger.info(
        "dataset loaded: kind=%s name=%s rows=%d",
        spec.kind,
        pr.raw_dataset.name,
        pr.raw_dataset.n_rows(),
    )
    return pr
