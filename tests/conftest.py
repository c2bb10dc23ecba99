from __future__ import annotations

import sys
from pathlib import Path

import pytest

# repo root / src 를 pytest import 경로에 강제로 추가
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

root_str = str(ROOT)
src_str = str(SRC)

if root_str not in sys.path:
    sys.path.insert(0, root_str)

if src_str not in sys.path:
    sys.path.insert(0, src_str)


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # get_settings()가 artifacts 디렉토리를 만들기 때문에 테스트마다 tmp로 격리
    monkeypatch.setenv("TABULAROPS_ARTIFACTS", str(tmp_path / "artifacts"))
    monkeypatch.delenv("TABULAROPS_MAX_ROWS", raising=False)
    monkeypatch.delenv("TABULAROPS_MAX_MODELS", raising=False)
