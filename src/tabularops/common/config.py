from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

try:
    from dotenv import load_dotenv  # type: ignore
except Exception:  # pragma: no cover
    load_dotenv = None


@dataclass(frozen=True)
class Settings:
    artifacts_dir: str
    log_level: str
    max_rows: int | None
    max_models: int = 20


def _int_or_none(raw: str | None) -> int | None:
    if raw is None or not raw.strip():
        return None
    v = int(raw)
    return v if v > 0 else None


def get_settings() -> Settings:
    # 로컬 개발에서는 .env가 있으면 읽고, 배포에서는 환경변수만으로 동작
    if load_dotenv is not None:
        load_dotenv(override=False)

    artifacts_dir = os.getenv("TABULAROPS_ARTIFACTS", "artifacts")
    log_level = os.getenv("TABULAROPS_LOG_LEVEL", "INFO").upper()
    max_rows = _int_or_none(os.getenv("TABULAROPS_MAX_ROWS"))
    # 메모리에 올려둘 학습 모델 수 상한 (오래 안 쓴 것부터 밀려남)
    max_models = _int_or_none(os.getenv("TABULAROPS_MAX_MODELS")) or 20

    Path(artifacts_dir).mkdir(parents=True, exist_ok=True)

    return Settings(
        artifacts_dir=artifacts_dir,
        log_level=log_level,
        max_rows=max_rows,
        max_models=max_models,
    )
