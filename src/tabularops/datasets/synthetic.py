from __future__ import annotations

import pandas as pd

from tabularops.core.numerics import make_rng, random_normal
from tabularops.datasets.bundle import ParseResult
from tabularops.datasets.parser import ParseOptions, parse
from tabularops.datasets.registry import DatasetSpec, register_loader


def make_separable_frame(n_samples: int = 200, seed: int = 42, noise: float = 0.0) -> pd.DataFrame:
    """선형 분리 가능한 2-feature 데이터.

    label = 1 iff x1 > 0 (noise > 0 이면 x1에 가우시안 노이즈를 더한 값 기준)
    """
    if n_samples <= 0:
        raise ValueError(f"n_samples must be positive, got {n_samples}")

    rng = make_rng(seed)
    x1 = random_normal(rng, size=n_samples)
    x2 = random_normal(rng, size=n_samples)
    score = x1 + (random_normal(rng, std=noise, size=n_samples) if noise > 0 else 0.0)

    return pd.DataFrame(
        {
            "x1": x1.round(6),
            "x2": x2.round(6),
            "label": (score > 0).astype(int),
        }
    )


def make_separable_csv(n_samples: int = 200, seed: int = 42, noise: float = 0.0) -> str:
    return make_separable_frame(n_samples=n_samples, seed=seed, noise=noise).to_csv(index=False)


def load_synthetic_dataset(spec: DatasetSpec) -> ParseResult:
    """x1 부호로 label이 갈리는 2-feature 합성 데이터 (n_samples, seed, noise)."""
    params = spec.params
    content = make_separable_csv(
        n_samples=int(params.get("n_samples", 200)),
        seed=int(params.get("seed", 42)),
        noise=float(params.get("noise", 0.0)),
    )
    return parse(content, name=spec.name or "synthetic.csv", options=ParseOptions())


register_loader("synthetic", load_synthetic_dataset, overwrite=True)
