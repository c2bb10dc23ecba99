from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from tabularops.common.config import get_settings
from tabularops.datasets import DatasetSpec
from tabularops.models.logistic import HyperParams
from tabularops.pipeline.artifact import default_artifact_path
from tabularops.pipeline.session import TrainingSession
from tabularops.pipeline.trainer import TrainingConfig, default_hyperparams

# CLI 플래그 -> HyperParams 필드
_HP_FLAGS = {
    "learning_rate": "learning_rate",
    "epochs": "epochs",
    "batch_size": "batch_size",
    "l2": "regularization",
    "patience": "early_stopping_patience",
    "seed": "seed",
}


def _spec_from_args(args: argparse.Namespace) -> DatasetSpec:
    if args.dataset_spec:
        return DatasetSpec.from_json(args.dataset_spec)

    if not args.csv_path:
        raise ValueError("either --dataset-spec OR --csv-path is required")

    params: dict[str, Any] = {"path": args.csv_path}
    if args.tolerant:
        params["tolerant"] = True
    if args.max_rows:
        params["max_rows"] = args.max_rows
    return DatasetSpec(kind="csv", name=args.dataset_name, params=params)


def _config_from_args(args: argparse.Namespace, n_rows: int, header: list[str]) -> TrainingConfig:
    base: dict[str, Any] = {}
    if args.config:
        base = json.loads(Path(args.config).read_text(encoding="utf-8"))
        if not isinstance(base, dict):
            raise ValueError("config JSON must be an object")

    pp = dict(base.get("preprocessing") or {})
    if args.target_col:
        pp["target_column"] = args.target_col
    if "target_column" not in pp:
        raise ValueError("--target-col (or preprocessing.target_column in --config) is required")
    if args.features:
        pp["selected_features"] = [f.strip() for f in args.features.split(",") if f.strip()]
    elif not pp.get("selected_features"):
        # 지정하지 않으면 target을 제외한 전체 컬럼
        pp["selected_features"] = [c for c in header if c != pp["target_column"]]
    if args.test_split is not None:
        pp["test_split_ratio"] = args.test_split
    if args.one_hot:
        pp["one_hot_encode"] = True
    if args.seed is not None:
        pp.setdefault("seed", args.seed)

    if "hyperparams" in base:
        hp = dict(base["hyperparams"])
    else:
        hp = default_hyperparams(n_rows).to_dict()
    for flag, name in _HP_FLAGS.items():
        v = getattr(args, flag)
        if v is not None:
            hp[name] = v

    return TrainingConfig.from_dict(
        {
            "preprocessing": pp,
            "hyperparams": HyperParams.from_dict(hp).to_dict(),
            "evaluation": dict(base.get("evaluation") or {}),
        }
    )


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Train a logistic-regression classifier on CSV data.")
    ap.add_argument("--dataset-spec", type=str, default=None, help="dataset spec JSON path")
    ap.add_argument("--dataset-name", type=str, default=None)

    ap.add_argument("--csv-path", type=str, default=None)
    ap.add_argument("--target-col", type=str, default=None)
    ap.add_argument("--features", type=str, default=None, help="comma separated feature columns")
    ap.add_argument("--tolerant", action="store_true")
    ap.add_argument("--max-rows", type=int, default=None)

    ap.add_argument("--config", type=str, default=None, help="training config JSON path")
    ap.add_argument("--learning-rate", type=float, default=None)
    ap.add_argument("--epochs", type=int, default=None)
    ap.add_argument("--batch-size", type=int, default=None)
    ap.add_argument("--l2", type=float, default=None)
    ap.add_argument("--patience", type=int, default=None)
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--test-split", type=float, default=None)
    ap.add_argument("--one-hot", action="store_true")

    ap.add_argument("--out", type=str, default=None, help="artifact JSON path")

    args = ap.parse_args(argv)

    try:
        spec = _spec_from_args(args)
        session = TrainingSession()
        pr = session.load(spec)
        config = _config_from_args(args, pr.raw_dataset.n_rows(), pr.raw_dataset.header)
        session.configure(config)
        result = session.train()
    except (ValueError, FileNotFoundError) as e:
        print(f"[ERR] {e}", file=sys.stderr)
        return 2

    artifact = result.artifact()
    out = Path(args.out) if args.out else default_artifact_path(
        get_settings().artifacts_dir, spec.name or pr.raw_dataset.name
    )
    artifact.save(out)

    summary = result.summary()
    print(f"[OK] rows: {pr.raw_dataset.n_rows()} (delimiter={pr.parse_stats.delimiter!r})")
    print(f"[OK] features: {', '.join(result.prepared.feature_names)}")
    print(f"[OK] status: {summary['status']} ({summary['epochs_completed']} epochs)")
    print(f"[OK] metrics: {summary.get('evaluation', {})}")
    print(f"[OK] artifact: {out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
