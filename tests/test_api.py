from __future__ import annotations

import sys
import uuid
from collections.abc import Iterator
from importlib.util import module_from_spec, spec_from_file_location
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from tabularops.common.version import get_build_info
from tabularops.datasets.synthetic import make_separable_csv


def _load_api_app() -> Any:
    """apps/api/main.py를 파일 경로로 로드해서 FastAPI app을 가져온다.

    - apps/가 패키지(__init__.py)여부에 의존하지 않도록 함
    - 테스트 환경에서 import 캐시 충돌을 피하려고 모듈명을 유니크하게 사용
    """
    repo_root = Path(__file__).resolve().parents[1]
    main_py = repo_root / "apps" / "api" / "main.py"
    assert main_py.exists(), f"not found: {main_py}"

    module_name = f"_tabularops_api_main_{uuid.uuid4().hex}"
    spec = spec_from_file_location(module_name, main_py)
    assert spec and spec.loader, "failed to create module spec"

    mod = module_from_spec(spec)
    sys.modules[module_name] = mod
    spec.loader.exec_module(mod)  # type: ignore[union-attr]
    return mod.app


@pytest.fixture()
def client() -> Iterator[TestClient]:
    # artifacts 경로는 conftest에서 tmp로 격리됨
    app = _load_api_app()
    with TestClient(app) as c:
        yield c


def _train_payload(epochs: int = 30) -> dict[str, Any]:
    return {
        "content": make_separable_csv(n_samples=80, seed=5),
        "name": "sep.csv",
        "config": {
            "preprocessing": {
                "target_column": "label",
                "selected_features": ["x1", "x2"],
                "seed": 0,
            },
            "hyperparams": {"learning_rate": 0.1, "epochs": epochs, "seed": 0},
        },
    }


def test_health(client: TestClient):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_version_endpoint_min_schema(client: TestClient):
    res = client.get("/version")
    assert res.status_code == 200

    data = res.json()
    assert data.get("service") == "tabularops-api"
    assert data.get("models_loaded") == 0

    # get_build_info()가 제공하는 키는 /version에 포함되어야 함
    for k in get_build_info().keys():
        assert k in data, f"missing build key in /version response: {k}"


def test_parse_returns_columns(client: TestClient):
    rows = [f"{i};{i * 2};{'x' if i % 2 else 'y'}" for i in range(10)]
    res = client.post("/parse", json={"content": "a;b;label\n" + "\n".join(rows)})
    assert res.status_code == 200
    data = res.json()

    assert data["ok"] is True
    assert data["header"] == ["a", "b", "label"]
    assert data["n_rows"] == 10
    assert data["stats"]["delimiter"] == ";"
    assert [c["inferred_type"] for c in data["columns"]] == ["numeric", "numeric", "categorical"]


def test_parse_error_has_code_and_request_id(client: TestClient):
    res = client.post("/parse", json={"content": ""}, headers={"X-Request-ID": "req-123"})
    assert res.status_code == 400
    assert res.headers["X-Request-ID"] == "req-123"

    body = res.json()
    assert body["ok"] is False
    assert body["request_id"] == "req-123"
    assert body["error"]["code"] == "PARSE_ERROR"


def test_request_body_validation(client: TestClient):
    res = client.post("/parse", json={"name": "no-content.csv"})
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


def test_train_then_predict_by_model_id(client: TestClient):
    res = client.post("/train", json=_train_payload())
    assert res.status_code == 200
    data = res.json()

    assert data["ok"] is True
    assert data["status"] in ("epochs_exhausted", "early_stopped", "converged")
    assert data["summary"]["train_accuracy"] >= 0.9
    assert len(data["history"]) == data["summary"]["epochs_completed"]
    assert data["artifact"]["type"] == "tabularops.logistic"

    assert client.get("/version").json()["models_loaded"] == 1

    res = client.post("/predict", json={"model_id": data["model_id"], "row": {"x1": 2.5, "x2": 0}})
    assert res.status_code == 200
    pred = res.json()
    assert pred["ok"] is True
    assert pred["label"] == "True"
    assert pred["probability"] > 0.5


def test_predict_with_inline_artifact(client: TestClient):
    artifact = client.post("/train", json=_train_payload(epochs=10)).json()["artifact"]
    res = client.post("/predict", json={"artifact": artifact, "row": {"x1": -3, "x2": 0.1}})
    assert res.status_code == 200
    assert res.json()["class_index"] == 0


def test_train_with_dataset_spec(client: TestClient):
    payload = _train_payload(epochs=5)
    del payload["content"]
    payload["dataset"] = {"kind": "synthetic", "params": {"n_samples": 60, "seed": 1}}

    res = client.post("/train", json=payload)
    assert res.status_code == 200
    assert res.json()["report"]["rows_after"] == 60


def test_predict_unknown_model_is_404(client: TestClient):
    res = client.post("/predict", json={"model_id": "nope", "row": {}})
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "MODEL_NOT_FOUND"


def test_predict_without_model_is_400(client: TestClient):
    res = client.post("/predict", json={"row": {}})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "NO_MODEL"


def test_predict_bad_artifact_is_400(client: TestClient):
    res = client.post("/predict", json={"artifact": {"type": "other"}, "row": {}})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_ARTIFACT"


def test_train_bad_config_is_400(client: TestClient):
    payload = _train_payload()
    payload["config"]["preprocessing"]["target_column"] = "x1"
    res = client.post("/train", json=payload)

    assert res.status_code == 400
    err = res.json()["error"]
    assert err["code"] == "VALIDATION_ERROR"
    assert any("must be categorical or boolean" in p for p in err["details"])


def test_train_unknown_config_key_is_400(client: TestClient):
    payload = _train_payload()
    payload["config"]["hyperparams"]["lr"] = 0.1
    res = client.post("/train", json=payload)
    assert res.status_code == 400
    assert "unknown hyperparams option" in res.json()["error"]["message"]


def test_train_wrongly_typed_hyperparam_is_400(client: TestClient):
    payload = _train_payload()
    payload["config"]["hyperparams"]["epochs"] = "abc"
    res = client.post("/train", json=payload)

    assert res.status_code == 400
    err = res.json()["error"]
    assert err["code"] == "VALIDATION_ERROR"
    assert "epochs must be a number" in err["message"]


def test_model_store_evicts_least_recently_used(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("TABULAROPS_MAX_MODELS", "2")
    row = {"x1": 1.0, "x2": 0.0}

    first = client.post("/train", json=_train_payload(epochs=3)).json()["model_id"]
    second = client.post("/train", json=_train_payload(epochs=3)).json()["model_id"]
    # first를 조회해서 가장 최근 사용으로 만든다
    assert client.post("/predict", json={"model_id": first, "row": row}).status_code == 200
    third = client.post("/train", json=_train_payload(epochs=3)).json()["model_id"]

    assert client.get("/version").json()["models_loaded"] == 2
    assert client.post("/predict", json={"model_id": second, "row": row}).status_code == 404
    for model_id in (first, third):
        assert client.post("/predict", json={"model_id": model_id, "row": row}).status_code == 200


def test_train_missing_csv_file_is_404(client: TestClient, tmp_path: Path):
    payload = _train_payload()
    del payload["content"]
    payload["dataset"] = {"kind": "csv", "params": {"path": str(tmp_path / "missing.csv")}}
    res = client.post("/train", json=payload)
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "DATASET_NOT_FOUND"


def test_train_unknown_dataset_kind_is_400(client: TestClient):
    payload = _train_payload()
    del payload["content"]
    payload["dataset"] = {"kind": "parquet"}
    res = client.post("/train", json=payload)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_DATASET_SPEC"


def test_train_without_data_is_400(client: TestClient):
    payload = _train_payload()
    del payload["content"]
    res = client.post("/train", json=payload)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "NO_DATASET"
