from __future__ import annotations

import uuid
from collections import OrderedDict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from threading import Lock
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tabularops.common.config import get_settings
from tabularops.common.errors import TabularOpsError, ValidationError
from tabularops.common.log import get_logger
from tabularops.common.version import get_build_info
from tabularops.datasets import DatasetSpec, ParseOptions, parse
from tabularops.pipeline.artifact import ModelArtifact, predict_row
from tabularops.pipeline.session import TrainingSession
from tabularops.pipeline.trainer import TrainingConfig

logger = get_logger("tabularops.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # startup
    get_settings()
    yield
    # shutdown: 메모리 모델 정리
    _clear_models()


app = FastAPI(lifespan=lifespan)


class ParseRequest(BaseModel):
    content: str
    name: str = "dataset.csv"
    options: dict[str, Any] = Field(default_factory=dict)


class TrainRequest(BaseModel):
    config: dict[str, Any]
    content: str | None = None
    name: str = "dataset.csv"
    options: dict[str, Any] = Field(default_factory=dict)
    dataset: dict[str, Any] | None = None


class PredictRequest(BaseModel):
    row: dict[str, Any]
    model_id: str | None = None
    artifact: dict[str, Any] | None = None


def _err(
    code: str,
    message: str,
    *,
    hint: str | None = None,
    details: Any | None = None,
) -> dict[str, Any]:
    err: dict[str, Any] = {"code": code, "message": message}
    if hint:
        err["hint"] = hint
    if details is not None:
        err["details"] = details
    return err


def _error_response(request: Request, status_code: int, err: dict[str, Any]) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    payload: dict[str, Any] = {"ok": False, "error": err}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=payload)


@app.middleware("http")
async def _request_id_middleware(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    resp = await call_next(request)
    resp.headers["X-Request-ID"] = rid
    return resp


@app.exception_handler(HTTPException)
async def _http_exception_handler(request: Request, exc: HTTPException):
    if isinstance(exc.detail, dict) and "code" in exc.detail and "message" in exc.detail:
        err = exc.detail
    else:
        err = _err("HTTP_ERROR", str(exc.detail))
    return _error_response(request, exc.status_code, err)


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    err = _err("VALIDATION_ERROR", "Invalid request.", details=exc.errors())
    return _error_response(request, 422, err)


@app.exception_handler(TabularOpsError)
async def _pipeline_exception_handler(request: Request, exc: TabularOpsError):
    details = exc.problems if isinstance(exc, ValidationError) else None
    return _error_response(request, 400, _err(exc.code, str(exc), details=details))


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    # 내부 예외 메시지를 그대로 노출하지 않음(세부는 type만 제공)
    logger.exception("unhandled error")
    err = _err("INTERNAL_ERROR", "Unexpected server error.", details={"type": type(exc).__name__})
    return _error_response(request, 500, err)


# 학습 결과 artifact는 프로세스 메모리에만 둔다
_MODELS_LOCK = Lock()
_MODELS: OrderedDict[str, ModelArtifact] = OrderedDict()


def _clear_models() -> None:
    with _MODELS_LOCK:
        _MODELS.clear()


def _store_model(artifact: ModelArtifact) -> str:
    model_id = str(uuid.uuid4())
    limit = get_settings().max_models
    with _MODELS_LOCK:
        _MODELS[model_id] = artifact
        while len(_MODELS) > limit:
            evicted, _ = _MODELS.popitem(last=False)
            logger.info("model evicted: %s", evicted)
    return model_id


def _get_model(model_id: str) -> ModelArtifact | None:
    with _MODELS_LOCK:
        artifact = _MODELS.get(model_id)
        if artifact is not None:
            _MODELS.move_to_end(model_id)
        return artifact


def _parse_options(options: dict[str, Any]) -> ParseOptions:
    opts = dict(options)
    opts.setdefault("max_rows", get_settings().max_rows)
    return ParseOptions.from_dict(opts)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/version")
def version() -> dict[str, Any]:
    """서버 식별용 버전/빌드 정보 + 메모리에 올라간 모델 수."""
    with _MODELS_LOCK:
        n_models = len(_MODELS)
    return {
        "service": "tabularops-api",
        **get_build_info(),
        "models_loaded": n_models,
    }


@app.post("/parse")
def parse_dataset(req: ParseRequest) -> dict[str, Any]:
    pr = parse(req.content, name=req.name, options=_parse_options(req.options))
    n_rows = pr.raw_dataset.n_rows()
    return {
        "ok": True,
        "name": pr.raw_dataset.name,
        "header": pr.raw_dataset.header,
        "n_rows": n_rows,
        "columns": [m.to_dict() for m in pr.column_meta],
        "stats": pr.parse_stats.to_dict(),
    }


@app.post("/train")
def train_model(req: TrainRequest) -> dict[str, Any]:
    config = TrainingConfig.from_dict(req.config)

    session = TrainingSession()
    if req.dataset is not None:
        try:
            session.load(DatasetSpec.from_dict(req.dataset))
        except FileNotFoundError as e:
            raise HTTPException(
                status_code=404,
                detail=_err("DATASET_NOT_FOUND", "Dataset file not found.", details={"path": str(e)}),
            ) from e
        except TabularOpsError:
            raise
        except ValueError as e:
            raise HTTPException(
                status_code=400,
                detail=_err("INVALID_DATASET_SPEC", str(e), hint="Check dataset.kind and params."),
            ) from e
    elif req.content is not None:
        session.load_text(req.content, name=req.name, options=_parse_options(req.options))
    else:
        raise HTTPException(
            status_code=400,
            detail=_err(
                "NO_DATASET",
                "Either 'content' or 'dataset' is required.",
                hint="Send CSV text as 'content' or a dataset spec as 'dataset'.",
            ),
        )

    session.configure(config)
    result = session.train()
    artifact = result.artifact()
    model_id = _store_model(artifact)

    return {
        "ok": True,
        "model_id": model_id,
        "status": result.status.value,
        "summary": result.summary(),
        "history": [m.to_dict() for m in result.history],
        "report": result.report.to_dict(),
        "artifact": artifact.to_dict(),
    }


@app.post("/predict")
def predict(req: PredictRequest) -> dict[str, Any]:
    if req.artifact is not None:
        try:
            artifact = ModelArtifact.from_dict(req.artifact)
        except (KeyError, TypeError, ValueError) as e:
            raise HTTPException(
                status_code=400,
                detail=_err(
                    "INVALID_ARTIFACT",
                    "Artifact could not be loaded.",
                    details={"type": type(e).__name__, "message": str(e)},
                ),
            ) from e
    elif req.model_id is not None:
        artifact = _get_model(req.model_id)
        if artifact is None:
            raise HTTPException(
                status_code=404,
                detail=_err(
                    "MODEL_NOT_FOUND",
                    "Model not found.",
                    hint="Call POST /train first and use the returned model_id.",
                    details={"model_id": req.model_id},
                ),
            )
    else:
        raise HTTPException(
            status_code=400,
            detail=_err("NO_MODEL", "Either 'model_id' or 'artifact' is required."),
        )

    pred = predict_row(artifact, req.row)
    return {"ok": True, **pred.to_dict()}
