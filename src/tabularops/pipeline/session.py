from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from tabularops.common.errors import TabularOpsError, ValidationError
from tabularops.common.log import get_logger
from tabularops.datasets.bundle import ParseResult
from tabularops.datasets.parser import ParseOptions, parse
from tabularops.datasets.registry import DatasetSpec, load_dataset
from tabularops.models.logistic import EpochMetrics, TrainingStatus
from tabularops.models.task import CancellationToken
from tabularops.pipeline.trainer import (
    ProgressEvent,
    TrainingConfig,
    TrainingResult,
    train,
    validate_config,
)

logger = get_logger(__name__)

SessionStatus = Literal["idle", "running", "completed", "error", "stopped"]


@dataclass(frozen=True)
class SessionEvent:
    kind: Literal["state", "progress"]
    status: SessionStatus
    progress: ProgressEvent | None = None
    error: str | None = None


Listener = Callable[[SessionEvent], None]


class TrainingSession:
    """학습 1건의 상태 컨테이너.

    전역 store 대신 인스턴스를 주입해서 쓴다. listener는 이 세션의
    이벤트만 받는다.
    """

    def __init__(self) -> None:
        self.parse_result: ParseResult | None = None
        self.config: TrainingConfig | None = None
        self.result: TrainingResult | None = None
        self.status: SessionStatus = "idle"
        self.epoch_metrics: list[EpochMetrics] = []
        self.error: str | None = None

        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._token: CancellationToken | None = None

    # ------------------------------------------------------------ pub/sub

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, event: SessionEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event)

    def _set_status(self, status: SessionStatus, error: str | None = None) -> None:
        self.status = status
        self.error = error
        self._publish(SessionEvent(kind="state", status=status, error=error))

    def _reset_derived(self) -> None:
        self.result = None
        self.epoch_metrics = []

    # ------------------------------------------------------------- actions

    def load_text(
        self, content: str, name: str = "dataset.csv", options: ParseOptions | None = None
    ) -> ParseResult:
        return self._set_dataset(lambda: parse(content, name=name, options=options))

    def load(self, spec: DatasetSpec) -> ParseResult:
        return self._set_dataset(lambda: load_dataset(spec))

    def _set_dataset(self, loader: Callable[[], ParseResult]) -> ParseResult:
        try:
            pr = loader()
        except TabularOpsError as e:
            self._set_status("error", str(e))
            raise
        self.parse_result = pr
        self.config = None
        self._reset_derived()
        self._set_status("idle")
        return pr

    def configure(self, config: TrainingConfig) -> None:
        if self.parse_result is not None:
            validate_config(config, self.parse_result.column_meta)
        self.config = config
        # 설정이 바뀌면 이전 결과는 버린다
        self._reset_derived()
        self._set_status("idle")

    def _on_progress(self, event: ProgressEvent) -> None:
        if event.metrics is not None:
            self.epoch_metrics.append(event.metrics)
        self._publish(SessionEvent(kind="progress", status=self.status, progress=event))

    def train(self, token: CancellationToken | None = None) -> TrainingResult:
        if self.parse_result is None:
            raise ValidationError("no dataset loaded")
        if self.config is None:
            raise ValidationError("training config is not set")
        with self._lock:
            # 확인과 변경은 같은 lock 안에서
            if self.status == "running":
                raise ValidationError("training is already running")
            self.status = "running"
            self.error = None
            self._token = token or CancellationToken()

        self._reset_derived()
        self._publish(SessionEvent(kind="state", status="running"))

        try:
            result = train(
                self.parse_result,
                self.config,
                on_progress=self._on_progress,
                token=self._token,
            )
        except Exception as e:
            logger.exception("training failed")
            self._set_status("error", str(e))
            raise
        finally:
            self._token = None

        self.result = result
        if result.status is TrainingStatus.CANCELLED:
            self._set_status("stopped")
        else:
            self._set_status("completed")
        return result

    def stop(self) -> None:
        token = self._token
        if token is not None:
            token.cancel()
