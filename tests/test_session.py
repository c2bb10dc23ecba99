from __future__ import annotations

import pytest

from tabularops.common.errors import ParseError, ValidationError
from tabularops.datasets.synthetic import make_separable_csv
from tabularops.models import HyperParams
from tabularops.pipeline.session import SessionEvent, TrainingSession
from tabularops.pipeline.trainer import TrainingConfig
from tabularops.preprocessing import PreprocessConfig


def _config(epochs: int = 20) -> TrainingConfig:
    return TrainingConfig(
        preprocessing=PreprocessConfig(
            target_column="label", selected_features=("x1", "x2"), seed=0
        ),
        hyperparams=HyperParams(learning_rate=0.1, epochs=epochs, seed=0),
    )


def _loaded_session() -> TrainingSession:
    s = TrainingSession()
    s.load_text(make_separable_csv(n_samples=80, seed=3), name="sep.csv")
    return s


def test_train_completes_and_publishes_events():
    s = _loaded_session()
    events: list[SessionEvent] = []
    s.subscribe(events.append)
    s.configure(_config())

    result = s.train()

    assert s.status == "completed"
    assert s.result is result
    assert len(s.epoch_metrics) == len(result.history)

    states = [e.status for e in events if e.kind == "state"]
    assert states == ["idle", "running", "completed"]
    assert any(e.kind == "progress" and e.progress.stage == "training" for e in events)


def test_sessions_are_isolated():
    a, b = _loaded_session(), _loaded_session()
    seen_a: list[SessionEvent] = []
    seen_b: list[SessionEvent] = []
    a.subscribe(seen_a.append)
    b.subscribe(seen_b.append)

    a.configure(_config(epochs=5))
    a.train()

    assert seen_a
    assert seen_b == []
    assert b.status == "idle"
    assert b.result is None


def test_unsubscribe_stops_delivery():
    s = _loaded_session()
    seen: list[SessionEvent] = []
    unsubscribe = s.subscribe(seen.append)
    unsubscribe()
    unsubscribe()  # 두 번 불러도 문제 없음

    s.configure(_config(epochs=3))
    s.train()
    assert seen == []


def test_configure_discards_previous_result():
    s = _loaded_session()
    s.configure(_config(epochs=5))
    s.train()
    assert s.result is not None

    s.configure(_config(epochs=6))
    assert s.result is None
    assert s.epoch_metrics == []
    assert s.status == "idle"


def test_configure_validates_against_loaded_dataset():
    s = _loaded_session()
    bad = TrainingConfig(preprocessing=PreprocessConfig(target_column="x1", selected_features=("x2",)))
    with pytest.raises(ValidationError, match="must be categorical or boolean"):
        s.configure(bad)
    assert s.config is None


def test_stop_from_listener_marks_session_stopped():
    s = _loaded_session()
    s.configure(_config(epochs=500))

    def _listener(e: SessionEvent) -> None:
        if e.kind == "progress" and e.progress.epoch == 2:
            s.stop()

    s.subscribe(_listener)
    result = s.train()

    assert s.status == "stopped"
    assert result.status.value == "cancelled"
    assert len(result.history) == 2


def test_train_requires_dataset_and_config():
    s = TrainingSession()
    with pytest.raises(ValidationError, match="no dataset"):
        s.train()

    s.load_text(make_separable_csv(n_samples=40))
    with pytest.raises(ValidationError, match="config"):
        s.train()


def test_failed_load_sets_error_status():
    s = TrainingSession()
    with pytest.raises(ParseError):
        s.load_text("")
    assert s.status == "error"
    assert s.error


def test_second_train_while_running_is_rejected():
    s = _loaded_session()
    s.configure(_config(epochs=5))
    errors: list[Exception] = []

    def _listener(e: SessionEvent) -> None:
        if e.kind == "state" and e.status == "running":
            try:
                s.train()
            except ValidationError as err:
                errors.append(err)

    s.subscribe(_listener)
    s.train()

    assert len(errors) == 1
    assert "already running" in str(errors[0])
    assert s.status == "completed"
