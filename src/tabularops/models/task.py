"""Cooperative cancellation for long-running training loops."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tabularops.common.log import get_logger
from tabularops.models.logistic import TrainingStatus

if TYPE_CHECKING:
    import numpy as np

    from tabularops.models.logistic import EpochMetrics, LogisticRegression

logger = get_logger(__name__)

EpochCallback = Callable[["EpochMetrics"], None]


class CancellationToken:
    """Thread-safe flag checked by the training loop at batch/epoch boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _default_yield() -> None:
    time.sleep(0)


@dataclass
class TrainingTask:
    """Drive ``model.iter_epochs`` while handing control back to the host.

    Every ``yield_every`` epochs ``yield_fn`` is called (default: ``time.sleep(0)``)
    so a UI/event loop or another thread gets a turn. ``token.cancel()`` from
    anywhere stops the run at the next batch or epoch boundary.
    """

    model: "LogisticRegression"
    X: "np.ndarray"
    y: "np.ndarray"
    validation: "tuple[np.ndarray, np.ndarray] | None" = None
    token: CancellationToken = field(default_factory=CancellationToken)
    callbacks: "list[EpochCallback]" = field(default_factory=list)
    yield_every: int | None = None
    yield_fn: Callable[[], None] | None = None

    def cancel(self) -> None:
        self.token.cancel()

    def run(self) -> TrainingStatus:
        every = self.yield_every or self.model.hyperparams.yield_every
        yield_fn = self.yield_fn or _default_yield

        for m in self.model.iter_epochs(self.X, self.y, self.validation, token=self.token):
            for cb in self.callbacks:
                cb(m)
            if every and m.epoch % every == 0:
                yield_fn()

        if self.model.status is TrainingStatus.CANCELLED:
            logger.info("training cancelled after %d epoch(s)", len(self.model.history))
        return self.model.status
