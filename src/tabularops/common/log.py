from __future__ import annotations

import logging
import os

__all__ = ["get_logger"]

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_logger(name: str = "tabularops") -> logging.Logger:
    """Return a configured logger.

    Handler는 한 번만 붙인다(중복 출력 방지). 레벨은 TABULAROPS_LOG_LEVEL 환경변수.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level_name = os.getenv("TABULAROPS_LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(sh)
    logger.propagate = False

    return logger
