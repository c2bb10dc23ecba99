from __future__ import annotations

from tabularops.preprocessing.config import PreprocessConfig
from tabularops.preprocessing.encoding import EncodingInfo, transform_row
from tabularops.preprocessing.prepare import (
    PreparedDataset,
    PrepareReport,
    PrepareResult,
    SplitIndices,
    prepare,
    split_indices,
)

__all__ = [
    "EncodingInfo",
    "PrepareReport",
    "PrepareResult",
    "PreparedDataset",
    "PreprocessConfig",
    "SplitIndices",
    "prepare",
    "split_indices",
    "transform_row",
]
