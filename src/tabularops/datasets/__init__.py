from __future__ import annotations

# built-in loaders registration
from tabularops.datasets import csv_loader as _csv_loader  # noqa: F401
from tabularops.datasets import synthetic as _synthetic  # noqa: F401
from tabularops.datasets.bundle import ColumnMeta, ParseResult, ParseStats, RawDataset
from tabularops.datasets.parser import ParseOptions, parse
from tabularops.datasets.registry import (
    DatasetLoader,
    DatasetSpec,
    describe_loaders,
    list_loaders,
    load_dataset,
    register_loader,
    unregister_loader,
)

__all__ = [
    "ColumnMeta",
    "DatasetLoader",
    "DatasetSpec",
    "ParseOptions",
    "ParseResult",
    "ParseStats",
    "RawDataset",
    "describe_loaders",
    "list_loaders",
    "load_dataset",
    "parse",
    "register_loader",
    "unregister_loader",
]
