"""Data source registry and loader helpers."""

# Built-in sources register themselves on import.
from . import csv_generic as _csv_generic  # noqa: F401
from . import logic as _logic  # noqa: F401
from . import sine as _sine  # noqa: F401
from . import stimulus as _stimulus  # noqa: F401
from .registry import (
    DatasetSpec,
    DataSpec,
    available_datasets,
    collect,
    get_dataset,
    register_dataset,
)

__all__ = [
    "DataSpec",
    "DatasetSpec",
    "available_datasets",
    "collect",
    "get_dataset",
    "register_dataset",
]
