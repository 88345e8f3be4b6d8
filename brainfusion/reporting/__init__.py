"""Reporting utilities for BrainFusion."""

from .artifacts import config_hash, write_manifest
from .metrics import CsvSink, JsonlSink
from .plots import PlotAdapter, plot_spike_raster
from .summary import write_summary

__all__ = [
    "CsvSink",
    "JsonlSink",
    "PlotAdapter",
    "config_hash",
    "plot_spike_raster",
    "write_manifest",
    "write_summary",
]
