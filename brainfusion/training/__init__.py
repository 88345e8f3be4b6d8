"""Training loops, spiking simulation and pipeline presets."""

from .pipelines import load_preset, presets, run_pipeline
from .simulation import SimulationResult, Simulator
from .trainer import Trainer

__all__ = ["SimulationResult", "Simulator", "Trainer", "load_preset", "presets", "run_pipeline"]
