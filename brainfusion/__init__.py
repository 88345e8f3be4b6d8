"""BrainFusion public API."""

from .core import activations  # noqa: F401
from .core import plasticity  # noqa: F401
from .core import types  # noqa: F401
from .core.dense import BrainFusionNet
from .core.errors import (
    BrainFusionError,
    ConfigurationError,
    DimensionMismatchError,
    NumericalInstabilityError,
)
from .core.spiking import EventDrivenSpikingNet, SpikingNet
from .storage import load_checkpoint, save_checkpoint
from .training.pipelines import load_preset, presets, run_pipeline
from .training.simulation import Simulator
from .training.trainer import Trainer

__all__ = [
    "BrainFusionError",
    "BrainFusionNet",
    "ConfigurationError",
    "DimensionMismatchError",
    "EventDrivenSpikingNet",
    "NumericalInstabilityError",
    "Simulator",
    "SpikingNet",
    "Trainer",
    "activations",
    "load_checkpoint",
    "load_preset",
    "plasticity",
    "presets",
    "run_pipeline",
    "save_checkpoint",
    "types",
]
