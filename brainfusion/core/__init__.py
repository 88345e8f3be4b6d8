"""Core numerical primitives for BrainFusion."""

from . import activations, dense, errors, plasticity, spiking, types
from .dense import BrainFusionNet
from .errors import ConfigurationError, DimensionMismatchError, NumericalInstabilityError
from .spiking import EventDrivenSpikingNet, SpikingNet

__all__ = [
    "BrainFusionNet",
    "ConfigurationError",
    "DimensionMismatchError",
    "EventDrivenSpikingNet",
    "NumericalInstabilityError",
    "SpikingNet",
    "activations",
    "dense",
    "errors",
    "plasticity",
    "spiking",
    "types",
]
