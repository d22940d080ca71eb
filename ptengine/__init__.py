"""
PyTorch engine bindings for the example training scripts.

This package loads TorchScript archives from a model directory, decides which
parameters stay frozen when a trainer is built, and parses the fixed set of
CLI flags the training examples share into a `TrainingConfig`.
"""

from .arguments import parse_args
from .config import TrainingConfig
from .errors import InvalidStateError, MalformedModelError, ModelNotFoundError, PtEngineError
from .model import MODEL_EXTENSION, PtModel
from .parameters import Parameter, ParameterType, freeze_parameters, iter_parameters
from .trainer import Trainer, TrainerConfig

__all__ = [
    "MODEL_EXTENSION",
    "InvalidStateError",
    "MalformedModelError",
    "ModelNotFoundError",
    "Parameter",
    "ParameterType",
    "PtEngineError",
    "PtModel",
    "Trainer",
    "TrainerConfig",
    "TrainingConfig",
    "freeze_parameters",
    "iter_parameters",
    "parse_args",
]
