from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import torch


class ParameterType(enum.Enum):
    WEIGHT = "weight"
    BIAS = "bias"
    RUNNING_MEAN = "running_mean"
    RUNNING_VAR = "running_var"
    OTHER = "other"

    @classmethod
    def from_name(cls, name: str) -> "ParameterType":
        leaf = name.rsplit(".", 1)[-1]
        for member in cls:
            if member.value == leaf:
                return member
        return cls.OTHER


RUNNING_STATISTICS = (ParameterType.RUNNING_MEAN, ParameterType.RUNNING_VAR)


@dataclass
class Parameter:
    """A named tensor of a module together with its role."""

    name: str
    tensor: torch.Tensor
    type: ParameterType

    @property
    def requires_grad(self) -> bool:
        return self.tensor.requires_grad

    def is_running_statistic(self) -> bool:
        return self.type in RUNNING_STATISTICS


ParameterPredicate = Callable[[Parameter], bool]


def iter_parameters(module: torch.nn.Module) -> Iterator[Parameter]:
    """Yield trainable parameters followed by running-statistic buffers."""
    for name, tensor in module.named_parameters():
        yield Parameter(name, tensor, ParameterType.from_name(name))
    for name, tensor in module.named_buffers():
        kind = ParameterType.from_name(name)
        # integer buffers such as num_batches_tracked cannot carry gradients
        if kind in RUNNING_STATISTICS and tensor.is_floating_point():
            yield Parameter(name, tensor, kind)


def freeze_parameters(
    module: torch.nn.Module,
    freeze: bool = True,
    predicate: Optional[ParameterPredicate] = None,
) -> int:
    touched = 0
    for param in iter_parameters(module):
        if predicate is not None and not predicate(param):
            continue
        param.tensor.requires_grad_(not freeze)
        touched += 1
    return touched


def is_running_statistic(param: Parameter) -> bool:
    return param.is_running_statistic()


def is_not_running_statistic(param: Parameter) -> bool:
    return not param.is_running_statistic()


def count_parameters(module: torch.nn.Module, trainable_only: bool = False) -> int:
    if trainable_only:
        return sum(p.numel() for p in module.parameters() if p.requires_grad)
    return sum(p.numel() for p in module.parameters())
