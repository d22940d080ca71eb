from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Tuple

import torch

from .parameters import ParameterPredicate

if TYPE_CHECKING:  # pragma: no cover
    from .model import PtModel

Initializer = Callable[[torch.Tensor], object]
OptimizerFactory = Callable[[Iterable[torch.Tensor]], torch.optim.Optimizer]


def default_optimizer(params: Iterable[torch.Tensor]) -> torch.optim.Optimizer:
    return torch.optim.Adam(params, lr=1e-3)


@dataclass
class TrainerConfig:
    """Settings consumed by `PtModel.new_trainer`."""

    initializers: List[Tuple[Optional[Initializer], Optional[ParameterPredicate]]] = field(default_factory=list)
    optimizer: OptimizerFactory = default_optimizer
    loss: Callable[..., torch.Tensor] = field(default_factory=torch.nn.MSELoss)

    def add_initializer(self, initializer: Initializer, predicate: ParameterPredicate) -> "TrainerConfig":
        self.initializers.append((initializer, predicate))
        return self


class Trainer:
    """Runs optimization steps over the trainable parameters of a model."""

    def __init__(self, model: "PtModel", config: TrainerConfig):
        self.model = model
        self.config = config
        self.optimizer: Optional[torch.optim.Optimizer] = None
        params = self.trainable_parameters()
        if params:
            self.optimizer = config.optimizer(params)

    def trainable_parameters(self) -> List[torch.Tensor]:
        return [p for p in self.model.require_block().parameters() if p.requires_grad]

    def train_batch(self, inputs: torch.Tensor, targets: torch.Tensor) -> float:
        if self.optimizer is None:
            raise RuntimeError("Model has no trainable parameters")
        block = self.model.require_block()
        block.train()
        device = self.model.device
        self.optimizer.zero_grad()
        outputs = block(inputs.to(device))
        loss = self.config.loss(outputs, targets.to(device))
        loss.backward()
        self.optimizer.step()
        return float(loss.detach().cpu().item())

    def close(self) -> None:
        self.optimizer = None

    def __enter__(self) -> "Trainer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
