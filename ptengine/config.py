from __future__ import annotations

import json
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import torch

from .engine import DEFAULT_ENGINE, get_devices

DEFAULT_EPOCH = 2
DEFAULT_OUTPUT_DIR = "build/model"
UNBOUNDED_LIMIT = sys.maxsize
BATCH_SIZE_PER_DEVICE = 32


def default_batch_size(max_gpus: int) -> int:
    return BATCH_SIZE_PER_DEVICE * max_gpus if max_gpus > 0 else BATCH_SIZE_PER_DEVICE


@dataclass(frozen=True)
class TrainingConfig:
    """Configuration describing a training run, parsed once per invocation."""

    epoch: int = DEFAULT_EPOCH
    batch_size: int = BATCH_SIZE_PER_DEVICE
    max_gpus: int = 0
    pre_trained: bool = False
    output_dir: str = DEFAULT_OUTPUT_DIR
    limit: int = UNBOUNDED_LIMIT
    model_dir: Optional[str] = None
    criteria: Optional[Dict[str, Any]] = None
    engine: str = DEFAULT_ENGINE

    def devices(self) -> List[torch.device]:
        return get_devices(self.max_gpus)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_file(cls, path: Path) -> "TrainingConfig":
        data = cls._load_json(path)
        max_gpus = int(data.get("max_gpus", 0))
        batch_size = int(data["batch_size"]) if "batch_size" in data else default_batch_size(max_gpus)
        limit = UNBOUNDED_LIMIT
        if "max_batches" in data:
            limit = int(data["max_batches"]) * batch_size
        model_dir = data.get("model_dir")
        return cls(
            epoch=int(data.get("epoch", DEFAULT_EPOCH)),
            batch_size=batch_size,
            max_gpus=max_gpus,
            pre_trained=bool(data.get("pre_trained", False)),
            output_dir=str(cls._resolve(path, data.get("output_dir", DEFAULT_OUTPUT_DIR))),
            limit=limit,
            model_dir=str(cls._resolve(path, model_dir)) if model_dir is not None else None,
            criteria=data.get("criteria"),
            engine=data.get("engine", DEFAULT_ENGINE),
        )

    @staticmethod
    def _load_json(path: Path) -> Dict[str, Any]:
        with Path(path).open("r", encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _resolve(base: Path, value: str) -> Path:
        path = Path(value)
        if path.is_absolute():
            return path
        return (Path(base).parent / path).resolve()
