from __future__ import annotations

from typing import Any, Dict, List

import torch

DEFAULT_ENGINE = "PyTorch"


def gpu_count() -> int:
    if not torch.cuda.is_available():
        return 0
    return torch.cuda.device_count()


def get_devices(max_gpus: int) -> List[torch.device]:
    """Return up to ``max_gpus`` CUDA devices, or the CPU when none can be used."""
    count = min(max(max_gpus, 0), gpu_count())
    if count == 0:
        return [torch.device("cpu")]
    return [torch.device("cuda", index) for index in range(count)]


def build_report(max_gpus: int = 0) -> Dict[str, Any]:
    report: Dict[str, Any] = {
        "engine": DEFAULT_ENGINE,
        "devices": [str(device) for device in get_devices(max_gpus)],
        "version": torch.__version__,
        "cuda_available": torch.cuda.is_available(),
        "cuda_version": torch.version.cuda,
    }
    if torch.cuda.is_available():
        report["cuda_device_count"] = torch.cuda.device_count()
        report["cuda_device_names"] = [torch.cuda.get_device_name(i) for i in range(torch.cuda.device_count())]
        report["cuda_capabilities"] = [
            torch.cuda.get_device_capability(i) for i in range(torch.cuda.device_count())
        ]
    report["cudnn_version"] = torch.backends.cudnn.version() if torch.backends.cudnn.is_available() else None
    return report
