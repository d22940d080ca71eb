from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

from .arguments import parse_args
from .events import EventLog
from .model import PtModel


def main(argv: Optional[List[str]] = None) -> int:
    config = parse_args(argv)
    if config is None:
        return 1

    events = EventLog(Path(config.output_dir) / "events.jsonl")
    events.emit("session_start", {"config": config.to_dict()})
    devices = config.devices()
    with PtModel(device=devices[0], event_log=events) as model:
        artifacts: List[str] = []
        if config.model_dir is not None:
            model.load(config.model_dir)
            artifacts = model.get_artifact_names()
        summary = {
            "config": config.to_dict(),
            "devices": [str(device) for device in devices],
            "artifacts": artifacts,
        }
        if model.block is not None:
            with model.new_trainer() as trainer:
                summary["trainable_parameters"] = sum(p.numel() for p in trainer.trainable_parameters())
        summary["model"] = model.summary()

    print(json.dumps(summary, indent=2, default=str))
    events.emit("session_complete", {})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
