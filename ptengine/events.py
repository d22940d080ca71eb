from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional


class EventLog:
    """Appends structured JSON records, one per line, to a log file."""

    def __init__(self, log_file: Optional[Path] = None):
        self.log_file = Path(log_file) if log_file is not None else None
        if self.log_file is not None:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        if self.log_file is None:
            return
        record = {
            "event": event,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "payload": payload or {},
        }
        with self.log_file.open("a", encoding="utf-8") as f:
            json.dump(record, f, default=str)
            f.write("\n")
