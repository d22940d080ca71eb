#!/usr/bin/env python3
"""
Engine diagnostic utility.

Prints the PyTorch version, CUDA/cuDNN availability and the devices a training
script would run on for a given --max-gpus, as JSON.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional

from ptengine.engine import build_report


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Report the devices ptengine would train on")
    parser.add_argument("-g", "--max-gpus", type=int, default=0, help="GPU budget passed to training scripts")
    args = parser.parse_args(argv)

    report = build_report(args.max_gpus)
    json.dump(report, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
