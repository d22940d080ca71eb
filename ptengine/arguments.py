from __future__ import annotations

import argparse
import json
from typing import Any, Dict, Optional, Sequence

from .config import DEFAULT_EPOCH, DEFAULT_OUTPUT_DIR, UNBOUNDED_LIMIT, TrainingConfig, default_batch_size
from .engine import DEFAULT_ENGINE

USAGE = "./run [OPTIONS]"


class ArgumentParseError(Exception):
    pass


class _Parser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        raise ArgumentParseError(message)


def _json_object(value: str) -> Dict[str, Any]:
    try:
        data = json.loads(value)
    except json.JSONDecodeError as exc:
        raise argparse.ArgumentTypeError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise argparse.ArgumentTypeError("criteria must be a JSON object")
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(usage=USAGE, add_help=False, description="Example training options")
    parser.add_argument("-h", "--help", action="store_true", help="Print this help.")
    parser.add_argument(
        "-e", "--epoch", type=int, default=DEFAULT_EPOCH, metavar="EPOCH",
        help="Numbers of epochs user would like to run",
    )
    parser.add_argument(
        "-b", "--batch-size", type=int, metavar="BATCH-SIZE",
        help="The batch size of the training data.",
    )
    parser.add_argument(
        "-g", "--max-gpus", type=int, default=0, metavar="MAXGPUS",
        help="Max number of GPUs to use for training",
    )
    parser.add_argument("-p", "--pre-trained", action="store_true", help="Use pre-trained weights")
    parser.add_argument(
        "-o", "--output-dir", default=DEFAULT_OUTPUT_DIR, metavar="OUTPUT-DIR",
        help="Use output to determine directory to save your model parameters",
    )
    parser.add_argument(
        "-m", "--max-batches", type=int, metavar="MAX-BATCHES",
        help="Limit each epoch to a fixed number of iterations to test the training script",
    )
    parser.add_argument("-d", "--model-dir", metavar="MODEL-DIR", help="pre-trained model file directory")
    parser.add_argument(
        "-r", "--criteria", type=_json_object, metavar="CRITERIA",
        help="The criteria used for the model.",
    )
    parser.add_argument("--engine", default=DEFAULT_ENGINE, metavar="ENGINE", help="The engine for the model.")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> Optional[TrainingConfig]:
    """Parse ``argv`` into a `TrainingConfig`.

    Returns None after printing usage when help is requested or parsing fails;
    callers decide whether to exit.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except ArgumentParseError:
        parser.print_help()
        return None
    if args.help:
        parser.print_help()
        return None

    batch_size = args.batch_size if args.batch_size is not None else default_batch_size(args.max_gpus)
    limit = UNBOUNDED_LIMIT
    if args.max_batches is not None:
        limit = args.max_batches * batch_size
    return TrainingConfig(
        epoch=args.epoch,
        batch_size=batch_size,
        max_gpus=args.max_gpus,
        pre_trained=args.pre_trained,
        output_dir=args.output_dir,
        limit=limit,
        model_dir=args.model_dir,
        criteria=args.criteria,
        engine=args.engine,
    )
