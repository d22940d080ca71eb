from __future__ import annotations

import os
import pickle
import re
import shutil
import tempfile
from pathlib import Path
from typing import IO, Any, BinaryIO, Dict, List, Mapping, Optional, Union

import torch

from .errors import InvalidStateError, MalformedModelError, ModelNotFoundError
from .events import EventLog
from .parameters import (
    ParameterPredicate,
    count_parameters,
    freeze_parameters,
    is_not_running_statistic,
    is_running_statistic,
    iter_parameters,
)
from .trainer import Initializer, Trainer, TrainerConfig

MODEL_EXTENSION = ".pt"
PARAMS_EXTENSION = ".params"
DEFAULT_MODEL_FILE = "model" + MODEL_EXTENSION

PathLike = Union[str, os.PathLike]


def _parse_flag(value: Any) -> bool:
    # Only a case-insensitive "true" enables a flag; everything else is false.
    return value is not None and str(value).lower() == "true"


def _strip_extension(file_name: str) -> str:
    if file_name.endswith(MODEL_EXTENSION):
        return file_name[: -len(MODEL_EXTENSION)]
    return file_name


class PtModel:
    """Handle owning at most one TorchScript module loaded from a model directory.

    The handle is created empty, gets its module from `load`, `load_stream` or
    `set_block`, and releases it on `close` (or when leaving a ``with`` block).
    Loading again while a module is attached only refreshes parameter values.
    """

    def __init__(
        self,
        name: Optional[str] = None,
        device: Union[str, torch.device] = "cpu",
        event_log: Optional[EventLog] = None,
    ):
        self.name = name
        self.device = torch.device(device)
        self.model_dir: Optional[Path] = None
        self.block: Optional[torch.nn.Module] = None
        self.properties: Dict[str, str] = {}
        self.was_loaded = False
        self.events = event_log or EventLog()
        self._temp_dir: Optional[Path] = None

    def set_model_dir(self, model_path: PathLike) -> None:
        self.model_dir = Path(model_path).absolute()

    def set_block(self, block: torch.nn.Module) -> None:
        self.block = block.to(self.device)

    def require_block(self) -> torch.nn.Module:
        if self.block is None:
            raise InvalidStateError("No block is attached to model " + repr(self.name))
        return self.block

    def get_property(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.properties.get(key, default)

    def set_property(self, key: str, value: str) -> None:
        self.properties[key] = value

    def load(
        self,
        model_path: PathLike,
        prefix: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Load the model archive found in ``model_path``.

        Recognized options: ``extraFiles`` (comma separated archive entries
        copied into `properties`), ``mapLocation`` (load tensors onto this
        handle's device) and ``trainParam`` (keep parameters trainable).
        Parameters are frozen unless ``trainParam`` is "true". When a module is
        already attached, only ``<prefix>-NNNN.params`` is read, honoring an
        optional ``epoch`` option.
        """
        self.set_model_dir(model_path)
        self.was_loaded = True

        if prefix is not None:
            model_file = self.find_model_file(prefix)
        else:
            # search for the model name, the folder name, then "model.pt"
            candidates = [c for c in (self.name, self.model_dir.name, DEFAULT_MODEL_FILE) if c]
            model_file = self.find_model_file(*candidates)
            prefix = self.name

        if self.block is not None:
            self._load_parameters(prefix or self.model_dir.name, options)
            return

        if model_file is None:
            stem = prefix or self.model_dir.name
            file_name = stem if stem.endswith(MODEL_EXTENSION) else stem + MODEL_EXTENSION
            raise ModelNotFoundError(f"{file_name} file not found in: {self.model_dir}")

        options = options or {}
        extra_keys: List[str] = []
        if "extraFiles" in options:
            extra_keys = [key for key in str(options["extraFiles"]).split(",") if key]
        train_param = _parse_flag(options.get("trainParam"))
        map_location = _parse_flag(options.get("mapLocation"))

        extra_files: Dict[str, Any] = {key: "" for key in extra_keys}
        block = self._deserialize(str(model_file), map_location, extra_files)
        for key in extra_keys:
            value = extra_files[key]
            self.properties[key] = value.decode("utf-8") if isinstance(value, bytes) else value

        # Parameters were historically loaded with autograd disabled, so they
        # stay frozen unless trainParam asks otherwise.
        if train_param:
            freeze_parameters(block, freeze=True, predicate=is_running_statistic)
            freeze_parameters(block, freeze=False, predicate=is_not_running_statistic)
        else:
            block.eval()
            freeze_parameters(block, freeze=True)
        self.block = block
        self.events.emit(
            "model_loaded",
            {
                "name": self.name,
                "file": str(model_file),
                "train_param": train_param,
                "map_location": map_location,
                "extra_files": extra_keys,
            },
        )

    def load_stream(
        self,
        stream: BinaryIO,
        options: Optional[Mapping[str, Any]] = None,
        *,
        map_location: Optional[bool] = None,
    ) -> None:
        """Load a model archive from ``stream``; parameters are always frozen."""
        if map_location is None:
            map_location = _parse_flag((options or {}).get("mapLocation"))
        self.was_loaded = True
        if self.block is not None:
            self.read_parameters(stream)
            return

        block = self._deserialize(stream, map_location, {})
        self._temp_dir = Path(tempfile.mkdtemp(prefix="pt-model"))
        self.model_dir = self._temp_dir
        block.eval()
        freeze_parameters(block, freeze=True)
        self.block = block
        self.events.emit("model_loaded", {"name": self.name, "file": None, "map_location": map_location})

    def _deserialize(self, source: Union[str, BinaryIO], map_location: bool, extra_files: Dict[str, Any]):
        try:
            return torch.jit.load(
                source,
                map_location=self.device if map_location else None,
                _extra_files=extra_files,
            )
        except (RuntimeError, ValueError) as exc:
            raise MalformedModelError(f"Failed to load model from {source!r}: {exc}") from exc

    def find_model_file(self, *prefixes: str) -> Optional[Path]:
        if self.model_dir is None:
            raise InvalidStateError("Model directory is not set")
        if self.model_dir.is_file():
            model_file = self.model_dir
            self.model_dir = model_file.parent
            self.name = _strip_extension(model_file.name)
            return model_file
        for prefix in prefixes:
            model_file = self.model_dir / prefix
            if not model_file.is_file() and not prefix.endswith(MODEL_EXTENSION):
                model_file = self.model_dir / (prefix + MODEL_EXTENSION)
            if model_file.is_file():
                if self.name is None:
                    self.name = _strip_extension(model_file.name)
                return model_file
        return None

    def _param_path(self, prefix: str, epoch: Optional[Any]) -> Optional[Path]:
        assert self.model_dir is not None
        if epoch is not None:
            try:
                epoch = int(epoch)
            except (TypeError, ValueError) as exc:
                raise ModelNotFoundError(f"Invalid epoch {epoch!r} for parameter file with prefix {prefix}") from exc
            param_file = self.model_dir / f"{prefix}-{epoch:04d}{PARAMS_EXTENSION}"
            return param_file if param_file.is_file() else None

        pattern = re.compile(re.escape(prefix) + r"-(\d{4})" + re.escape(PARAMS_EXTENSION))
        latest: Optional[Path] = None
        latest_epoch = -1
        for path in self.model_dir.iterdir():
            match = pattern.fullmatch(path.name)
            if match and path.is_file() and int(match.group(1)) > latest_epoch:
                latest_epoch = int(match.group(1))
                latest = path
        return latest

    def _load_parameters(self, prefix: str, options: Optional[Mapping[str, Any]]) -> None:
        epoch = (options or {}).get("epoch")
        param_file = self._param_path(prefix, epoch)
        if param_file is None:
            raise ModelNotFoundError(f"Parameter file with prefix {prefix} not found in: {self.model_dir}")
        with param_file.open("rb") as f:
            self.read_parameters(f)
        self.events.emit("parameters_refreshed", {"name": self.name, "file": str(param_file)})

    def _state(self) -> Dict[str, torch.Tensor]:
        block = self.require_block()
        state = dict(block.named_parameters())
        state.update(block.named_buffers())
        return state

    def read_parameters(self, stream: BinaryIO) -> None:
        """Copy a saved ``{name: tensor}`` state into the attached module in place."""
        targets = self._state()
        try:
            state = torch.load(stream, map_location=self.device)
        except (RuntimeError, EOFError, pickle.UnpicklingError) as exc:
            raise MalformedModelError(f"Failed to read parameters: {exc}") from exc
        if isinstance(state, Mapping) and "state_dict" in state:
            state = state["state_dict"]
        if not isinstance(state, Mapping):
            raise MalformedModelError(f"Expected a parameter mapping, got {type(state).__name__}")

        with torch.no_grad():
            for name, value in state.items():
                target = targets.get(name)
                if target is None:
                    raise MalformedModelError(f"Unknown parameter {name}")
                if target.shape != value.shape:
                    raise MalformedModelError(
                        f"Shape mismatch for {name}: expected {tuple(target.shape)}, got {tuple(value.shape)}"
                    )
                target.copy_(value)

    def save(self, model_dir: PathLike, name: str) -> Path:
        """Write the parameter state to ``<model_dir>/<name>-NNNN.params``."""
        state = {key: value.detach().cpu() for key, value in self._state().items()}
        model_dir = Path(model_dir)
        model_dir.mkdir(parents=True, exist_ok=True)
        epoch = int(self.properties.get("Epoch", 0))
        param_file = model_dir / f"{name}-{epoch:04d}{PARAMS_EXTENSION}"
        with param_file.open("wb") as f:
            torch.save(state, f)
        self.name = name
        self.events.emit("model_saved", {"name": name, "file": str(param_file), "epoch": epoch})
        return param_file

    def new_trainer(self, config: Optional[TrainerConfig] = None) -> Trainer:
        config = config or TrainerConfig()
        if self.block is None:
            raise InvalidStateError("You must set a block for the model before creating a new trainer")
        if self.was_loaded:
            # unfreeze for direct training; running statistics never take gradients
            freeze_parameters(self.block, freeze=False, predicate=is_not_running_statistic)
        freeze_parameters(self.block, freeze=True, predicate=is_running_statistic)
        for initializer, predicate in config.initializers:
            if initializer is not None and predicate is not None:
                self._apply_initializer(initializer, predicate)

        trainer = Trainer(self, config)
        self.events.emit(
            "trainer_created",
            {"name": self.name, "trainable_parameters": count_parameters(self.block, trainable_only=True)},
        )
        return trainer

    def _apply_initializer(self, initializer: Initializer, predicate: ParameterPredicate) -> None:
        with torch.no_grad():
            for param in iter_parameters(self.require_block()):
                if predicate(param):
                    initializer(param.tensor)

    def get_artifact_names(self) -> List[str]:
        """List files under the model directory, relative to it, except model archives."""
        if self.model_dir is None:
            raise InvalidStateError("Model directory is not set")
        model_dir = self.model_dir

        def _raise(err: OSError) -> None:
            raise err

        names: List[str] = []
        try:
            for root, _dirs, files in os.walk(model_dir, onerror=_raise):
                for file_name in files:
                    path = Path(root) / file_name
                    if file_name.endswith(MODEL_EXTENSION) or not path.is_file():
                        continue
                    names.append(path.relative_to(model_dir).as_posix())
        except OSError as exc:
            raise AssertionError("Failed list files") from exc
        return sorted(names)

    def get_artifact(self, name: str) -> Optional[IO[bytes]]:
        if self.model_dir is None:
            raise InvalidStateError("Model directory is not set")
        path = self.model_dir / name
        if not path.is_file():
            return None
        return path.open("rb")

    def summary(self) -> Dict[str, Any]:
        block = self.block
        return {
            "name": self.name,
            "device": str(self.device),
            "model_dir": str(self.model_dir) if self.model_dir is not None else None,
            "loaded": block is not None,
            "parameters": count_parameters(block) if block is not None else 0,
            "trainable_parameters": count_parameters(block, trainable_only=True) if block is not None else 0,
            "properties": sorted(self.properties),
        }

    def close(self) -> None:
        self.block = None
        self.properties.clear()
        if self._temp_dir is not None:
            shutil.rmtree(self._temp_dir, ignore_errors=True)
            self._temp_dir = None

    def __enter__(self) -> "PtModel":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"PtModel(name={self.name!r}, device={str(self.device)!r}, model_dir={self.model_dir!r})"
