from __future__ import annotations


class PtEngineError(Exception):
    """Base class for errors raised by the engine bindings."""


class ModelNotFoundError(PtEngineError, FileNotFoundError):
    """No model archive or parameter file matched in the model directory."""


class MalformedModelError(PtEngineError):
    """The runtime rejected a model archive or parameter state."""


class InvalidStateError(PtEngineError, RuntimeError):
    """The model handle is not in a state that allows the operation."""
