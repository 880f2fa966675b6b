"""Model-based target inference: a runtime plus an output adapter behind one call."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .model_adapter import ModelAdapter, make_default_model_adapter
from .model_runtime import (
    ModelRuntime,
    ModelRuntimeError,
    ModelValueInfo,
    model_runtime_enabled_in_build,
)
from .observation import Frame, ModelCandidate, TargetObservation

_RUNTIME_MISSING_MESSAGE = (
    "model backend requires ONNX Runtime support; rebuild with ONNX Runtime enabled"
)
_TENSORRT_MISSING_MESSAGE = "tensorrt backend is not available in this build"


class InferenceBackendKind(enum.Enum):
    BRIGHT_SPOT = "bright_spot"
    MODEL = "model"
    TENSORRT = "tensorrt"


@dataclass
class InferenceConfig:
    backend: InferenceBackendKind = InferenceBackendKind.BRIGHT_SPOT
    model_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.model_path is not None and not isinstance(self.model_path, Path):
            text = str(self.model_path)
            self.model_path = Path(text) if text else None


@dataclass
class ModelInferResult:
    enabled: bool = False
    success: bool = False
    contract_supported: bool = False
    observation: TargetObservation = field(default_factory=TargetObservation)
    candidates: List[ModelCandidate] = field(default_factory=list)
    inputs: Sequence[ModelValueInfo] = ()
    outputs: Sequence[ModelValueInfo] = ()
    message: str = ""


class ModelInfer:
    """Prepares the configured model at construction and runs it per frame.

    Startup problems are not raised; they are carried in every result's message.
    """

    def __init__(self, config: Union[InferenceConfig, None] = None) -> None:
        self._config = config if config is not None else InferenceConfig()
        self._runtime_enabled = model_runtime_enabled_in_build()
        self._runtime = ModelRuntime(self._config.model_path)
        self._adapter: ModelAdapter = make_default_model_adapter()
        self._startup_ready = False
        self._message = ""
        self._initialize()

    def _initialize(self) -> None:
        if self._config.backend is InferenceBackendKind.TENSORRT:
            self._message = _TENSORRT_MISSING_MESSAGE
            return
        if not self._runtime_enabled:
            self._message = _RUNTIME_MISSING_MESSAGE
            return
        model_path = self._config.model_path
        if model_path is None:
            self._message = "model backend requires inference.model_path to be set"
            return
        if not model_path.exists():
            self._message = f"configured ONNX model does not exist: {model_path}"
            return
        try:
            self._runtime.load()
        except ModelRuntimeError as error:
            self._message = str(error)
            return
        self._startup_ready = True

    def _base_result(self) -> ModelInferResult:
        return ModelInferResult(
            enabled=self._runtime_enabled,
            inputs=tuple(self._runtime.input_values()),
            outputs=tuple(self._runtime.output_values()),
            message=self._message,
        )

    def infer(self, frame: Frame) -> ModelInferResult:
        """Run the model on ``frame`` and return the decoded result."""
        result = self._base_result()
        if not self._startup_ready:
            return result
        if frame.image is None or frame.image.size == 0:
            result.message = "model backend received an empty frame"
            return result

        adapted = self._adapter.adapt(frame, self._runtime)
        result.success = adapted.success
        result.contract_supported = adapted.contract_supported
        result.observation = adapted.observation
        result.candidates = list(adapted.candidates)
        result.message = adapted.message
        return result