"""Model runtime: tensor metadata, letterbox preprocessing and the inference session.

Images are numpy arrays in OpenCV channel order (BGR / BGRA / grayscale, ``uint8``).
This build carries no ONNX Runtime backend, so the runtime reports itself as
disabled: loading raises and running returns an unsuccessful result. The
preprocessing that prepares a letterboxed NCHW input tensor is fully available.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image

_LETTERBOX_FILL = 114
_NOT_BUILT_MESSAGE = "model backend was built without ONNX Runtime support"


class ModelRuntimeError(RuntimeError):
    """Raised when a model cannot be loaded or its input cannot be prepared."""


@dataclass(frozen=True)
class ModelValueInfo:
    """Name, shape and element type of a model input or output."""

    name: str = ""
    shape: Tuple[int, ...] = ()
    element_type: str = ""


@dataclass(eq=False)
class ModelTensorData:
    """A model output tensor with its values flattened to ``float32``."""

    name: str = ""
    shape: Tuple[int, ...] = ()
    element_type: str = ""
    values: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32))

    def __post_init__(self) -> None:
        self.shape = tuple(int(d) for d in self.shape)
        self.values = np.asarray(self.values, dtype=np.float32).reshape(-1)


@dataclass(frozen=True)
class ModelImageTransform:
    """How an original image was scaled and padded into the model input."""

    original_width: int = 0
    original_height: int = 0
    input_width: int = 0
    input_height: int = 0
    scale: float = 1.0
    pad_x: float = 0.0
    pad_y: float = 0.0


@dataclass(eq=False)
class ModelRunResult:
    success: bool = False
    message: str = ""
    transform: ModelImageTransform = field(default_factory=ModelImageTransform)
    outputs: List[ModelTensorData] = field(default_factory=list)


@dataclass(eq=False)
class PreparedInput:
    """A flattened NCHW ``float32`` tensor ready to feed a model."""

    values: np.ndarray
    shape: Tuple[int, int, int, int]
    transform: ModelImageTransform


def _round_half_away(value: float) -> int:
    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))


def ensure_bgr_image(image: Optional[np.ndarray]) -> np.ndarray:
    """Return a 3-channel BGR image, converting grayscale or BGRA input."""
    if image is None or image.size == 0:
        raise ModelRuntimeError("model runtime received an empty image")

    channels = 1 if image.ndim == 2 else (image.shape[2] if image.ndim == 3 else 0)
    if channels == 3:
        return image
    if channels == 1:
        gray = image if image.ndim == 2 else image[:, :, 0]
        return np.repeat(gray[:, :, np.newaxis], 3, axis=2)
    if channels == 4:
        return np.ascontiguousarray(image[:, :, :3])
    raise ModelRuntimeError("model runtime received an unsupported image channel count")


def input_dimensions(input_info: ModelValueInfo) -> Tuple[int, int]:
    """Return ``(height, width)`` of a static NCHW, 3-channel model input."""
    shape = input_info.shape
    if len(shape) != 4:
        raise ModelRuntimeError("model input must be a 4D tensor")
    if shape[1] != 3:
        raise ModelRuntimeError("model input must use NCHW with 3 channels")
    if shape[2] <= 0 or shape[3] <= 0:
        raise ModelRuntimeError(
            "model input height/width must be statically known and positive"
        )
    return int(shape[2]), int(shape[3])


def prepare_input_tensor(image: np.ndarray, input_info: ModelValueInfo) -> PreparedInput:
    """Letterbox ``image`` into the model input size and lay it out as RGB NCHW."""
    input_height, input_width = input_dimensions(input_info)
    bgr = ensure_bgr_image(image)
    rows, cols = bgr.shape[:2]

    scale = min(input_width / cols, input_height / rows)
    resized_width = max(1, _round_half_away(cols * scale))
    resized_height = max(1, _round_half_away(rows * scale))
    pad_x = (input_width - resized_width) // 2
    pad_y = (input_height - resized_height) // 2

    source = np.ascontiguousarray(bgr, dtype=np.uint8)
    if (resized_width, resized_height) == (cols, rows):
        resized = source
    else:
        resized = np.asarray(
            Image.fromarray(source).resize((resized_width, resized_height), Image.BILINEAR)
        )

    letterboxed = np.full((input_height, input_width, 3), _LETTERBOX_FILL, dtype=np.uint8)
    letterboxed[pad_y : pad_y + resized_height, pad_x : pad_x + resized_width] = resized

    rgb = letterboxed[:, :, ::-1]
    chw = rgb.transpose(2, 0, 1).astype(np.float32) * np.float32(1.0 / 255.0)

    return PreparedInput(
        values=np.ascontiguousarray(chw).reshape(-1),
        shape=(1, 3, input_height, input_width),
        transform=ModelImageTransform(
            original_width=cols,
            original_height=rows,
            input_width=input_width,
            input_height=input_height,
            scale=scale,
            pad_x=float(pad_x),
            pad_y=float(pad_y),
        ),
    )


def model_runtime_enabled_in_build() -> bool:
    """Whether an ONNX Runtime backend is available."""
    return False


class ModelRuntime:
    """Inference session for one model file."""

    def __init__(self, model_path: Union[str, Path, None] = None) -> None:
        self._model_path = Path(model_path) if model_path else Path()
        self._inputs: List[ModelValueInfo] = []
        self._outputs: List[ModelValueInfo] = []

    def load(self) -> None:
        """Open the model; raises ModelRuntimeError when that is not possible."""
        raise ModelRuntimeError(_NOT_BUILT_MESSAGE)

    def run(self, image: np.ndarray) -> ModelRunResult:
        """Run the model on ``image``; failures are reported in the result."""
        return ModelRunResult(success=False, message=_NOT_BUILT_MESSAGE)

    def is_loaded(self) -> bool:
        return False

    def model_path(self) -> Path:
        return self._model_path

    def input_values(self) -> Sequence[ModelValueInfo]:
        return tuple(self._inputs)

    def output_values(self) -> Sequence[ModelValueInfo]:
        return tuple(self._outputs)