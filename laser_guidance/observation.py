"""Frames, detection results and pixel-format helpers shared by the vision code.

Images are numpy arrays in OpenCV channel order: ``(H, W)`` or ``(H, W, 1)``
for grayscale, ``(H, W, 3)`` for BGR and ``(H, W, 4)`` for BGRA, all ``uint8``.
Timestamps are integer nanoseconds on a monotonic clock.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

Point = Tuple[float, float]

_BGR_TO_GRAY = np.array([0.114, 0.587, 0.299])


class FrameFormat(enum.Enum):
    UNKNOWN = "unknown"
    GRAY8 = "gray8"
    BGR8 = "bgr8"
    BGRA8 = "bgra8"


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box given by its top-left corner and size."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def area(self) -> float:
        return self.width * self.height


@dataclass
class Frame:
    image: Optional[np.ndarray] = None
    timestamp: int = 0


@dataclass
class TargetObservation:
    detected: bool = False
    center: Point = (-1.0, -1.0)
    brightness: float = 0.0
    contour: List[Point] = field(default_factory=list)


@dataclass
class ModelCandidate:
    score: float = 0.0
    class_id: int = -1
    bbox: BoundingBox = field(default_factory=BoundingBox)
    center: Point = (0.0, 0.0)


def _is_empty(image: Optional[np.ndarray]) -> bool:
    return image is None or image.size == 0


def detect_frame_format(image: Optional[np.ndarray]) -> FrameFormat:
    """Classify an image by its element type and channel count."""
    if _is_empty(image) or image.dtype != np.uint8:
        return FrameFormat.UNKNOWN
    if image.ndim == 2:
        return FrameFormat.GRAY8
    if image.ndim != 3:
        return FrameFormat.UNKNOWN
    return {
        1: FrameFormat.GRAY8,
        3: FrameFormat.BGR8,
        4: FrameFormat.BGRA8,
    }.get(image.shape[2], FrameFormat.UNKNOWN)


def is_supported_frame_format(frame_format: FrameFormat) -> bool:
    return frame_format is not FrameFormat.UNKNOWN


def to_gray_image(image: Optional[np.ndarray]) -> Optional[np.ndarray]:
    """Return a 2-D ``uint8`` grayscale image, or None if the format is unsupported."""
    frame_format = detect_frame_format(image)
    if frame_format is FrameFormat.UNKNOWN:
        return None
    if frame_format is FrameFormat.GRAY8:
        return image if image.ndim == 2 else image[:, :, 0]
    bgr = image[:, :, :3].astype(np.float64)
    gray = np.rint(bgr @ _BGR_TO_GRAY)
    return np.clip(gray, 0, 255).astype(np.uint8)