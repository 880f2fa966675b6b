"""Bright-spot detector: finds the brightest blob in a frame."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy import ndimage

from .observation import Frame, Point, TargetObservation, to_gray_image

_MIN_DETECTED_BRIGHTNESS = 250.0
_MIN_THRESHOLD = 245.0
_THRESHOLD_MARGIN = 10.0

# Fixed 5-tap Gaussian used for a 5x5 blur with automatic sigma.
_BLUR_KERNEL = np.array([1.0, 4.0, 6.0, 4.0, 1.0]) / 16.0

# Neighbour offsets (row, col), clockwise in image coordinates starting east.
_DIRECTIONS = ((0, 1), (1, 1), (1, 0), (1, -1), (0, -1), (-1, -1), (-1, 0), (-1, 1))
_EIGHT_CONNECTED = np.ones((3, 3), dtype=bool)


def _blur(gray: np.ndarray) -> np.ndarray:
    image = gray.astype(np.float64)
    image = ndimage.correlate1d(image, _BLUR_KERNEL, axis=0, mode="mirror")
    image = ndimage.correlate1d(image, _BLUR_KERNEL, axis=1, mode="mirror")
    return np.clip(np.rint(image), 0, 255).astype(np.uint8)


def _trace_boundary(region: np.ndarray) -> List[Tuple[int, int]]:
    """Outer boundary of a connected region as (row, col) pixels, in order."""
    rows, cols = region.shape
    start = tuple(int(v) for v in np.argwhere(region)[0])
    contour = [start]
    current = start
    search = 5
    first_dir: Optional[int] = None

    for _ in range(4 * region.size + 8):
        for k in range(8):
            d = (search + k) % 8
            r = current[0] + _DIRECTIONS[d][0]
            c = current[1] + _DIRECTIONS[d][1]
            if 0 <= r < rows and 0 <= c < cols and region[r, c]:
                break
        else:
            return contour
        if current == start and d == first_dir:
            break
        if first_dir is None:
            first_dir = d
        current = (r, c)
        contour.append(current)
        search = (d + 5) % 8

    if len(contour) > 1 and contour[-1] == start:
        contour.pop()
    return contour


def _polygon_moments(points: Sequence[Point]) -> Tuple[float, float, float]:
    xs = np.array([p[0] for p in points], dtype=np.float64)
    ys = np.array([p[1] for p in points], dtype=np.float64)
    xn = np.roll(xs, -1)
    yn = np.roll(ys, -1)
    cross = xs * yn - xn * ys
    m00 = cross.sum() / 2.0
    m10 = ((xs + xn) * cross).sum() / 6.0
    m01 = ((ys + yn) * cross).sum() / 6.0
    return m00, m10, m01


def _contour_center(points: Sequence[Point]) -> Point:
    m00, m10, m01 = _polygon_moments(points)
    if abs(m00) > 1e-6:
        return (m10 / m00, m01 / m00)
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    width = max(xs) - min(xs) + 1.0
    height = max(ys) - min(ys) + 1.0
    return (min(xs) + width / 2.0, min(ys) + height / 2.0)


def _external_contours(mask: np.ndarray) -> List[List[Point]]:
    labels, _ = ndimage.label(mask, structure=_EIGHT_CONNECTED)
    contours = []
    for index, slices in enumerate(ndimage.find_objects(labels), start=1):
        if slices is None:
            continue
        region = labels[slices] == index
        row_off, col_off = slices[0].start, slices[1].start
        contours.append(
            [(float(c + col_off), float(r + row_off)) for r, c in _trace_boundary(region)]
        )
    return contours


class Detector:
    """Detects the largest saturated spot in a frame."""

    def __init__(self, config: object = None) -> None:
        self._config = config

    def detect(self, frame: Frame) -> TargetObservation:
        gray = to_gray_image(frame.image)
        if gray is None:
            return TargetObservation()

        blurred = _blur(gray)
        max_value = float(blurred.max())
        if max_value < _MIN_DETECTED_BRIGHTNESS:
            return TargetObservation()

        threshold = max(_MIN_THRESHOLD, max_value - _THRESHOLD_MARGIN)
        contours = _external_contours(blurred > threshold)
        if not contours:
            return TargetObservation()

        largest = max(contours, key=lambda points: abs(_polygon_moments(points)[0]))
        return TargetObservation(
            detected=True,
            center=_contour_center(largest),
            brightness=max_value,
            contour=list(largest),
        )