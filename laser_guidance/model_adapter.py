"""Decoding of YOLOv5-style model outputs into candidates and an observation.

Three output layouts are understood:

* a single raw tensor ``[1, N, 5 + C]`` or ``[N, 5 + C]`` holding
  ``cx, cy, w, h, objectness, class scores...``; thresholding and NMS are
  applied here;
* a single post-NMS tensor with 6 or 7 columns holding corner boxes, a score
  and a class id;
* four split post-NMS tensors: detection count, boxes, scores and classes.

Boxes are mapped from the letterboxed model input back into the frame.
"""

from __future__ import annotations

import abc
import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from .model_runtime import (
    ModelImageTransform,
    ModelRunResult,
    ModelRuntime,
    ModelTensorData,
)
from .observation import (
    BoundingBox,
    Frame,
    ModelCandidate,
    Point,
    TargetObservation,
    to_gray_image,
)

_CONFIDENCE_THRESHOLD = 0.25
_NMS_IOU_THRESHOLD = 0.45
_MAX_ASPECT_RATIO = 1.5
_NORMALIZED_COORD_LIMIT = 1.5
_NMS_LAYOUT_SAMPLE_ROWS = 16
_NO_DETECTIONS_MESSAGE = "model contract matched, no detections after threshold/NMS"


@dataclass(frozen=True)
class DecodedDetection:
    """A detection whose box is already in frame coordinates."""

    score: float = 0.0
    class_id: int = -1
    bbox: BoundingBox = field(default_factory=BoundingBox)


@dataclass
class ModelAdapterResult:
    success: bool = False
    contract_supported: bool = False
    observation: TargetObservation = field(default_factory=TargetObservation)
    candidates: List[ModelCandidate] = field(default_factory=list)
    message: str = ""


class ModelAdapter(abc.ABC):
    """Turns a frame and a model runtime into detections."""

    @abc.abstractmethod
    def adapt(self, frame: Frame, runtime: ModelRuntime) -> ModelAdapterResult:
        """Run the model on ``frame`` and decode what it returns."""


class Yolov5ModelAdapter(ModelAdapter):
    """Adapter for YOLOv5 export formats."""

    def adapt(self, frame: Frame, runtime: ModelRuntime) -> ModelAdapterResult:
        run_result = runtime.run(frame.image)
        if not run_result.success:
            return _failure(run_result.message)
        return adapt_yolov5_outputs(frame, run_result)


def make_default_model_adapter() -> ModelAdapter:
    return Yolov5ModelAdapter()


def _format_tensor_metadata(tensor: ModelTensorData) -> str:
    shape = ", ".join(str(dim) for dim in tensor.shape)
    return f"name={tensor.name} shape=[{shape}] dtype={tensor.element_type}"


def _shape_element_count(shape: Sequence[int]) -> int:
    count = 1
    for dim in shape:
        if dim <= 0:
            raise ValueError("tensor shape contains non-positive dimension")
        count *= int(dim)
    return count


def _image_size(frame: Frame) -> Optional[Tuple[int, int]]:
    image = frame.image
    if image is None or image.size == 0:
        return None
    return int(image.shape[1]), int(image.shape[0])


def _clip_box_to_frame(bbox: BoundingBox, frame: Frame) -> Optional[BoundingBox]:
    size = _image_size(frame)
    if size is None:
        return None
    max_x, max_y = float(size[0]), float(size[1])
    x1 = min(max(bbox.x, 0.0), max_x)
    y1 = min(max(bbox.y, 0.0), max_y)
    x2 = min(max(bbox.x + bbox.width, 0.0), max_x)
    y2 = min(max(bbox.y + bbox.height, 0.0), max_y)
    if x2 <= x1 or y2 <= y1:
        return None
    return BoundingBox(x1, y1, x2 - x1, y2 - y1)


def _unletterbox_box(
    bbox: BoundingBox, transform: ModelImageTransform, frame: Frame
) -> Optional[BoundingBox]:
    if transform.scale <= 0.0:
        return None
    x1 = (bbox.x - transform.pad_x) / transform.scale
    y1 = (bbox.y - transform.pad_y) / transform.scale
    x2 = (bbox.x + bbox.width - transform.pad_x) / transform.scale
    y2 = (bbox.y + bbox.height - transform.pad_y) / transform.scale
    return _clip_box_to_frame(BoundingBox(x1, y1, x2 - x1, y2 - y1), frame)


def iou(lhs: BoundingBox, rhs: BoundingBox) -> float:
    """Intersection over union of two boxes; 0 when they do not overlap."""
    x1 = max(lhs.x, rhs.x)
    y1 = max(lhs.y, rhs.y)
    x2 = min(lhs.x + lhs.width, rhs.x + rhs.width)
    y2 = min(lhs.y + lhs.height, rhs.y + rhs.height)
    if x2 <= x1 or y2 <= y1:
        return 0.0
    intersection = (x2 - x1) * (y2 - y1)
    union = lhs.area() + rhs.area() - intersection
    if union <= 0.0:
        return 0.0
    return intersection / union


def apply_nms(detections: Iterable[DecodedDetection]) -> List[DecodedDetection]:
    """Greedy non-maximum suppression, highest score first."""
    kept: List[DecodedDetection] = []
    for candidate in sorted(detections, key=lambda d: d.score, reverse=True):
        if all(iou(candidate.bbox, accepted.bbox) <= _NMS_IOU_THRESHOLD for accepted in kept):
            kept.append(candidate)
    return kept


def _contour_from_bbox(bbox: BoundingBox) -> List[Point]:
    right = bbox.x + bbox.width
    bottom = bbox.y + bbox.height
    return [(bbox.x, bbox.y), (right, bbox.y), (right, bottom), (bbox.x, bottom)]


def _brightness_for_bbox(frame: Frame, bbox: BoundingBox) -> float:
    clipped = _clip_box_to_frame(bbox, frame)
    if clipped is None:
        return 0.0
    gray = to_gray_image(frame.image)
    if gray is None:
        return 0.0

    left = math.floor(clipped.x)
    top = math.floor(clipped.y)
    right = min(left + math.ceil(clipped.width), gray.shape[1])
    bottom = min(top + math.ceil(clipped.height), gray.shape[0])
    left, top = max(left, 0), max(top, 0)
    if right <= left or bottom <= top:
        return 0.0
    return float(gray[top:bottom, left:right].max())


def _candidate_from_detection(detection: DecodedDetection) -> ModelCandidate:
    bbox = detection.bbox
    return ModelCandidate(
        score=detection.score,
        class_id=detection.class_id,
        bbox=bbox,
        center=(bbox.x + bbox.width * 0.5, bbox.y + bbox.height * 0.5),
    )


def _plausible_shape(detection: DecodedDetection) -> bool:
    w, h = detection.bbox.width, detection.bbox.height
    if w <= 0.0 or h <= 0.0:
        return False
    return max(w / h, h / w) <= _MAX_ASPECT_RATIO


def _success(
    frame: Frame, detections: Iterable[DecodedDetection], message: str = ""
) -> ModelAdapterResult:
    kept = sorted(
        (d for d in detections if _plausible_shape(d)), key=lambda d: d.score, reverse=True
    )
    result = ModelAdapterResult(
        success=True,
        contract_supported=True,
        candidates=[_candidate_from_detection(d) for d in kept],
        message=message,
    )
    if result.candidates:
        top = result.candidates[0]
        result.observation = TargetObservation(
            detected=True,
            center=top.center,
            brightness=_brightness_for_bbox(frame, top.bbox),
            contour=_contour_from_bbox(top.bbox),
        )
    return result


def _success_or_empty(frame: Frame, detections: List[DecodedDetection]) -> ModelAdapterResult:
    if not detections:
        return _success(frame, [], _NO_DETECTIONS_MESSAGE)
    return _success(frame, detections)


def _failure(message: str) -> ModelAdapterResult:
    return ModelAdapterResult(message=message)


def _rows_cols(tensor: ModelTensorData) -> Optional[Tuple[int, int]]:
    shape = tensor.shape
    if len(shape) == 3 and shape[0] == 1 and shape[1] > 0 and shape[2] > 0:
        return shape[1], shape[2]
    if len(shape) == 2 and shape[0] > 0 and shape[1] > 0:
        return shape[0], shape[1]
    return None


def _row_values(tensor: ModelTensorData, rows: int, cols: int) -> List[List[float]]:
    return tensor.values[: rows * cols].reshape(rows, cols).tolist()


def _looks_like_nms_rows(tensor: ModelTensorData) -> bool:
    rows_cols = _rows_cols(tensor)
    if rows_cols is None:
        return False
    rows, cols = rows_cols
    if cols < 6:
        return False
    samples = min(rows, _NMS_LAYOUT_SAMPLE_ROWS)
    likely = sum(
        1
        for v in _row_values(tensor, samples, cols)
        if v[2] > v[0] and v[3] > v[1] and 0.0 <= v[4] <= 1.0
    )
    return likely * 2 >= samples


def _decode_raw_output(
    frame: Frame, run_result: ModelRunResult, tensor: ModelTensorData
) -> ModelAdapterResult:
    rows_cols = _rows_cols(tensor)
    if rows_cols is None:
        return _failure(
            "YOLOv5 raw output must be [1,N,5+C] or [N,5+C] ("
            + _format_tensor_metadata(tensor)
            + ")"
        )
    rows, cols = rows_cols
    if cols < 6:
        return _failure(
            "YOLOv5 raw output last dimension must be at least 6 ("
            + _format_tensor_metadata(tensor)
            + ")"
        )
    if _shape_element_count(tensor.shape) != rows * cols or tensor.values.size < rows * cols:
        return _failure(
            "YOLOv5 raw output size does not match its shape ("
            + _format_tensor_metadata(tensor)
            + ")"
        )

    detections: List[DecodedDetection] = []
    for values in _row_values(tensor, rows, cols):
        score = values[4]
        if cols == 6:
            class_id = int(values[5])
        else:
            class_scores = values[5:]
            best = max(class_scores)
            class_id = class_scores.index(best)
            score *= best
        if score < _CONFIDENCE_THRESHOLD:
            continue

        center_x, center_y, width, height = values[:4]
        if width <= 0.0 or height <= 0.0:
            continue
        input_bbox = BoundingBox(
            center_x - width * 0.5, center_y - height * 0.5, width, height
        )
        bbox = _unletterbox_box(input_bbox, run_result.transform, frame)
        if bbox is not None:
            detections.append(DecodedDetection(score=score, class_id=class_id, bbox=bbox))

    return _success_or_empty(frame, apply_nms(detections))


def _maybe_scale_normalized_box(
    bbox: BoundingBox, transform: ModelImageTransform
) -> BoundingBox:
    max_coord = max(bbox.x, bbox.y, bbox.x + bbox.width, bbox.y + bbox.height)
    if max_coord > _NORMALIZED_COORD_LIMIT:
        return bbox
    sx, sy = float(transform.input_width), float(transform.input_height)
    return BoundingBox(bbox.x * sx, bbox.y * sy, bbox.width * sx, bbox.height * sy)


def _parse_nms_row(values: List[float], cols: int) -> Optional[Tuple[float, ...]]:
    """Return ``(x1, y1, x2, y2, score, class_id)`` or None for an unknown layout."""
    if cols == 6:
        return values[0], values[1], values[2], values[3], values[4], values[5]
    if 0.0 <= values[5] <= 1.0:
        return values[1], values[2], values[3], values[4], values[5], values[0]
    if 0.0 <= values[2] <= 1.0:
        return values[3], values[4], values[5], values[6], values[2], values[0]
    return None


def _decode_nms_rows(
    frame: Frame, run_result: ModelRunResult, tensor: ModelTensorData
) -> ModelAdapterResult:
    rows_cols = _rows_cols(tensor)
    if rows_cols is None:
        return _failure(
            "YOLOv5 NMS output must be [1,N,6/7] or [N,6/7] ("
            + _format_tensor_metadata(tensor)
            + ")"
        )
    rows, cols = rows_cols
    if cols not in (6, 7):
        return _failure(
            "YOLOv5 NMS output last dimension must be 6 or 7 ("
            + _format_tensor_metadata(tensor)
            + ")"
        )

    detections: List[DecodedDetection] = []
    for values in _row_values(tensor, rows, cols):
        parsed = _parse_nms_row(values, cols)
        if parsed is None:
            return _failure("YOLOv5 NMS output with 7 columns is not a supported layout")
        x1, y1, x2, y2, score, class_value = parsed
        if score < _CONFIDENCE_THRESHOLD or x2 <= x1 or y2 <= y1:
            continue

        input_bbox = _maybe_scale_normalized_box(
            BoundingBox(x1, y1, x2 - x1, y2 - y1), run_result.transform
        )
        bbox = _unletterbox_box(input_bbox, run_result.transform, frame)
        if bbox is not None:
            detections.append(
                DecodedDetection(score=score, class_id=int(class_value), bbox=bbox)
            )

    return _success_or_empty(frame, detections)


def _decode_split_nms_outputs(frame: Frame, run_result: ModelRunResult) -> ModelAdapterResult:
    if len(run_result.outputs) != 4:
        return _failure("YOLOv5 split NMS contract requires four output tensors")
    num, boxes, scores, classes = run_result.outputs

    if num.values.size == 0:
        return _failure("YOLOv5 split NMS num_detections output is empty")
    if len(boxes.shape) != 3 or boxes.shape[0] != 1 or boxes.shape[2] != 4:
        return _failure("YOLOv5 split NMS boxes output must be [1,N,4]")
    if len(scores.shape) not in (2, 3):
        return _failure("YOLOv5 split NMS scores output must be [1,N] or [1,N,1]")

    max_boxes = max(0, int(boxes.shape[1]))
    requested = int(math.floor(max(0.0, float(num.values[0])) + 0.5))
    count = min(
        requested,
        max_boxes,
        boxes.values.size // 4,
        scores.values.size,
        classes.values.size,
    )

    box_rows = boxes.values[: count * 4].reshape(count, 4).tolist()
    score_values = scores.values[:count].tolist()
    class_values = classes.values[:count].tolist()

    detections: List[DecodedDetection] = []
    for (x1, y1, x2, y2), score, class_value in zip(box_rows, score_values, class_values):
        if score < _CONFIDENCE_THRESHOLD:
            continue
        input_bbox = _maybe_scale_normalized_box(
            BoundingBox(x1, y1, x2 - x1, y2 - y1), run_result.transform
        )
        bbox = _unletterbox_box(input_bbox, run_result.transform, frame)
        if bbox is not None:
            detections.append(
                DecodedDetection(score=score, class_id=int(class_value), bbox=bbox)
            )

    return _success_or_empty(frame, detections)


def adapt_yolov5_outputs(frame: Frame, run_result: ModelRunResult) -> ModelAdapterResult:
    """Decode the outputs of a finished model run for ``frame``."""
    if not run_result.success:
        return _failure(run_result.message)
    if not run_result.outputs:
        return _failure("model runtime returned no output tensors")

    if len(run_result.outputs) == 4:
        return _decode_split_nms_outputs(frame, run_result)
    if len(run_result.outputs) != 1:
        return _failure(
            f"model output contract is unsupported (outputs={len(run_result.outputs)})"
        )

    tensor = run_result.outputs[0]
    rows_cols = _rows_cols(tensor)
    if rows_cols is None:
        return _failure(
            "model output contract is unsupported for the primary output shape ("
            + _format_tensor_metadata(tensor)
            + ")"
        )
    rows, cols = rows_cols
    if rows == 0 or cols == 0:
        return _failure("model output tensor is empty")
    if tensor.values.size < rows * cols:
        return _failure(
            "model output size does not match its shape ("
            + _format_tensor_metadata(tensor)
            + ")"
        )

    if cols == 6 and not _looks_like_nms_rows(tensor):
        return _decode_raw_output(frame, run_result, tensor)
    if cols in (6, 7):
        return _decode_nms_rows(frame, run_result, tensor)
    if cols > 7:
        return _decode_raw_output(frame, run_result, tensor)
    return _failure(f"model output contract is unsupported (last_dim={cols})")