import numpy as np
import pytest

from laser_guidance.observation import (
    BoundingBox,
    Frame,
    FrameFormat,
    TargetObservation,
    detect_frame_format,
    is_supported_frame_format,
    to_gray_image,
)


def test_gray_frame_format():
    gray = np.zeros((32, 32), dtype=np.uint8)
    assert detect_frame_format(gray) is FrameFormat.GRAY8
    assert is_supported_frame_format(detect_frame_format(gray))
    converted = to_gray_image(gray)
    assert converted is not None and converted.shape == (32, 32)


def test_single_channel_3d_is_gray():
    gray = np.zeros((8, 8, 1), dtype=np.uint8)
    assert detect_frame_format(gray) is FrameFormat.GRAY8
    assert to_gray_image(gray).shape == (8, 8)


def test_bgr_frame_format():
    bgr = np.zeros((32, 32, 3), dtype=np.uint8)
    assert detect_frame_format(bgr) is FrameFormat.BGR8
    converted = to_gray_image(bgr)
    assert converted is not None and converted.shape == (32, 32)


def test_bgra_frame_format():
    bgra = np.zeros((32, 32, 4), dtype=np.uint8)
    assert detect_frame_format(bgra) is FrameFormat.BGRA8
    converted = to_gray_image(bgra)
    assert converted is not None and converted.shape == (32, 32)


def test_invalid_channel_count_is_unknown():
    invalid = np.zeros((32, 32, 2), dtype=np.uint8)
    assert detect_frame_format(invalid) is FrameFormat.UNKNOWN
    assert to_gray_image(invalid) is None


def test_invalid_depth_is_unknown():
    invalid = np.zeros((32, 32), dtype=np.uint16)
    assert detect_frame_format(invalid) is FrameFormat.UNKNOWN
    assert to_gray_image(invalid) is None


def test_empty_image_is_unknown():
    assert detect_frame_format(None) is FrameFormat.UNKNOWN
    assert not is_supported_frame_format(FrameFormat.UNKNOWN)
    assert to_gray_image(np.zeros((0, 0), dtype=np.uint8)) is None


@pytest.mark.parametrize("channels", [3, 4])
def test_uniform_colour_keeps_its_level(channels):
    image = np.full((4, 4, channels), 100, dtype=np.uint8)
    gray = to_gray_image(image)
    assert gray.dtype == np.uint8
    assert np.all(gray == 100)


def test_gray_values_stay_in_range():
    rng = np.random.default_rng(1)
    image = rng.integers(0, 256, size=(16, 16, 3), dtype=np.uint8)
    gray = to_gray_image(image)
    assert gray.min() >= image.min(axis=2).min()
    assert gray.max() <= image.max(axis=2).max()


def test_bounding_box_area():
    assert BoundingBox(1.0, 2.0, 3.0, 4.0).area() == pytest.approx(12.0)


def test_default_observation_and_frame():
    observation = TargetObservation()
    assert observation.detected is False
    assert observation.contour == []
    assert Frame().image is None