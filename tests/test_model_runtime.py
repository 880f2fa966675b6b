from pathlib import Path

import numpy as np
import pytest

from laser_guidance.model_runtime import (
    ModelRuntime,
    ModelRuntimeError,
    ModelTensorData,
    ModelValueInfo,
    ensure_bgr_image,
    input_dimensions,
    model_runtime_enabled_in_build,
    prepare_input_tensor,
)


def _nchw(height, width):
    return ModelValueInfo(name="images", shape=(1, 3, height, width), element_type="float32")


def test_ensure_bgr_keeps_three_channel_image():
    image = np.zeros((4, 5, 3), dtype=np.uint8)
    assert ensure_bgr_image(image) is image


def test_ensure_bgr_expands_gray():
    gray = np.arange(12, dtype=np.uint8).reshape(3, 4)
    bgr = ensure_bgr_image(gray)
    assert bgr.shape == (3, 4, 3)
    for channel in range(3):
        assert np.array_equal(bgr[:, :, channel], gray)


def test_ensure_bgr_drops_alpha():
    bgra = np.zeros((2, 2, 4), dtype=np.uint8)
    bgra[:, :, 0] = 7
    bgra[:, :, 3] = 200
    bgr = ensure_bgr_image(bgra)
    assert bgr.shape == (2, 2, 3)
    assert np.array_equal(bgr, bgra[:, :, :3])


@pytest.mark.parametrize(
    "image",
    [None, np.zeros((0, 0, 3), dtype=np.uint8), np.zeros((4, 4, 2), dtype=np.uint8)],
)
def test_ensure_bgr_rejects_empty_and_bad_channels(image):
    with pytest.raises(ModelRuntimeError):
        ensure_bgr_image(image)


def test_input_dimensions_returns_height_width():
    assert input_dimensions(_nchw(480, 640)) == (480, 640)


@pytest.mark.parametrize(
    "shape",
    [(3, 640, 640), (1, 1, 640, 640), (1, 3, -1, 640), (1, 3, 640, 0)],
)
def test_input_dimensions_rejects_unsupported_shapes(shape):
    with pytest.raises(ModelRuntimeError):
        input_dimensions(ModelValueInfo(name="x", shape=shape))


def test_prepare_input_tensor_layout_and_letterbox():
    image = np.zeros((4, 8, 3), dtype=np.uint8)
    image[:, :] = (10, 20, 30)  # B, G, R
    prepared = prepare_input_tensor(image, _nchw(8, 8))

    assert prepared.shape == (1, 3, 8, 8)
    assert prepared.values.dtype == np.float32
    assert prepared.values.size == 3 * 8 * 8

    t = prepared.transform
    assert (t.original_width, t.original_height) == (8, 4)
    assert (t.input_width, t.input_height) == (8, 8)
    assert t.pad_x == 0.0

    tensor = prepared.values.reshape(3, 8, 8)
    pad_y = int(t.pad_y)
    # Channel order is RGB after conversion.
    assert tensor[0, pad_y, 0] == pytest.approx(30 / 255, rel=1e-6)
    assert tensor[2, pad_y, 0] == pytest.approx(10 / 255, rel=1e-6)
    assert tensor[0, 0, 0] == pytest.approx(114 / 255, rel=1e-6)
    assert tensor[1, 7, 7] == pytest.approx(114 / 255, rel=1e-6)


def test_prepare_input_tensor_scales_uniform_image():
    image = np.full((2, 4, 3), 200, dtype=np.uint8)
    prepared = prepare_input_tensor(image, _nchw(8, 8))
    t = prepared.transform
    assert t.scale > 1.0
    resized_h = 8 - 2 * int(t.pad_y)
    assert resized_h <= 8
    tensor = prepared.values.reshape(3, 8, 8)
    content = tensor[:, int(t.pad_y) : int(t.pad_y) + resized_h, :]
    assert np.allclose(content, 200 / 255, atol=1e-6)


def test_prepare_input_tensor_accepts_gray_input():
    gray = np.full((8, 8), 50, dtype=np.uint8)
    prepared = prepare_input_tensor(gray, _nchw(8, 8))
    tensor = prepared.values.reshape(3, 8, 8)
    assert np.allclose(tensor, 50 / 255, atol=1e-6)


def test_tensor_data_flattens_values():
    tensor = ModelTensorData(name="out", shape=[1, 2, 3], values=[[1, 2, 3], [4, 5, 6]])
    assert tensor.shape == (1, 2, 3)
    assert tensor.values.dtype == np.float32
    assert tensor.values.tolist() == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]


def test_runtime_disabled_in_build():
    assert model_runtime_enabled_in_build() is False


def test_runtime_load_raises_without_backend():
    runtime = ModelRuntime("models/mock_detector.onnx")
    with pytest.raises(ModelRuntimeError, match="ONNX Runtime"):
        runtime.load()
    assert runtime.is_loaded() is False


def test_runtime_run_reports_failure():
    runtime = ModelRuntime("models/mock_detector.onnx")
    result = runtime.run(np.zeros((4, 4, 3), dtype=np.uint8))
    assert result.success is False
    assert "ONNX Runtime" in result.message
    assert result.outputs == []


def test_runtime_exposes_path_and_empty_metadata():
    runtime = ModelRuntime("models/mock_detector.onnx")
    assert runtime.model_path() == Path("models/mock_detector.onnx")
    assert len(runtime.input_values()) == 0
    assert len(runtime.output_values()) == 0