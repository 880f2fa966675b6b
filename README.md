# laser_guidance

Building blocks for a laser-guidance vision pipeline.

## What is in it

- `laser_guidance.observation`: shared data types (`Frame`, `TargetObservation`,
  `ModelCandidate`, `BoundingBox`, `FrameFormat`) and pixel-format helpers
  (`detect_frame_format`, `is_supported_frame_format`, `to_gray_image`).
  Images are numpy `uint8` arrays in BGR, BGRA or grayscale layout;
  timestamps are integer nanoseconds.
- `laser_guidance.detector`: `Detector.detect(frame)` finds the largest
  saturated bright spot and returns its centre, contour and brightness.
- `laser_guidance.ekf_tracker`: `EkfTracker`, a constant-acceleration Kalman
  tracker for an image point, configured by `EkfConfig` and reporting
  `EkfState`.
- `laser_guidance.hit_state`: `HitStateMachine`, which confirms a hit after a
  run of purple frames (default 3) and releases it after a run of misses
  (default 5), with states `HitState.NONE`, `CANDIDATE` and `CONFIRMED`.
- `laser_guidance.hit_progress`: `HitProgress`, which accumulates lock-on
  progress per frame, with lock stages, a 45 s lock timer and exhaustion
  after three locks.
- `laser_guidance.freshness_queue`: `LatestValue`, a thread-safe single slot
  that keeps only the newest value; `pop()` blocks, `try_pop()` returns
  `None` when empty, and after `shutdown()` pushes and blocked pops raise
  `QueueShutdown`.
- `laser_guidance.model_runtime`: tensor metadata types and
  `prepare_input_tensor`, which letterboxes an image into an RGB NCHW
  `float32` tensor, plus the `ModelRuntime` session class.
- `laser_guidance.model_adapter`: `adapt_yolov5_outputs` decodes raw YOLOv5
  outputs (with thresholding and NMS), single post-NMS tensors with 6 or 7
  columns, and four split post-NMS tensors; `iou` and `apply_nms` are
  available on their own.
- `laser_guidance.model_infer`: `ModelInfer`, which combines a runtime and an
  adapter behind `infer(frame)`; startup problems are reported in each
  result's `message` rather than raised.
- `laser_guidance.training_data`: session metadata in YAML
  (`write_video_session_metadata`, `load_video_session_metadata`),
  `format_session_id`, ffprobe/ffmpeg helpers (`probe_video_encoding_info`,
  `transcode_video_to_h264_in_place`, `parse_video_encoding_info`),
  `blur_score_for_frame`, `normalize_split_name`, `make_image_name` and
  `write_export_manifest`.

## Install

```
pip install .
pip install .[test]   # with pytest
```

## Example

```python
from laser_guidance.ekf_tracker import EkfTracker
from laser_guidance.hit_state import HitStateMachine, HitState

tracker = EkfTracker()
tracker.process((320.0, 240.0), 0)            # timestamps in nanoseconds
tracker.process((322.0, 241.0), 10_000_000)   # 10 ms later
print(tracker.state().position)

machine = HitStateMachine()
for _ in range(3):
    state = machine.update(True)
assert state is HitState.CONFIRMED
```

Decoding the result of a model run:

```python
from laser_guidance.model_adapter import adapt_yolov5_outputs

result = adapt_yolov5_outputs(frame, run_result)
if result.success and result.observation.detected:
    print(result.observation.center, result.candidates[0].score)
```

`probe_video_encoding_info` and `transcode_video_to_h264_in_place` run the
`ffprobe` and `ffmpeg` programs, which must be on `PATH`.

## What it does not do

- There is no model inference backend. `model_runtime_enabled_in_build()`
  returns `False`, `ModelRuntime.load()` raises `ModelRuntimeError`, and
  `ModelRuntime.run()` returns an unsuccessful `ModelRunResult`. `ModelInfer`
  therefore never succeeds; its results say why. Outputs obtained elsewhere
  can still be decoded with `adapt_yolov5_outputs`.
- There is no camera capture, no video recording and no extraction of frames
  from video files; the training-data module only handles metadata, encoding
  checks, blur scoring, file names and manifests.
- There is no command-line tool or display window.

## Tests

```
pytest
```