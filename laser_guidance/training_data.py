"""Recording-session metadata, video encoding checks and training-frame export helpers."""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import yaml
from scipy import ndimage

from .observation import to_gray_image

PathLike = Union[str, Path]

EXPORT_MANIFEST_HEADER = (
    "image_name,source_session_id,source_timestamp_ms,split,blur_score,width,height,"
    "relative_image_path"
)

_SPLITS = ("train", "val", "test")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_BGR_WEIGHTS = np.array([0.114, 0.587, 0.299])
_LAPLACIAN = np.array([[0.0, 1.0, 0.0], [1.0, -4.0, 1.0], [0.0, 1.0, 0.0]])


@dataclass
class VideoSessionMetadata:
    session_id: str = ""
    relative_video_path: Path = field(default_factory=lambda: Path("raw.mp4"))
    device_path: str = ""
    width: int = 0
    height: int = 0
    framerate: float = 0.0
    fourcc: str = ""
    capture_start_unix_ms: int = 0
    duration_ms: int = 0
    lighting_tag: str = ""
    background_tag: str = ""
    distance_tag: str = ""
    target_color: str = ""
    operator_note_present: bool = False

    def __post_init__(self) -> None:
        self.relative_video_path = Path(self.relative_video_path)
        self.device_path = str(self.device_path)


@dataclass
class ExportedTrainingFrame:
    image_name: str = ""
    source_session_id: str = ""
    source_timestamp_ms: int = 0
    split: str = ""
    blur_score: float = 0.0
    width: int = 0
    height: int = 0
    relative_image_path: Path = field(default_factory=Path)


@dataclass
class VideoEncodingInfo:
    codec_name: str = ""
    codec_tag_string: str = ""
    profile: str = ""
    pix_fmt: str = ""
    width: int = 0
    height: int = 0


def format_session_id(capture_start: datetime) -> str:
    """Session identifier from the local capture start time, e.g. ``20240305T070809``."""
    return capture_start.astimezone().strftime("%Y%m%dT%H%M%S")


def write_video_session_metadata(path: PathLike, metadata: VideoSessionMetadata) -> None:
    """Write ``metadata`` as a YAML mapping, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    document = {
        "session_id": metadata.session_id,
        "relative_video_path": Path(metadata.relative_video_path).as_posix(),
        "device_path": str(metadata.device_path),
        "width": int(metadata.width),
        "height": int(metadata.height),
        "framerate": float(metadata.framerate),
        "fourcc": metadata.fourcc,
        "capture_start_unix_ms": int(metadata.capture_start_unix_ms),
        "duration_ms": int(metadata.duration_ms),
        "lighting_tag": metadata.lighting_tag,
        "background_tag": metadata.background_tag,
        "distance_tag": metadata.distance_tag,
        "target_color": metadata.target_color,
        "operator_note_present": bool(metadata.operator_note_present),
    }
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(
            document, handle, default_flow_style=False, sort_keys=False, allow_unicode=True
        )


def load_video_session_metadata(path: PathLike) -> VideoSessionMetadata:
    """Read session metadata; keys that are absent keep their defaults."""
    with Path(path).open("r", encoding="utf-8") as handle:
        document = yaml.safe_load(handle)
    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ValueError(f"session metadata is not a mapping: {path}")

    def present(key: str) -> bool:
        return document.get(key) is not None

    metadata = VideoSessionMetadata()
    for key in (
        "session_id",
        "device_path",
        "fourcc",
        "lighting_tag",
        "background_tag",
        "distance_tag",
        "target_color",
    ):
        if present(key):
            setattr(metadata, key, str(document[key]))
    if present("relative_video_path"):
        metadata.relative_video_path = Path(str(document["relative_video_path"]))
    for key in ("width", "height", "capture_start_unix_ms", "duration_ms"):
        if present(key):
            setattr(metadata, key, int(document[key]))
    if present("framerate"):
        metadata.framerate = float(document["framerate"])
    if present("operator_note_present"):
        metadata.operator_note_present = bool(document["operator_note_present"])
    return metadata


def _leading_int(value: str) -> int:
    match = _LEADING_INT.match(value)
    if match is None:
        raise ValueError(f"invalid integer in ffprobe output: {value!r}")
    return int(match.group(1))


def parse_video_encoding_info(output: str) -> VideoEncodingInfo:
    """Parse ``key=value`` lines printed by ffprobe for the first video stream."""
    info = VideoEncodingInfo()
    for line in output.splitlines():
        key, separator, value = line.partition("=")
        if not separator:
            continue
        if key == "codec_name":
            info.codec_name = value
        elif key == "codec_tag_string":
            info.codec_tag_string = value
        elif key == "profile":
            info.profile = value
        elif key == "pix_fmt":
            info.pix_fmt = value
        elif key == "width":
            info.width = _leading_int(value)
        elif key == "height":
            info.height = _leading_int(value)

    if not info.codec_name or not info.codec_tag_string or info.width <= 0 or info.height <= 0:
        raise ValueError("failed to parse ffprobe video encoding info")
    return info


def _run_command(args: Sequence[str]) -> Tuple[int, str]:
    """Run a command and return its exit code and combined stdout/stderr."""
    try:
        completed = subprocess.run(
            list(args),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as error:
        raise RuntimeError(f"failed to start command: {' '.join(args)}") from error
    return completed.returncode, completed.stdout or ""


def probe_video_encoding_info(video_path: PathLike) -> VideoEncodingInfo:
    """Ask ffprobe for the codec, tag, profile, pixel format and size of a video."""
    video_path = Path(video_path)
    if not video_path.exists():
        raise FileNotFoundError(f"video path does not exist: {video_path}")

    exit_code, output = _run_command(
        [
            "ffprobe",
            "-v",
            "error",
            "-select_streams",
            "v:0",
            "-show_entries",
            "stream=codec_name,codec_tag_string,profile,width,height,pix_fmt",
            "-of",
            "default=noprint_wrappers=1",
            str(video_path),
        ]
    )
    if exit_code != 0:
        raise RuntimeError(f"ffprobe failed for video path {video_path}: {output}")
    return parse_video_encoding_info(output)


def _is_h264_avc1(info: VideoEncodingInfo) -> bool:
    return info.codec_name.lower() == "h264" and info.codec_tag_string.lower() == "avc1"


def transcode_video_to_h264_in_place(video_path: PathLike) -> None:
    """Re-encode a video as H.264/avc1 unless it already is, replacing the file."""
    video_path = Path(video_path)
    if _is_h264_avc1(probe_video_encoding_info(video_path)):
        return

    temp_path = video_path.parent / f"{video_path.stem}.transcoding.mp4"
    backup_path = video_path.parent / f"{video_path.stem}.backup.mp4"
    temp_path.unlink(missing_ok=True)
    backup_path.unlink(missing_ok=True)

    exit_code, output = _run_command(
        [
            "ffmpeg",
            "-y",
            "-loglevel",
            "error",
            "-i",
            str(video_path),
            "-map",
            "0:v:0",
            "-an",
            "-c:v",
            "libx264",
            "-pix_fmt",
            "yuv420p",
            "-movflags",
            "+faststart",
            str(temp_path),
        ]
    )
    if exit_code != 0:
        raise RuntimeError(f"ffmpeg transcode failed for video path {video_path}: {output}")

    if not _is_h264_avc1(probe_video_encoding_info(temp_path)):
        raise RuntimeError(f"transcoded video is not H.264/avc1: {temp_path}")

    video_path.replace(backup_path)
    try:
        temp_path.replace(video_path)
    except OSError:
        if not video_path.exists() and backup_path.exists():
            backup_path.replace(video_path)
        raise

    backup_path.unlink(missing_ok=True)
    probe_video_encoding_info(video_path)


def _gray_for_blur(image: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if image is None or image.size == 0:
        return None
    if image.ndim == 2:
        return image.astype(np.float64)
    channels = image.shape[2] if image.ndim == 3 else 0
    if channels == 1:
        return image[:, :, 0].astype(np.float64)
    if channels in (3, 4):
        if image.dtype == np.uint8:
            return to_gray_image(image).astype(np.float64)
        return image[:, :, :3].astype(np.float64) @ _BGR_WEIGHTS
    raise ValueError("unsupported image channel count for blur scoring")


def blur_score_for_frame(image: Optional[np.ndarray]) -> float:
    """Variance of the Laplacian; higher means sharper. Empty images score 0."""
    gray = _gray_for_blur(image)
    if gray is None:
        return 0.0
    laplacian = ndimage.correlate(gray, _LAPLACIAN, mode="mirror")
    return float(laplacian.std() ** 2)


def normalize_split_name(split: str) -> str:
    """Lower-case a dataset split name and check it is train, val or test."""
    normalized = split.lower()
    if normalized not in _SPLITS:
        raise ValueError("split must be one of: train, val, test")
    return normalized


def make_image_name(session_id: str, timestamp_ms: int) -> str:
    """File name of an exported frame: session id plus zero-padded timestamp."""
    return f"{session_id}_t{int(timestamp_ms):08d}ms.png"


def write_export_manifest(path: PathLike, frames: Iterable[ExportedTrainingFrame]) -> None:
    """Write a CSV manifest listing the exported frames."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines: List[str] = [EXPORT_MANIFEST_HEADER]
    for frame in frames:
        lines.append(
            ",".join(
                [
                    frame.image_name,
                    frame.source_session_id,
                    str(int(frame.source_timestamp_ms)),
                    frame.split,
                    f"{frame.blur_score:.4f}",
                    str(int(frame.width)),
                    str(int(frame.height)),
                    Path(frame.relative_image_path).as_posix(),
                ]
            )
        )
    with path.open("w", encoding="utf-8", newline="") as handle:
        handle.write("\n".join(lines) + "\n")